from pathlib import Path
from enum import Enum
from typing import Optional
import io
import json
import os
import uuid
import aiofiles
import filetype
import yaml
from PIL import Image, PngImagePlugin

from sdclient.logs import get_logger; log = get_logger(__name__)  # noqa: E702


# Function to load .json, .yml or .yaml files
def load_file(file_path, default=None, missing_okay=False):
    try:
        file_suffix = Path(file_path).suffix.lower()

        if file_suffix in [".json", ".yml", ".yaml"]:
            with open(file_path, 'r', encoding='utf-8') as file:
                if file_suffix in [".json"]:
                    data = json.load(file)
                else:
                    data = yaml.safe_load(file)

            if data is None:
                return default
            return data

        else:
            log.error(f"Unsupported file format: {file_suffix}: {file_path}")
            return default

    except FileNotFoundError:
        if not missing_okay:
            log.error(f"File not found: {file_path}")
        return default

    except Exception as e:
        log.error(f"An error occurred while reading {file_path}: {str(e)}")
        return default


class ImageType(str, Enum):
    PNG = "PNG"
    JPG = "JPG"
    TGA = "TGA"

    @property
    def extension(self) -> str:
        return self.value.lower()

    @property
    def pil_format(self) -> str:
        return "JPEG" if self is ImageType.JPG else self.value


def create_directory_recursive(path) -> bool:
    '''Creates every missing directory from the outermost existing ancestor down to "path".'''
    path = Path(path)
    missing = []
    current = path
    while not current.exists():
        missing.append(current)
        if current.parent == current:
            break
        current = current.parent
    if current.exists() and not current.is_dir():
        log.error(f'Cannot create "{path}": "{current}" is not a directory.')
        return False
    for directory in reversed(missing):
        try:
            directory.mkdir()
        except FileExistsError:
            if not directory.is_dir():
                log.error(f'Cannot create "{path}": "{directory}" is not a directory.')
                return False
        except OSError as e:
            log.error(f'Failed to create directory "{directory}": {e}')
            return False
    return True


def make_fp_unique(fp):
    c = 0 # already adds 1
    name, ext = fp.rsplit('.',1)

    if name.endswith(')') and ' ' in name: # check if already a (1)
        name_, num = name.rsplit(' ',1)
        if num[1:-1].isdigit() and num[0] == '(':
            name = name_

    format_path = f'{name} ({{0}}).{ext}'
    while os.path.isfile(fp):
        c += 1
        fp = format_path.format(c)
    return fp


def save_image(data: bytes,
               directory,
               filename: Optional[str] = None,
               image_type: ImageType = ImageType.PNG,
               pnginfo: Optional[PngImagePlugin.PngInfo] = None) -> Optional[str]:
    '''
    Writes image bytes to "directory/filename.<ext>", re-encoded as image_type.
    Returns the written path, or None if the directory or file could not be written.
    '''
    if not data or not directory:
        raise ValueError("save_image() requires image data and a directory")
    filename = filename or str(uuid.uuid4())
    image_type = ImageType(image_type)

    if not create_directory_recursive(directory):
        log.error("Failed to create directory. aborting.")
        return None

    image = Image.open(io.BytesIO(data))
    save_kwargs = {"format": image_type.pil_format}
    if image_type is ImageType.PNG:
        if pnginfo is not None:
            save_kwargs["pnginfo"] = pnginfo
    elif image_type is ImageType.JPG and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")

    fp = make_fp_unique(os.path.join(str(directory), f"{filename}.{image_type.extension}"))
    try:
        image.save(fp, **save_kwargs)
    except OSError as e:
        log.error(f'Failed to save image "{fp}": {e}')
        return None
    log.info(f'Saved image to "{fp}"')
    return fp


def guess_format_from_data(data, default=None) -> str:
    kind = filetype.guess(data)
    return kind.mime if kind else default

async def read_image_file(path) -> bytes:
    '''Reads an input image for img2img / controlnet / png-info. Raises ValueError if the file is not an image.'''
    async with aiofiles.open(path, mode='rb') as f:
        data = await f.read()
    mime = guess_format_from_data(data, '')
    if not mime.startswith('image/'):
        raise ValueError(f'"{path}" is not an image file ({mime or "unknown format"})')
    return data
