from dataclasses import dataclass, field
from typing import Callable, Optional

from sdclient.apis import MODE_ENDPOINTS, APIClient
from sdclient.defaults import GenerationDefaults
from sdclient.typing import DefaultParameters
from sdclient.utils_files import ImageType, save_image
from sdclient.utils_shared import config

from sdclient.logs import get_logger; log = get_logger(__name__)  # noqa: E702

DisplaySink = Callable[[bytes], bool]


@dataclass
class ImgGenResult:
    image: bytes
    info: dict[str, str] = field(default_factory=dict)
    path: Optional[str] = None


class ImgGen:
    """
    Select model -> generate -> png-info -> save -> display, one generation at a time.

    Each step is awaited before the next is issued. Errors are logged and abort the
    current generation; the `generating` flag is always reset afterwards.
    """
    def __init__(self,
                 client: Optional[APIClient] = None,
                 defaults: Optional[DefaultParameters] = None,
                 output_dir: Optional[str] = None,
                 image_type: Optional[ImageType|str] = None,
                 display: Optional[DisplaySink] = None,
                 save: bool = True):
        output_config:dict = config.get('output', {})
        self.client = client or APIClient()
        self.defaults = defaults or GenerationDefaults.from_config()
        self.output_dir = output_dir or output_config.get('dir')
        self.image_type = ImageType(image_type or output_config.get('image_type', 'PNG'))
        self.display = display
        self.save = save
        self.generating = False

    def build_payload(self,
                      mode: str,
                      prompt: str,
                      negative_prompt: str = "",
                      init_image: Optional[bytes] = None,
                      control_image: Optional[bytes] = None,
                      **overrides):
        endpoint = MODE_ENDPOINTS.get(mode)
        if endpoint is None:
            raise ValueError(f'Unknown image generation mode "{mode}"')
        body = endpoint.get_request_body(self.defaults)
        body.prompt = prompt
        body.negative_prompt = negative_prompt
        for key, value in overrides.items():
            if value is None:
                continue
            if not hasattr(body, key):
                raise ValueError(f'"{key}" is not a valid {mode} parameter')
            setattr(body, key, value)
        if mode == "img2img":
            if not init_image:
                raise ValueError("img2img requires an input image")
            body.set_image(init_image)
        elif mode == "controlnet":
            if not control_image:
                raise ValueError("controlnet requires a control image")
            body.set_image(control_image)
        return body

    async def generate(self,
                       prompt: str,
                       negative_prompt: str = "",
                       model: Optional[str] = None,
                       mode: str = "txt2img",
                       init_image: Optional[bytes] = None,
                       control_image: Optional[bytes] = None,
                       **overrides) -> Optional[ImgGenResult]:
        if self.generating:
            log.warning("Generate already working.")
            return None
        if not prompt:
            log.warning("Prompt is empty")
            return None

        try:
            self.generating = True
            log.info("Image generating started.")

            body = self.build_payload(mode, prompt, negative_prompt, init_image, control_image, **overrides)

            if model:
                await self.client.post_options(model)

            response = await self.client.call_imggen_endpoint(body, mode)
            image = response.get_image()

            info, pnginfo = await self.client.extract_pnginfo(image)
            log.info(f"Seed:{info.get('Seed')}")

            path = None
            if self.save:
                path = save_image(image, self.output_dir, image_type=self.image_type, pnginfo=pnginfo)
                if path:
                    log.info("Image generating completed.")
                else:
                    log.warning("Failed to save generated image.")

            if self.display is not None:
                if self.display(image):
                    log.info("Image loaded into display.")
                else:
                    log.warning("Display rejected the generated image.")

            return ImgGenResult(image=image, info=info, path=path)

        except Exception as e:
            log.error(f'Error processing images: {e}')
            return None

        finally:
            self.generating = False
