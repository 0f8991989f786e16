import copy
import os
from typing import Optional
from sdclient.utils_files import load_file
from sdclient.utils_misc import fix_dict

from sdclient.logs import get_logger; log = get_logger(__name__)  # noqa: E702

CONFIG_ENV_VAR = 'SDCLIENT_CONFIG'

DEFAULT_CONFIG = {
    'sd': {
        'SD_URL': 'http://127.0.0.1:7860',   # Default URL for A1111 API. Launch the WebUI with '--api'.
        'timeout': 60
    },
    'generation': {
        'sampler': 'Euler a',
        'width': 960,
        'height': 540,
        'steps': 20,
        'cfg_scale': 7.0,
        'seed': -1
    },
    'output': {
        'dir': os.path.join('outputs', 'StableDiffusion'),
        'image_type': 'PNG'     # PNG / JPG / TGA
    }
}


class Config:
    def __init__(self, fp: Optional[str] = None, missing_okay=True) -> None:
        self.sd: dict
        self.generation: dict
        self.output: dict
        self._fp = fp or os.environ.get(CONFIG_ENV_VAR) or 'config.yaml'
        self._missing_okay = missing_okay
        self.load()

    def get_vars(self):
        return {k:v for k,v in vars(self).items() if not k.startswith('_')}

    def load(self, data: Optional[dict] = None):
        loaded_from_file = data is None
        if data is None:
            data = load_file(self._fp, {}, missing_okay=self._missing_okay)
            if not isinstance(data, dict):
                raise Exception(f'Failed to import: "{self._fp}" wrong data type, expected dict, got {type(data)}')
        # Only warn about missing keys when the user actually supplied a file
        src = self._fp if (loaded_from_file and data) else None
        fix_dict(data, DEFAULT_CONFIG, src)
        for k, v in data.items():
            # only known sections become attributes
            if k not in DEFAULT_CONFIG:
                log.warning(f'Ignoring unknown key "{k}" in "{self._fp}".')
                continue
            if not isinstance(v, dict):
                log.warning(f'"{k}" in "{self._fp}" must be a mapping. Applying default values.')
                v = copy.deepcopy(DEFAULT_CONFIG[k])
            setattr(self, k, v)

    def reload(self, fp: str):
        self._fp = fp
        self._missing_okay = False
        self.load()

    def get(self, key, default=None):
        return getattr(self, key, default)

    @property
    def url(self) -> str:
        return str(self.sd.get('SD_URL', DEFAULT_CONFIG['sd']['SD_URL'])).rstrip('/')

    @property
    def timeout(self) -> float:
        return self.sd.get('timeout', DEFAULT_CONFIG['sd']['timeout'])

config = Config()
