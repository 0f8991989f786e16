from dataclasses import dataclass, replace
from typing import Optional

from sdclient.utils_shared import Config, config as shared_config


@dataclass(frozen=True)
class GenerationDefaults:
    """Baseline sampler/size/steps/cfg/seed values, read from the 'generation' config section."""
    sampler: str = 'Euler a'
    width: int = 960
    height: int = 540
    steps: int = 20
    cfg_scale: float = 7.0
    seed: int = -1

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "GenerationDefaults":
        section:dict = (config or shared_config).get('generation', {}) or {}
        return cls(sampler=str(section.get('sampler', cls.sampler)),
                   width=int(section.get('width', cls.width)),
                   height=int(section.get('height', cls.height)),
                   steps=int(section.get('steps', cls.steps)),
                   cfg_scale=float(section.get('cfg_scale', cls.cfg_scale)),
                   seed=int(section.get('seed', cls.seed)))

    def with_overrides(self, **overrides) -> "GenerationDefaults":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
