from dataclasses import dataclass, field
from typing import Any, Optional
from dataclasses_json import dataclass_json

from sdclient.codec import decode_image_from_base64_array, encode_image_base64, encode_image_base64_array
from sdclient.typing import DefaultParameters
from sdclient.utils_misc import parse_infotext


def _generation_fields(defaults: DefaultParameters) -> dict[str, Any]:
    return {"sampler_index": defaults.sampler,
            "width": defaults.width,
            "height": defaults.height,
            "seed": defaults.seed,
            "steps": defaults.steps,
            "cfg_scale": defaults.cfg_scale}


class ImagesResult:
    images: list[str]

    def get_image(self) -> bytes:
        return decode_image_from_base64_array(self.images)


############
# GET bodies
@dataclass_json
@dataclass
class AppIdResponse:
    app_id: Optional[str] = None


@dataclass_json
@dataclass
class CmdFlagsResponse:
    f: bool = False
    update_all_extensions: bool = False
    skip_python_version_check: bool = False
    skip_torch_cuda_test: bool = False
    reinstall_xformers: bool = False
    reinstall_torch: bool = False
    update_check: bool = False
    tests: Optional[str] = None
    no_tests: bool = False
    skip_install: bool = False
    data_dir: Optional[str] = None
    config: Optional[str] = None
    ckpt: Optional[str] = None
    ckpt_dir: Optional[str] = None
    vae_dir: Optional[str] = None
    gfpgan_dir: Optional[str] = None
    gfpgan_model: Optional[str] = None
    no_half: bool = False
    no_half_vae: bool = False
    no_progressbar_hiding: bool = False
    max_batch_count: int = 0
    embeddings_dir: Optional[str] = None
    textual_inversion_templates_dir: Optional[str] = None
    hypernetwork_dir: Optional[str] = None
    localizations_dir: Optional[str] = None
    allow_code: bool = False
    medvram: bool = False
    lowvram: bool = False
    lowram: bool = False
    always_batch_cond_uncond: bool = False
    unload_gfpgan: bool = False
    precision: Optional[str] = None
    upcast_sampling: bool = False
    share: bool = False
    ngrok: Optional[str] = None
    ngrok_region: Optional[str] = None
    enable_insecure_extension_access: bool = False
    codeformer_models_path: Optional[str] = None
    gfpgan_models_path: Optional[str] = None
    esrgan_models_path: Optional[str] = None
    bsrgan_models_path: Optional[str] = None
    realesrgan_models_path: Optional[str] = None
    clip_models_path: Optional[str] = None
    xformers: bool = False
    force_enable_xformers: bool = False
    xformers_flash_attention: bool = False
    deepdanbooru: bool = False
    opt_split_attention: bool = False
    opt_sub_quad_attention: bool = False
    sub_quad_q_chunk_size: int = 0
    sub_quad_kv_chunk_size: Optional[str] = None
    sub_quad_chunk_threshold: Optional[str] = None
    opt_split_attention_invokeai: bool = False
    opt_split_attention_v1: bool = False
    opt_sdp_attention: bool = False
    opt_sdp_no_mem_attention: bool = False
    disable_opt_split_attention: bool = False
    disable_nan_check: bool = False
    use_cpu: list[str] = field(default_factory=list)
    listen: bool = False
    port: Optional[str] = None
    show_negative_prompt: bool = False
    ui_config_file: Optional[str] = None
    hide_ui_dir_config: bool = False
    freeze_settings: bool = False
    ui_settings_file: Optional[str] = None
    gradio_debug: bool = False
    gradio_auth: Optional[str] = None
    gradio_auth_path: Optional[str] = None
    gradio_img2img_tool: Optional[str] = None
    gradio_inpaint_tool: Optional[str] = None
    opt_channelslast: bool = False
    styles_file: Optional[str] = None
    autolaunch: bool = False
    theme: Optional[str] = None
    use_textbox_seed: bool = False
    disable_console_progressbars: bool = False
    enable_console_prompts: bool = False
    vae_path: Optional[str] = None
    disable_safe_unpickle: bool = False
    api: bool = False
    api_auth: Optional[str] = None
    api_log: bool = False
    nowebui: bool = False
    ui_debug_mode: bool = False
    device_id: Optional[str] = None
    administrator: bool = False
    cors_allow_origins: Optional[str] = None
    cors_allow_origins_regex: Optional[str] = None
    tls_keyfile: Optional[str] = None
    tls_certfile: Optional[str] = None
    server_name: Optional[str] = None
    gradio_queue: bool = False
    no_gradio_queue: bool = False
    skip_version_check: bool = False
    no_hashing: bool = False
    no_download_sd_model: bool = False
    controlnet_dir: Optional[str] = None
    controlnet_annotator_models_path: Optional[str] = None
    no_half_controlnet: Optional[str] = None
    ldsr_models_path: Optional[str] = None
    lora_dir: Optional[str] = None
    scunet_models_path: Optional[str] = None
    swinir_models_path: Optional[str] = None


@dataclass_json
@dataclass
class SdModelResponse:
    title: Optional[str] = None
    model_name: Optional[str] = None
    hash: Optional[str] = None
    sha256: Optional[str] = None
    filename: Optional[str] = None
    config: Optional[str] = None


@dataclass_json
@dataclass
class ProgressParameters:
    skip_current_image: bool = False

    def as_query(self) -> dict[str, str]:
        return {"skip_current_image": str(self.skip_current_image).lower()}


@dataclass_json
@dataclass
class ProgressResponse:
    progress: float = 0.0
    eta_relative: float = 0.0
    state: dict = field(default_factory=dict)
    current_image: Optional[str] = None
    textinfo: Optional[str] = None

    def get_current_image(self) -> Optional[bytes]:
        if not self.current_image:
            return None
        return decode_image_from_base64_array([self.current_image])


#############
# POST bodies
@dataclass_json
@dataclass
class OptionsRequest:
    sd_model_checkpoint: Optional[str] = None


@dataclass_json
@dataclass
class OptionsResponse:
    pass


@dataclass_json
@dataclass
class Txt2ImgRequest:
    sampler_index: str = "Euler a"
    prompt: str = ""
    negative_prompt: str = ""
    seed: int = -1
    steps: int = 20
    cfg_scale: float = 7.0
    width: int = 960
    height: int = 540
    denoising_strength: float = 0.0

    @classmethod
    def from_defaults(cls, defaults: DefaultParameters) -> "Txt2ImgRequest":
        return cls(**_generation_fields(defaults))


@dataclass_json
@dataclass
class Txt2ImgResponse(ImagesResult):
    images: list[str] = field(default_factory=list)
    parameters: dict = field(default_factory=dict)
    info: Optional[str] = None


@dataclass_json
@dataclass
class Img2ImgRequest:
    init_images: list[str] = field(default_factory=list)
    sampler_index: str = "Euler a"
    prompt: str = ""
    negative_prompt: str = ""
    seed: int = -1
    steps: int = 20
    cfg_scale: float = 7.0
    width: int = 960
    height: int = 540
    denoising_strength: float = 0.75

    @classmethod
    def from_defaults(cls, defaults: DefaultParameters) -> "Img2ImgRequest":
        return cls(**_generation_fields(defaults))

    def set_image(self, data: bytes):
        self.init_images = encode_image_base64_array(data)


@dataclass_json
@dataclass
class Img2ImgResponse(ImagesResult):
    images: list[str] = field(default_factory=list)
    parameters: dict = field(default_factory=dict)
    info: Optional[str] = None


@dataclass_json
@dataclass
class PngInfoRequest:
    image: str = ""

    def set_image(self, data: bytes):
        self.image = encode_image_base64(data)


@dataclass_json
@dataclass
class PngInfoResponse:
    info: Optional[str] = None
    items: dict = field(default_factory=dict)

    def parse(self) -> dict[str, str]:
        return parse_infotext(self.info)


@dataclass_json
@dataclass
class ControlNetTxt2ImgRequest:
    controlnet_input_image: list[str] = field(default_factory=list)
    controlnet_module: str = "none"
    controlnet_model: str = "control_v11f1p_sd15_depth_fp16 [4b72d323]"
    sampler_index: str = "Euler a"
    controlnet_weight: float = 1.0
    prompt: str = ""
    negative_prompt: str = ""
    seed: int = -1
    steps: int = 20
    cfg_scale: float = 7.0
    width: int = 960
    height: int = 540
    denoising_strength: float = 0.0

    @classmethod
    def from_defaults(cls, defaults: DefaultParameters) -> "ControlNetTxt2ImgRequest":
        return cls(**_generation_fields(defaults))

    def set_image(self, data: bytes):
        self.controlnet_input_image = encode_image_base64_array(data)


@dataclass_json
@dataclass
class ControlNetTxt2ImgResponse(ImagesResult):
    images: list[str] = field(default_factory=list)
    parameters: dict = field(default_factory=dict)
    info: Optional[str] = None
