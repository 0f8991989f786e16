import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

import aiohttp
from PIL import PngImagePlugin
from yarl import URL

from sdclient.codec import decode_list, decode_single, encode_body
from sdclient.schemas import (AppIdResponse, CmdFlagsResponse, ControlNetTxt2ImgRequest, ControlNetTxt2ImgResponse,
                              Img2ImgRequest, Img2ImgResponse, OptionsRequest, OptionsResponse, PngInfoRequest,
                              PngInfoResponse, ProgressParameters, ProgressResponse, SdModelResponse, Txt2ImgRequest,
                              Txt2ImgResponse)
from sdclient.typing import DefaultParameters, HeaderSet, HttpMethod, TransportError
from sdclient.utils_shared import config
from sdclient.webrequest import WebRequest

from sdclient.logs import get_logger; log = get_logger(__name__)  # noqa: E702

JSON_HEADERS = HeaderSet([("Content-Type", "application/json")])

# Generation and checkpoint loading run as long as the server needs
IMGGEN_TIMEOUT = 0


@dataclass(frozen=True)
class Endpoint:
    name: str
    path: str
    method: HttpMethod
    response_cls: type
    list_response: bool = False
    body_cls: Optional[type] = None
    headers: HeaderSet = JSON_HEADERS
    # None: use the client default. 0: no limit
    timeout: Optional[float] = None

    def url(self, server_url: str, params: Optional[dict[str, str]] = None) -> str:
        url = URL(f"{server_url.rstrip('/')}{self.path}")
        if params:
            url = url.with_query(params)
        return str(url)

    def get_request_body(self, defaults: Optional[DefaultParameters] = None):
        if self.body_cls is None:
            raise ValueError(f'Endpoint "{self.name}" does not take a request body')
        if defaults is not None and hasattr(self.body_cls, 'from_defaults'):
            return self.body_cls.from_defaults(defaults)
        return self.body_cls()

    def decode(self, text: Optional[str]):
        if self.list_response:
            return decode_list(self.response_cls, text)
        return decode_single(self.response_cls, text)


# GET
APP_ID = Endpoint('app-id', '/app_id', HttpMethod.GET, AppIdResponse)
CMD_FLAGS = Endpoint('cmd-flags', '/sdapi/v1/cmd-flags', HttpMethod.GET, CmdFlagsResponse)
SD_MODELS = Endpoint('sd-models', '/sdapi/v1/sd-models', HttpMethod.GET, SdModelResponse, list_response=True)
PROGRESS = Endpoint('progress', '/sdapi/v1/progress', HttpMethod.GET, ProgressResponse)
# POST
OPTIONS = Endpoint('options', '/sdapi/v1/options', HttpMethod.POST, OptionsResponse, body_cls=OptionsRequest,
                   timeout=IMGGEN_TIMEOUT)
TXT2IMG = Endpoint('txt2img', '/sdapi/v1/txt2img', HttpMethod.POST, Txt2ImgResponse, body_cls=Txt2ImgRequest,
                   timeout=IMGGEN_TIMEOUT)
IMG2IMG = Endpoint('img2img', '/sdapi/v1/img2img', HttpMethod.POST, Img2ImgResponse, body_cls=Img2ImgRequest,
                   timeout=IMGGEN_TIMEOUT)
PNG_INFO = Endpoint('png-info', '/sdapi/v1/png-info', HttpMethod.POST, PngInfoResponse, body_cls=PngInfoRequest)
CONTROLNET_TXT2IMG = Endpoint('controlnet-txt2img', '/controlnet/txt2img', HttpMethod.POST, ControlNetTxt2ImgResponse,
                              body_cls=ControlNetTxt2ImgRequest, timeout=IMGGEN_TIMEOUT)

ENDPOINTS: dict[str, Endpoint] = {ep.name: ep for ep in (APP_ID, CMD_FLAGS, SD_MODELS, PROGRESS, OPTIONS,
                                                          TXT2IMG, IMG2IMG, PNG_INFO, CONTROLNET_TXT2IMG)}

# Generation endpoint per imggen mode
MODE_ENDPOINTS: dict[str, Endpoint] = {"txt2img": TXT2IMG,
                                       "img2img": IMG2IMG,
                                       "controlnet": CONTROLNET_TXT2IMG}


def get_endpoint(endpoint_name: str, strict=False) -> Optional[Endpoint]:
    endpoint = ENDPOINTS.get(endpoint_name)
    if not endpoint:
        if strict:
            raise ValueError(f'Endpoint "{endpoint_name}" not found or invalid')
        log.warning(f'Endpoint "{endpoint_name}" not found or invalid')
        return None
    return endpoint


class APIClient:
    def __init__(self,
                 url: Optional[str] = None,
                 timeout: Optional[float] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.url = (url or config.url).rstrip("/")
        self.default_timeout = timeout if timeout is not None else config.timeout
        # Optional shared session. When None, each WebRequest owns and closes its own session.
        self.session = session

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None

    def open(self, endpoint: Union[Endpoint, str], params: Optional[dict[str, str]] = None) -> WebRequest:
        if isinstance(endpoint, str):
            endpoint = get_endpoint(endpoint, strict=True)
        return WebRequest(url=endpoint.url(self.url, params),
                          method=endpoint.method,
                          headers=endpoint.headers,
                          timeout=endpoint.timeout if endpoint.timeout is not None else self.default_timeout,
                          session=self.session)

    def get_request_body(self, endpoint: Union[Endpoint, str], defaults: Optional[DefaultParameters] = None):
        if isinstance(endpoint, str):
            endpoint = get_endpoint(endpoint, strict=True)
        return endpoint.get_request_body(defaults)

    async def request(self,
                      endpoint: Union[Endpoint, str],
                      body: Any = None,
                      params: Optional[dict[str, str]] = None) -> Any:
        if isinstance(endpoint, str):
            endpoint = get_endpoint(endpoint, strict=True)
        if body is not None and endpoint.body_cls is not None and not isinstance(body, endpoint.body_cls):
            raise TypeError(f'[{endpoint.name}] expected {endpoint.body_cls.__name__}, got {type(body).__name__}')

        payload = encode_body(body) if body is not None else None
        async with self.open(endpoint, params) as web_request:
            try:
                text = await web_request.send(payload)
            except TransportError as e:
                log.error(f'[{endpoint.name}] {endpoint.method.value} {web_request.url} failed: {e}')
                raise
        return endpoint.decode(text)

    ######
    # GET
    async def get_app_id(self) -> AppIdResponse:
        return await self.request(APP_ID)

    async def get_cmd_flags(self) -> CmdFlagsResponse:
        return await self.request(CMD_FLAGS)

    async def get_sd_models(self) -> list[SdModelResponse]:
        return await self.request(SD_MODELS)

    async def get_progress(self, skip_current_image: bool = False) -> ProgressResponse:
        params = ProgressParameters(skip_current_image=skip_current_image)
        return await self.request(PROGRESS, params=params.as_query())

    async def fetch_imgmodels(self) -> list[str]:
        models = await self.get_sd_models()
        return [model.title for model in models if model.title]

    #######
    # POST
    async def post_options(self, sd_model_checkpoint: Union[str, OptionsRequest]) -> OptionsResponse:
        if isinstance(sd_model_checkpoint, OptionsRequest):
            body = sd_model_checkpoint
        else:
            body = OPTIONS.get_request_body()
            body.sd_model_checkpoint = sd_model_checkpoint
        return await self.request(OPTIONS, body)

    async def post_txt2img(self, body: Txt2ImgRequest) -> Txt2ImgResponse:
        return await self.request(TXT2IMG, body)

    async def post_img2img(self, body: Img2ImgRequest) -> Img2ImgResponse:
        return await self.request(IMG2IMG, body)

    async def post_controlnet_txt2img(self, body: ControlNetTxt2ImgRequest) -> ControlNetTxt2ImgResponse:
        return await self.request(CONTROLNET_TXT2IMG, body)

    async def post_pnginfo(self, image: Union[bytes, PngInfoRequest]) -> PngInfoResponse:
        if isinstance(image, PngInfoRequest):
            body = image
        else:
            body = PNG_INFO.get_request_body()
            body.set_image(image)
        return await self.request(PNG_INFO, body)

    async def call_imggen_endpoint(self, body, mode: str = "txt2img"):
        endpoint = MODE_ENDPOINTS.get(mode)
        if endpoint is None:
            raise ValueError(f'Unknown image generation mode "{mode}"')
        return await self.request(endpoint, body)

    async def extract_pnginfo(self, image: bytes) -> Tuple[dict[str, str], Optional[PngImagePlugin.PngInfo]]:
        '''Posts image bytes to png-info. Returns the parsed mapping and a PngInfo carrying the raw "parameters" text.'''
        response = await self.post_pnginfo(image)
        if not response.info:
            return {}, None
        pnginfo = PngImagePlugin.PngInfo()
        pnginfo.add_text("parameters", response.info)
        return response.parse(), pnginfo

    async def is_online(self) -> Tuple[bool, str]:
        try:
            await self.get_app_id()
            log.debug(f'SD WebUI is online at {self.url}')
            return True, ''
        except (TransportError, asyncio.TimeoutError, ValueError) as e:
            emsg = f"Stable Diffusion is not running at: {self.url} ({e})"
            log.warning(emsg)
            return False, emsg
