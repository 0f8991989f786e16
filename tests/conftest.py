import asyncio
import base64
import io
import random

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from PIL import Image, PngImagePlugin


def make_png(color=(255, 0, 0), size=(8, 8), parameters=None) -> bytes:
    image = Image.new("RGB", size, color)
    pnginfo = None
    if parameters is not None:
        pnginfo = PngImagePlugin.PngInfo()
        pnginfo.add_text("parameters", parameters)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", pnginfo=pnginfo)
    return buffer.getvalue()


class FakeWebUI:
    """Minimal stand-in for the SD WebUI API. Generated images carry their infotext like the real server."""

    def __init__(self):
        self.requests = []
        self.checkpoint = "v1-5-pruned-emaonly.safetensors [6ce0161689]"
        self.models = [
            {"title": "v1-5-pruned-emaonly.safetensors [6ce0161689]", "model_name": "v1-5-pruned-emaonly",
             "hash": "6ce0161689", "sha256": "6ce01616", "filename": "/models/v1-5.safetensors", "config": None},
            {"title": "modelA.safetensors [abcdef1234]", "model_name": "modelA",
             "hash": "abcdef1234", "sha256": "abcdef12", "filename": "/models/modelA.safetensors", "config": None},
        ]

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/app_id", self.app_id)
        app.router.add_get("/sdapi/v1/cmd-flags", self.cmd_flags)
        app.router.add_get("/sdapi/v1/sd-models", self.sd_models)
        app.router.add_get("/sdapi/v1/progress", self.progress)
        app.router.add_post("/sdapi/v1/options", self.options)
        app.router.add_post("/sdapi/v1/txt2img", self.generate)
        app.router.add_post("/sdapi/v1/img2img", self.generate)
        app.router.add_post("/controlnet/txt2img", self.generate)
        app.router.add_post("/sdapi/v1/png-info", self.png_info)
        return app

    async def _record(self, request: web.Request):
        payload = await request.json() if request.can_read_body else None
        self.requests.append({"method": request.method,
                              "path": request.path,
                              "query": dict(request.query),
                              "headers": dict(request.headers),
                              "json": payload})
        return payload

    async def app_id(self, request):
        await self._record(request)
        return web.json_response({"app_id": "sd-webui-test"})

    async def cmd_flags(self, request):
        await self._record(request)
        return web.json_response({"api": True, "listen": False, "port": "7860", "medvram": True,
                                  "ckpt_dir": "/models", "use_cpu": ["interrogate"], "brand_new_flag": 1})

    async def sd_models(self, request):
        await self._record(request)
        return web.json_response(self.models)

    async def progress(self, request):
        await self._record(request)
        skip = request.query.get("skip_current_image") == "true"
        current = None if skip else base64.b64encode(make_png((0, 0, 255))).decode()
        return web.json_response({"progress": 0.5, "eta_relative": 3.25,
                                  "state": {"job": "txt2img", "sampling_step": 10, "sampling_steps": 20},
                                  "current_image": current, "textinfo": None})

    async def options(self, request):
        payload = await self._record(request)
        self.checkpoint = payload.get("sd_model_checkpoint", self.checkpoint)
        return web.Response(text="null", content_type="application/json")

    async def generate(self, request):
        payload = await self._record(request)
        seed = payload.get("seed", -1)
        if seed == -1:
            seed = random.randint(1, 2**31)
        infotext = (f"{payload.get('prompt', '')}\n"
                    f"Steps: {payload.get('steps')}, Sampler: {payload.get('sampler_index')}, "
                    f"CFG scale: {payload.get('cfg_scale')}, Seed: {seed}, "
                    f"Size: {payload.get('width')}x{payload.get('height')}, Model: {self.checkpoint}")
        image = base64.b64encode(make_png(parameters=infotext)).decode()
        return web.json_response({"images": [image], "parameters": payload, "info": f'{{"seed": {seed}}}'})

    async def png_info(self, request):
        payload = await self._record(request)
        image = Image.open(io.BytesIO(base64.b64decode(payload["image"])))
        info = image.info.get("parameters", "")
        return web.json_response({"info": info, "items": {"parameters": info}})


@pytest.fixture
def webui():
    return FakeWebUI()


@pytest.fixture
def serve():
    """Runs `coro_fn(base_url)` against a local aiohttp app and returns its result."""
    def _serve(app: web.Application, coro_fn):
        async def main():
            server = TestServer(app)
            await server.start_server()
            try:
                return await coro_fn(f"http://{server.host}:{server.port}")
            finally:
                await server.close()
        return asyncio.run(main())
    return _serve


@pytest.fixture
def png_bytes():
    return make_png()
