import asyncio

import pytest
from aiohttp import web
from PIL import Image

from sdclient.apis import APIClient
from sdclient.defaults import GenerationDefaults
from sdclient.imggen import ImgGen
from sdclient.utils_files import ImageType

DEFAULTS = GenerationDefaults(sampler="Euler a", width=960, height=540, steps=50, cfg_scale=7.0, seed=-1)


def test_txt2img_pipeline_saves_and_displays(serve, webui, tmp_path):
    displayed = []

    def display(image: bytes) -> bool:
        displayed.append(image)
        return True

    async def scenario(base_url):
        imggen = ImgGen(client=APIClient(url=base_url), defaults=DEFAULTS, output_dir=str(tmp_path / "out" / "sd"),
                        display=display)
        result = await imggen.generate("a red ball", model="modelA")
        assert not imggen.generating
        return result

    result = serve(webui.app(), scenario)
    assert result is not None
    assert result.image
    assert "Seed" in result.info
    assert displayed == [result.image]
    assert [r["path"] for r in webui.requests] == ["/sdapi/v1/options", "/sdapi/v1/txt2img", "/sdapi/v1/png-info"]
    with Image.open(result.path) as saved:
        assert saved.format == "PNG"
        assert saved.info["parameters"].startswith("a red ball\n")


def test_pipeline_skips_options_without_model(serve, webui, tmp_path):
    async def scenario(base_url):
        imggen = ImgGen(client=APIClient(url=base_url), defaults=DEFAULTS, save=False)
        return await imggen.generate("a red ball", steps=30)

    result = serve(webui.app(), scenario)
    assert result.path is None
    assert [r["path"] for r in webui.requests] == ["/sdapi/v1/txt2img", "/sdapi/v1/png-info"]
    assert webui.requests[0]["json"]["steps"] == 30


def test_pipeline_jpg_output(serve, webui, tmp_path):
    async def scenario(base_url):
        imggen = ImgGen(client=APIClient(url=base_url), defaults=DEFAULTS, output_dir=str(tmp_path),
                        image_type=ImageType.JPG)
        return await imggen.generate("a red ball")

    result = serve(webui.app(), scenario)
    assert result.path.endswith(".jpg")
    with Image.open(result.path) as saved:
        assert saved.format == "JPEG"


@pytest.mark.parametrize("mode, path, image_key", [
    ("img2img", "/sdapi/v1/img2img", "init_images"),
    ("controlnet", "/controlnet/txt2img", "controlnet_input_image"),
])
def test_pipeline_image_modes(serve, webui, png_bytes, mode, path, image_key):
    async def scenario(base_url):
        imggen = ImgGen(client=APIClient(url=base_url), defaults=DEFAULTS, save=False)
        return await imggen.generate("a red ball", mode=mode, init_image=png_bytes, control_image=png_bytes)

    result = serve(webui.app(), scenario)
    assert result is not None
    assert webui.requests[0]["path"] == path
    assert len(webui.requests[0]["json"][image_key]) == 1


def test_pipeline_rejects_reentry(serve, webui):
    async def scenario(base_url):
        imggen = ImgGen(client=APIClient(url=base_url), defaults=DEFAULTS, save=False)
        first = asyncio.create_task(imggen.generate("first"))
        await asyncio.sleep(0)
        assert imggen.generating
        second = await imggen.generate("second")
        return await first, second

    first, second = serve(webui.app(), scenario)
    assert first is not None
    assert second is None
    assert [r["json"]["prompt"] for r in webui.requests if r["path"] == "/sdapi/v1/txt2img"] == ["first"]


def test_pipeline_empty_prompt(serve, webui):
    async def scenario(base_url):
        return await ImgGen(client=APIClient(url=base_url), defaults=DEFAULTS, save=False).generate("")

    assert serve(webui.app(), scenario) is None
    assert webui.requests == []


def test_pipeline_error_is_logged_and_flag_reset(serve):
    async def broken(request):
        return web.Response(status=500, text="CUDA out of memory")

    app = web.Application()
    app.router.add_post("/sdapi/v1/txt2img", broken)

    async def scenario(base_url):
        imggen = ImgGen(client=APIClient(url=base_url), defaults=DEFAULTS, save=False)
        result = await imggen.generate("a red ball")
        return result, imggen.generating

    result, generating = serve(app, scenario)
    assert result is None
    assert generating is False


def test_pipeline_missing_input_image_aborts(serve, webui):
    async def scenario(base_url):
        return await ImgGen(client=APIClient(url=base_url), defaults=DEFAULTS, save=False).generate(
            "a red ball", mode="img2img")

    assert serve(webui.app(), scenario) is None
    assert webui.requests == []


def test_build_payload_rejects_unknown_override():
    imggen = ImgGen(client=APIClient(url="http://127.0.0.1:7860"), defaults=DEFAULTS, save=False)
    with pytest.raises(ValueError):
        imggen.build_payload("txt2img", "a red ball", not_a_field=1)
    with pytest.raises(ValueError):
        imggen.build_payload("upscale", "a red ball")
