import pytest
from aiohttp.test_utils import unused_port

from sdclient.__main__ import build_parser, main, run

from conftest import make_png


def test_parser_generation_options():
    args = build_parser().parse_args(["--url", "http://host:1", "txt2img", "a red ball", "--steps", "50",
                                      "--cfg-scale", "6.5", "--type", "JPG"])
    assert args.command == "txt2img"
    assert args.prompt == "a red ball"
    assert (args.steps, args.cfg_scale, args.type) == (50, 6.5, "JPG")
    assert args.sampler is None


def test_parser_requires_input_image():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["img2img", "a red ball"])


def test_cli_models_and_app_id(serve, webui, capsys):
    async def scenario(base_url):
        parser = build_parser()
        return (await run(parser.parse_args(["--url", base_url, "app-id"])),
                await run(parser.parse_args(["--url", base_url, "models"])))

    assert serve(webui.app(), scenario) == (0, 0)
    out = capsys.readouterr().out.splitlines()
    for line in ["sd-webui-test", "v1-5-pruned-emaonly.safetensors [6ce0161689]", "modelA.safetensors [abcdef1234]"]:
        assert line in out


def test_cli_pnginfo(serve, webui, tmp_path, capsys):
    image = tmp_path / "in.png"
    image.write_bytes(make_png(parameters="a cat\nSteps: 20, Seed: 42"))

    async def scenario(base_url):
        return await run(build_parser().parse_args(["--url", base_url, "pnginfo", str(image)]))

    assert serve(webui.app(), scenario) == 0
    out = capsys.readouterr().out.splitlines()
    assert [line for line in out if line.startswith(("Prompt:", "Steps:", "Seed:"))] == [
        "Prompt: a cat", "Steps: 20", "Seed: 42"]


def test_cli_txt2img_writes_image(serve, webui, tmp_path, capsys):
    async def scenario(base_url):
        args = build_parser().parse_args(["--url", base_url, "txt2img", "a red ball", "--model", "modelA",
                                          "--steps", "50", "--out-dir", str(tmp_path)])
        return await run(args)

    assert serve(webui.app(), scenario) == 0
    path = capsys.readouterr().out.strip().splitlines()[-1]
    assert path.startswith(str(tmp_path))
    assert path.endswith(".png")
    txt2img = [r for r in webui.requests if r["path"] == "/sdapi/v1/txt2img"][0]
    assert txt2img["json"]["steps"] == 50


def test_cli_controlnet_overrides(serve, webui, tmp_path):
    image = tmp_path / "depth.png"
    image.write_bytes(make_png())

    async def scenario(base_url):
        args = build_parser().parse_args(["--url", base_url, "controlnet", "a house", "--image", str(image),
                                          "--module", "depth", "--weight", "0.5", "--out-dir", str(tmp_path)])
        return await run(args)

    assert serve(webui.app(), scenario) == 0
    payload = webui.requests[0]["json"]
    assert payload["controlnet_module"] == "depth"
    assert payload["controlnet_weight"] == 0.5
    assert payload["controlnet_model"] == "control_v11f1p_sd15_depth_fp16 [4b72d323]"


def test_main_reports_failure_on_offline_server():
    assert main(["--url", f"http://127.0.0.1:{unused_port()}", "app-id"]) == 1


def test_cli_img2img_rejects_non_image(tmp_path):
    fp = tmp_path / "notes.txt"
    fp.write_text("not an image")
    assert main(["--url", f"http://127.0.0.1:{unused_port()}", "img2img", "a cat", "--image", str(fp)]) == 1
