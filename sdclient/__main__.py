import argparse
import asyncio
import logging
import sys

from sdclient.logs import add_file_handler, set_level, get_logger; log = get_logger(__name__)  # noqa: E702
from sdclient.apis import APIClient
from sdclient.defaults import GenerationDefaults
from sdclient.imggen import ImgGen
from sdclient.utils_files import read_image_file
from sdclient.utils_shared import config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sdclient", description="Client for a local Stable Diffusion WebUI API.")
    parser.add_argument("--url", type=str, help="Server URL (default: config 'sd.SD_URL')")
    parser.add_argument("--config", type=str, help="Path to config.yaml")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument("--log-file", type=str, help="Also write logs to this file")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("app-id", help="Print the server app id")
    sub.add_parser("flags", help="Print the server's command line flags")
    sub.add_parser("models", help="List available checkpoints")
    progress = sub.add_parser("progress", help="Print current generation progress")
    progress.add_argument("--skip-current-image", action="store_true")
    pnginfo = sub.add_parser("pnginfo", help="Print generation info embedded in an image")
    pnginfo.add_argument("image", type=str)

    for mode in ("txt2img", "img2img", "controlnet"):
        gen = sub.add_parser(mode, help=f"Generate an image ({mode})")
        gen.add_argument("prompt", type=str)
        gen.add_argument("--negative", type=str, default="")
        gen.add_argument("--model", type=str, help="Checkpoint to load before generating")
        gen.add_argument("--sampler", type=str)
        gen.add_argument("--width", type=int)
        gen.add_argument("--height", type=int)
        gen.add_argument("--steps", type=int)
        gen.add_argument("--cfg-scale", type=float)
        gen.add_argument("--seed", type=int)
        gen.add_argument("--out-dir", type=str)
        gen.add_argument("--type", type=str, choices=["PNG", "JPG", "TGA"])
        if mode != "txt2img":
            gen.add_argument("--image", type=str, required=True, help="Input image path")
        if mode == "img2img":
            gen.add_argument("--denoising-strength", type=float)
        if mode == "controlnet":
            gen.add_argument("--module", type=str)
            gen.add_argument("--control-model", type=str)
            gen.add_argument("--weight", type=float)
    return parser


async def run(args: argparse.Namespace) -> int:
    async with APIClient(url=args.url) as client:
        if args.command == "app-id":
            print((await client.get_app_id()).app_id)
        elif args.command == "flags":
            for key, value in (await client.get_cmd_flags()).to_dict().items():
                print(f"{key}: {value}")
        elif args.command == "models":
            for title in await client.fetch_imgmodels():
                print(title)
        elif args.command == "progress":
            progress = await client.get_progress(skip_current_image=args.skip_current_image)
            print(f"{progress.progress * 100:.1f}% (eta {progress.eta_relative:.1f}s)")
        elif args.command == "pnginfo":
            info, _ = await client.extract_pnginfo(await read_image_file(args.image))
            for key, value in info.items():
                print(f"{key}: {value}")
        else:
            defaults = GenerationDefaults.from_config().with_overrides(sampler=args.sampler,
                                                                       width=args.width,
                                                                       height=args.height,
                                                                       steps=args.steps,
                                                                       cfg_scale=args.cfg_scale,
                                                                       seed=args.seed)
            imggen = ImgGen(client=client, defaults=defaults, output_dir=args.out_dir, image_type=args.type)
            overrides = {}
            input_image = await read_image_file(args.image) if args.command != "txt2img" else None
            if args.command == "img2img":
                overrides["denoising_strength"] = args.denoising_strength
            elif args.command == "controlnet":
                overrides.update(controlnet_module=args.module,
                                 controlnet_model=args.control_model,
                                 controlnet_weight=args.weight)
            result = await imggen.generate(args.prompt,
                                           negative_prompt=args.negative,
                                           model=args.model,
                                           mode=args.command,
                                           init_image=input_image if args.command == "img2img" else None,
                                           control_image=input_image if args.command == "controlnet" else None,
                                           **overrides)
            if result is None:
                return 1
            if result.path:
                print(result.path)
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.debug:
        set_level(logging.DEBUG)
    if args.log_file:
        add_file_handler(fp=args.log_file, mode='w')
    if args.config:
        config.reload(args.config)
    try:
        return asyncio.run(run(args))
    except Exception as e:
        log.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
