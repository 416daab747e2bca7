"""Command-line entrypoint for PanelFlash."""

from __future__ import annotations

import argparse
import dataclasses
import sys
import time
from pathlib import Path
from typing import Sequence, TextIO

from dotenv import load_dotenv

from .config import PanelFlashConfig, load_config
from .constants import PRODUCT_NAME
from .dispatcher import RequestDispatcher
from .errors import PanelFlashError
from .gemini_client import GeminiImageClient
from .live import LiveSession, sample_commands
from .logging_utils import configure_logging, event_log_sink
from .media import MediaSessionManager
from .studio import Studio

LIVE_HELP = "Commands: any text transforms the view; :voice :record :stop :clear :samples :quit"


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="PanelFlash image generation runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m panelflash.cli generate \"a lighthouse at dusk\"\n"
            "  python -m panelflash.cli edit photo.png \"make it snowy\" --out renders\n"
            "  python -m panelflash.cli fuse cat.png hat.png \"put the hat on the cat\"\n"
            "  python -m panelflash.cli live\n"
        ),
    )
    parser.add_argument("--out", type=Path, default=None, help="Output directory for images")
    parser.add_argument("--api-key", type=str, default=None, help="Gemini API key (overrides env)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate an image from a prompt")
    generate.add_argument("prompt", type=str)

    edit = subparsers.add_parser("edit", help="Edit an existing image")
    edit.add_argument("image", type=Path)
    edit.add_argument("prompt", type=str)

    fuse = subparsers.add_parser("fuse", help="Fuse two images")
    fuse.add_argument("image1", type=Path)
    fuse.add_argument("image2", type=Path)
    fuse.add_argument("prompt", type=str)

    subparsers.add_parser("live", help="Transform the camera view from stdin commands")
    return parser.parse_args(argv)


def _print_error(message: str) -> None:
    print(f"error: {message}", file=sys.stderr)


def run_live(
    cfg: PanelFlashConfig,
    client: GeminiImageClient,
    out_dir: Path,
    *,
    media: MediaSessionManager | None = None,
    stdin: TextIO | None = None,
) -> int:
    source = stdin if stdin is not None else sys.stdin
    manager = media or MediaSessionManager(
        cfg, save_recording=lambda path: print(f"recording saved to {path}")
    )

    def _save_frame(data: bytes) -> None:
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / f"{PRODUCT_NAME}-live-{int(time.time() * 1000)}.png"
        path.write_bytes(data)
        print(f"frame saved to {path}")

    with manager:
        live = LiveSession(client, manager, on_error=_print_error, on_frame=_save_frame)
        if not manager.start_camera(on_error=_print_error):
            return 1
        print(LIVE_HELP)
        for line in source:
            command = line.strip()
            if not command:
                continue
            if command == ":quit":
                break
            if command == ":voice":
                live.start_voice_command()
            elif command == ":record":
                manager.start_recording(on_error=_print_error)
            elif command == ":stop":
                manager.stop_recording()
                manager.stop_audio_recording()
            elif command == ":clear":
                live.clear_effects()
            elif command == ":samples":
                print("\n".join(sample_commands()))
            else:
                live.process_command(command)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    cfg = load_config()
    if args.api_key:
        cfg = dataclasses.replace(cfg, api_key=args.api_key)
    configure_logging(cfg)

    out_dir = args.out or Path(cfg.output_dir)
    dispatcher = RequestDispatcher(cfg.min_interval_ms, event_sink=event_log_sink(cfg))
    client = GeminiImageClient(cfg, dispatcher)

    if args.command == "live":
        return run_live(cfg, client, out_dir)

    studio = Studio(client)
    try:
        if args.command == "generate":
            artifact = studio.generate(args.prompt)
        elif args.command == "edit":
            studio.open(args.image, prompt=args.image.name)
            artifact = studio.edit(args.prompt)
        else:
            studio.upload("img1", args.image1)
            studio.upload("img2", args.image2)
            artifact = studio.fuse(args.prompt)
        path = studio.download(artifact, out_dir)
    except (PanelFlashError, OSError) as exc:
        _print_error(getattr(exc, "message", None) or str(exc))
        return 1

    print(path)
    print(f"prompt={artifact.prompt!r} bytes={len(artifact.encoded_image)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
