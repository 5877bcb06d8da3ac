"""
Lighthouse CLI — entry point for all operations.

Usage:
    lighthouse serve            # Start the camera loop + HTTP control endpoint
    lighthouse status           # Show catalog status (no camera)
    lighthouse describe IMAGE   # Extract a description from an image file
    lighthouse match IMAGE      # Rank recorded objects against an image file
    lighthouse version          # Show version
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="lighthouse",
        description="Lighthouse — record objects by image and voice, identify them later.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--data-dir", type=str, help="Data folder (default: $LIGHTHOUSE_DATA_DIR)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the camera loop and HTTP endpoint")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Port (default: $LIGHTHOUSE_HEALTH_PORT)")

    # status
    subparsers.add_parser("status", help="Show catalog status")

    # describe
    describe_parser = subparsers.add_parser("describe", help="Describe an image file")
    describe_parser.add_argument("image", type=str, help="Path to an image")

    # match
    match_parser = subparsers.add_parser("match", help="Match an image file against the catalog")
    match_parser.add_argument("image", type=str, help="Path to an image")
    match_parser.add_argument("--top", type=int, default=5, help="Number of matches to show")

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        from lighthouse import __version__

        print(f"lighthouse {__version__}")
        return 0

    _setup_logging(args)

    if args.command == "serve":
        return _cmd_serve(args)
    elif args.command == "status":
        return _cmd_status(args)
    elif args.command == "describe":
        return _cmd_describe(args)
    elif args.command == "match":
        return _cmd_match(args)
    else:
        parser.print_help()
        return 0


def _setup_logging(args: argparse.Namespace) -> None:
    from lighthouse.config import get_config

    level = "DEBUG" if args.verbose else get_config().log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _data_dir(args: argparse.Namespace) -> Path:
    from lighthouse.config import get_config

    return Path(args.data_dir) if args.data_dir else get_config().data_dir


def _read_image(path: str):
    from lighthouse.vision.extractor import _get_cv2

    frame = _get_cv2().imread(path)
    if frame is None:
        print(f"Error: cannot read image {path}")
    return frame


def _load_store(args: argparse.Namespace):
    from lighthouse.config import get_config
    from lighthouse.vision.matcher import MatchingStore

    store = MatchingStore(get_config().matching)
    store.load_catalog(_data_dir(args))
    return store


def _cmd_serve(args: argparse.Namespace) -> int:
    import asyncio
    import signal

    from lighthouse.config import get_config
    from lighthouse.vision.server import ControlServer
    from lighthouse.vision.service import Lighthouse

    port = args.port or get_config().health_port

    async def _serve() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        lighthouse = Lighthouse(data_dir=_data_dir(args))
        server = ControlServer(lighthouse, host=args.host, port=port)
        try:
            await server.start()
            print(f"Lighthouse listening on {args.host}:{port} "
                  f"({lighthouse.loaded_count} description(s) loaded)")
            await stop.wait()
        finally:
            await server.stop()
            lighthouse.shutdown()

    asyncio.run(_serve())
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    from lighthouse.vision import storage
    from lighthouse.vision.errors import CorruptRecordError

    data_dir = _data_dir(args)
    folders = storage.list_folders(data_dir)
    corrupt = []
    for folder in folders:
        try:
            storage.load(folder)
        except CorruptRecordError:
            corrupt.append(folder.name)

    print(f"Data folder:   {data_dir}")
    print(f"Folders:       {len(folders)}")
    print(f"Descriptions:  {len(folders) - len(corrupt)}")
    if corrupt:
        print(f"Unreadable:    {', '.join(corrupt)}")
    return 0


def _cmd_describe(args: argparse.Namespace) -> int:
    from lighthouse.config import get_config
    from lighthouse.vision.errors import QualityError
    from lighthouse.vision.extractor import OrbExtractor

    frame = _read_image(args.image)
    if frame is None:
        return 1
    try:
        description = OrbExtractor(get_config().matching).describe(frame)
    except QualityError as e:
        print(f"Quality error: {e}")
        return 2
    print(f"{len(description)} keypoints, histogram of {description.histogram.size} bins")
    return 0


def _cmd_match(args: argparse.Namespace) -> int:
    from lighthouse.vision.errors import QualityError

    frame = _read_image(args.image)
    if frame is None:
        return 1
    store = _load_store(args)
    try:
        matches = store.find_matches_in_frame(frame)
    except QualityError as e:
        print(f"Quality error: {e}")
        return 2
    if not matches:
        print("No match.")
        return 0
    for score, description in matches[: args.top]:
        print(f"{score:.3f}  {description.id}")
    return 0
