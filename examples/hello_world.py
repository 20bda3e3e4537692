#!/usr/bin/env python3
"""modhost — Hello World example.

This script drives the lifecycle runtime directly, without the CLI:

  1. Initialise the runtime with a configuration document
  2. Discover and load the example modules (clock → greeter → notes)
  3. Call the published APIs
  4. Unload everything in reverse load order

Usage:
  python examples/hello_world.py
  python examples/hello_world.py --config /tmp/modhost-demo.json --name Ada
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from modhost.logging import configure_logging
from modhost.modules.loader import ModuleLoader

EXAMPLES_DIR = Path(__file__).resolve().parent / "modules"


async def run(config_path: Path, name: str) -> None:
    loader = ModuleLoader(EXAMPLES_DIR)
    await loader.initialize_runtime(config_path)
    await loader.discover_and_load_all()

    print(f"Load order: {' -> '.join(loader.load_order)}")

    notes = loader.get_api("notes")
    await notes.add(f"met {name}")
    print(notes.welcome(name))

    failures = await loader.unload_all_modules()
    print("Unloaded cleanly." if not failures else f"Cleanup errors: {failures}")


def main() -> None:
    parser = argparse.ArgumentParser(description="modhost Hello World")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("./config/demo.json"),
        help="Configuration document path (default: ./config/demo.json)",
    )
    parser.add_argument("--name", default="world", help="Who to greet")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    configure_logging(level="debug" if args.debug else "warning")
    asyncio.run(run(args.config, args.name))


if __name__ == "__main__":
    main()
