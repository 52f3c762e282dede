"""Entry point for running as a module: python -m lgcast"""

import logging
import signal
import sys
from typing import Any

from .cli import run_cli


def signal_handler(sig: int, frame: Any) -> None:
    """Turn SIGTERM into the same shutdown path as Ctrl+C."""
    raise KeyboardInterrupt


def main() -> None:
    """Main entry point."""
    signal.signal(signal.SIGTERM, signal_handler)

    verbose = "-v" in sys.argv[1:] or "--verbose" in sys.argv[1:]
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        run_cli()
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")


if __name__ == "__main__":
    main()
