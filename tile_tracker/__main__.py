"""Module entry point: python -m tile_tracker ..."""

from __future__ import annotations

from tile_tracker.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
