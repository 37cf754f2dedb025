"""Module entry point: python -m activity_timeline ..."""

from __future__ import annotations

from activity_timeline.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
