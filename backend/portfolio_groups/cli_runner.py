from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence


def _ensure_project_on_path() -> None:
    """Make sure the installed package can locate the source tree in editable installs."""
    project_root = Path(__file__).resolve().parents[2]
    if (project_root / "backend" / "src").exists():
        sys.path.insert(0, str(project_root))


def _build_parser(default_log: Path) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portfolio-groups",
        description="Browse portfolio groups and take part in their discussions.",
    )
    parser.add_argument("--group", metavar="GROUP_ID", help="open this group right after signing in")
    parser.add_argument(
        "--log-file",
        type=Path,
        default=default_log,
        help=f"where to write logs (default: {default_log})",
    )
    parser.add_argument("--debug", action="store_true", help="log at DEBUG level")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        from backend.src.cli.textual_app import GroupsTextualApp
        from backend.src.config.settings import DEFAULT_LOG_PATH
    except ModuleNotFoundError:
        _ensure_project_on_path()
        from backend.src.cli.textual_app import GroupsTextualApp
        from backend.src.config.settings import DEFAULT_LOG_PATH

    args = _build_parser(DEFAULT_LOG_PATH).parse_args(argv)

    # Textual owns the terminal, so logs go to a file.
    logging.basicConfig(
        filename=str(args.log_file),
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger(__name__).info("Starting portfolio groups client")

    app = GroupsTextualApp(initial_group_id=args.group)
    app.run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
