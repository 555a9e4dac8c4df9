"""
zekka-fix-build: regenerate package-lock.json and patch the Dockerfiles.
"""

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from infrastructure.config.settings import get_settings
from infrastructure.logging_config import setup_logging
from services.build_fix import (
    DEFAULT_DOCKERFILES,
    BuildFixError,
    PatchOutcome,
    fix_build,
)

_OUTCOME_LINES = {
    PatchOutcome.PATCHED: "✅ Updated {name}",
    PatchOutcome.UNCHANGED: "✓ {name} already up to date",
    PatchOutcome.MISSING: "- {name} not found, skipped",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zekka-fix-build",
        description="Regenerate package-lock.json and switch Dockerfiles to npm install --omit=dev",
    )
    parser.add_argument("project_dir", nargs="?", help="Project directory (default: PROJECT_ROOT)")
    parser.add_argument(
        "--skip-lockfile", action="store_true", help="Do not run npm install --package-lock-only"
    )
    parser.add_argument(
        "--dockerfile",
        action="append",
        dest="dockerfiles",
        help="Dockerfile to patch, relative to the project directory (repeatable)",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(json_output=False, level="WARNING", stream=sys.stderr)

    project_dir = Path(args.project_dir or get_settings().project_root)
    dockerfiles = tuple(args.dockerfiles) if args.dockerfiles else DEFAULT_DOCKERFILES

    print("🔧 Fixing build...")
    if not args.skip_lockfile:
        print("📦 Generating package-lock.json...")
    try:
        report = fix_build(project_dir, dockerfiles=dockerfiles, regenerate=not args.skip_lockfile)
    except BuildFixError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    print("🔨 Updating Dockerfiles...")
    for name, outcome in report.dockerfiles.items():
        print(_OUTCOME_LINES[outcome].format(name=name))

    print("")
    print("🎉 Fix complete! Now rebuild the images, e.g.:")
    print("   docker compose build")
    return 0


if __name__ == "__main__":
    sys.exit(main())
