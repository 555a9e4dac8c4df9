"""
Build fixer for the Node container images.

Regenerates ``package-lock.json`` and rewrites Dockerfiles that still use
``npm ci --only=production`` to ``npm install --omit=dev``. The rewrite is
idempotent: running it on an already fixed file changes nothing.
"""

import logging
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)

OLD_INSTALL = "npm ci --only=production"
NEW_INSTALL = "npm install --omit=dev"
LOCKFILE_COMMAND = ("npm", "install", "--package-lock-only")
DEFAULT_DOCKERFILES = ("Dockerfile", "Dockerfile.arbitrator")


class BuildFixError(Exception):
    """The lockfile could not be regenerated."""


class PatchOutcome(str, Enum):
    PATCHED = "patched"
    UNCHANGED = "unchanged"
    MISSING = "missing"


@dataclass
class BuildFixReport:
    lockfile_regenerated: bool = False
    dockerfiles: dict[str, PatchOutcome] = field(default_factory=dict)

    @property
    def patched(self) -> list[str]:
        return [name for name, outcome in self.dockerfiles.items() if outcome == PatchOutcome.PATCHED]


def regenerate_lockfile(
    project_dir: str | Path,
    runner: Optional[Callable[..., subprocess.CompletedProcess]] = None,
) -> None:
    """Run ``npm install --package-lock-only`` in *project_dir*."""
    runner = runner or subprocess.run
    try:
        result = runner(
            list(LOCKFILE_COMMAND),
            cwd=str(project_dir),
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise BuildFixError("npm is not installed or not on PATH") from e

    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        raise BuildFixError(
            f"npm install --package-lock-only failed with exit code {result.returncode}"
            + (f": {stderr}" if stderr else "")
        )
    logger.info("Regenerated package-lock.json in %s", project_dir)


def patch_dockerfile(path: str | Path) -> PatchOutcome:
    """Replace the first ``npm ci --only=production`` on each line."""
    path = Path(path)
    if not path.is_file():
        return PatchOutcome.MISSING

    original = path.read_bytes().decode("utf-8")
    # Same semantics as sed 's/old/new/': first occurrence per line
    lines = original.splitlines(keepends=True)
    patched = "".join(line.replace(OLD_INSTALL, NEW_INSTALL, 1) for line in lines)

    if patched == original:
        return PatchOutcome.UNCHANGED

    path.write_bytes(patched.encode("utf-8"))
    logger.info("Patched %s", path)
    return PatchOutcome.PATCHED


def fix_build(
    project_dir: str | Path,
    dockerfiles: Sequence[str] = DEFAULT_DOCKERFILES,
    regenerate: bool = True,
    runner: Optional[Callable[..., subprocess.CompletedProcess]] = None,
) -> BuildFixReport:
    project_dir = Path(project_dir)
    report = BuildFixReport()

    if regenerate:
        regenerate_lockfile(project_dir, runner=runner)
        report.lockfile_regenerated = True

    for name in dockerfiles:
        report.dockerfiles[name] = patch_dockerfile(project_dir / name)
    return report
