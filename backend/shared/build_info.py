"""Build metadata exposed at runtime.

APP_VERSION prefers the APP_VERSION env var (set in CI), then the installed
distribution version. GIT_COMMIT prefers GIT_COMMIT, then the local checkout.
"""

import os
import subprocess
from importlib import metadata


def _git_short_sha() -> str:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],  # noqa: S607
            text=True,
            stderr=subprocess.DEVNULL,
        ).strip()
    except (FileNotFoundError, subprocess.CalledProcessError):
        return "dev"


def _installed_version() -> str:
    try:
        return metadata.version("mohoot")
    except metadata.PackageNotFoundError:
        return "dev"


APP_VERSION: str = os.environ.get("APP_VERSION") or _installed_version()
GIT_COMMIT: str = os.environ.get("GIT_COMMIT") or _git_short_sha()
