# x402_bazaar/core/version.py
"""Version lookup from installed package metadata or a VERSION file."""
from functools import lru_cache
from importlib import metadata
from pathlib import Path


DISTRIBUTION_NAME = "x402-bazaar"
VERSION_FILE = Path(__file__).parent.parent.parent / "VERSION"
FALLBACK_VERSION = "0.0.0-dev"


@lru_cache()
def get_version() -> str:
    """Return the CLI version.

    Installed distributions report their metadata version. Source checkouts
    without an install read the VERSION file next to pyproject.toml.
    """
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        pass

    if VERSION_FILE.exists():
        return VERSION_FILE.read_text().strip() or FALLBACK_VERSION
    return FALLBACK_VERSION


VERSION = get_version()
