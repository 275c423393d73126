"""Venue booking core: provider availability and booking confirmation."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("venue-booking")
except PackageNotFoundError:  # pragma: no cover - fallback during local dev
    __version__ = "0.0.0"

__all__ = ["__version__"]
