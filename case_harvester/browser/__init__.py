"""Browser-backed worker resources."""

from .playwright_resources import PlaywrightResourceManager

__all__ = ["PlaywrightResourceManager"]
