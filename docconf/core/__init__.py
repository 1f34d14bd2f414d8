"""Core: settings, constants and store lifespan.

Single place for settings and shared constants.
"""

from docconf.core.config import get_settings

__all__ = ["get_settings"]
