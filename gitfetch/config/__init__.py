"""
Config Module — Process settings.
"""

from .settings import APP_NAME, DEFAULT_WORKERS, GitfetchSettings

__all__ = [
    "APP_NAME",
    "DEFAULT_WORKERS",
    "GitfetchSettings",
]
