"""Config module - settings and constants."""

from legistrack.config.settings import settings
from legistrack.config.constants import (
    CONGRESS_GOV_BASE_URL,
    CURRENT_CONGRESS,
)

__all__ = [
    "settings",
    "CONGRESS_GOV_BASE_URL",
    "CURRENT_CONGRESS",
]
