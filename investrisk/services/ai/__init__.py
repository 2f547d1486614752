"""AI gateway access for scoring prompts."""

from .client import AiClientManager, close_client_manager, get_client_manager
from .completion import complete_text
from .config import AiSettings, get_settings


__all__ = [
    "AiClientManager",
    "AiSettings",
    "close_client_manager",
    "complete_text",
    "get_client_manager",
    "get_settings",
]
