from dropin_chat.repositories.bypass_repository import BypassRepository
from dropin_chat.repositories.config_repository import ConfigRepository

__all__ = ["BypassRepository", "ConfigRepository"]
