from dropin_chat.services.assistant_service import AssistantService
from dropin_chat.services.binder_service import BinderService
from dropin_chat.services.command_service import CommandService
from dropin_chat.services.lifecycle_service import LifecycleService
from dropin_chat.services.router_service import RoomEventRouter
from dropin_chat.services.sync_service import SyncService

__all__ = [
    "AssistantService",
    "BinderService",
    "CommandService",
    "LifecycleService",
    "RoomEventRouter",
    "SyncService",
]
