from dropin_chat.providers.base import AssistantClient, PushChannel, RoomsClient
from dropin_chat.providers.rest import HttpRoomsClient
from dropin_chat.providers.socket import SocketIOPushChannel

__all__ = [
    "AssistantClient",
    "HttpRoomsClient",
    "PushChannel",
    "RoomsClient",
    "SocketIOPushChannel",
]
