from __future__ import annotations

from dependency_injector import containers, providers  # type: ignore[import-not-found]

from dropin_chat.event_bus import EventBus
from dropin_chat.models import ClientSettings
from dropin_chat.providers import HttpRoomsClient, SocketIOPushChannel
from dropin_chat.repositories import BypassRepository
from dropin_chat.services import (
    AssistantService,
    BinderService,
    CommandService,
    LifecycleService,
    RoomEventRouter,
    SyncService,
)


class RoomClientContainer(containers.DeclarativeContainer):
    settings = providers.Dependency(instance_of=ClientSettings)

    bypass_repository = providers.Singleton(BypassRepository)

    event_bus = providers.Singleton(EventBus, critical_handler_retries=1)

    rooms_client = providers.Singleton(
        HttpRoomsClient,
        base_url=settings.provided.api_url,
        token=settings.provided.token,
    )
    push_channel = providers.Singleton(
        SocketIOPushChannel,
        url=settings.provided.socket_url,
        token=settings.provided.token,
    )

    router_service = providers.Singleton(
        RoomEventRouter, push=push_channel, bus=event_bus
    )
    sync_service = providers.Singleton(
        SyncService,
        rooms=rooms_client,
        push=push_channel,
        bus=event_bus,
        user_id=settings.provided.user_id,
    )
    assistant_service = providers.Singleton(AssistantService, client=rooms_client)
    lifecycle_service = providers.Singleton(
        LifecycleService, bypass=bypass_repository, bus=event_bus
    )
    binder_service = providers.Singleton(
        BinderService,
        rooms=rooms_client,
        router=router_service,
        sync=sync_service,
        lifecycle=lifecycle_service,
    )
    command_service = providers.Singleton(
        CommandService,
        sync=sync_service,
        assistant=assistant_service,
        user_id=settings.provided.user_id,
    )
