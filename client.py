import argparse
import asyncio
import logging
from typing import Any

from prompt_toolkit import PromptSession, print_formatted_text
from prompt_toolkit.patch_stdout import patch_stdout

from dropin_chat.commands.registry import CommandHandler, CommandRegistry
from dropin_chat.constants import CONFIG_FILE
from dropin_chat.container import RoomClientContainer
from dropin_chat.errors import RoomActivationError, SendError
from dropin_chat.events import (
    CountdownEvent,
    HistoryLoadedEvent,
    MessageAppliedEvent,
    RoomRedirectEvent,
    SystemMessageEvent,
)
from dropin_chat.models import ClientSettings, Message
from dropin_chat.repositories import ConfigRepository

logger = logging.getLogger(__name__)


class RoomClientApp:
    def __init__(
        self,
        settings: ClientSettings,
        config_repository: ConfigRepository | None = None,
        container: RoomClientContainer | None = None,
    ):
        self.settings = settings
        self.config_repository = config_repository or ConfigRepository()
        self.container = container or RoomClientContainer(settings=settings)
        self.bus = self.container.event_bus()
        self.rooms = self.container.rooms_client()
        self.push = self.container.push_channel()
        self.binder = self.container.binder_service()
        self.sync = self.container.sync_service()
        self.lifecycle = self.container.lifecycle_service()
        self.assistant = self.container.assistant_service()
        self.commands = self.container.command_service()
        self.command_handlers: dict[str, CommandHandler] = CommandRegistry(
            self
        ).build()
        self.running = False
        self._tasks: set[asyncio.Task[Any]] = set()

        self.bus.subscribe(SystemMessageEvent, self.on_system_message)
        self.bus.subscribe(MessageAppliedEvent, self.on_message_applied)
        self.bus.subscribe(HistoryLoadedEvent, self.on_history_loaded)
        self.bus.subscribe(CountdownEvent, self.on_countdown)
        self.bus.subscribe(RoomRedirectEvent, self.on_redirect)

    def render_message(self, message: Message) -> str:
        if message.sender.id == self.settings.user_id:
            who = "You"
        else:
            who = message.sender.username
        stamp = message.created_at.astimezone().strftime("%H:%M")
        if message.kind == "system":
            return f"[{stamp}] * {message.content}"
        return f"[{stamp}] {who}: {message.content}"

    def output(self, text: str) -> None:
        print_formatted_text(text)

    def append_system_message(self, text: str) -> None:
        self.bus.publish(SystemMessageEvent(source="console", text=text))

    def report_session_error(self) -> None:
        error = self.sync.session.error
        if error:
            self.append_system_message(f"Error: {error} (use /retry)")

    def on_system_message(self, event: SystemMessageEvent) -> None:
        self.output(f"-- {event.text}")

    def on_message_applied(self, event: MessageAppliedEvent) -> None:
        self.output(self.render_message(event.message))

    def on_history_loaded(self, event: HistoryLoadedEvent) -> None:
        for message in self.sync.messages:
            self.output(self.render_message(message))

    def on_countdown(self, event: CountdownEvent) -> None:
        if event.remaining > 0:
            self.append_system_message(
                f"This room has ended. Leaving in {event.remaining}s "
                "(/view-anyway to stay)."
            )

    def on_redirect(self, event: RoomRedirectEvent) -> None:
        logger.info("Leaving ended room %s for %s", event.room_id, event.target)
        self.append_system_message(
            f"Room {event.room_id} has ended. Returning to {event.target}."
        )
        self._spawn(self.binder.leave())

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def switch_room(self, room_id: str) -> None:
        try:
            room = await self.binder.activate(room_id, join=True)
        except RoomActivationError as exc:
            self.append_system_message(str(exc))
            return
        if room is None:
            return
        self.settings.room = room.id
        self.config_repository.save_settings(self.settings)
        self.append_system_message(
            f"Joined {room.title or room.id} ({room.status})."
        )
        self.report_session_error()

    async def handle_input(self, text: str) -> None:
        text = text.strip()
        if not text:
            return

        if text.startswith("/"):
            parts = text.split(" ", 1)
            command = parts[0].lower()
            args = parts[1] if len(parts) > 1 else ""
            handler = self.command_handlers.get(command)
            if handler is None:
                self.append_system_message(
                    f"Unknown command '{command}'. Run /help for the command list."
                )
                return
            await handler(args)
            return

        room_id = self.binder.room_id
        if room_id is None:
            self.append_system_message("Join a room first with /join <room>.")
            return
        try:
            await self.commands.submit(room_id, text)
        except (SendError, ValueError) as exc:
            self.append_system_message(f"Error: {exc}")

    def prompt_text(self) -> str:
        return f"{self.settings.username}@{self.binder.room_id or '-'}> "

    async def run(self) -> None:
        self.running = True
        if not await self.push.connect():
            self.append_system_message("Live updates unavailable; history only.")
        await self.assistant.check_status()
        if self.settings.room:
            await self.switch_room(self.settings.room)
        else:
            self.append_system_message("Use /join <room> to enter a room.")

        session: PromptSession[str] = PromptSession()
        try:
            with patch_stdout():
                while self.running:
                    try:
                        text = await session.prompt_async(self.prompt_text)
                    except (EOFError, KeyboardInterrupt):
                        break
                    await self.handle_input(text)
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        self.running = False
        self.commands.cancel_pending()
        await self.binder.leave()
        await self.binder.wait_background()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.push.disconnect()
        await self.rooms.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Drop-in room chat client")
    parser.add_argument("--config", default=CONFIG_FILE, help="settings file")
    parser.add_argument("--room", help="room id to open on start")
    parser.add_argument("--api-url", dest="api_url")
    parser.add_argument("--socket-url", dest="socket_url")
    parser.add_argument("--token")
    parser.add_argument("--user-id", dest="user_id")
    parser.add_argument("--username")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    config_repository = ConfigRepository(args.config)
    settings = config_repository.load_settings(
        {
            "room": args.room,
            "api_url": args.api_url,
            "socket_url": args.socket_url,
            "token": args.token,
            "user_id": args.user_id,
            "username": args.username,
        }
    )
    app = RoomClientApp(settings, config_repository)
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
