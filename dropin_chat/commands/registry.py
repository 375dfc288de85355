from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from dropin_chat.constants import REACTION_SHORTCUTS
from dropin_chat.errors import DropinError, PullPathError

if TYPE_CHECKING:
    from client import RoomClientApp

CommandHandler = Callable[[str], Awaitable[None]]

HELP_TEXT = "\n".join(
    [
        "Commands:",
        "  /join <room>        open a room (joins it first)",
        "  /leave              leave the current room",
        "  /room               show the current room",
        "  /react <emoji>      react; shortcuts: " + ", ".join(REACTION_SHORTCUTS),
        "  /reactions          show reaction counts",
        "  /view-anyway        stay in a room that has ended",
        "  /summary            ask the assistant to summarize the room",
        "  /invite a,b         invite users to a private room",
        "  /status             assistant and push channel status",
        "  /retry              reload messages and reactions",
        "  /quit               exit",
        "Anything else is sent as a message. Start with '@ai' to ask the assistant.",
    ]
)


class CommandRegistry:
    def __init__(self, app: "RoomClientApp"):
        self.app = app

    def build(self) -> dict[str, CommandHandler]:
        return {
            "/join": self.command_join,
            "/leave": self.command_leave,
            "/room": self.command_room,
            "/react": self.command_react,
            "/reactions": self.command_reactions,
            "/view-anyway": self.command_view_anyway,
            "/summary": self.command_summary,
            "/invite": self.command_invite,
            "/status": self.command_status,
            "/retry": self.command_retry,
            "/help": self.command_help,
            "/exit": self.command_exit,
            "/quit": self.command_exit,
        }

    async def command_join(self, args: str) -> None:
        if not args.strip():
            self.app.append_system_message("Usage: /join <room>")
            return
        await self.app.switch_room(args.strip())

    async def command_leave(self, _args: str) -> None:
        room_id = self.app.binder.room_id
        if room_id is None:
            self.app.append_system_message("Not in a room.")
            return
        await self.app.binder.leave()
        self.app.append_system_message(f"Left room {room_id}.")

    async def command_room(self, _args: str) -> None:
        room = self.app.binder.room
        if room is None:
            self.app.append_system_message("Not in a room.")
            return
        kind = "private" if room.is_private else "public"
        if room.has_participant(self.app.settings.user_id):
            membership = "you are a participant"
        else:
            membership = "you are not a participant"
        self.app.append_system_message(
            f"Current room: {room.title or room.id} [{room.status}, {kind}], "
            f"{len(room.participants)} participant(s), {membership}"
        )

    async def command_react(self, args: str) -> None:
        room_id = self.app.binder.room_id
        if room_id is None:
            self.app.append_system_message("Join a room before reacting.")
            return
        target = args.strip()
        if not target:
            self.app.append_system_message("Usage: /react <emoji>")
            return
        emoji = REACTION_SHORTCUTS.get(target.lower(), target)
        try:
            await self.app.sync.send_reaction(room_id, emoji)
        except DropinError as exc:
            self.app.append_system_message(f"Error: {exc}")

    async def command_reactions(self, _args: str) -> None:
        counts = self.app.sync.reaction_counts()
        if not counts:
            self.app.append_system_message("No reactions yet.")
            return
        summary = "  ".join(f"{emoji} {count}" for emoji, count in counts.items())
        self.app.append_system_message(f"Reactions: {summary}")

    async def command_view_anyway(self, _args: str) -> None:
        if await self.app.lifecycle.view_anyway():
            self.app.append_system_message("Staying in this room.")
        else:
            self.app.append_system_message("Nothing to dismiss.")

    async def command_summary(self, _args: str) -> None:
        room_id = self.app.binder.room_id
        if room_id is None:
            self.app.append_system_message("Join a room first.")
            return
        if not self.app.assistant.supports("summary"):
            self.app.append_system_message(
                "Summary unavailable: the assistant does not offer summaries."
            )
            return
        try:
            summary = await self.app.assistant.summarize(room_id)
        except PullPathError as exc:
            self.app.append_system_message(f"Summary unavailable: {exc}")
            return
        lines = [f"Summary ({summary.sentiment}): {summary.summary}"]
        if summary.key_topics:
            lines.append("Topics: " + ", ".join(summary.key_topics))
        self.app.append_system_message("\n".join(lines))

    async def command_invite(self, args: str) -> None:
        usernames = args.split(",")
        try:
            await self.app.binder.invite_users(usernames)
        except ValueError as exc:
            self.app.append_system_message(str(exc))
            return
        except PullPathError as exc:
            self.app.append_system_message(f"Invite failed: {exc}")
            return
        self.app.append_system_message("Invitations sent.")

    async def command_status(self, _args: str) -> None:
        await self.app.assistant.check_status()
        assistant = self.app.assistant
        if assistant.is_available:
            features = ", ".join(assistant.features) or "none"
            ai_line = f"Assistant: available (features: {features})"
        else:
            ai_line = f"Assistant: unavailable ({assistant.last_error or 'unknown'})"
        push_line = "Push channel: " + (
            "connected" if self.app.push.connected else "offline"
        )
        self.app.append_system_message(f"{ai_line}\n{push_line}")

    async def command_retry(self, _args: str) -> None:
        room_id = self.app.binder.room_id
        if room_id is None:
            self.app.append_system_message("Not in a room.")
            return
        self.app.sync.clear_error()
        await self.app.sync.load_history(room_id)
        await self.app.sync.load_reactions(room_id)
        self.app.report_session_error()

    async def command_help(self, _args: str) -> None:
        self.app.append_system_message(HELP_TEXT)

    async def command_exit(self, _args: str) -> None:
        self.app.running = False
