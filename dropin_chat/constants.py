import os

CONFIG_FILE = "dropin_config.json"
LOCAL_STATE_ROOT = ".dropin"
BYPASS_FILE = os.path.join(LOCAL_STATE_ROOT, "bypass_rooms.jsonl")

DEFAULT_API_URL = "http://localhost:5000/api"
DEFAULT_SOCKET_URL = "http://localhost:5000"
HTTP_TIMEOUT_SECONDS = 30.0

LOCK_TIMEOUT_SECONDS = 2.0
LOCK_MAX_ATTEMPTS = 20
LOCK_BACKOFF_BASE_SECONDS = 0.05
LOCK_BACKOFF_MAX_SECONDS = 0.5

# Push channel event names.
EVENT_RECEIVE_MESSAGE = "receive_message"
EVENT_RECEIVE_REACTION = "receive_reaction"
SIGNAL_JOIN_ROOM = "join_room"
SIGNAL_SEND_MESSAGE = "send_message"
SIGNAL_SEND_REACTION = "send_reaction"

COMMAND_PREFIX = "@ai"
ASSISTANT_MARKER = "🤖 AI Assistant:"
ASSISTANT_HISTORY_WINDOW = 8
ASSISTANT_GREETING = (
    f"{ASSISTANT_MARKER} Hi! I'm the room assistant. "
    f"Ask me anything with '{COMMAND_PREFIX} <question>'."
)
ASSISTANT_UNAVAILABLE_TEXT = (
    f"{ASSISTANT_MARKER} Sorry, I'm experiencing technical difficulties "
    "right now. Please try again later."
)
ASSISTANT_APOLOGY_NOT_PARTICIPANT = (
    f"{ASSISTANT_MARKER} Sorry, I can only answer questions from participants "
    "of this room. Join the room and try again."
)
ASSISTANT_APOLOGY_NOT_AUTHENTICATED = (
    f"{ASSISTANT_MARKER} Sorry, your session has expired. "
    "Please sign in again to use the assistant."
)
ASSISTANT_APOLOGY_GENERIC = (
    f"{ASSISTANT_MARKER} Sorry, I encountered an error. Please try again later."
)

LIFECYCLE_POLL_INTERVAL_SECONDS = 10.0
REDIRECT_COUNTDOWN_TICKS = 5
REDIRECT_TICK_SECONDS = 1.0
DEFAULT_REDIRECT_TARGET = "/dashboard"

REACTION_SHORTCUTS = {
    "like": "👍",
    "heart": "❤️",
    "dislike": "👎",
    "smile": "😊",
    "party": "🎉",
}
