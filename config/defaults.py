from __future__ import annotations

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_DB_PATH = "threadwise_state.db"

DISCORD_MESSAGE_LIMIT = 2000
CHUNK_HEADER_RESERVE = 20
CHUNK_SEND_DELAY_SECONDS = 0.1

THREAD_TITLE_LIMIT = 100
FALLBACK_TITLE_LIMIT = 95
THREAD_AUTO_ARCHIVE_MINUTES = 60

HISTORY_FETCH_LIMIT = 50
PARTICIPANT_SCAN_LIMIT = 100
CONTEXT_MAX_CHARS = 6000
CONTEXT_KEEP_RECENT_TURNS = 12
DM_RESET_CACHE_SIZE = 1024

DEFAULT_RECOVERY_WINDOW_MINUTES = 5
DEFAULT_RECOVERY_REPLAY_DELAY_SECONDS = 0.5
DEFAULT_OWNERSHIP_MAX_AGE_HOURS = 24 * 30
DEFAULT_MAINTENANCE_INTERVAL_SECONDS = 3600
DEFAULT_STORE_WRITE_TIMEOUT_SECONDS = 10.0

DEFAULT_REACTION_EMOJI = "❓"

AI_ERROR_REPLY = "I'm sorry, I encountered an error while processing your request. Please try again later."
THREAD_CREATE_FAILED_PREFIX = (
    "I encountered an issue creating a thread for our conversation. Here's my response:\n\n"
)
THREAD_POST_FAILED_PREFIX = "I created a thread but couldn't post my response there. Here's my answer:\n\n"

NON_MEMBER_DM_REPLY = (
    "Hello! I'm the Threadwise assistant. To interact with me, you need to be a member of a server "
    "where I'm active. Please ask a server administrator to invite me to your server, or join a "
    "server where I'm already present."
)
DM_CLEAR_CONFIRMATION = (
    "✅ **Conversation cleared!** I've started a fresh conversation. "
    "Earlier messages in this DM won't be used as context anymore."
)
DM_CLEAR_TIP = "\n\n*💡 Tip: Send `/clear` to start a fresh conversation anytime.*"

SYSTEM_PROMPT_BASE = """
You are Threadwise, a helpful assistant that answers questions inside Discord.
Be accurate and concise. Use Discord-flavoured markdown sparingly.
If you do not know something, say so instead of guessing.
""".strip()
