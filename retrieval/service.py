from __future__ import annotations

from config.defaults import CONTEXT_KEEP_RECENT_TURNS
from config.defaults import CONTEXT_MAX_CHARS
from config.defaults import HISTORY_FETCH_LIMIT
from controller.models import InboundMessage


def format_history_line(message: InboundMessage, max_line_chars: int = 1500) -> str:
    clean = (message.content or "").strip()
    if len(clean) > max_line_chars:
        head_len = int(max_line_chars * 0.65)
        tail_len = max_line_chars - head_len - 3
        clean = f"{clean[:head_len].rstrip()}...{clean[-tail_len:].lstrip()}"
    if message.author_is_bot:
        return f"Bot ({message.author_name}): {clean}"
    return f"{message.author_name}: {clean}"


def format_conversation_history(messages: list[InboundMessage]) -> str:
    lines = [format_history_line(m) for m in messages if (m.content or "").strip()]
    return "\n".join(lines).strip()


async def fetch_conversation_history(
    gateway,
    channel_id: int,
    *,
    limit: int = HISTORY_FETCH_LIMIT,
    after_message_id: int | None = None,
) -> list[InboundMessage]:
    # Gateway pages are newest first.
    page = await gateway.fetch_history(channel_id, limit=limit, after_message_id=after_message_id)
    return list(reversed(page))


async def build_conversation_context(
    gateway,
    channel_id: int,
    *,
    ai_service=None,
    limit: int = HISTORY_FETCH_LIMIT,
    after_message_id: int | None = None,
    max_chars: int = CONTEXT_MAX_CHARS,
    keep_recent: int = CONTEXT_KEEP_RECENT_TURNS,
) -> tuple[str | None, int]:
    """Return ``(history_text, message_count)`` for a channel, oldest turn first.

    A failed fetch yields ``(None, 0)`` so callers fall back to a context-free query.
    When the transcript is longer than ``max_chars`` the older turns are condensed
    through ``ai_service.summarize_conversation`` and the latest ``keep_recent``
    turns stay verbatim.
    """
    try:
        messages = await fetch_conversation_history(
            gateway, channel_id, limit=limit, after_message_id=after_message_id
        )
    except Exception as e:
        print(f"[Context] history fetch failed channel={channel_id}: {e}")
        return None, 0

    text = format_conversation_history(messages)
    if len(text) <= max_chars or ai_service is None:
        if len(text) > max_chars:
            text = text[-max_chars:]
        return text, len(messages)

    lines = [format_history_line(m) for m in messages if (m.content or "").strip()]
    older, recent = lines[:-keep_recent], lines[-keep_recent:]
    summary = await ai_service.summarize_conversation(older) if older else ""
    recent_text = "\n".join(recent)
    if summary:
        text = f"Summary of earlier conversation:\n{summary}\n\nRecent messages:\n{recent_text}"
    else:
        text = recent_text
    if len(text) > max_chars:
        text = text[-max_chars:]
    return text.strip(), len(messages)
