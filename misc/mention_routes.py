from __future__ import annotations

import re

from config.defaults import FALLBACK_TITLE_LIMIT
from config.defaults import THREAD_TITLE_LIMIT

ELLIPSIS = "…"
_ROLE_MENTION_RE = re.compile(r"<@&\d+>")


def extract_query_from_mention(content: str, bot_user_id: int) -> str:
    text = str(content or "")
    text = re.sub(rf"<@!?\s*{int(bot_user_id)}\s*>", "", text)
    text = _ROLE_MENTION_RE.sub("", text)
    return text.strip()


def is_clear_command(text: str) -> bool:
    return (text or "").strip().lower() == "/clear"


def fallback_title(query: str, limit: int = FALLBACK_TITLE_LIMIT) -> str:
    words = (query or "").split()
    if not words:
        return "Question"

    title = ""
    used = 0
    for word in words:
        candidate = f"{title} {word}".strip()
        if len(candidate) > limit:
            break
        title = candidate
        used += 1

    if not title:
        return words[0][:limit] + ELLIPSIS
    if used < len(words):
        return title + ELLIPSIS
    return title


def clamp_thread_title(title: str, limit: int = THREAD_TITLE_LIMIT) -> str:
    text = (title or "").strip()
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + ELLIPSIS


def thread_title_for(query: str, summary: str | None) -> str:
    summary = (summary or "").strip()
    return clamp_thread_title(summary or fallback_title(query))


def reply_thread_title(author_name: str, summary: str | None, referenced_query: str) -> str:
    topic = (summary or "").strip() or fallback_title(referenced_query)
    return clamp_thread_title(f"Re: {author_name} - {topic}")


def truncate_for_attribution(content: str, limit: int = 100) -> str:
    text = (content or "").strip()
    if len(text) <= limit:
        return text
    return text[: limit - 1] + ELLIPSIS


def reply_attribution(author_name: str, content: str) -> str:
    return f'*Responding to {author_name}\'s message: "{truncate_for_attribution(content)}"*\n\n'


def reply_fallback_attribution(author_name: str) -> str:
    return f"*Responding to {author_name}'s message:*\n\n"
