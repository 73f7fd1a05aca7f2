from __future__ import annotations

import asyncio
import re

from config.defaults import CHUNK_HEADER_RESERVE
from config.defaults import CHUNK_SEND_DELAY_SECONDS
from config.defaults import DISCORD_MESSAGE_LIMIT

_WHITESPACE = (" ", "\n", "\t")


class DeliveryError(RuntimeError):
    def __init__(self, message: str, *, sent: int = 0):
        super().__init__(message)
        self.sent = sent


def format_for_discord(text: str) -> str:
    text = str(text or "").replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.strip() for line in text.split("\n")]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _last_whitespace(text: str, end: int) -> int:
    return max(text.rfind(ch, 0, end + 1) for ch in _WHITESPACE)


def split_response_into_chunks(text: str, max_length: int) -> list[str]:
    if max_length < 1:
        raise ValueError("max_length must be positive")

    remaining = (text or "").strip()
    chunks: list[str] = []
    while len(remaining) > max_length:
        cut = _last_whitespace(remaining, max_length)
        if cut < max_length // 2:
            chunk, remaining = remaining[:max_length], remaining[max_length:]
        else:
            chunk, remaining = remaining[:cut], remaining[cut + 1 :]
        chunk = chunk.strip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining.lstrip()

    if remaining:
        chunks.append(remaining)
    return chunks


def part_header(index: int, total: int) -> str:
    return f"**[Part {index}/{total}]**\n"


def plan_chunked_messages(
    text: str,
    *,
    max_length: int = DISCORD_MESSAGE_LIMIT,
    header_reserve: int = CHUNK_HEADER_RESERVE,
) -> list[str]:
    formatted = format_for_discord(text)
    if len(formatted) <= max_length:
        return [formatted] if formatted else []

    parts = split_response_into_chunks(formatted, max(1, max_length - header_reserve))
    if len(parts) == 1:
        return parts
    total = len(parts)
    return [part_header(i, total) + part for i, part in enumerate(parts, start=1)]


async def send_response_in_chunks(
    gateway,
    channel_id: int,
    text: str,
    *,
    reply_to_message_id: int | None = None,
    max_length: int = DISCORD_MESSAGE_LIMIT,
    header_reserve: int = CHUNK_HEADER_RESERVE,
    delay_seconds: float = CHUNK_SEND_DELAY_SECONDS,
) -> int:
    """Send ``text`` to ``channel_id`` within Discord's per-message limit.

    Only the first piece is sent as a reply when ``reply_to_message_id`` is given.
    Raises DeliveryError on the first failed send; earlier pieces stay posted.
    """
    messages = plan_chunked_messages(text, max_length=max_length, header_reserve=header_reserve)
    sent = 0
    for i, body in enumerate(messages):
        if i > 0 and delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        try:
            if i == 0 and reply_to_message_id is not None:
                await gateway.send_reply(channel_id, reply_to_message_id, body)
            else:
                await gateway.send_message(channel_id, body)
        except Exception as e:
            raise DeliveryError(f"send to channel={channel_id} failed at part {i + 1}/{len(messages)}: {e}", sent=sent) from e
        sent += 1
    if len(messages) > 1:
        print(f"[Delivery] channel={channel_id} parts={len(messages)}")
    return sent


async def send_chunked(channel, text: str) -> None:
    for part in plan_chunked_messages(text):
        await channel.send(part)
