from __future__ import annotations

import asyncio

from config.defaults import SYSTEM_PROMPT_BASE

SUMMARY_MARKERS = ("[SUMMARY]:", "### Summary", "##Summary", "Summary:", "SUMMARY:")
ANSWER_HEADERS = ("### Answer", "## Answer", "##Answer", "Answer:", "ANSWER:")
SUMMARY_LIMIT = 100


class AIServiceError(RuntimeError):
    pass


def _clamp(text: str, limit: int) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def _strip_answer_header(text: str) -> str:
    out = (text or "").strip()
    for header in ANSWER_HEADERS:
        if out.startswith(header):
            out = out[len(header) :].strip()
            break
    return out


def parse_response_with_summary(text: str) -> tuple[str, str]:
    raw = (text or "").strip()
    best_idx = -1
    best_marker = ""
    for marker in SUMMARY_MARKERS:
        idx = raw.rfind(marker)
        if idx > best_idx:
            best_idx = idx
            best_marker = marker

    if best_idx < 0:
        return _strip_answer_header(raw), ""

    answer = _strip_answer_header(raw[:best_idx])
    summary_block = raw[best_idx + len(best_marker) :].strip()
    summary = summary_block.splitlines()[0].strip() if summary_block else ""
    summary = summary.strip("*_ \"'")
    if not answer:
        # Model put only a summary in the reply; keep the full text as the answer.
        return raw, _clamp(summary, SUMMARY_LIMIT)
    return answer, _clamp(summary, SUMMARY_LIMIT)


def _fallback_summary(turns: list[str], limit: int = 1000) -> str:
    tail = "\n".join(t for t in turns[-5:] if t)
    if len(tail) <= limit:
        return tail
    return tail[: limit - 3] + "..."


class OpenAIQueryService:
    """Thin async wrapper around the blocking OpenAI chat client."""

    def __init__(self, client, model: str, system_prompt: str = SYSTEM_PROMPT_BASE):
        self.client = client
        self.model = model
        self.system_prompt = system_prompt

    def _complete_sync(self, messages: list[dict]) -> str:
        resp = self.client.chat.completions.create(model=self.model, messages=messages)
        return (resp.choices[0].message.content or "").strip()

    async def _complete(self, user_content: str, *, system_extra: str = "") -> str:
        system = self.system_prompt
        if system_extra:
            system = f"{system}\n\n{system_extra}"
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user_content},
        ]
        try:
            text = await asyncio.to_thread(self._complete_sync, messages)
        except Exception as e:
            raise AIServiceError(f"completion failed: {e}") from e
        if not text:
            raise AIServiceError("model returned empty output")
        return text

    async def query_ai(self, query: str) -> str:
        return await self._complete(query)

    async def query_with_context(self, query: str, history: str | None) -> str:
        history = (history or "").strip()
        if not history:
            return await self.query_ai(query)
        user = (
            "Conversation so far (oldest first):\n"
            f"{history}\n\n"
            "Respond to the latest message from the user:\n"
            f"{query}"
        )
        return await self._complete(user)

    async def query_ai_with_summary(self, query: str) -> tuple[str, str]:
        instructions = (
            "After your answer, add one final line of the form\n"
            "[SUMMARY]: <a short title for this conversation, under 80 characters>\n"
            "Do not add anything after the summary line."
        )
        text = await self._complete(query, system_extra=instructions)
        return parse_response_with_summary(text)

    async def summarize_conversation(self, turns: list[str]) -> str:
        transcript = "\n".join(t for t in turns if t).strip()
        if not transcript:
            return ""
        prompt = (
            "Summarize this conversation so it can be used as context for a follow-up answer. "
            "Keep names, decisions, and open questions. Keep it under 500 words.\n\n"
            f"{transcript}"
        )
        try:
            return await self._complete(prompt)
        except AIServiceError as e:
            print(f"[AI] summarize failed, using recent turns instead: {e}")
            return _fallback_summary(turns)
