from __future__ import annotations

import unittest

from misc.discord_delivery import DeliveryError
from misc.discord_delivery import format_for_discord
from misc.discord_delivery import plan_chunked_messages
from misc.discord_delivery import send_response_in_chunks
from misc.discord_delivery import split_response_into_chunks


class _SendRecorder:
    def __init__(self, fail_on: int | None = None):
        self.calls: list[tuple[str, int, int | None, str]] = []
        self.fail_on = fail_on

    def _maybe_fail(self):
        if self.fail_on is not None and len(self.calls) == self.fail_on:
            raise RuntimeError("Missing Permissions")

    async def send_message(self, channel_id, content):
        self._maybe_fail()
        self.calls.append(("send", channel_id, None, content))

    async def send_reply(self, channel_id, message_id, content):
        self._maybe_fail()
        self.calls.append(("reply", channel_id, message_id, content))


class SplitTests(unittest.TestCase):
    def test_short_text_is_one_chunk(self):
        self.assertEqual(split_response_into_chunks("  hello world ", 50), ["hello world"])

    def test_chunks_respect_limit_and_prefer_whitespace(self):
        text = " ".join(f"word{i:03d}" for i in range(300))

        chunks = split_response_into_chunks(text, 100)

        self.assertTrue(all(len(c) <= 100 for c in chunks))
        self.assertEqual(" ".join(chunks).split(), text.split())
        self.assertTrue(all(c.startswith("word") for c in chunks))

    def test_unbroken_text_is_hard_cut(self):
        chunks = split_response_into_chunks("a" * 250, 100)
        self.assertEqual([len(c) for c in chunks], [100, 100, 50])

    def test_whitespace_too_early_forces_hard_cut(self):
        chunks = split_response_into_chunks("ab " + "c" * 150, 100)
        self.assertEqual(len(chunks[0]), 100)

    def test_invalid_limit(self):
        with self.assertRaises(ValueError):
            split_response_into_chunks("text", 0)


class FormatTests(unittest.TestCase):
    def test_normalizes_newlines_and_blank_runs(self):
        self.assertEqual(format_for_discord("a  \r\n\r\n\r\n\n  b\r c"), "a\n\nb\nc")

    def test_plan_adds_part_headers_only_when_split(self):
        self.assertEqual(plan_chunked_messages("short"), ["short"])
        self.assertEqual(plan_chunked_messages("   "), [])

        parts = plan_chunked_messages("x " * 150, max_length=120, header_reserve=20)

        self.assertGreater(len(parts), 1)
        self.assertTrue(parts[0].startswith(f"**[Part 1/{len(parts)}]**\n"))
        self.assertTrue(all(len(p) <= 120 for p in parts))


class SendTests(unittest.IsolatedAsyncioTestCase):
    async def test_only_first_part_is_a_reply(self):
        recorder = _SendRecorder()

        sent = await send_response_in_chunks(
            recorder, 100, "y " * 200, reply_to_message_id=7, max_length=150, header_reserve=20, delay_seconds=0
        )

        self.assertEqual(sent, len(recorder.calls))
        self.assertEqual(recorder.calls[0][0], "reply")
        self.assertEqual(recorder.calls[0][2], 7)
        self.assertTrue(all(kind == "send" for kind, *_ in recorder.calls[1:]))

    async def test_failure_reports_parts_already_sent(self):
        recorder = _SendRecorder(fail_on=1)

        with self.assertRaises(DeliveryError) as ctx:
            await send_response_in_chunks(recorder, 100, "z " * 200, max_length=150, header_reserve=20, delay_seconds=0)

        self.assertEqual(ctx.exception.sent, 1)
        self.assertEqual(len(recorder.calls), 1)


if __name__ == "__main__":
    unittest.main()
