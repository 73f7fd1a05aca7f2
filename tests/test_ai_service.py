from __future__ import annotations

import unittest
from types import SimpleNamespace

from controller.ai_service import AIServiceError
from controller.ai_service import OpenAIQueryService
from controller.ai_service import parse_response_with_summary


class _DummyCompletions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.requests: list[dict] = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


class _DummyClient:
    def __init__(self, *replies):
        self.completions = _DummyCompletions(replies)
        self.chat = SimpleNamespace(completions=self.completions)


class ParseSummaryTests(unittest.TestCase):
    def test_marker_splits_answer_and_summary(self):
        answer, summary = parse_response_with_summary("Use a VPN.\n\n[SUMMARY]: VPN setup help")
        self.assertEqual((answer, summary), ("Use a VPN.", "VPN setup help"))

    def test_last_marker_wins(self):
        text = "Summary: of the options below\nPick B.\n### Summary\n**Choosing an option**\nextra"
        answer, summary = parse_response_with_summary(text)

        self.assertTrue(answer.startswith("Summary: of the options below"))
        self.assertEqual(summary, "Choosing an option")

    def test_answer_header_is_removed(self):
        answer, summary = parse_response_with_summary("### Answer\nRestart it.\nSUMMARY: Restart fix")
        self.assertEqual((answer, summary), ("Restart it.", "Restart fix"))

    def test_no_marker_returns_full_text(self):
        self.assertEqual(parse_response_with_summary("plain answer"), ("plain answer", ""))

    def test_summary_is_clamped(self):
        _, summary = parse_response_with_summary("ok\n[SUMMARY]: " + "t" * 300)
        self.assertEqual(len(summary), 100)


class OpenAIQueryServiceTests(unittest.IsolatedAsyncioTestCase):
    async def test_query_uses_model_and_system_prompt(self):
        client = _DummyClient("Hello!")
        service = OpenAIQueryService(client, "gpt-test", "be brief")

        self.assertEqual(await service.query_ai("hi"), "Hello!")

        request = client.completions.requests[0]
        self.assertEqual(request["model"], "gpt-test")
        self.assertEqual(request["messages"][0], {"role": "system", "content": "be brief"})

    async def test_empty_output_is_an_error(self):
        service = OpenAIQueryService(_DummyClient("   "), "gpt-test")
        with self.assertRaises(AIServiceError):
            await service.query_ai("hi")

    async def test_client_failure_is_wrapped(self):
        service = OpenAIQueryService(_DummyClient(RuntimeError("rate limited")), "gpt-test")
        with self.assertRaises(AIServiceError):
            await service.query_ai("hi")

    async def test_context_query_includes_history(self):
        client = _DummyClient("answer")
        service = OpenAIQueryService(client, "gpt-test")

        await service.query_with_context("and now?", "alice: first\nBot (helper): reply")

        user = client.completions.requests[0]["messages"][1]["content"]
        self.assertIn("alice: first", user)
        self.assertTrue(user.endswith("and now?"))

    async def test_context_query_without_history_is_plain(self):
        client = _DummyClient("answer")
        service = OpenAIQueryService(client, "gpt-test")

        await service.query_with_context("question", "  ")

        self.assertEqual(client.completions.requests[0]["messages"][1]["content"], "question")

    async def test_query_with_summary_parses_reply(self):
        service = OpenAIQueryService(_DummyClient("Try this.\n[SUMMARY]: Quick fix"), "gpt-test")
        self.assertEqual(await service.query_ai_with_summary("broken"), ("Try this.", "Quick fix"))

    async def test_summarize_falls_back_to_recent_turns(self):
        service = OpenAIQueryService(_DummyClient(RuntimeError("down")), "gpt-test")
        turns = [f"user: turn {i}" for i in range(8)]

        summary = await service.summarize_conversation(turns)

        self.assertEqual(summary, "\n".join(turns[-5:]))


if __name__ == "__main__":
    unittest.main()
