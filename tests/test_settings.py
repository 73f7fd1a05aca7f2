from __future__ import annotations

import unittest
from unittest import mock

from config.defaults import DEFAULT_DB_PATH
from config.defaults import DEFAULT_RECOVERY_WINDOW_MINUTES
from config.settings import load_reaction_trigger_config
from config.settings import load_settings
from config.settings import parse_bool
from config.settings import parse_id_set
from config.settings import parse_int
from config.settings import parse_str_set

BASE_ENV = {"DISCORD_TOKEN": "token", "OPENAI_API_KEY": "sk-test"}


class ParseHelperTests(unittest.TestCase):
    def test_id_set_keeps_only_snowflakes(self):
        raw = "123456789012345678, 42 ;234567890123456789\nnot-an-id"
        self.assertEqual(parse_id_set(raw), {123456789012345678, 234567890123456789})

    def test_role_names_keep_inner_spaces(self):
        self.assertEqual(parse_str_set("Support Team, mods;  "), {"support team", "mods"})

    def test_bool_tokens_and_fallback(self):
        self.assertTrue(parse_bool("YES"))
        self.assertFalse(parse_bool("off", default=True))
        with mock.patch("builtins.print"):
            self.assertTrue(parse_bool("maybe", default=True))

    def test_int_minimum_falls_back(self):
        with mock.patch("builtins.print") as printed:
            self.assertEqual(parse_int("-3", 5, minimum=0), 5)
            self.assertEqual(parse_int("abc", 5), 5)
        self.assertEqual(printed.call_count, 2)
        self.assertEqual(parse_int(" 12 ", 5), 12)


class LoadSettingsTests(unittest.TestCase):
    def test_missing_credentials_raise(self):
        with self.assertRaises(RuntimeError):
            load_settings({"OPENAI_API_KEY": "sk-test"})
        with self.assertRaises(RuntimeError):
            load_settings({"DISCORD_TOKEN": "token"})

    def test_defaults(self):
        settings = load_settings(dict(BASE_ENV))

        self.assertEqual(settings.db_path, DEFAULT_DB_PATH)
        self.assertEqual(settings.recovery_window_minutes, DEFAULT_RECOVERY_WINDOW_MINUTES)
        self.assertEqual(settings.allowed_channel_ids, set())
        self.assertFalse(settings.reply_mention.delete_reply_message)
        self.assertFalse(settings.reaction_trigger.enabled)

    def test_legacy_names_are_read(self):
        env = dict(BASE_ENV, MESSAGE_RECOVERY_WINDOW_MINUTES="15", DATABASE_PATH="/data/state.db")
        settings = load_settings(env)

        self.assertEqual(settings.recovery_window_minutes, 15)
        self.assertEqual(settings.db_path, "/data/state.db")

    def test_new_names_take_precedence(self):
        env = dict(BASE_ENV, MESSAGE_RECOVERY_WINDOW_MINUTES="15", THREADWISE_RECOVERY_WINDOW_MINUTES="2")
        self.assertEqual(load_settings(env).recovery_window_minutes, 2)

    def test_reaction_trigger_block(self):
        policy = load_reaction_trigger_config(
            {
                "REACTION_TRIGGER_ENABLED": "true",
                "REACTION_TRIGGER_EMOJI": "🤖",
                "REACTION_TRIGGER_APPROVED_USER_IDS": "123456789012345678",
                "REACTION_TRIGGER_APPROVED_ROLE_NAMES": "Helpers",
                "REACTION_TRIGGER_REMOVE_REACTION": "1",
            }
        )

        self.assertTrue(policy.enabled)
        self.assertEqual(policy.trigger_emoji, "🤖")
        self.assertEqual(policy.approved_user_ids, {123456789012345678})
        self.assertEqual(policy.approved_role_names, {"helpers"})
        self.assertTrue(policy.remove_trigger_reaction)
        self.assertFalse(policy.require_confirmation_reaction)


if __name__ == "__main__":
    unittest.main()
