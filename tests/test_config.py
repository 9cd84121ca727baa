import os
import pathlib
import tempfile
import unittest
from unittest.mock import patch

import set_env_vars
from reansql.config import Settings
from reansql.errors import ConfigError


class TestSettings(unittest.TestCase):
    def test_keys_are_split_and_trimmed(self):
        s = Settings.from_env({"GEMINI_API_KEYS": " k1, ,k2 ,k3,"})
        self.assertEqual(s.gemini_api_keys, ("k1", "k2", "k3"))

    def test_single_key_fallback(self):
        s = Settings.from_env({"GEMINI_API_KEY": "solo"})
        self.assertEqual(s.gemini_api_keys, ("solo",))

    def test_defaults(self):
        s = Settings.from_env({})
        self.assertEqual(s.gemini_api_keys, ())
        self.assertEqual(s.gemini_model, "gemini-2.5-flash")
        self.assertEqual(s.gemini_max_retries, 3)
        self.assertEqual(s.pacing_delay_s, 1.0)
        self.assertEqual(s.log_level, "INFO")

    def test_overrides(self):
        s = Settings.from_env({
            "GEMINI_MODEL": "gemini-2.0-flash",
            "GEMINI_MAX_RETRIES": "5",
            "PIPELINE_PACING_DELAY_S": "0.25",
            "LOG_LEVEL": "debug",
        })
        self.assertEqual(s.gemini_model, "gemini-2.0-flash")
        self.assertEqual(s.gemini_max_retries, 5)
        self.assertEqual(s.pacing_delay_s, 0.25)
        self.assertEqual(s.log_level, "DEBUG")

    def test_invalid_numbers_raise(self):
        with self.assertRaises(ConfigError):
            Settings.from_env({"PIPELINE_PACING_DELAY_S": "soon"})
        with self.assertRaises(ConfigError):
            Settings.from_env({"GEMINI_MAX_RETRIES": "-1"})


class TestDotenv(unittest.TestCase):
    def test_parse_dotenv(self):
        pairs = set_env_vars._parse_dotenv(
            "# comment\nGEMINI_API_KEYS=\"a,b\"\nexport MONGO_DB='reansql'\nnot a pair\n"
        )
        self.assertEqual(pairs, {"GEMINI_API_KEYS": "a,b", "MONGO_DB": "reansql"})

    def test_initialize_prefers_local_and_keeps_existing(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = pathlib.Path(tmp)
            (root / ".env").write_text("MONGO_URI=mongodb://env\nMONGO_DB=from_env\n", encoding="utf-8")
            (root / ".env.local").write_text("MONGO_DB=from_local\n", encoding="utf-8")

            with patch.dict(os.environ, {"GEMINI_API_KEYS": "existing"}, clear=True):
                status = set_env_vars.initialize_env_vars(root=tmp)
                self.assertEqual(os.environ["MONGO_DB"], "from_local")
                self.assertEqual(os.environ["MONGO_URI"], "mongodb://env")
                self.assertEqual(os.environ["GEMINI_API_KEYS"], "existing")

        self.assertEqual(status, {"gemini_api_keys_set": True, "mongo_uri_set": True, "mongo_db_set": True})


if __name__ == "__main__":
    unittest.main()
