"""Credential, site token and configuration loading tests."""

from __future__ import annotations

import json
import os
import tempfile
import unittest

from sermon_audio.adapters.aws.credentials import CredentialProvider
from sermon_audio.core.config import Settings, parse_timeout
from sermon_audio.core.site_token import SiteTokenProvider
from sermon_audio.errors import ConfigurationError


class _TempFileCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    def _write(self, name: str, content: str) -> str:
        path = os.path.join(self._tmpdir.name, name)
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(content)
        return path


class CredentialProviderTests(_TempFileCase):
    def test_unreadable_file_raises_configuration_error_on_first_call(self) -> None:
        missing = os.path.join(self._tmpdir.name, "missing.json")
        provider = CredentialProvider(Settings(aws_credentials_file_path=missing))

        with self.assertRaises(ConfigurationError) as context:
            provider.get_credentials()
        self.assertEqual(context.exception.payload.code, "CONFIGURATION_ERROR")

    def test_unconfigured_path_returns_none(self) -> None:
        provider = CredentialProvider(Settings(aws_credentials_file_path=""))
        self.assertIsNone(provider.get_credentials())

    def test_credentials_are_loaded_once_and_cached(self) -> None:
        path = self._write("creds.json", json.dumps({"access-key": "AKIA-TEST", "secret-key": "secret"}))
        provider = CredentialProvider(Settings(aws_credentials_file_path=path))

        first = provider.get_credentials()
        os.remove(path)
        second = provider.get_credentials()

        self.assertIs(first, second)
        self.assertEqual(first.access_key, "AKIA-TEST")
        self.assertEqual(first.secret_key, "secret")

    def test_invalid_documents_are_rejected(self) -> None:
        documents = {
            "not-json": "{",
            "not-object": json.dumps(["access-key", "secret-key"]),
            "missing-secret": json.dumps({"access-key": "AKIA-TEST"}),
            "empty-access": json.dumps({"access-key": "", "secret-key": "secret"}),
            "non-string": json.dumps({"access-key": 12, "secret-key": "secret"}),
        }
        for name, content in documents.items():
            with self.subTest(document=name):
                path = self._write(f"{name}.json", content)
                provider = CredentialProvider(Settings(aws_credentials_file_path=path))
                with self.assertRaises(ConfigurationError):
                    provider.get_credentials()

    def test_failed_load_is_not_cached(self) -> None:
        path = os.path.join(self._tmpdir.name, "late.json")
        provider = CredentialProvider(Settings(aws_credentials_file_path=path))
        with self.assertRaises(ConfigurationError):
            provider.get_credentials()

        self._write("late.json", json.dumps({"access-key": "AKIA-LATE", "secret-key": "secret"}))
        self.assertEqual(provider.get_credentials().access_key, "AKIA-LATE")


class SiteTokenProviderTests(_TempFileCase):
    def test_token_is_read_and_stripped(self) -> None:
        path = self._write("token", "  site-token\n")
        provider = SiteTokenProvider(Settings(site_token_file_path=path))
        self.assertEqual(provider.get_token(), "site-token")

    def test_missing_path_or_empty_file_is_a_configuration_error(self) -> None:
        empty = self._write("empty", "\n")
        for path in (None, "", empty, os.path.join(self._tmpdir.name, "absent")):
            with self.subTest(path=path):
                with self.assertRaises(ConfigurationError):
                    SiteTokenProvider(Settings(site_token_file_path=path)).get_token()


class SettingsTests(unittest.TestCase):
    def test_require_rejects_missing_and_blank_values(self) -> None:
        settings = Settings(audio_bucket_name="  ", jobs_table_name="jobs")
        self.assertEqual(settings.require("jobs_table_name"), "jobs")
        for name in ("audio_bucket_name", "fallback_owner_id"):
            with self.subTest(name=name):
                with self.assertRaises(ConfigurationError) as context:
                    settings.require(name)
                self.assertEqual(context.exception.payload.details, {"setting": name})

    def test_timeouts_are_optional_positive_integers(self) -> None:
        self.assertIsNone(parse_timeout("connect_timeout", None))
        self.assertIsNone(parse_timeout("connect_timeout", " "))
        self.assertEqual(parse_timeout("connect_timeout", "15"), 15)
        for raw in ("0", "-3", "soon", "1.5"):
            with self.subTest(raw=raw):
                with self.assertRaises(ConfigurationError):
                    parse_timeout("endpoint_timeout", raw)

    def test_settings_read_prefixed_environment(self) -> None:
        old = os.environ.get("SERMON_AUDIO_SUBMISSION_MODE")
        os.environ["SERMON_AUDIO_SUBMISSION_MODE"] = "store"
        try:
            self.assertEqual(Settings().submission_mode, "store")
        finally:
            if old is None:
                os.environ.pop("SERMON_AUDIO_SUBMISSION_MODE", None)
            else:
                os.environ["SERMON_AUDIO_SUBMISSION_MODE"] = old


if __name__ == "__main__":
    unittest.main()
