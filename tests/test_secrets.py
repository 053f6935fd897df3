"""Tests for pubsub_client.secrets."""

from unittest.mock import patch

import pytest
from keyring.errors import KeyringError

from pubsub_client import secrets


def test_get_secret_falls_back_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keyring miss resolves from os.environ."""
    monkeypatch.setenv("PUBSUB_TEST_SECRET", "from-env")
    with patch("pubsub_client.secrets.keyring") as mock_kr:
        mock_kr.get_password.return_value = None
        assert secrets.get_secret("PUBSUB_TEST_SECRET") == "from-env"
        mock_kr.get_password.assert_called_once_with("pubsub-client", "PUBSUB_TEST_SECRET")


def test_get_secret_prefers_keyring(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PUBSUB_TEST_SECRET", "from-env")
    with patch("pubsub_client.secrets.keyring") as mock_kr:
        mock_kr.get_password.return_value = "from-keyring"
        assert secrets.get_secret("PUBSUB_TEST_SECRET") == "from-keyring"


def test_keyring_error_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PUBSUB_TEST_SECRET", "from-env")
    with patch("pubsub_client.secrets.keyring") as mock_kr:
        mock_kr.get_password.side_effect = KeyringError("fail")
        assert secrets.get_secret("PUBSUB_TEST_SECRET") == "from-env"
