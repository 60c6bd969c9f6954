"""Unit tests for keyring-backed credential storage."""

from __future__ import annotations

import pytest
from keyring.errors import KeyringError, NoKeyringError, PasswordDeleteError

from deepdraft import credentials
from deepdraft.credentials import KeyringCredentialStore, create_credential_store


class _FakeBackend:
    """Backend object exposing a keyring priority."""

    def __init__(self, priority: float) -> None:
        """Initialize backend priority."""

        self.priority = priority


class _FakeKeyring:
    """In-memory replacement for the `keyring` module functions."""

    def __init__(self, priority: float = 1.0, fail_with: Exception | None = None) -> None:
        """Initialize password storage and optional failure mode."""

        self.passwords: dict[tuple[str, str], str] = {}
        self.priority = priority
        self.fail_with = fail_with

    def get_keyring(self) -> _FakeBackend:
        """Return the active backend."""

        if self.fail_with is not None:
            raise self.fail_with
        return _FakeBackend(self.priority)

    def get_password(self, service: str, account: str) -> str | None:
        """Return a stored password."""

        if self.fail_with is not None:
            raise self.fail_with
        return self.passwords.get((service, account))

    def set_password(self, service: str, account: str, value: str) -> None:
        """Store a password."""

        if self.fail_with is not None:
            raise self.fail_with
        self.passwords[(service, account)] = value

    def delete_password(self, service: str, account: str) -> None:
        """Delete a stored password."""

        if (service, account) not in self.passwords:
            raise PasswordDeleteError("not found")
        del self.passwords[(service, account)]


def test_keyring_store_round_trip(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keys are stored normalized, read back, and cleared once."""

    fake = _FakeKeyring()
    monkeypatch.setattr(credentials, "keyring", fake)
    store = create_credential_store()

    assert store.is_available()
    assert store.get_api_key() is None

    store.set_api_key("  sk-test  ")

    assert fake.passwords == {("deepdraft", "openai_api_key"): "sk-test"}
    assert store.get_api_key() == "sk-test"
    assert store.clear_api_key() is True
    assert store.clear_api_key() is False
    assert store.get_api_key() is None


def test_keyring_store_treats_blank_values_as_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    """Whitespace-only stored values are reported as missing."""

    fake = _FakeKeyring()
    fake.passwords[("custom", "acct")] = "   "
    monkeypatch.setattr(credentials, "keyring", fake)

    store = KeyringCredentialStore(service_name="custom", account_name="acct")

    assert store.get_api_key() is None
    with pytest.raises(ValueError, match="non-empty"):
        store.set_api_key("  ")


def test_keyring_store_without_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing backend reads as unavailable and refuses writes."""

    monkeypatch.setattr(credentials, "keyring", _FakeKeyring(fail_with=NoKeyringError()))
    store = KeyringCredentialStore()

    assert store.is_available() is False
    assert store.get_api_key() is None
    with pytest.raises(RuntimeError, match="no keyring backend"):
        store.set_api_key("sk-test")


def test_keyring_store_reports_low_priority_backend_unavailable(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Fail-safe backends (priority <= 0) are not usable."""

    monkeypatch.setattr(credentials, "keyring", _FakeKeyring(priority=0))

    assert KeyringCredentialStore().is_available() is False

    monkeypatch.setattr(credentials, "keyring", _FakeKeyring(fail_with=KeyringError("boom")))

    assert KeyringCredentialStore().is_available() is False
