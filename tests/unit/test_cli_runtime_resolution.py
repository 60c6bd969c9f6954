"""Unit tests for CLI runtime source resolution."""

from __future__ import annotations

import pytest

from deepdraft import cli_runtime
from deepdraft.cli_runtime import entered_api_key, resolve_runtime_sources
from deepdraft.config import DeepDraftConfig
from deepdraft.errors import PhaseError


class _InMemoryCredentialStore:
    """Credential store double with optional write failure."""

    def __init__(self, api_key: str | None = None, fail_on_set: bool = False) -> None:
        """Initialize stored key and failure mode."""

        self.api_key = api_key
        self.fail_on_set = fail_on_set
        self.set_calls: list[str] = []

    def get_api_key(self) -> str | None:
        """Return the stored key."""

        return self.api_key

    def set_api_key(self, api_key: str) -> None:
        """Store a key or fail when configured to."""

        self.set_calls.append(api_key)
        if self.fail_on_set:
            raise RuntimeError("keyring locked")
        self.api_key = api_key


def test_sources_carry_cli_stored_and_env_values() -> None:
    """Blank CLI values are dropped and each source lands in its own mapping."""

    store = _InMemoryCredentialStore(api_key="stored-key")

    sources = resolve_runtime_sources(
        model=" gpt-4.1 ",
        api_key="  ",
        prompt_api_key=False,
        store_api_key=True,
        credential_store_factory=lambda: store,
        env={"DEEPDRAFT_MODEL": "env-model"},
    )

    assert sources.cli == {"model": "gpt-4.1"}
    assert sources.secure == {"api_key": "stored-key"}
    assert sources.env == {"DEEPDRAFT_MODEL": "env-model"}
    assert store.set_calls == []


def test_stored_key_is_used_when_no_cli_key_is_given() -> None:
    """The secure source outranks the environment for the API key."""

    sources = resolve_runtime_sources(
        model=None,
        api_key=None,
        prompt_api_key=False,
        store_api_key=True,
        credential_store_factory=lambda: _InMemoryCredentialStore(api_key="stored-key"),
        env={"OPENAI_API_KEY": "env-key"},
    )

    runtime = DeepDraftConfig(runtime_sources=sources).resolved_provider_runtime()
    assert runtime.api_key == "stored-key"


def test_cli_api_key_is_persisted_only_when_new_and_requested() -> None:
    """A key entered for the run is stored once, and never when storage is disabled."""

    store = _InMemoryCredentialStore()

    sources = resolve_runtime_sources(
        model=None,
        api_key=" cli-key ",
        prompt_api_key=False,
        store_api_key=True,
        credential_store_factory=lambda: store,
        env={},
    )
    assert sources.cli == {"api_key": "cli-key"}
    assert store.set_calls == ["cli-key"]

    resolve_runtime_sources(
        model=None,
        api_key="cli-key",
        prompt_api_key=False,
        store_api_key=True,
        credential_store_factory=lambda: store,
        env={},
    )
    assert store.set_calls == ["cli-key"]

    other_store = _InMemoryCredentialStore()
    resolve_runtime_sources(
        model=None,
        api_key="cli-key",
        prompt_api_key=False,
        store_api_key=False,
        credential_store_factory=lambda: other_store,
        env={},
    )
    assert other_store.set_calls == []


def test_prompted_api_key_is_used(monkeypatch: pytest.MonkeyPatch) -> None:
    """The hidden prompt supplies the key only when none was passed."""

    prompts: list[str] = []

    def _prompt(text: str, **kwargs: object) -> str:
        """Record the prompt and type a key."""

        prompts.append(text)
        return " typed-key "

    monkeypatch.setattr(cli_runtime.typer, "prompt", _prompt)

    assert entered_api_key(None, prompt_api_key=True) == "typed-key"
    assert entered_api_key("given", prompt_api_key=True) == "given"
    assert entered_api_key(None, prompt_api_key=False) is None
    assert len(prompts) == 1


def test_storage_failure_is_reported_as_phase_error() -> None:
    """Failing to persist a key raises a credentials-stage error with a hint."""

    store = _InMemoryCredentialStore(fail_on_set=True)

    with pytest.raises(PhaseError) as exc_info:
        resolve_runtime_sources(
            model=None,
            api_key="cli-key",
            prompt_api_key=False,
            store_api_key=True,
            credential_store_factory=lambda: store,
            env={},
        )

    assert exc_info.value.stage == "credentials"
    assert "keyring locked" in exc_info.value.detail
    assert "--no-store-api-key" in (exc_info.value.hint or "")
