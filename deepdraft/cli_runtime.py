"""Runtime source assembly for commands that call the generation provider.

Responsibilities:
- Collect the model and API key given for one command run.
- Read the stored API key and persist a newly entered one on request.
- Return the `RuntimeConfigSources` consumed by `DeepDraftConfig`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
import os

import typer

from .config import RuntimeConfigSources
from .credentials import CredentialStore, create_credential_store
from .errors import PhaseError
from .parsing import normalize_optional_string


def entered_api_key(api_key: str | None, prompt_api_key: bool) -> str | None:
    """Return the API key given for this run, prompting with hidden input on request."""

    entered = normalize_optional_string(api_key)
    if entered is None and prompt_api_key:
        entered = normalize_optional_string(
            typer.prompt(
                "OpenAI API key (hidden; leave blank to skip)",
                default="",
                hide_input=True,
                show_default=False,
            )
        )
    return entered


def remember_api_key(credential_store: CredentialStore, api_key: str) -> None:
    """Persist an API key, reporting storage failures as a credentials error."""

    try:
        credential_store.set_api_key(api_key)
    except Exception as exc:
        raise PhaseError(
            stage="credentials",
            detail=f"Failed to store API key securely: {exc}",
            hint=(
                "Install and configure a keyring backend, or rerun with "
                "`--no-store-api-key` for one-off usage."
            ),
        ) from exc
    typer.echo("Stored API key in secure credential storage.")


def resolve_runtime_sources(
    *,
    model: str | None,
    api_key: str | None,
    prompt_api_key: bool,
    store_api_key: bool,
    credential_store_factory: Callable[[], CredentialStore] = create_credential_store,
    env: Mapping[str, str] | None = None,
) -> RuntimeConfigSources:
    """Assemble CLI, secure, and environment sources for one provider-calling run.

    A key entered in this run is stored only when `store_api_key` is set and it
    differs from the key already in secure storage.
    """

    cli_values: dict[str, str] = {}
    cli_model = normalize_optional_string(model)
    if cli_model is not None:
        cli_values["model"] = cli_model
    cli_api_key = entered_api_key(api_key, prompt_api_key)
    if cli_api_key is not None:
        cli_values["api_key"] = cli_api_key

    credential_store = credential_store_factory()
    stored_api_key = credential_store.get_api_key()
    if cli_api_key is not None and store_api_key and cli_api_key != stored_api_key:
        remember_api_key(credential_store, cli_api_key)

    return RuntimeConfigSources(
        cli=cli_values,
        secure={} if stored_api_key is None else {"api_key": stored_api_key},
        env=os.environ if env is None else env,
    )
