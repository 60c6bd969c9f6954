"""Configuration model and loaders for DeepDraft.

Responsibilities:
- Define runtime limits, delays, and workspace layout as a typed dataclass.
- Provide deterministic precedence resolution for provider/model/API-key settings.
- Provide loader entry points for file- and environment-based configuration.

Key types:
- `DeepDraftConfig`: normalized runtime settings shared by all phase runners.
- `ProviderRuntimeConfig`: resolved provider/model runtime values.
- `RuntimeConfigSources`: optional value sources for precedence resolution.
- `ConfigLoader`: static construction helpers for `DeepDraftConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .parsing import normalize_optional_string


_DEFAULT_PROVIDER = "openai"
_DEFAULT_MODEL = "gpt-4.1-mini"
_SUPPORTED_PROVIDER_IDS = frozenset({"openai"})


@dataclass(frozen=True, slots=True)
class RuntimeConfigSources:
    """Source mappings used for deterministic runtime value precedence.

    Attributes:
        cli: Values explicitly provided by CLI arguments.
        secure: Values loaded from secure local credential storage.
        env: Values loaded from environment variables.
    """

    cli: Mapping[str, str] = field(default_factory=dict)
    secure: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProviderRuntimeConfig:
    """Resolved runtime provider and model identifiers for one invocation.

    Attributes:
        provider: Generation provider identifier.
        model: Default generation model identifier.
        api_key: Optional provider API key (resolved but never logged).
    """

    provider: str
    model: str
    api_key: str | None = None


@dataclass(slots=True)
class DeepDraftConfig:
    """Runtime configuration shared by all phase runners.

    Attributes:
        workspace_dir: Root for ledger, checkpoints, documents, lock, and schedule.
        input_dir: Root of ingestion sources; one subdirectory per task id.
            Defaults to `<workspace_dir>/inbox`.
        provider: Generation provider identifier.
        model: Generation model identifier.
        api_key: Optional API key for provider calls.
        execution_budget_seconds: Soft per-invocation work budget.
        lock_timeout_seconds: How long to wait for the global lock.
        continuation_delay_seconds: Delay before a scheduled continuation fires.
        max_item_bytes: Per-item size cap during ingestion.
        max_total_chars: Cumulative extracted-text budget per task.
        single_pass_limit_chars: Largest text finalized without chunking.
        chunk_target_chars: Target chunk size for the chunked finalization path.
        inter_chunk_delay_seconds: Pacing delay between chunk transformations.
        tail_paragraphs: Paragraph count of the context tail window.
        planning_max_retries: Retries when a plan violates the sub-topic cap.
        error_message_max_chars: Cap for error text written to the ledger.
        request_timeout_seconds: HTTP timeout for one provider request.
        extra: Additional metadata for future extensions.
    """

    workspace_dir: Path = Path("workspace")
    input_dir: Path | None = None
    provider: str = _DEFAULT_PROVIDER
    model: str = _DEFAULT_MODEL
    api_key: str | None = None
    execution_budget_seconds: float = 270.0
    lock_timeout_seconds: float = 5.0
    continuation_delay_seconds: float = 60.0
    max_item_bytes: int = 10_000_000
    max_total_chars: int = 500_000
    single_pass_limit_chars: int = 300_000
    chunk_target_chars: int = 100_000
    inter_chunk_delay_seconds: float = 2.0
    tail_paragraphs: int = 5
    planning_max_retries: int = 3
    error_message_max_chars: int = 500
    request_timeout_seconds: float = 120.0
    runtime_sources: RuntimeConfigSources = field(default_factory=RuntimeConfigSources)
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def inbox_dir(self) -> Path:
        """Return the ingestion source root."""

        return self.input_dir if self.input_dir is not None else self.workspace_dir / "inbox"

    @property
    def ledger_path(self) -> Path:
        """Return the task ledger file path."""

        return self.workspace_dir / "ledger.json"

    @property
    def checkpoints_dir(self) -> Path:
        """Return the checkpoint store root."""

        return self.workspace_dir / "checkpoints"

    @property
    def documents_dir(self) -> Path:
        """Return the document store root."""

        return self.workspace_dir / "documents"

    @property
    def lock_path(self) -> Path:
        """Return the global lock file path."""

        return self.workspace_dir / "deepdraft.lock"

    @property
    def schedule_path(self) -> Path:
        """Return the continuation schedule file path."""

        return self.workspace_dir / "continuations.json"

    def validate(self) -> None:
        """Validate runtime configuration values before any runner is built."""

        self._validate_provider_id(self.provider, "provider")
        self._require_non_empty(self.model, "model")
        for name in (
            "execution_budget_seconds",
            "max_item_bytes",
            "max_total_chars",
            "single_pass_limit_chars",
            "chunk_target_chars",
            "tail_paragraphs",
            "error_message_max_chars",
            "request_timeout_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"`{name}` must be positive.")
        for name in (
            "lock_timeout_seconds",
            "continuation_delay_seconds",
            "inter_chunk_delay_seconds",
            "planning_max_retries",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"`{name}` must not be negative.")
        if self.chunk_target_chars > self.single_pass_limit_chars:
            raise ValueError(
                "`chunk_target_chars` must not exceed `single_pass_limit_chars`."
            )

    def resolved_provider_runtime(
        self, sources: RuntimeConfigSources | None = None
    ) -> ProviderRuntimeConfig:
        """Resolve provider settings with deterministic source precedence.

        Precedence for each key is:
        `cli` > `secure` > `env` > config field default.
        """

        resolved_sources = sources if sources is not None else self.runtime_sources

        provider = self._resolve_runtime_value(
            key="provider",
            env_key="DEEPDRAFT_PROVIDER",
            default_value=self.provider,
            sources=resolved_sources,
        )
        model = self._resolve_runtime_value(
            key="model",
            env_key="DEEPDRAFT_MODEL",
            default_value=self.model,
            sources=resolved_sources,
        )
        api_key = self._resolve_optional_runtime_value(
            key="api_key",
            env_key="OPENAI_API_KEY",
            default_value=self.api_key,
            sources=resolved_sources,
        )

        self._validate_provider_id(provider, "provider")
        self._require_non_empty(model, "model")
        return ProviderRuntimeConfig(provider=provider, model=model, api_key=api_key)

    def _resolve_runtime_value(
        self,
        key: str,
        env_key: str,
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> str:
        """Resolve a required runtime value from sources in precedence order."""

        value = self._resolve_optional_runtime_value(key, env_key, default_value, sources)
        if value is None:
            raise ValueError(
                f"`{key}` could not be resolved from CLI, secure storage, env, or defaults."
            )
        return value

    def _resolve_optional_runtime_value(
        self,
        key: str,
        env_key: str,
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> str | None:
        """Resolve an optional runtime value from sources in precedence order."""

        for mapping, lookup_key in (
            (sources.cli, key),
            (sources.secure, key),
            (sources.env, env_key),
        ):
            value = self._normalized_lookup(mapping, lookup_key)
            if value is not None:
                return value
        return normalize_optional_string(default_value)

    @staticmethod
    def _normalized_lookup(mapping: Mapping[str, str], key: str) -> str | None:
        """Return a stripped mapping value for a key or `None` when missing/blank."""

        if key not in mapping:
            return None
        return normalize_optional_string(mapping.get(key))

    @staticmethod
    def _validate_provider_id(provider_id: str, field_name: str) -> None:
        """Validate provider identifiers against currently supported providers."""

        if provider_id not in _SUPPORTED_PROVIDER_IDS:
            supported = ", ".join(sorted(_SUPPORTED_PROVIDER_IDS))
            raise ValueError(
                f"Unsupported `{field_name}` value `{provider_id}`; supported: {supported}."
            )

    @staticmethod
    def _require_non_empty(value: str, field_name: str) -> None:
        """Validate that runtime string fields are not empty."""

        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"`{field_name}` must be a non-empty string.")


_PATH_KEYS = frozenset({"workspace_dir", "input_dir"})
_STRING_KEYS = frozenset({"provider", "model", "api_key"})
_INT_KEYS = frozenset(
    {
        "max_item_bytes",
        "max_total_chars",
        "single_pass_limit_chars",
        "chunk_target_chars",
        "tail_paragraphs",
        "planning_max_retries",
        "error_message_max_chars",
    }
)
_FLOAT_KEYS = frozenset(
    {
        "execution_budget_seconds",
        "lock_timeout_seconds",
        "continuation_delay_seconds",
        "inter_chunk_delay_seconds",
        "request_timeout_seconds",
    }
)


class ConfigLoader:
    """Factory methods for creating `DeepDraftConfig` from external sources."""

    _SUPPORTED_YAML_KEYS = _PATH_KEYS | _STRING_KEYS | _INT_KEYS | _FLOAT_KEYS | {"extra"}
    _RUNTIME_ENV_KEYS = frozenset({"DEEPDRAFT_PROVIDER", "DEEPDRAFT_MODEL", "OPENAI_API_KEY"})
    _ENV_PREFIX = "DEEPDRAFT_"

    @staticmethod
    def from_yaml(path: Path) -> DeepDraftConfig:
        """Create a validated config from a YAML file."""

        path_text = path.read_text(encoding="utf-8")
        payload = yaml.safe_load(path_text)
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return ConfigLoader.from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> DeepDraftConfig:
        """Create a validated config from `DEEPDRAFT_*` environment variables."""

        env_map: Mapping[str, str] = os.environ if env is None else env
        payload: dict[str, Any] = {}
        for key in ConfigLoader._SUPPORTED_YAML_KEYS - {"extra", "api_key"}:
            env_key = f"{ConfigLoader._ENV_PREFIX}{key.upper()}"
            value = normalize_optional_string(env_map.get(env_key))
            if value is not None:
                payload[key] = value
        api_key = normalize_optional_string(env_map.get("OPENAI_API_KEY"))
        if api_key is not None:
            payload["api_key"] = api_key

        config = ConfigLoader.from_mapping(payload, source_label="environment")
        config.runtime_sources = RuntimeConfigSources(
            env={
                key: value
                for key, value in env_map.items()
                if key in ConfigLoader._RUNTIME_ENV_KEYS
                and normalize_optional_string(value) is not None
            }
        )
        return config

    @staticmethod
    def from_mapping(payload: Mapping[str, Any], source_label: str) -> DeepDraftConfig:
        """Build a validated config from a normalized mapping payload."""

        unknown = sorted(set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            key_list = ", ".join(unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

        values: dict[str, Any] = {}
        for key, raw_value in payload.items():
            if key in _PATH_KEYS:
                values[key] = ConfigLoader._path_value(raw_value, key, source_label)
            elif key in _STRING_KEYS:
                normalized = normalize_optional_string(raw_value)
                if normalized is not None:
                    values[key] = normalized
            elif key in _INT_KEYS:
                values[key] = ConfigLoader._int_value(raw_value, key, source_label)
            elif key in _FLOAT_KEYS:
                values[key] = ConfigLoader._float_value(raw_value, key, source_label)
            elif key == "extra":
                values[key] = ConfigLoader._string_map(raw_value, key, source_label)

        known = {item.name for item in fields(DeepDraftConfig)}
        config = DeepDraftConfig(**{key: value for key, value in values.items() if key in known})
        config.validate()
        return config

    @staticmethod
    def _path_value(raw_value: Any, key: str, source_label: str) -> Path:
        """Read a required non-empty path-like field."""

        value = normalize_optional_string(raw_value)
        if value is None:
            raise ValueError(f"{source_label} requires non-empty `{key}`.")
        return Path(value)

    @staticmethod
    def _int_value(raw_value: Any, key: str, source_label: str) -> int:
        """Read an integer field, rejecting booleans and non-numeric text."""

        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be an integer.")
        if isinstance(raw_value, int):
            return raw_value
        try:
            return int(str(raw_value).strip())
        except ValueError as exc:
            raise ValueError(f"{source_label} field `{key}` must be an integer.") from exc

    @staticmethod
    def _float_value(raw_value: Any, key: str, source_label: str) -> float:
        """Read a numeric field as float, rejecting booleans and non-numeric text."""

        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be a number.")
        if isinstance(raw_value, int | float):
            return float(raw_value)
        try:
            return float(str(raw_value).strip())
        except ValueError as exc:
            raise ValueError(f"{source_label} field `{key}` must be a number.") from exc

    @staticmethod
    def _string_map(raw: Any, key: str, source_label: str) -> dict[str, str]:
        """Read an optional mapping with non-empty string keys and values."""

        if raw is None:
            return {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"{source_label} field `{key}` must be a mapping/object.")

        normalized: dict[str, str] = {}
        for raw_key, raw_value in raw.items():
            key_value = normalize_optional_string(raw_key)
            value_value = normalize_optional_string(raw_value)
            if key_value is None:
                raise ValueError(f"{source_label} field `{key}` contains a blank key.")
            if value_value is None:
                raise ValueError(
                    f"{source_label} field `{key}` contains blank value for `{key_value}`."
                )
            normalized[key_value] = value_value
        return normalized

