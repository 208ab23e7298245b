"""Copilot settings and their JSON persistence.

Resolution order for every field: dataclass default, ``settings.json``,
runtime overrides (CLI flags), then ``DOCPILOT_*`` environment variables.
The API key never touches disk in clear text.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = [
    "Settings",
    "SettingsStore",
    "SecretVault",
    "LANGUAGE_CHOICES",
    "VERBOSITY_CHOICES",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)

_SETTINGS_DIR = Path.home() / ".docpilot"
_SETTINGS_VERSION = 1
_API_KEY_FIELD = "api_key_ciphertext"
_TRUE_VALUES = frozenset({"1", "true", "yes", "on", "debug"})

LANGUAGE_CHOICES: tuple[str, ...] = ("zh", "en", "mixed")
VERBOSITY_CHOICES: tuple[str, ...] = ("concise", "detailed")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


# env var -> (field, parser); parsers raise ValueError on bad input.
_ENV_FIELDS: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "DOCPILOT_API_KEY": ("api_key", str),
    "DOCPILOT_BASE_URL": ("base_url", str),
    "DOCPILOT_MODEL": ("model", str),
    "DOCPILOT_ORGANIZATION": ("organization", str),
    "DOCPILOT_LANGUAGE": ("language", str),
    "DOCPILOT_VERBOSITY": ("verbosity", str),
    "DOCPILOT_DEBUG_LOGGING": ("debug_logging", _parse_bool),
    "DOCPILOT_TEMPERATURE": ("temperature", float),
    "DOCPILOT_REQUEST_TIMEOUT": ("request_timeout", float),
    "DOCPILOT_AUTO_APPLY_CONFIDENCE": ("auto_apply_confidence", float),
    "DOCPILOT_MAX_RETRIES": ("max_retries", int),
    "DOCPILOT_MAX_CLARIFY_DEPTH": ("max_clarify_depth", int),
    "DOCPILOT_MAX_CONTEXT_TOKENS": ("max_context_tokens", int),
}


@dataclass(slots=True)
class Settings:
    """Everything the copilot needs to reach the model and shape its edits."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    language: str = "zh"
    verbosity: str = "concise"
    # Primitive results below this confidence are downgraded to preview.
    auto_apply_confidence: float = 0.7
    max_clarify_depth: int = 3
    max_context_tokens: int = 4_096
    behavior_window_seconds: float = 600.0
    debug_logging: bool = False
    default_headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(item.name for item in fields(cls))

    def merged(self, changes: Mapping[str, Any], *, source: str) -> "Settings":
        """Return a copy with known, non-``None`` ``changes`` applied.

        ``metadata`` is merged key by key instead of replaced.
        """

        known = self.field_names()
        accepted = {key: value for key, value in changes.items() if key in known and value is not None}
        if isinstance(accepted.get("metadata"), Mapping):
            accepted["metadata"] = {**self.metadata, **accepted["metadata"]}
        if not accepted:
            return self
        LOGGER.debug("Applying %s settings: %s", source, sorted(accepted))
        return replace(self, **accepted)

    def normalized(self) -> "Settings":
        language = (self.language or "").strip().lower()
        if language not in LANGUAGE_CHOICES:
            LOGGER.warning("Unknown language %r; using zh", self.language)
            language = "zh"
        verbosity = (self.verbosity or "").strip().lower()
        if verbosity not in VERBOSITY_CHOICES:
            LOGGER.warning("Unknown verbosity %r; using concise", self.verbosity)
            verbosity = "concise"
        return replace(
            self,
            language=language,
            verbosity=verbosity,
            max_clarify_depth=max(1, int(self.max_clarify_depth)),
        )


def _write_atomically(path: Path, data: bytes, *, private: bool = False) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.with_suffix(".tmp")
    staging.write_bytes(data)
    if private and os.name != "nt":  # pragma: no cover - depends on OS
        os.chmod(staging, 0o600)
    staging.replace(path)


class SecretVault:
    """Fernet encryption for the API key.

    The key file is created on first use next to the settings file. Tokens
    are stored as ``fernet:<token>``; a bare token is accepted on read.
    """

    name = "fernet"

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        return f"{self.name}:{self._cipher().encrypt(secret.encode('utf-8')).decode('ascii')}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        backend, sep, payload = token.partition(":")
        if not sep:
            backend, payload = self.name, token
        if backend != self.name:
            raise ValueError(f"Unsupported secret backend: {backend}")
        try:
            return self._cipher().decrypt(payload.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            if self._key_path.exists():
                key = self._key_path.read_bytes().strip()
            else:
                key = Fernet.generate_key()
                _write_atomically(self._key_path, key, private=True)
            self._fernet = Fernet(key)
        return self._fernet


class SettingsStore:
    """Reads and writes :class:`Settings` as ``settings.json``."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or (_SETTINGS_DIR / "settings.json")
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, then apply ``overrides`` and ``DOCPILOT_*`` variables."""

        settings = self._from_disk()
        if overrides:
            settings = settings.merged(overrides, source="CLI")
        settings = settings.merged(_environment_values(), source="environment")
        return settings.normalized()

    def save(self, settings: Settings) -> Path:
        record: Dict[str, Any] = asdict(settings)
        ciphertext = self._vault.encrypt(record.pop("api_key", "") or "")
        if ciphertext:
            record[_API_KEY_FIELD] = ciphertext
        record["version"] = _SETTINGS_VERSION
        body = json.dumps(record, indent=2, sort_keys=True, ensure_ascii=False)
        _write_atomically(self._path, body.encode("utf-8"))
        LOGGER.debug("Settings saved to %s (model=%s)", self._path, settings.model)
        return self._path

    def _from_disk(self) -> Settings:
        if not self._path.exists():
            return Settings()
        try:
            record = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return Settings()
        if not isinstance(record, dict):
            return Settings()

        if record.get("version") not in (None, _SETTINGS_VERSION):
            LOGGER.debug("Settings version %s differs from %s", record.get("version"), _SETTINGS_VERSION)
        stored = {key: value for key, value in record.items() if key in Settings.field_names() - {"api_key"}}
        try:
            settings = Settings(**stored)
        except TypeError as exc:
            LOGGER.warning("Ignoring settings file %s: %s", self._path, exc)
            settings = Settings()

        ciphertext = record.get(_API_KEY_FIELD)
        if ciphertext:
            try:
                settings = replace(settings, api_key=self._vault.decrypt(ciphertext))
            except ValueError as exc:
                LOGGER.warning("Stored API key could not be decrypted: %s", exc)
        return settings


def _environment_values() -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for env_name, (field_name, parse) in _ENV_FIELDS.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        try:
            values[field_name] = parse(raw)
        except ValueError:
            LOGGER.warning("Ignoring %s=%r: expected %s", env_name, raw, getattr(parse, "__name__", "value"))
    return values


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
