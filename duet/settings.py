"""Settings storage and the settings gate.

Settings live in a JSON key-value file, by default ~/.duet/settings.json
(override the directory with DUET_HOME). The file is re-read on every
session start, so a save from another process takes effect on the next turn.

The gate is a pure check: given settings, report which fields the selected
provider still needs.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from duet.errors import ConfigIncomplete
from duet.schemas.settings import (
    ChatSettings,
    GateResult,
    ProviderConfig,
    ProviderKind,
)

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"

# Settings keys whose values are secrets
SECRET_KEYS = ("openaiApiKey", "geminiApiKey")


def duet_home() -> Path:
    """Directory for user-level duet configuration."""
    override = os.environ.get("DUET_HOME", "").strip()
    return Path(override).expanduser() if override else Path.home() / ".duet"


def default_settings_path() -> Path:
    return duet_home() / SETTINGS_FILENAME


class SettingsStore:
    """JSON-file backed settings record.

    ``load()`` always reads the file; nothing is cached between calls.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path or default_settings_path()

    def load_raw(self) -> dict[str, Any]:
        """Read the stored record as a plain dict (empty if no file).

        Raises:
            ValueError: If the file exists but is not a JSON object.
        """
        path = self.path
        if not path.is_file():
            return {}
        try:
            raw = json.loads(path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Settings file is not valid JSON: {path} ({e.msg})") from e
        if not isinstance(raw, dict):
            raise ValueError(f"Settings file must hold a JSON object: {path}")
        return raw

    def load(self) -> ChatSettings:
        """Read and validate the current settings.

        Raises:
            ValueError: If the file is unreadable or holds invalid values.
        """
        raw = self.load_raw()
        try:
            return ChatSettings.model_validate(raw)
        except ValidationError as e:
            raise ValueError(f"Invalid settings in {self.path}: {e}") from e

    def save(self, **fields: Any) -> ChatSettings:
        """Merge fields into the stored record and write it back.

        Fields may use either the on-disk key (``openaiApiUrl``) or the
        attribute name (``openai_api_url``). Keys not named are preserved,
        so saving one provider's key leaves the other's intact.

        Returns:
            The settings as stored.
        """
        merged = ChatSettings.model_validate({**self.load_raw(), **_to_wire(fields)})
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(merged.dump(), indent=2) + "\n", encoding="utf-8")

        # Restrict permissions on Unix (best-effort)
        try:
            path.chmod(0o600)
        except OSError:
            pass

        logger.debug("Saved settings to %s", path)
        return merged

    def clear(self) -> bool:
        """Remove the settings file if it exists.

        Returns:
            True if the file was removed, False if it didn't exist.
        """
        if self.path.is_file():
            self.path.unlink()
            return True
        return False


def _to_wire(fields: dict[str, Any]) -> dict[str, Any]:
    """Translate attribute names to on-disk keys, leaving wire keys as-is."""
    out: dict[str, Any] = {}
    for name, value in fields.items():
        info = ChatSettings.model_fields.get(name)
        out[info.alias if info and info.alias else name] = value
    return out


def mask_secret(value: str) -> str:
    """Mask a secret for display, keeping a short recognizable prefix."""
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}…{value[-2:]}"


# ── Settings gate ────────────────────────────────────────────────


def check_settings(settings: ChatSettings, *, require_model: bool = True) -> GateResult:
    """Validate that the selected provider's required fields are present.

    Blank values count as missing. Missing fields are reported by their
    settings-file key. Model discovery runs the gate with
    ``require_model=False`` since no model has been picked yet.
    """
    missing: list[str] = []
    if require_model and not settings.model.strip():
        missing.append("model")

    if settings.api_type is ProviderKind.OPENAI:
        if not settings.openai_api_key.strip():
            missing.append("openaiApiKey")
        if not settings.openai_api_url.strip():
            missing.append("openaiApiUrl")
    else:
        if not settings.gemini_api_key.strip():
            missing.append("geminiApiKey")

    return GateResult(ok=not missing, missing=missing)


def require_config(settings: ChatSettings, *, require_model: bool = True) -> ProviderConfig:
    """Run the gate and build a ProviderConfig.

    Raises:
        ConfigIncomplete: If any required field is missing.
    """
    result = check_settings(settings, require_model=require_model)
    if not result.ok:
        raise ConfigIncomplete(result.missing)

    if settings.api_type is ProviderKind.OPENAI:
        return ProviderConfig(
            provider=ProviderKind.OPENAI,
            endpoint_url=settings.openai_api_url.strip(),
            api_key=settings.openai_api_key.strip(),
            model_id=settings.model.strip(),
        )
    return ProviderConfig(
        provider=ProviderKind.GEMINI,
        api_key=settings.gemini_api_key.strip(),
        model_id=settings.model.strip(),
    )

