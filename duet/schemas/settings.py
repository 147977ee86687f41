"""Settings and provider configuration schemas.

ChatSettings mirrors the persisted key-value record (camelCase keys on disk).
ProviderConfig is the validated subset a provider adapter needs, built only
after the settings gate has passed.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ProviderKind(StrEnum):
    """Supported backend API shapes."""

    OPENAI = "openai"
    GEMINI = "gemini"


class ChatSettings(BaseModel):
    """The persisted settings record.

    Field aliases are the keys used in the settings file. Unknown keys are
    ignored so older or newer files still load.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_type: ProviderKind = Field(
        default=ProviderKind.OPENAI, alias="apiType",
        description="Which backend to talk to",
    )
    model: str = Field(default="", description="Model identifier sent to the API")
    openai_api_url: str = Field(
        default="", alias="openaiApiUrl",
        description="Base URL of the OpenAI-compatible server (no /v1 suffix)",
    )
    openai_api_key: str = Field(default="", alias="openaiApiKey")
    gemini_api_key: str = Field(default="", alias="geminiApiKey")
    system_prompt: str = Field(
        default="", alias="systemPrompt",
        description="Optional system prompt prepended at call time",
    )
    gemini_sse: bool = Field(
        default=False, alias="geminiSse",
        description="Request SSE framing (alt=sse) from Gemini",
    )
    timeout: float = Field(
        default=120.0, gt=0, description="HTTP timeout in seconds",
    )

    def dump(self) -> dict:
        """Serialize with the on-disk key names."""
        return self.model_dump(mode="json", by_alias=True)


class ProviderConfig(BaseModel):
    """Complete configuration for one provider adapter."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderKind = Field(description="Backend API shape")
    endpoint_url: str = Field(
        default="", description="Base URL (required for the OpenAI-style provider)",
    )
    api_key: str = Field(description="Opaque API key, passed through unchanged")
    model_id: str = Field(description="Model identifier")


class GateResult(BaseModel):
    """Outcome of validating settings before a session starts."""

    ok: bool = Field(description="True when every required field is present")
    missing: list[str] = Field(
        default_factory=list, description="Settings keys that are missing or blank",
    )
