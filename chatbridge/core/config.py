"""
chatbridge - Provider Configuration

Selected provider's type tag, endpoint, credentials and request defaults.
Persistent storage of these values is the caller's concern; this module
only validates them and can read a single provider from the environment.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .errors import ConfigurationError


class ProviderType(str, Enum):
    """Supported upstream wire protocols."""
    OPENAI_COMPATIBLE = "openai_compatible"
    OPENAI_RESPONSES = "openai_responses"
    ANTHROPIC = "anthropic"
    GEMINI_AI_STUDIO = "gemini_ai_studio"

    @classmethod
    def parse(cls, value: Any) -> "ProviderType":
        """Resolve a type tag, accepting a few common aliases."""
        if isinstance(value, ProviderType):
            return value
        tag = str(value or "").strip().lower().replace("-", "_")
        tag = _PROVIDER_ALIASES.get(tag, tag)
        try:
            return cls(tag)
        except ValueError:
            raise ConfigurationError(
                f"Unknown provider type '{value}'. Use one of: "
                + ", ".join(t.value for t in cls),
                param="type"
            ) from None


_PROVIDER_ALIASES = {
    "openai": "openai_compatible",
    "openai_chat": "openai_compatible",
    "responses": "openai_responses",
    "claude": "anthropic",
    "gemini": "gemini_ai_studio",
    "google": "gemini_ai_studio",
}


DEFAULT_BASE_URLS = {
    ProviderType.OPENAI_COMPATIBLE: "https://api.openai.com/v1",
    ProviderType.OPENAI_RESPONSES: "https://api.openai.com/v1",
    ProviderType.ANTHROPIC: "https://api.anthropic.com/v1",
    ProviderType.GEMINI_AI_STUDIO: "https://generativelanguage.googleapis.com",
}


@dataclass
class ProviderConfig:
    """Configuration for one upstream provider."""
    type: ProviderType
    base_url: str
    api_key: str = ""
    model: str = ""
    extra_headers: Dict[str, str] = field(default_factory=dict)
    request_defaults: Dict[str, Any] = field(default_factory=dict)
    timeout_seconds: float = 120.0
    max_retries: int = 2

    def __post_init__(self):
        self.type = ProviderType.parse(self.type)
        self.base_url = str(self.base_url or "").strip().rstrip("/")

    @property
    def name(self) -> str:
        return self.type.value

    def validate(self) -> None:
        """Raise ConfigurationError if the config cannot produce a request."""
        if not self.base_url:
            raise ConfigurationError(f"{self.name}: base_url is required", param="base_url")
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"{self.name}: base_url must be an http(s) URL",
                param="base_url"
            )
        if not self.model.strip():
            raise ConfigurationError(f"{self.name}: model is required", param="model")
        has_auth_header = any(
            k.strip().lower() in ("authorization", "x-api-key") for k in self.extra_headers
        )
        if not self.api_key.strip() and not has_auth_header:
            raise ConfigurationError(
                f"{self.name}: api_key (or an authorization header) is required",
                param="api_key"
            )
        if self.timeout_seconds <= 0:
            raise ConfigurationError(f"{self.name}: timeout must be positive", param="timeout")

    @classmethod
    def from_env(cls, prefix: str = "CHATBRIDGE") -> "ProviderConfig":
        """
        Build a config from environment variables.

        Reads <PREFIX>_TYPE, <PREFIX>_BASE_URL, <PREFIX>_API_KEY,
        <PREFIX>_MODEL, <PREFIX>_TIMEOUT and <PREFIX>_MAX_RETRIES.
        """
        provider_type = ProviderType.parse(os.getenv(f"{prefix}_TYPE", "openai_compatible"))
        base_url = os.getenv(f"{prefix}_BASE_URL", "") or DEFAULT_BASE_URLS[provider_type]
        return cls(
            type=provider_type,
            base_url=base_url,
            api_key=os.getenv(f"{prefix}_API_KEY", ""),
            model=os.getenv(f"{prefix}_MODEL", ""),
            timeout_seconds=_env_float(f"{prefix}_TIMEOUT", 120.0),
            max_retries=int(_env_float(f"{prefix}_MAX_RETRIES", 2)),
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'", param=name) from None


def positive_int(value: Any) -> Optional[int]:
    """Return value as a positive int, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value > 0:
        return int(value)
    return None
