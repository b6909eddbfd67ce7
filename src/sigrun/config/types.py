"""Configuration type definitions for Sigrun settings.

This module defines the Pydantic models used to represent configuration
structures. These are "config section" types nested within the main
Settings class:

- LoopConfig: iteration ceiling, backoff, timeouts, breaking tool names
- HistoryConfig: truncation length and summarization triggers
- ProviderConfig: endpoint, model, temperature, credentials
- LoggingConfig: JSONL conversation log settings
- SessionConfig: session persistence settings

Design decision: All types use `extra="allow"` to preserve unknown fields.
This enables strict validation mode where users can audit their config for
typos and unknown keys. Use `get_extra_fields()` to inspect unknown fields.
"""

import typing as _typing

import pydantic as _pydantic

import sigrun.constants as _constants

# =============================================================================
# Base class with introspection
# =============================================================================


class ConfigBase(_pydantic.BaseModel):
    """
    Base class for all config types.

    All config types use `extra="allow"` so unknown fields are preserved
    rather than silently dropped. This enables auditing for typos.
    """

    model_config = _pydantic.ConfigDict(extra="allow")

    def get_extra_fields(self) -> dict[str, _typing.Any]:
        """Return fields that were provided but not in the schema."""
        return dict(self.model_extra) if self.model_extra else {}

    def has_extra_fields(self) -> bool:
        """Check if this config has any unrecognized fields."""
        return bool(self.model_extra)

    def collect_all_extra_fields(
        self,
        prefix: str = "",
    ) -> dict[str, _typing.Any]:
        """
        Recursively collect extra fields from this config and nested configs.

        Returns a flat dict with dotted paths as keys, e.g.:
            {"loop.max_iteratons": 5}
        """
        result: dict[str, _typing.Any] = {}

        for key, value in self.get_extra_fields().items():
            path = f"{prefix}.{key}" if prefix else key
            result[path] = value

        for field_name in self.__class__.model_fields:
            value = getattr(self, field_name, None)
            child_prefix = f"{prefix}.{field_name}" if prefix else field_name
            if isinstance(value, ConfigBase):
                result.update(value.collect_all_extra_fields(child_prefix))

        return result


# =============================================================================
# Loop Settings
# =============================================================================


class LoopConfig(ConfigBase):
    """
    Agent loop control settings.

    YAML section: loop.*
    """

    max_iterations: int = _pydantic.Field(default=_constants.DEFAULT_MAX_ITERATIONS, ge=1, le=1000)
    """Maximum RUNNING ticks per loop invocation."""

    retry_backoff_seconds: float = _pydantic.Field(
        default=_constants.DEFAULT_RETRY_BACKOFF_SECONDS, ge=0.0
    )
    """Pause after a transient provider failure."""

    request_timeout_seconds: float = _pydantic.Field(
        default=_constants.DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0.0
    )
    """Overall timeout for one completion round trip."""

    general_tool_timeout_ms: int = _pydantic.Field(default=_constants.DEFAULT_TOOL_TIMEOUT_MS, ge=1)
    """Timeout for general tool dispatch."""

    done_tool_timeout_ms: int = _pydantic.Field(
        default=_constants.DEFAULT_DONE_TOOL_TIMEOUT_MS, ge=1
    )
    """Timeout for the terminal done tool."""

    breaking_tools: list[str] = _pydantic.Field(
        default_factory=lambda: list(_constants.DEFAULT_BREAKING_TOOLS)
    )
    """Tool names that require user confirmation before running."""

    advertise_breaking_tools: bool = False
    """Advertise the declared breaking-tool schemas, for runtimes that implement them."""


# =============================================================================
# History Settings
# =============================================================================


class HistoryConfig(ConfigBase):
    """
    Conversation history management settings.

    YAML section: history.*
    """

    max_length: int = _pydantic.Field(default=_constants.DEFAULT_MAX_HISTORY_LENGTH, ge=2)
    """Stored history is truncated to about this many messages."""

    max_payload_size: int = _pydantic.Field(default=_constants.DEFAULT_MAX_PAYLOAD_SIZE, ge=1)
    """Estimated payload size that triggers summarization."""

    max_messages: int = _pydantic.Field(default=_constants.DEFAULT_MAX_MESSAGES, ge=1)
    """Message count that triggers summarization."""

    summary_max_tokens: int = _pydantic.Field(default=_constants.DEFAULT_SUMMARY_MAX_TOKENS, ge=1)
    """Token budget for the summarization request."""

    recent_exchanges_kept: int = _pydantic.Field(
        default=_constants.DEFAULT_RECENT_EXCHANGES_KEPT, ge=1
    )
    """Most recent exchanges never folded into a summary."""


# =============================================================================
# Provider Settings
# =============================================================================


class ProviderConfig(ConfigBase):
    """
    Completion provider settings.

    YAML section: provider.*
    """

    base_url: str = _constants.DEFAULT_BASE_URL
    """OpenAI-compatible API root."""

    model: str = _constants.DEFAULT_MODEL
    """Model used for loop completions."""

    temperature: float = _pydantic.Field(default=_constants.DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    """Sampling temperature."""

    api_key: str | None = None
    """API key (falls back to OPENAI_API_KEY)."""

    credentials_path: str | None = None
    """Path to JSON file containing {"api_key": "..."}."""


# =============================================================================
# Logging Settings
# =============================================================================


class LoggingConfig(ConfigBase):
    """
    Logging settings.

    YAML section: logging.*
    """

    enabled: bool = True
    """Write JSONL conversation logs."""

    dir: str | None = None
    """Log directory (default: /tmp/sigrun-logs-{user})."""

    level: _typing.Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    """Level for stdlib diagnostic logging."""

    private: bool = True
    """Restrict log directory permissions to the owner (0700)."""


# =============================================================================
# Session Settings
# =============================================================================


class SessionConfig(ConfigBase):
    """
    Session persistence settings.

    YAML section: session.*
    """

    dir: str | None = None
    """Sessions directory (default: ~/.config/sigrun/sessions)."""

    auto_save: bool = True
    """Save the session after every loop invocation."""
