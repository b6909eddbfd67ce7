"""
Settings configuration using pydantic-settings.

Loads configuration from:
1. Constructor arguments (highest precedence)
2. Environment variables with SIGRUN_ prefix
3. .env file (if present)
4. Layered YAML config files:
   - Project config: .sigrun/config.yaml (higher)
   - User config: ~/.config/sigrun/config.yaml (lower)

Nested config uses double underscore delimiter:
  SIGRUN_LOOP__MAX_ITERATIONS=5
  SIGRUN_PROVIDER__MODEL=gpt-4o-mini
"""

import getpass as _getpass
import os as _os
import pathlib as _pathlib
import typing as _typing

import pydantic as _pydantic
import pydantic_settings as _pydantic_settings

import sigrun.config.sources as sources
import sigrun.config.types as types


def _get_env_file() -> str | None:
    """Determine which .env file to load.

    SIGRUN_ENV_FILE wins if set; otherwise a .env in the working directory.
    """
    if env_file := _os.environ.get("SIGRUN_ENV_FILE"):
        if _pathlib.Path(env_file).exists():
            return env_file
        # If explicitly set but doesn't exist, don't fall back silently
        return None

    if _pathlib.Path(".env").exists():
        return ".env"
    return None


def _get_username() -> str:
    """Get the current username for directory naming."""
    try:
        return _getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def find_project_root(start_path: _pathlib.Path | None = None) -> _pathlib.Path:
    """
    Find the project root directory.

    Walks up from `start_path` looking for a .sigrun directory, a git
    checkout, or a pyproject.toml. Falls back to `start_path` itself.
    """
    if start_path is None:
        start_path = _pathlib.Path.cwd()

    markers = [".sigrun", ".git", "pyproject.toml"]
    current = start_path.resolve()
    while current != current.parent:
        if any((current / marker).exists() for marker in markers):
            return current
        current = current.parent

    return start_path.resolve()


class Settings(_pydantic_settings.BaseSettings):
    """
    Sigrun configuration settings.

    All settings can be overridden via environment variables with SIGRUN_ prefix.
    For nested config, use double underscore: SIGRUN_LOOP__MAX_ITERATIONS=5

    Config precedence (highest to lowest):
    1. Constructor arguments
    2. Environment variables (SIGRUN_*)
    3. .env file
    4. Project config (.sigrun/config.yaml)
    5. User config (~/.config/sigrun/config.yaml)
    6. Built-in defaults
    """

    model_config = _pydantic_settings.SettingsConfigDict(
        env_prefix="SIGRUN_",
        env_file=_get_env_file(),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",  # SIGRUN_LOOP__MAX_ITERATIONS
        extra="allow",  # Preserve unknown fields for config auditing
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[_pydantic_settings.BaseSettings],
        init_settings: _pydantic_settings.PydanticBaseSettingsSource,
        env_settings: _pydantic_settings.PydanticBaseSettingsSource,
        dotenv_settings: _pydantic_settings.PydanticBaseSettingsSource,
        file_secret_settings: _pydantic_settings.PydanticBaseSettingsSource,
    ) -> tuple[_pydantic_settings.PydanticBaseSettingsSource, ...]:
        """
        Configure settings sources with precedence:
        1. init_settings (constructor args) - highest
        2. env_settings (SIGRUN_* env vars)
        3. dotenv_settings (.env file)
        4. YAML layers (project, then user)
        5. (defaults via Field definitions) - lowest
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            sources.YamlLayersSettingsSource(settings_cls, find_project_root()),
            file_secret_settings,
        )

    @classmethod
    def construct_without_dotenv(cls, **kwargs: _typing.Any) -> "Settings":
        """Create Settings from environment variables only, without loading .env file.

        Useful for test isolation and CI environments.
        """
        return cls(_env_file=None, **kwargs)  # type: ignore[call-arg]

    # =========================================================================
    # Nested configuration sections
    # =========================================================================

    loop: types.LoopConfig = _pydantic.Field(default_factory=types.LoopConfig)
    """Agent loop control (loop.*)."""

    history: types.HistoryConfig = _pydantic.Field(default_factory=types.HistoryConfig)
    """History truncation and summarization (history.*)."""

    provider: types.ProviderConfig = _pydantic.Field(default_factory=types.ProviderConfig)
    """Completion provider (provider.*)."""

    logging: types.LoggingConfig = _pydantic.Field(default_factory=types.LoggingConfig)
    """Logging (logging.*)."""

    session: types.SessionConfig = _pydantic.Field(default_factory=types.SessionConfig)
    """Session persistence (session.*)."""

    # Flat fields
    project_path: str | None = _pydantic.Field(
        default=None,
        description="Working directory hint appended to the system prompt",
    )

    system_prompt: str | None = _pydantic.Field(
        default=None,
        description="Replace the built-in system prompt",
    )

    # =========================================================================
    # Directory settings (computed at runtime)
    # =========================================================================

    @property
    def config_dir(self) -> _pathlib.Path:
        """User configuration directory (~/.config/sigrun/)."""
        return sources.get_user_config_dir()

    @property
    def project_root(self) -> _pathlib.Path:
        """Project root directory."""
        if self.project_path:
            return _pathlib.Path(self.project_path).expanduser()
        return find_project_root()

    @property
    def sessions_dir(self) -> _pathlib.Path:
        """Directory for session storage."""
        if self.session.dir:
            return _pathlib.Path(self.session.dir).expanduser()
        return self.config_dir / "sessions"

    @property
    def logs_dir(self) -> _pathlib.Path:
        """Directory for conversation log files.

        Default: /tmp/sigrun-logs-{username}
        The username suffix prevents accidental log sharing in multi-user systems.
        """
        if self.logging.dir:
            return _pathlib.Path(self.logging.dir).expanduser()
        return _pathlib.Path(f"/tmp/sigrun-logs-{_get_username()}")

    # =========================================================================
    # Helper methods
    # =========================================================================

    def get_extra_fields(self) -> dict[str, _typing.Any]:
        """Collect unknown keys from the top level and every section (dotted paths)."""
        result: dict[str, _typing.Any] = dict(self.model_extra or {})
        for field_name in self.__class__.model_fields:
            value = getattr(self, field_name, None)
            if isinstance(value, types.ConfigBase):
                result.update(value.collect_all_extra_fields(field_name))
        return result

    def to_display_dict(self) -> dict[str, _typing.Any]:
        """Effective configuration as plain data, with secrets masked."""
        data = self.model_dump(mode="json")
        provider = data.get("provider", {})
        if provider.get("api_key"):
            provider["api_key"] = "***"
        return data
