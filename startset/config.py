"""StartSet — Agent configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. Preferences file: <script_root>/config.yaml (or an explicit --config path)
    3. Environment variables prefixed with STARTSET_ (``__`` separates sections)

Call ``Settings.load()`` once at CLI / service startup.  The CLI override and
ignored-user commands edit one preference list and write just that list back
with ``Settings.save_preferences()``.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, PrivateAttr, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from startset.exceptions import ConfigurationError
from startset.models import normalize_key

CONFIG_FILENAME = "config.yaml"

DEFAULT_ALLOWED_EXTENSIONS = [".ps1", ".cmd", ".bat", ".exe", ".msi", ".msix", ".sh"]


def default_script_root() -> Path:
    if sys.platform == "win32":
        base = os.environ.get("ProgramData", r"C:\ProgramData")
        return Path(base) / "ManagedScripts"
    return Path("/var/lib/startset")


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class PathsConfig(BaseModel):
    script_root: Path = Field(default_factory=default_script_root)

    @field_validator("script_root", mode="before")
    @classmethod
    def expand_root(cls, v: object) -> object:
        if isinstance(v, str):
            return Path(v).expanduser()
        return v


class PreferencesConfig(BaseModel):
    wait_for_network: bool = True
    network_timeout: Annotated[int, Field(ge=0, le=3600)] = Field(
        default=180,
        description="Seconds to wait for connectivity before boot scripts run.",
    )
    ignore_network_failure: bool = Field(
        default=False,
        description="Run network-gated scripts anyway when the wait times out.",
    )
    verbose: bool = False
    debug: bool = False
    log_level: Literal["debug", "info", "warning", "error", "critical"] | None = None
    checksum_validation: bool = False
    allowed_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_EXTENSIONS)
    )
    script_timeout: Annotated[int, Field(ge=1)] = Field(
        default=3600,
        description="Per-script timeout in seconds.  The process tree is killed on expiry.",
    )
    parallel_execution: bool = False
    login_delay: Annotated[int, Field(ge=0)] = Field(
        default=0,
        description="Seconds to wait after a logon before running user scripts.",
    )
    log_script_output: bool = True
    ignored_users: list[str] = Field(default_factory=list)
    overrides: list[str] = Field(
        default_factory=list,
        description="Run-once script basenames that run again on every trigger.",
    )
    trusted_owners: list[str] = Field(
        default_factory=list,
        description="Extra owner names / SIDs trusted for elevated payload classes.",
    )
    max_output_bytes: Annotated[int, Field(ge=1024)] = Field(
        default=1_048_576,
        description="Per-stream cap on captured script output (default 1 MiB).",
    )

    @field_validator("allowed_extensions", mode="after")
    @classmethod
    def normalize_extensions(cls, v: list[str]) -> list[str]:
        out: list[str] = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                continue
            if not ext.startswith("."):
                ext = "." + ext
            if ext not in out:
                out.append(ext)
        return out

    def is_ignored_user(self, username: str | None) -> bool:
        if not username:
            return False
        folded = username.casefold()
        return any(u.casefold() == folded for u in self.ignored_users)

    def is_overridden(self, filename: str) -> bool:
        """Overrides match by basename, so path-form entries work too."""
        key = normalize_key(filename)
        return any(normalize_key(o) == key for o in self.overrides)


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STARTSET_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    paths: PathsConfig = Field(default_factory=PathsConfig)
    preferences: PreferencesConfig = Field(default_factory=PreferencesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    _source: Path | None = PrivateAttr(default=None)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats the preferences file, which arrives as init kwargs.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from the preferences file + environment variables.

        Without *config_file* the file is looked up under the script root
        resolved from defaults + environment.  A missing file is not an
        error; an unreadable or malformed one raises ConfigurationError.
        """
        path = config_file or cls().paths.script_root / CONFIG_FILENAME
        settings = cls(**_read_document(path))
        settings._source = path
        return settings

    def save(self, path: Path | None = None) -> Path:
        """Write the whole configuration back as YAML.  Returns the path written."""
        target = path or self.source_path
        _write_document(target, self.model_dump(mode="json", exclude_none=True))
        return target

    def save_preferences(self, *names: str, path: Path | None = None) -> Path:
        """Write only the named preference fields into the preferences file.

        The rest of the file is kept as it is on disk, so environment
        overrides and command-line flags never end up persisted.
        """
        target = path or self.source_path
        document = _read_document(target)
        prefs = document.get("preferences")
        if not isinstance(prefs, dict):
            prefs = document["preferences"] = {}
        current = self.preferences.model_dump(mode="json", include=set(names))
        prefs.update(current)
        _write_document(target, document)
        return target

    @property
    def source_path(self) -> Path:
        return self._source or self.paths.script_root / CONFIG_FILENAME

    @property
    def log_level(self) -> str:
        return self.effective_log_level()

    def effective_log_level(self, verbose: bool = False, debug: bool = False) -> str:
        """Log level with the command-line ``--verbose`` / ``--debug`` folded in."""
        from startset.logging import resolve_level

        prefs = self.preferences
        verbose = verbose or prefs.verbose
        debug = debug or prefs.debug
        explicit = prefs.log_level
        if explicit is None and not (verbose or debug):
            explicit = self.logging.level
        return resolve_level(verbose, debug, explicit)

    @property
    def log_file(self) -> Path:
        return self.logging.file or self.paths.script_root / "logs" / "startset.log"


def _read_document(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    import yaml  # lazy import

    try:
        with path.open(encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(path, str(exc)) from exc
    if not isinstance(loaded, dict):
        raise ConfigurationError(path, "top-level document must be a mapping")
    return loaded


def _write_document(path: Path, document: dict[str, Any]) -> None:
    import yaml

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(document, f, sort_keys=False, default_flow_style=False)
    except OSError as exc:
        raise ConfigurationError(path, str(exc)) from exc


# Module-level singleton: replaced by ``Settings.load()`` at startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings | None) -> None:
    """Replace the module-level singleton. Used by the CLI and in tests."""
    global _settings
    _settings = settings
