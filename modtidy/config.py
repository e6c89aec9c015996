"""Runtime settings for modtidy."""

import logging
import os
from dataclasses import dataclass, replace

from .errors import ConfigurationError

ENV_PREFIX = "MODTIDY_"


@dataclass(frozen=True)
class Settings:
    """Settings shared by the CLI, the web app and the snapshot."""

    manifest_name: str = "go.mod"
    tidy_timeout: float = 30.0
    tidy_url: str | None = None
    tidy_report: str | None = None
    log_level: str = "WARNING"

    def __post_init__(self):
        if self.tidy_timeout <= 0:
            raise ConfigurationError(f"tidy_timeout must be positive, got {self.tidy_timeout}")
        if not self.manifest_name:
            raise ConfigurationError("manifest_name must not be empty")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigurationError(f"Unknown log level: {self.log_level}")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Load settings from ``MODTIDY_*`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``

        Returns:
            Settings with defaults for every unset variable
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        if env.get(f"{ENV_PREFIX}MANIFEST"):
            values["manifest_name"] = env[f"{ENV_PREFIX}MANIFEST"]
        if env.get(f"{ENV_PREFIX}TIMEOUT"):
            raw = env[f"{ENV_PREFIX}TIMEOUT"]
            try:
                values["tidy_timeout"] = float(raw)
            except ValueError:
                raise ConfigurationError(f"Invalid {ENV_PREFIX}TIMEOUT: {raw!r}")
        if env.get(f"{ENV_PREFIX}TIDY_URL"):
            values["tidy_url"] = env[f"{ENV_PREFIX}TIDY_URL"]
        if env.get(f"{ENV_PREFIX}REPORT"):
            values["tidy_report"] = env[f"{ENV_PREFIX}REPORT"]
        if env.get(f"{ENV_PREFIX}LOG_LEVEL"):
            values["log_level"] = env[f"{ENV_PREFIX}LOG_LEVEL"]

        return cls(**values)

    def override(self, **changes) -> "Settings":
        """Return a copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
