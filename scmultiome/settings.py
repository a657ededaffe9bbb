"""Package-wide settings, read from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

# Release host for the pre-built dataset files
DEFAULT_BASE_URL = "https://scmultiome-data.s3.amazonaws.com"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "scmultiome"
DEFAULT_TIMEOUT = 60.0

TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Runtime configuration.

    Attributes:
        cache_dir: Root directory of the download cache
        base_url: Host serving the released dataset files
        offline: Never touch the network; only serve cached files
        timeout: HTTP timeout in seconds
        verbose: Print progress messages
    """
    cache_dir: Path = DEFAULT_CACHE_DIR
    base_url: str = DEFAULT_BASE_URL
    offline: bool = False
    timeout: float = DEFAULT_TIMEOUT
    verbose: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from SCMULTIOME_* environment variables."""
        if environ is None:
            environ = os.environ

        timeout = environ.get("SCMULTIOME_TIMEOUT")
        if timeout is not None:
            try:
                timeout = float(timeout)
            except ValueError:
                raise ValueError(
                    f"SCMULTIOME_TIMEOUT must be a number, got {timeout!r}"
                ) from None

        return cls(
            cache_dir=Path(environ.get("SCMULTIOME_CACHE_DIR", DEFAULT_CACHE_DIR)).expanduser(),
            base_url=environ.get("SCMULTIOME_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            offline=_parse_bool(environ.get("SCMULTIOME_OFFLINE"), default=False),
            timeout=DEFAULT_TIMEOUT if timeout is None else timeout,
            verbose=_parse_bool(environ.get("SCMULTIOME_VERBOSE"), default=True),
        )


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in TRUE_VALUES


# Singleton instance
_settings = None


def get_settings() -> Settings:
    """Get or create the singleton settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings():
    """Forget the current settings so the environment is read again."""
    global _settings
    _settings = None
