"""Database configuration for pkgindex."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pkgindex.exceptions import PkgIndexConfigError

#: Suffix appended to the database path for the temporary write target.
DEFAULT_TEMP_SUFFIX = ".new"


def _env_optional_float(value: str | None, name: str) -> float | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"", "none", "off"}:
        return None
    try:
        return float(normalized)
    except ValueError as exc:
        raise PkgIndexConfigError(f"{name} must be a number, got {value!r}") from exc


def _env_optional_int(value: str | None, name: str) -> int | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"", "none", "off"}:
        return None
    try:
        return int(normalized)
    except ValueError as exc:
        raise PkgIndexConfigError(f"{name} must be an integer, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class IndexConfig:
    """Database configuration.

    Parameters
    ----------
    database_path : str
        Location of the JSON database file. Created on first load when
        missing.
    temp_suffix : str
        Suffix appended to ``database_path`` for the sibling temporary
        file written before the atomic replace.
    refresh_timeout : float or None
        Seconds a refresh may wait for the in-flight refresh to finish.
        ``None`` waits indefinitely. On expiry the refresh is skipped and
        reported.
    save_timeout : float or None
        Seconds a save may wait for the file lock. ``None`` waits
        indefinitely. On expiry the save is skipped and reported.
    json_indent : int or None
        Indentation of the written JSON. ``None`` writes compact JSON.
    """

    database_path: str = "config/pkgindex.json"
    temp_suffix: str = DEFAULT_TEMP_SUFFIX
    refresh_timeout: float | None = None
    save_timeout: float | None = None
    json_indent: int | None = None

    def __post_init__(self) -> None:
        if not self.database_path.strip():
            raise PkgIndexConfigError("database_path must be non-empty")
        if not self.temp_suffix.strip():
            raise PkgIndexConfigError("temp_suffix must be non-empty")
        for name in ("refresh_timeout", "save_timeout"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise PkgIndexConfigError(f"{name} must be >= 0 or None")
        if self.json_indent is not None and self.json_indent < 0:
            raise PkgIndexConfigError("json_indent must be >= 0 or None")

    @classmethod
    def from_env(cls, **overrides: Any) -> IndexConfig:
        """Create configuration from environment variables.

        Reads ``PKGINDEX_DATABASE_PATH``, ``PKGINDEX_TEMP_SUFFIX``,
        ``PKGINDEX_REFRESH_TIMEOUT``, ``PKGINDEX_SAVE_TIMEOUT`` and
        ``PKGINDEX_JSON_INDENT``. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        IndexConfig
            Populated configuration.
        """
        env = os.environ

        config_kwargs: dict[str, Any] = {}
        _ENV_CONFIG_MAP = {
            "PKGINDEX_DATABASE_PATH": "database_path",
            "PKGINDEX_TEMP_SUFFIX": "temp_suffix",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # Numeric fields, handled separately
        if "refresh_timeout" not in overrides:
            config_kwargs["refresh_timeout"] = _env_optional_float(
                env.get("PKGINDEX_REFRESH_TIMEOUT"),
                "PKGINDEX_REFRESH_TIMEOUT",
            )
        if "save_timeout" not in overrides:
            config_kwargs["save_timeout"] = _env_optional_float(
                env.get("PKGINDEX_SAVE_TIMEOUT"),
                "PKGINDEX_SAVE_TIMEOUT",
            )
        if "json_indent" not in overrides:
            config_kwargs["json_indent"] = _env_optional_int(
                env.get("PKGINDEX_JSON_INDENT"),
                "PKGINDEX_JSON_INDENT",
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
