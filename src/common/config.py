from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Iterable, Optional

import boto3
from botocore.exceptions import ClientError
from pydantic import BaseModel, Field, SecretStr
from sqlalchemy.engine import make_url


# Environment variable names
ENV_DB_URL = "CONNLOADER_DB_URL"
ENV_DB_PASSWORD = "CONNLOADER_DB_PASSWORD"
ENV_PARAM_PREFIX = "CONNLOADER_PARAM_PREFIX"
ENV_APPDATA_DIR = "CONNLOADER_APPDATA_DIR"
ENV_LOCAL_PROPERTIES_FILE = "CONNLOADER_LOCAL_PROPERTIES_FILE"
ENV_KDF_ITERATIONS = "CONNLOADER_KDF_ITERATIONS"
ENV_MAX_AUTH_ATTEMPTS = "CONNLOADER_MAX_AUTH_ATTEMPTS"
ENV_CACHE_WRITE_FATAL = "CONNLOADER_CACHE_WRITE_FATAL"
ENV_CONNECT_TIMEOUT = "CONNLOADER_CONNECT_TIMEOUT"

APP_FOLDER = "mRemoteNG"
CACHE_FILE_NAME = "sqlcache.xml"
LOCAL_PROPERTIES_FILE_NAME = "LocalConnectionProperties.xml"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _parse_int(raw: Optional[str], name: str, default: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"Invalid integer for {name}: {raw!r}") from None
    if value <= 0:
        raise RuntimeError(f"{name} must be > 0, got {value}")
    return value


def _parse_bool(raw: Optional[str], name: str, default: bool) -> bool:
    if raw is None:
        return default
    s = raw.strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise RuntimeError(f"Invalid boolean for {name}: {raw!r}")


def _load_ssm_params(prefix: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
    ssm = boto3.client("ssm")
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in names:
        full = f"{prefix}{name}"
        try:
            resp = ssm.get_parameter(Name=full, WithDecryption=True)
        except ClientError as e:
            # Leave as None if parameter missing or access denied
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                out[name] = None
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


def application_data_dir(explicit: Optional[os.PathLike[str] | str] = None) -> Path:
    """Per-user application data directory.

    Order: explicit value, `%APPDATA%` (Windows), `$XDG_CONFIG_HOME`, `~/.config`.
    """
    if explicit:
        return Path(explicit)
    for var in ("APPDATA", "XDG_CONFIG_HOME"):
        base = _getenv(var)
        if base:
            return Path(base)
    return Path.home() / ".config"


class LoaderSettings(BaseModel):
    """
    Runtime configuration for loading connections from the SQL store.

    Environment variables
    - `CONNLOADER_DB_URL`:               SQLAlchemy URL of the store (required)
    - `CONNLOADER_DB_PASSWORD`:          database password, merged into the URL
    - `CONNLOADER_PARAM_PREFIX`:         SSM prefix; `<prefix>db_password` is read
                                         when no password variable is set
    - `CONNLOADER_APPDATA_DIR`:          overrides the per-user app data directory
    - `CONNLOADER_LOCAL_PROPERTIES_FILE`: path of the local properties XML
    - `CONNLOADER_KDF_ITERATIONS`:       PBKDF2 iterations for the cipher
    - `CONNLOADER_MAX_AUTH_ATTEMPTS`:    password prompts before giving up
    - `CONNLOADER_CACHE_WRITE_FATAL`:    whether a cache write failure falls back
    - `CONNLOADER_CONNECT_TIMEOUT`:      seconds before a store connection gives up
    """

    db_url: str
    db_password: Optional[SecretStr] = None
    app_data_dir: Optional[Path] = None
    local_properties_file: Optional[Path] = None
    kdf_iterations: int = Field(default=10_000, gt=0)
    max_auth_attempts: int = Field(default=3, gt=0)
    cache_write_failure_fatal: bool = True
    connect_timeout: int = Field(default=15, gt=0)

    @classmethod
    def from_env(cls) -> "LoaderSettings":
        db_url = _require(_getenv(ENV_DB_URL), ENV_DB_URL)

        password = _getenv(ENV_DB_PASSWORD)
        prefix = _getenv(ENV_PARAM_PREFIX)
        if password is None and prefix:
            password = _load_ssm_params(prefix, ["db_password"]).get("db_password")

        app_data = _getenv(ENV_APPDATA_DIR)
        local_props = _getenv(ENV_LOCAL_PROPERTIES_FILE)
        return cls(
            db_url=db_url,
            db_password=SecretStr(password) if password else None,
            app_data_dir=Path(app_data) if app_data else None,
            local_properties_file=Path(local_props) if local_props else None,
            kdf_iterations=_parse_int(_getenv(ENV_KDF_ITERATIONS), ENV_KDF_ITERATIONS, 10_000),
            max_auth_attempts=_parse_int(_getenv(ENV_MAX_AUTH_ATTEMPTS), ENV_MAX_AUTH_ATTEMPTS, 3),
            cache_write_failure_fatal=_parse_bool(
                _getenv(ENV_CACHE_WRITE_FATAL), ENV_CACHE_WRITE_FATAL, True
            ),
            connect_timeout=_parse_int(_getenv(ENV_CONNECT_TIMEOUT), ENV_CONNECT_TIMEOUT, 15),
        )

    def database_url(self) -> str:
        """Store URL with the configured password applied (rendered unmasked)."""
        url = make_url(self.db_url)
        if self.db_password is not None:
            url = url.set(password=self.db_password.get_secret_value())
        return url.render_as_string(hide_password=False)

    def cache_path(self) -> Path:
        return application_data_dir(self.app_data_dir) / APP_FOLDER / CACHE_FILE_NAME

    def local_properties_path(self) -> Path:
        if self.local_properties_file:
            return self.local_properties_file
        return application_data_dir(self.app_data_dir) / APP_FOLDER / LOCAL_PROPERTIES_FILE_NAME
