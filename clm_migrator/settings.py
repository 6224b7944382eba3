"""Environment-backed settings for the CLM connection."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigurationError

DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_MAX_RETRIES = 500
DEFAULT_FOLDER_BACKOFF_BASE = 3.0
DEFAULT_UPLOAD_RETRY_DELAY = 2.0
DEFAULT_BATCH_SIZE = 50
DEFAULT_LOG_DIR = "logs"


def _read_float(env: Mapping[str, str], key: str, default: Optional[float]) -> Optional[float]:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from exc


def _read_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Connection and retry settings for one migration run."""
    account_id: str
    endpoint_instance: str = ""
    root_path: str = ""
    parent_folder_id: str = ""
    access_token: Optional[str] = None
    make_api_token: Optional[str] = None
    make_data_store_url: Optional[str] = None
    log_dir: Path = Path(DEFAULT_LOG_DIR)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    folder_backoff_base: float = DEFAULT_FOLDER_BACKOFF_BASE
    max_backoff: Optional[float] = None
    upload_retry_delay: float = DEFAULT_UPLOAD_RETRY_DELAY
    batch_size: int = DEFAULT_BATCH_SIZE

    @property
    def api_base_url(self) -> str:
        return f"https://api{self.endpoint_instance}.springcm.com/v2/{self.account_id}"

    @property
    def upload_base_url(self) -> str:
        return f"https://apiupload{self.endpoint_instance}.springcm.com/v2/{self.account_id}"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Raises:
            ConfigurationError: if CLM_ACCOUNT_ID is missing or a numeric
                variable cannot be parsed.
        """
        env = os.environ if env is None else env
        account_id = (env.get("CLM_ACCOUNT_ID") or "").strip()
        if not account_id:
            raise ConfigurationError("CLM_ACCOUNT_ID environment variable is not set")

        max_retries = _read_int(env, "CLM_MAX_RETRIES", DEFAULT_MAX_RETRIES)
        if max_retries < 1:
            raise ConfigurationError("CLM_MAX_RETRIES must be at least 1")

        return cls(
            account_id=account_id,
            endpoint_instance=(env.get("CLM_ENDPOINT_INSTANCE") or "").strip(),
            root_path=(env.get("CLM_ROOT_PATH") or "").strip(),
            parent_folder_id=(env.get("CLM_PARENT_FOLDER_ID") or "").strip(),
            access_token=env.get("CLM_ACCESS_TOKEN") or None,
            make_api_token=env.get("MAKE_API_TOKEN") or None,
            make_data_store_url=env.get("MAKE_DATA_STORE_URL") or None,
            log_dir=Path(env.get("CLM_LOG_DIR") or DEFAULT_LOG_DIR),
            request_timeout=_read_float(env, "CLM_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            max_retries=max_retries,
            folder_backoff_base=_read_float(env, "CLM_FOLDER_BACKOFF_BASE", DEFAULT_FOLDER_BACKOFF_BASE),
            max_backoff=_read_float(env, "CLM_MAX_BACKOFF", None),
            upload_retry_delay=_read_float(env, "CLM_UPLOAD_RETRY_DELAY", DEFAULT_UPLOAD_RETRY_DELAY),
            batch_size=_read_int(env, "CLM_BATCH_SIZE", DEFAULT_BATCH_SIZE),
        )
