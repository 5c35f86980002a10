"""Settings loader: INI file with ``LMS_*`` environment variables as fallbacks.

Environment variables:
  LMS_CONFIG - Path to config.ini file (default: config.ini)
  LMS_LOG_LEVEL - Logging level (default: INFO)
  LMS_DB_PATH - Database path (default: /data/leadmagnet.db)
  LMS_HOST - Server host (default: 0.0.0.0)
  LMS_PORT - Server port (default: 8000)
  LMS_API_TOKEN - Admin API token
  LMS_DEFAULT_FROM - Default sender identity ("Name <email>")
  LMS_RESEND_API_KEY - Resend API key
  LMS_RESEND_API_URL - Resend API base URL
  LMS_WEBHOOK_SECRET - Shared secret of the delivery webhook
  LMS_SEND_TIMEOUT - Provider send timeout in seconds (default: 30)
  LMS_R2_ENDPOINT - Object storage endpoint URL
  LMS_R2_BUCKET_NAME - Object storage bucket
  LMS_R2_ACCESS_KEY_ID - Object storage access key
  LMS_R2_SECRET_ACCESS_KEY - Object storage secret key
  LMS_R2_REGION - Object storage region (default: auto)
  LMS_FETCH_TIMEOUT - Object storage timeout in seconds (default: 30)
  LMS_MAX_FILE_SIZE_MB - Maximum document size (default: 25)
  LMS_RATE_LIMIT_MAX - Submissions per address per window (default: 3)
  LMS_RATE_LIMIT_WINDOW - Rate limit window in seconds (default: 3600)

Config file sections/keys:
  [storage] db_path
  [server] host, port, api_token
  [email] default_from, resend_api_key, resend_api_url, webhook_secret, send_timeout
  [objects] endpoint_url, bucket, access_key_id, secret_access_key, region, fetch_timeout
  [uploads] max_file_size_mb
  [limits] max_attempts, window_seconds
"""

from __future__ import annotations

import configparser
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .provider import DEFAULT_API_URL
from .templates import DEFAULT_FROM


def load_settings(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load the service settings.

    Values found in the INI file win; environment variables are used as
    fallbacks, then built-in defaults.
    """
    path = Path(config_path or os.getenv("LMS_CONFIG", "config.ini"))
    parser = configparser.ConfigParser()
    parser.read(path)

    def get(section: str, option: str, fallback: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return fallback

    def get_int(section: str, option: str, fallback: str | None = None, default: int | None = None) -> int | None:
        value = get(section, option, fallback)
        if value is None or str(value).strip() == "":
            return default
        return int(value)

    def get_float(
        section: str, option: str, fallback: str | None = None, default: float | None = None
    ) -> float | None:
        value = get(section, option, fallback)
        if value is None or str(value).strip() == "":
            return default
        return float(value)

    def get_secret(section: str, option: str, fallback: str | None = None) -> str | None:
        value = get(section, option, fallback)
        if isinstance(value, str):
            value = value.strip() or None
        return value

    settings: Dict[str, Any] = {
        "db_path": get("storage", "db_path", os.getenv("LMS_DB_PATH", "/data/leadmagnet.db")),
        "http_host": get("server", "host", os.getenv("LMS_HOST", "0.0.0.0")),
        "http_port": get_int("server", "port", os.getenv("LMS_PORT"), default=8000),
        "api_token": get_secret("server", "api_token", os.getenv("LMS_API_TOKEN")),
        "default_from": get("email", "default_from", os.getenv("LMS_DEFAULT_FROM", DEFAULT_FROM)),
        "resend_api_key": get_secret("email", "resend_api_key", os.getenv("LMS_RESEND_API_KEY")),
        "resend_api_url": get("email", "resend_api_url", os.getenv("LMS_RESEND_API_URL", DEFAULT_API_URL)),
        "webhook_secret": get_secret("email", "webhook_secret", os.getenv("LMS_WEBHOOK_SECRET")),
        "send_timeout": get_float("email", "send_timeout", os.getenv("LMS_SEND_TIMEOUT"), default=30.0),
        "storage_endpoint_url": get("objects", "endpoint_url", os.getenv("LMS_R2_ENDPOINT")),
        "storage_bucket": get("objects", "bucket", os.getenv("LMS_R2_BUCKET_NAME")),
        "storage_access_key_id": get_secret("objects", "access_key_id", os.getenv("LMS_R2_ACCESS_KEY_ID")),
        "storage_secret_access_key": get_secret(
            "objects", "secret_access_key", os.getenv("LMS_R2_SECRET_ACCESS_KEY")
        ),
        "storage_region": get("objects", "region", os.getenv("LMS_R2_REGION", "auto")),
        "fetch_timeout": get_float("objects", "fetch_timeout", os.getenv("LMS_FETCH_TIMEOUT"), default=30.0),
        "max_file_size_mb": get_int("uploads", "max_file_size_mb", os.getenv("LMS_MAX_FILE_SIZE_MB"), default=25),
        "rate_limit_max": get_int("limits", "max_attempts", os.getenv("LMS_RATE_LIMIT_MAX"), default=3),
        "rate_limit_window": get_float(
            "limits", "window_seconds", os.getenv("LMS_RATE_LIMIT_WINDOW"), default=3600.0
        ),
    }

    db_path = settings["db_path"]
    if isinstance(db_path, str):
        settings["db_path"] = os.path.expanduser(db_path)
    return settings
