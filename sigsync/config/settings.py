"""Settings loader with JSON file, environment variable and Docker secrets integration."""
from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from sigsync.core.exceptions import ConfigurationError
from sigsync.core.models import FilterRules

logger = logging.getLogger(__name__)

ENV_PREFIX = "SIGSYNC_"
SERVICE_ACCOUNT_SECRET_NAME = "service_account_key"

DEFAULT_EXCLUDED_OUS = [
    "Service Accounts",
    "Test",
    "External",
    "Offboarded",
    "Administrators",
    "Archived",
]

DEFAULT_BRANDING: Dict[str, str] = {
    "primary_color": "#003264",
    "secondary_color": "#FFA445",
    "text_color": "#333333",
    "primary_font": '"Segoe UI", Arial, sans-serif',
    "name_font_size": "18px",
    "job_title_font_size": "14px",
    "text_font_size": "13px",
    "max_width": "460px",
    "line_height": "1.4",
    "logo_width": "100px",
    "logo_radius": "4px",
}

# OAuth scopes the service account is expected to hold via domain-wide delegation
DEFAULT_OAUTH_SCOPES = [
    "https://www.googleapis.com/auth/gmail.settings.basic",
    "https://www.googleapis.com/auth/admin.directory.user.readonly",
    "https://www.googleapis.com/auth/drive.readonly",
]


def _load_secret_from_file(secret_name: str, env_var: str | None = None, environ: Mapping[str, str] | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Returns:
        Secret value or None if not found
    """
    environ = os.environ if environ is None else environ
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                logger.info("Loaded %s from /run/secrets", secret_name)
                return secret_value
        except OSError as e:
            logger.warning("Failed to read /run/secrets/%s: %s", secret_name, e)

    if env_var:
        secret_value = environ.get(env_var)
        if secret_value:
            logger.info("Loaded %s from environment", env_var)
            return secret_value

    return None


@dataclass
class SyncSettings:
    """Signature sync configuration container."""
    # Domain and filtering
    search_domain: str = ""
    admin_email: str = ""
    test_user_email: str = ""
    included_users: list[str] = field(default_factory=list)
    excluded_users: list[str] = field(default_factory=list)
    excluded_ous: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_OUS))
    include_archived: bool = False
    include_suspended: bool = False
    ou_match: str = "prefix"

    # Templates
    default_template_id: str = "card"
    template_dir: str = ""
    template_cache_ttl: int = 21600

    # Company information
    company_name: str = ""
    company_logo_url: str = ""
    company_address1: str = ""
    company_address2: str = ""
    company_website: str = ""
    company_website_display: str = ""
    branding: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_BRANDING))

    # API pacing (delays in seconds)
    batch_size: int = 10
    batch_delay: float = 1.0
    retry_attempts: int = 3
    retry_delay: float = 1.0
    max_workers: int = 4
    request_timeout: float = 10.0

    # Execution
    dry_run: bool = False
    verbose: bool = False

    # Credentials and capabilities
    service_account_key: Optional[dict[str, Any]] = None
    oauth_scopes: list[str] = field(default_factory=lambda: list(DEFAULT_OAUTH_SCOPES))

    # Audit
    audit_log_dir: str = ".runtime/audit"
    audit_log_signing_key: str = ""

    @property
    def filter_rules(self) -> FilterRules:
        """Filter rules derived from the domain and filtering settings."""
        return FilterRules(
            domain=self.search_domain,
            included_users=frozenset(self.included_users),
            excluded_users=frozenset(self.excluded_users),
            excluded_ous=tuple(self.excluded_ous),
            include_archived=self.include_archived,
            include_suspended=self.include_suspended,
            ou_match=self.ou_match,
        )

    def with_overrides(self, **overrides: Any) -> "SyncSettings":
        return replace(self, **overrides)

    def public_dict(self) -> dict[str, Any]:
        """Settings as a dict with the service account key redacted."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        key = data.pop("service_account_key")
        data["service_account_key"] = "***" if key else None
        data["audit_log_signing_key"] = "***" if self.audit_log_signing_key else ""
        return data


def _coerce(value: Any, current: Any, name: str) -> Any:
    """Coerce a raw env/file value to the type of the field's default."""
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int) and not isinstance(current, bool):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if isinstance(current, float):
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if isinstance(current, list):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return list(value)
    if isinstance(current, dict):
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"{name} must be a JSON object: {e}")
        merged = dict(current)
        merged.update(value)
        return merged
    return value


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object")
    return data


def _load_service_account_key(environ: Mapping[str, str]) -> Optional[dict[str, Any]]:
    """Load the service account JSON key.

    Priority:
    1. /run/secrets/service_account_key
    2. File named by SIGSYNC_SERVICE_ACCOUNT_KEY_FILE
    3. Inline JSON in SIGSYNC_SERVICE_ACCOUNT_KEY
    """
    raw = _load_secret_from_file(SERVICE_ACCOUNT_SECRET_NAME, environ=environ)
    if not raw:
        key_file = environ.get(f"{ENV_PREFIX}SERVICE_ACCOUNT_KEY_FILE")
        if key_file:
            try:
                raw = Path(key_file).read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigurationError(f"Cannot read service account key file {key_file}: {e}")
    if not raw:
        raw = environ.get(f"{ENV_PREFIX}SERVICE_ACCOUNT_KEY")
    if not raw:
        return None
    try:
        key = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Service account key is not valid JSON: {e}")
    if not isinstance(key, dict):
        raise ConfigurationError("Service account key must be a JSON object")
    return key


def load_settings(environ: Mapping[str, str] | None = None, config_file: str | Path | None = None) -> SyncSettings:
    """Load settings from defaults, an optional JSON file and the environment.

    Precedence (lowest to highest): dataclass defaults, JSON config file
    (``config_file`` or ``SIGSYNC_CONFIG_FILE``), ``SIGSYNC_<FIELD>``
    environment variables.

    Raises:
        ConfigurationError: If a value cannot be parsed
    """
    environ = os.environ if environ is None else environ
    settings = SyncSettings()
    overrides: dict[str, Any] = {}
    known = {f.name for f in fields(SyncSettings)} - {"service_account_key"}

    config_path = config_file or environ.get(f"{ENV_PREFIX}CONFIG_FILE")
    if config_path:
        file_values = _read_config_file(Path(config_path))
        for name, value in file_values.items():
            if name not in known:
                logger.warning("Ignoring unknown setting '%s' in %s", name, config_path)
                continue
            overrides[name] = _coerce(value, getattr(settings, name), name)

    for name in known:
        env_value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if env_value is not None and env_value != "":
            overrides[name] = _coerce(env_value, overrides.get(name, getattr(settings, name)), name)

    if not overrides.get("audit_log_signing_key"):
        signing_key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY", environ)
        if signing_key:
            overrides["audit_log_signing_key"] = signing_key

    overrides["service_account_key"] = _load_service_account_key(environ)
    settings = replace(settings, **overrides)

    logger.info(
        "Settings loaded: domain=%s; admin=%s; template=%s; batch_size=%s; dry_run=%s",
        settings.search_domain or "<unset>",
        settings.admin_email or "<unset>",
        settings.default_template_id,
        settings.batch_size,
        settings.dry_run,
    )
    return settings


def validate_settings(settings: SyncSettings) -> SyncSettings:
    """Check required settings and value ranges.

    Returns:
        The same settings, for chaining

    Raises:
        ConfigurationError: On the first missing or invalid value
    """
    required = {
        "search_domain": settings.search_domain,
        "admin_email": settings.admin_email,
        "default_template_id": settings.default_template_id,
    }
    for name, value in required.items():
        if not value or not str(value).strip():
            raise ConfigurationError(f"Missing required config: {name}")

    if settings.batch_size is None or settings.batch_size < 1:
        raise ConfigurationError("batch_size must be at least 1")
    if settings.batch_delay < 0:
        raise ConfigurationError("batch_delay must be non-negative")
    if settings.retry_attempts < 0:
        raise ConfigurationError("retry_attempts must be non-negative")
    if settings.retry_delay < 0:
        raise ConfigurationError("retry_delay must be non-negative")
    if settings.max_workers < 1:
        raise ConfigurationError("max_workers must be at least 1")
    if settings.ou_match not in ("prefix", "segment"):
        raise ConfigurationError("ou_match must be 'prefix' or 'segment'")
    return settings
