# ============================================================================
# SpaceOps - Runtime Configuration
# ============================================================================
# Environment-backed configuration with type casting and defaults.
# Values are read on every call so a running process (or a test) picks up
# changes to the environment without a restart.
# ============================================================================

import os
from typing import Any

# key -> (default, value_type, category)
DEFAULT_CONFIG = {
    # Storage
    "db_path": ("spaceops.db", "string", "storage"),

    # Cron entrypoints
    "cron_secret": ("", "string", "cron"),
    "session_secret": ("spaceops-dev-session", "string", "general"),

    # In-process scheduler
    "scheduler_enabled": (False, "bool", "scheduler"),
    "overdue_check_minutes": (15, "int", "scheduler"),
    "sla_warning_minutes": (15, "int", "scheduler"),
    "schedule_trigger_minutes": (5, "int", "scheduler"),
    "cleanup_interval_hours": (24, "int", "scheduler"),

    # Twilio (SMS + WhatsApp)
    "twilio_account_sid": ("", "string", "messaging"),
    "twilio_auth_token": ("", "string", "messaging"),
    "twilio_from_number": ("", "string", "messaging"),
    "twilio_whatsapp_from_number": ("", "string", "messaging"),

    # Telemetry
    "sentry_dsn": ("", "string", "telemetry"),

    # Rate limits
    "sms_rate_limit": ("20/minute", "string", "limits"),
}


def _cast_value(value: str, value_type: str) -> Any:
    """Cast an environment string to the configured type."""
    if value_type == "bool":
        return value.strip().lower() in ("true", "1", "yes", "on")
    if value_type == "int":
        try:
            return int(value)
        except ValueError:
            return 0
    return value


def get_config(key: str, default: Any = None) -> Any:
    """
    Resolve a configuration value.

    Lookup order: environment variable (upper-cased key), then the
    DEFAULT_CONFIG entry, then the caller's default.
    """
    entry = DEFAULT_CONFIG.get(key)
    raw = os.environ.get(key.upper())
    if raw is not None and raw != "":
        return _cast_value(raw, entry[1] if entry else "string")
    if entry is not None:
        return entry[0]
    return default

