"""
Structured Logging Configuration

This module configures structured logging using the 'structlog' library.
It sets up processors for adding timestamps, log levels, the active job id,
and renders logs in JSON (default) or colorized console format based on env.
"""

import contextvars
import logging
import os
import sys

import structlog
from structlog import dev as structlog_dev

# Context variable for the job currently being processed
job_id_var = contextvars.ContextVar('job_id', default=None)

SERVICE_NAME = 'conversation-runner'

# Keys that should be redacted (case-insensitive, separators ignored)
SENSITIVE_KEYS = {
    'api_key', 'apikey', 'api_keys',
    'token', 'tokens', 'access_token', 'auth_token', 'bearer',
    'password', 'passwd', 'secret', 'secrets',
    'authorization', 'auth',
    'credential', 'credentials', 'private_key',
}


def get_job_id():
    """Get the job id bound to the current task, if any."""
    return job_id_var.get()


def bind_job_id(value):
    """Bind a job id to the current task context. Returns a reset token."""
    return job_id_var.set(value)


def reset_job_id(token):
    job_id_var.reset(token)


def add_job_id(logger, method_name, event_dict):
    """Add the active job id to the log record."""
    job_id = get_job_id()
    if job_id and 'job_id' not in event_dict:
        event_dict['job_id'] = job_id
    return event_dict


def add_service_context(logger, method_name, event_dict):
    """Add service context to the log record."""
    event_dict['service'] = SERVICE_NAME
    component = event_dict.get('logger')
    if not component:
        component = getattr(getattr(logger, 'logger', None), 'name', None) or getattr(logger, 'name', 'unknown')
    event_dict['component'] = component
    return event_dict


def _is_sensitive(key) -> bool:
    normalized = str(key).lower().replace('_', '').replace('-', '')
    for pattern in SENSITIVE_KEYS:
        pattern_normalized = pattern.replace('_', '').replace('-', '')
        # "user_password" matches, "passthrough" does not
        if normalized == pattern_normalized or normalized.endswith(pattern_normalized):
            return True
    return False


def _redact_value(value):
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        if not value:
            return ''
        if len(value) > 4:
            return f"{value[:2]}***REDACTED***"
        return "***REDACTED***"
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_redact_value(v) for v in value]
    return "***REDACTED***"


def _sanitize_dict(d):
    sanitized = {}
    for key, value in d.items():
        if _is_sensitive(key):
            sanitized[key] = _redact_value(value)
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_dict(value)
        elif isinstance(value, (list, tuple)):
            sanitized[key] = [_sanitize_dict(v) if isinstance(v, dict) else v for v in value]
        else:
            sanitized[key] = value
    return sanitized


def sanitize_secrets(logger, method_name, event_dict):
    """
    Redact sensitive information from log events.

    Webhook tokens, ingress API tokens and engine keys must never reach
    stdout. Values are replaced with '***REDACTED***' (keeping the first two
    characters of longer strings) while the rest of the event is preserved.
    """
    return _sanitize_dict(event_dict)


def configure_logging(log_level="INFO"):
    """
    Set up structured logging.

    Environment overrides (optional):
      - LOG_LEVEL: debug|info|warning|error|critical (default: INFO)
      - LOG_FORMAT: json|console (default: json)
      - LOG_COLOR:  0|1 (console only; default: 1)
      - LOG_SHOW_TRACEBACKS: auto|always|never (default: auto, debug only)
    """
    env_level = os.getenv("LOG_LEVEL")
    if env_level:
        log_level = env_level
    log_level_upper = str(log_level).upper()
    log_format = os.getenv("LOG_FORMAT", "json").strip().lower()
    log_color = os.getenv("LOG_COLOR", "1").strip() not in ("0", "false", "False")

    tb_mode = os.getenv("LOG_SHOW_TRACEBACKS", "auto").strip().lower()
    if tb_mode == "always":
        show_tracebacks = True
    elif tb_mode == "never":
        show_tracebacks = False
    else:
        show_tracebacks = (log_level_upper == "DEBUG")

    def suppress_exc_info_if_disabled(logger, method_name, event_dict):
        """Remove exc_info from event when tracebacks are disabled by policy."""
        if not show_tracebacks and event_dict.get("exc_info"):
            event_dict.pop("exc_info", None)
        return event_dict

    level_value = getattr(logging, log_level_upper, logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_service_context,
            add_job_id,
            sanitize_secrets,
            suppress_exc_info_if_disabled,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = structlog_dev.ConsoleRenderer(colors=log_color) if log_format == "console" else structlog.processors.JSONRenderer()

    processor_formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level_value)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(processor_formatter)
    root_logger.addHandler(console_handler)

    # Reduce noisy third-party loggers
    logging.getLogger('websockets').setLevel(logging.WARNING)
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a structlog logger."""
    return structlog.get_logger(name)
