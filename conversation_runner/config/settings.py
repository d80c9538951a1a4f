"""
Configuration models for the conversation runner.

Pydantic v2 models validate the merged YAML + environment configuration.
"""

import os
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field, field_validator

from .defaults import apply_engine_defaults, apply_http_defaults, apply_queue_defaults
from .loaders import load_yaml_with_env_expansion, resolve_config_path
from .security import inject_api_tokens, inject_engine_credentials, inject_webhook_token

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = "config/runner.yaml"


class EngineConfig(BaseModel):
    backend: str = Field(default="remote")  # remote | loopback
    ws_url: str = Field(default="ws://127.0.0.1:8765/v1/control")
    http_url: str = Field(default="http://127.0.0.1:8765/v1")
    api_key: Optional[str] = None
    application_name: str = Field(default="conversation-app")
    group_name: str = Field(default="Default")
    connect_timeout_sec: float = Field(default=10.0)
    reconnect_attempts: int = Field(default=5)
    # Loopback only: simulated conversation length
    loopback_delay_sec: float = Field(default=0.5)


class QueueConfig(BaseModel):
    concurrency: int = Field(default=1)
    # Deadline applied to jobs pushed by the HTTP and one-shot adapters
    default_deadline_sec: float = Field(default=3600.0)

    @field_validator("concurrency")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("queue.concurrency must be >= 1")
        return value


class SessionProfileConfig(BaseModel):
    """Per-job session overrides; None leaves the engine default."""
    channel: str = Field(default="audio")  # audio | text
    sip_config: Optional[str] = None
    tts_profile: Optional[str] = None
    stt_profile: Optional[str] = None


class ObserversConfig(BaseModel):
    verbose: bool = Field(default=False)
    transcript: bool = Field(default=True)


class WebhookConfig(BaseModel):
    url: Optional[str] = None
    token: Optional[str] = None
    # None keeps aiohttp's own timeout behavior
    timeout_sec: Optional[float] = None


class HttpIngressConfig(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8080)
    api_tokens: List[str] = Field(default_factory=list)


class InboundConfig(BaseModel):
    answer_timeout_sec: float = Field(default=60.0)
    forward: Optional[str] = None


class LoggingConfig(BaseModel):
    level: str = Field(default="info")  # debug|info|warning|error|critical


class AppConfig(BaseModel):
    engine: EngineConfig = Field(default_factory=EngineConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    session: SessionProfileConfig = Field(default_factory=SessionProfileConfig)
    observers: ObserversConfig = Field(default_factory=ObserversConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    http: HttpIngressConfig = Field(default_factory=HttpIngressConfig)
    inbound: InboundConfig = Field(default_factory=InboundConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    default_input: Dict[str, Any] = Field(default_factory=dict)


def load_config(path: str = DEFAULT_CONFIG_PATH) -> AppConfig:
    """
    Load and validate configuration from a YAML file.

    A missing file is not an error: the runner works from defaults and
    environment variables alone.
    """
    path = resolve_config_path(path)
    if os.path.exists(path):
        config_data = load_yaml_with_env_expansion(path)
    else:
        logger.info("Configuration file not found; using defaults", path=path)
        config_data = {}

    inject_engine_credentials(config_data)
    inject_webhook_token(config_data)
    inject_api_tokens(config_data)

    apply_engine_defaults(config_data)
    apply_queue_defaults(config_data)
    apply_http_defaults(config_data)

    return AppConfig(**config_data)


def validate_config(config: AppConfig) -> tuple[list[str], list[str]]:
    """Validate configuration before startup.

    Returns:
        (errors, warnings): errors block startup, warnings are logged.
    """
    errors = []
    warnings = []

    if config.engine.backend not in ("remote", "loopback"):
        errors.append(f"Invalid engine.backend: {config.engine.backend} (must be remote or loopback)")
    if config.session.channel not in ("audio", "text"):
        errors.append(f"Invalid session.channel: {config.session.channel} (must be audio or text)")
    if not (1 <= config.http.port <= 65535):
        errors.append(f"HTTP port {config.http.port} out of valid range (1-65535)")

    if config.engine.backend == "remote" and not config.engine.api_key:
        warnings.append("ENGINE_API_KEY not set; connecting to the engine without credentials")
    if config.webhook.token and not config.webhook.url:
        warnings.append("WEBHOOK_TOKEN set but no webhook url configured; notifications are disabled")
    if config.webhook.url and config.webhook.url.startswith("http://") and config.webhook.token:
        warnings.append("Webhook token will be sent over plain http")
    if config.http.host == "0.0.0.0" and not config.http.api_tokens:
        warnings.append("HTTP ingress bound to 0.0.0.0 with authentication disabled (API_TOKENS empty)")

    return errors, warnings
