"""
Configuration package for the conversation runner.

- loaders: YAML file loading and parsing
- security: token and API key injection from the environment
- defaults: environment overrides for runtime knobs
- settings: pydantic models, load_config and validate_config
"""

from .settings import (
    DEFAULT_CONFIG_PATH,
    AppConfig,
    EngineConfig,
    HttpIngressConfig,
    InboundConfig,
    LoggingConfig,
    ObserversConfig,
    QueueConfig,
    SessionProfileConfig,
    WebhookConfig,
    load_config,
    validate_config,
)

__all__ = [
    'DEFAULT_CONFIG_PATH',
    'AppConfig',
    'EngineConfig',
    'HttpIngressConfig',
    'InboundConfig',
    'LoggingConfig',
    'ObserversConfig',
    'QueueConfig',
    'SessionProfileConfig',
    'WebhookConfig',
    'load_config',
    'validate_config',
]
