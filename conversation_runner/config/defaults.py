"""
Default value application for configuration.

This module handles environment overrides for the runtime knobs operators
tune most often: engine location, concurrency, HTTP bind address.
"""

import os
from typing import Any, Dict


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = config_data.get(name)
    if not isinstance(block, dict):
        block = {}
    config_data[name] = block
    return block


def apply_engine_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply engine connection defaults.

    Environment variables:
    - ENGINE_BACKEND: remote | loopback
    - ENGINE_WS_URL: control WebSocket URL of the conversation engine
    - ENGINE_HTTP_URL: REST base URL of the conversation engine
    """
    engine = _section(config_data, 'engine')
    if os.getenv('ENGINE_BACKEND'):
        engine['backend'] = os.getenv('ENGINE_BACKEND')
    if os.getenv('ENGINE_WS_URL'):
        engine['ws_url'] = os.getenv('ENGINE_WS_URL')
    if os.getenv('ENGINE_HTTP_URL'):
        engine['http_url'] = os.getenv('ENGINE_HTTP_URL')


def apply_queue_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply queue defaults.

    Environment variables:
    - MAX_CONCURRENCY: maximum simultaneously executing jobs
    """
    queue = _section(config_data, 'queue')
    env_value = os.getenv('MAX_CONCURRENCY')
    if env_value:
        try:
            queue['concurrency'] = int(env_value)
        except ValueError:
            # Leave YAML/default in place; validation reports bad YAML values
            pass


def apply_http_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply HTTP ingress bind defaults.

    Environment variables:
    - HTTP_BIND_HOST (default: 127.0.0.1)
    - HTTP_BIND_PORT (default: 8080)
    """
    http = _section(config_data, 'http')
    if os.getenv('HTTP_BIND_HOST'):
        http['host'] = os.getenv('HTTP_BIND_HOST')
    if os.getenv('HTTP_BIND_PORT'):
        try:
            http['port'] = int(os.getenv('HTTP_BIND_PORT'))
        except ValueError:
            pass
