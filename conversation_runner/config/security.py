"""
Security-critical configuration injection.

This module handles:
- Engine API key (ONLY from environment variables)
- Webhook bearer token (ONLY from environment variables)
- HTTP ingress API tokens (ONLY from environment variables)

SECURITY POLICY:
- Tokens and keys MUST NEVER be in YAML files
- Any YAML value for these fields is overwritten from the environment
"""

import os
from typing import Any, Dict, List


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = config_data.get(name)
    if not isinstance(block, dict):
        block = {}
    config_data[name] = block
    return block


def parse_token_list(raw) -> List[str]:
    """
    Split a comma-separated token string into a clean list.

    Blank entries are dropped, so "" and ", ," both yield an empty list
    (authentication disabled).
    """
    if not raw:
        return []
    return [token.strip() for token in str(raw).split(",") if token.strip()]


def inject_engine_credentials(config_data: Dict[str, Any]) -> None:
    """
    Inject the engine API key from ENGINE_API_KEY.

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    engine = _section(config_data, 'engine')
    engine['api_key'] = os.getenv('ENGINE_API_KEY') or None


def inject_webhook_token(config_data: Dict[str, Any]) -> None:
    """
    Inject the webhook bearer token from WEBHOOK_TOKEN.

    WEBHOOK_URL may also come from the environment and wins over YAML.
    """
    webhook = _section(config_data, 'webhook')
    webhook['token'] = os.getenv('WEBHOOK_TOKEN') or None
    env_url = os.getenv('WEBHOOK_URL')
    if env_url:
        webhook['url'] = env_url


def inject_api_tokens(config_data: Dict[str, Any]) -> None:
    """
    Inject HTTP ingress tokens from API_TOKENS (comma-separated).

    An empty or missing variable leaves the token list empty, which disables
    authentication on the HTTP ingress.
    """
    http = _section(config_data, 'http')
    http['api_tokens'] = parse_token_list(os.getenv('API_TOKENS'))
