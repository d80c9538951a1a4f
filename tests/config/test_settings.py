"""
Integration tests for load_config and validate_config.
"""

import pytest
from pydantic import ValidationError

from conversation_runner.config import AppConfig, QueueConfig, load_config, validate_config

_ENV = (
    "ENGINE_API_KEY", "ENGINE_BACKEND", "ENGINE_WS_URL", "ENGINE_HTTP_URL",
    "WEBHOOK_TOKEN", "WEBHOOK_URL", "API_TOKENS",
    "MAX_CONCURRENCY", "HTTP_BIND_HOST", "HTTP_BIND_PORT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadConfig:

    def test_missing_file_uses_defaults(self, tmp_path, clean_env):
        config = load_config(str(tmp_path / "absent.yaml"))

        assert config.engine.backend == "remote"
        assert config.queue.concurrency == 1
        assert config.session.channel == "audio"
        assert config.webhook.url is None
        assert config.http.api_tokens == []

    def test_yaml_and_environment_merge(self, tmp_path, clean_env):
        clean_env.setenv("ENGINE_API_KEY", "sk-engine")
        clean_env.setenv("WEBHOOK_URL", "https://hooks.example.com/calls")
        clean_env.setenv("WEBHOOK_TOKEN", "whk-secret")
        clean_env.setenv("API_TOKENS", "t1,t2")
        config_file = tmp_path / "runner.yaml"
        config_file.write_text("""
engine:
  backend: loopback
  application_name: sip-test-app
queue:
  concurrency: 3
session:
  sip_config: default
  tts_profile: default-voice
observers:
  transcript: false
default_input:
  greeting: Hello
""")

        config = load_config(str(config_file))

        assert config.engine.backend == "loopback"
        assert config.engine.application_name == "sip-test-app"
        assert config.engine.api_key == "sk-engine"
        assert config.queue.concurrency == 3
        assert config.session.sip_config == "default"
        assert config.session.tts_profile == "default-voice"
        assert config.observers.transcript is False
        assert config.webhook.url == "https://hooks.example.com/calls"
        assert config.webhook.token == "whk-secret"
        assert config.http.api_tokens == ["t1", "t2"]
        assert config.default_input == {"greeting": "Hello"}

    def test_shipped_sample_config_loads(self, clean_env):
        config = load_config("config/runner.yaml")
        assert config.queue.concurrency >= 1

    def test_zero_concurrency_rejected(self):
        with pytest.raises(ValidationError):
            QueueConfig(concurrency=0)


class TestValidateConfig:

    def test_defaults_only_warn_about_missing_key(self):
        errors, warnings = validate_config(AppConfig())

        assert errors == []
        assert any("ENGINE_API_KEY" in w for w in warnings)

    def test_invalid_values_are_errors(self):
        config = AppConfig()
        config.engine.backend = "carrier-pigeon"
        config.session.channel = "video"
        config.http.port = 70000

        errors, _ = validate_config(config)

        assert len(errors) == 3

    def test_open_public_ingress_warns(self):
        config = AppConfig()
        config.engine.api_key = "sk"
        config.http.host = "0.0.0.0"

        errors, warnings = validate_config(config)

        assert errors == []
        assert any("authentication disabled" in w for w in warnings)
