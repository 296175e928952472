"""
Tests for configuration loading and outbound URL validation.
"""
import pytest

from llm_gateway import AdapterError, ErrorCode, LLMProvider, load_config
from llm_gateway.core.config import DEFAULT_TIMEOUT_MS, parse_config
from llm_gateway.core.security import (
    get_validated_base_url,
    is_private_or_internal_host,
    validate_azure_endpoint,
)

CONFIG_YAML = """
integrations:
  - id: 1
    name: openai-main
    provider: openai
    credentials:
      api_key: ${TEST_OPENAI_KEY}
    provider_config:
      default_model: gpt-4o-mini
      cost_per_input_token: 0.00015
      cost_per_output_token: 0.0006
      is_default: true
      max_requests_per_minute: 30
  - id: 2
    name: local
    provider: OLLAMA
    status: INACTIVE
    credentials:
      endpoint: http://ollama.example.com:11434
    provider_config:
      default_model: llama3
      timeout_ms: 120000
      settings:
        keep_alive: 10m
    additional_headers:
      X-Team: qa
"""


class TestLoadConfig:

    def test_load_yaml(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_OPENAI_KEY", "sk-from-env")
        path = tmp_path / "integrations.yaml"
        path.write_text(CONFIG_YAML)

        config = load_config(str(path))

        assert len(config.integrations) == 2
        openai, ollama = config.integrations

        assert openai.provider == LLMProvider.OPENAI
        assert openai.credentials.api_key == "sk-from-env"
        assert openai.provider_config.is_default is True
        assert openai.provider_config.max_requests_per_minute == 30
        assert openai.provider_config.timeout_ms == DEFAULT_TIMEOUT_MS
        assert openai.is_active is True

        assert ollama.provider == LLMProvider.OLLAMA
        assert ollama.credentials.address == "http://ollama.example.com:11434"
        assert ollama.provider_config.timeout_ms == 120000
        assert ollama.settings == {"keep_alive": "10m"}
        assert ollama.additional_headers == {"X-Team": "qa"}
        assert ollama.is_active is False

    def test_env_default_timeout(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LLM_GATEWAY_DEFAULT_TIMEOUT_MS", "45000")
        path = tmp_path / "integrations.yaml"
        path.write_text(CONFIG_YAML)

        config = load_config(str(path))

        assert config.integrations[0].provider_config.timeout_ms == 45000
        assert config.integrations[1].provider_config.timeout_ms == 120000

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text(CONFIG_YAML)
        monkeypatch.setenv("LLM_GATEWAY_CONFIG", str(path))

        assert len(load_config().integrations) == 2

    def test_missing_file_gives_empty_config(self, tmp_path):
        assert load_config(str(tmp_path / "absent.yaml")).integrations == []

    def test_malformed_yaml_gives_empty_config(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("integrations: [unclosed\n")
        assert load_config(str(path)).integrations == []

    def test_invalid_entries_skipped(self):
        config = parse_config(
            {
                "integrations": [
                    {"name": "no id", "provider": "OPENAI"},
                    "not a mapping",
                    {"id": "x", "provider": "OPENAI"},
                    {"id": 5, "provider": "anthropic"},
                ]
            }
        )
        assert [i.integration_id for i in config.integrations] == [5]
        assert config.integrations[0].provider == LLMProvider.ANTHROPIC

    def test_unknown_provider_kept_as_string(self):
        config = parse_config({"integrations": [{"id": 1, "provider": "cohere"}]})
        assert config.integrations[0].provider == "cohere"

    def test_empty_document(self):
        assert parse_config({"integrations": None}).integrations == []


class TestBaseUrlValidation:

    @pytest.mark.parametrize(
        "provider,url,expected",
        [
            ("OPENAI", "https://api.openai.com/v1", "https://api.openai.com/v1"),
            ("OPENAI", "https://api.openai.com.evil.com/v1", None),
            ("OPENAI", "https://proxy.example.com/v1", None),
            ("ANTHROPIC", "https://api.anthropic.com", "https://api.anthropic.com"),
            ("GEMINI", "https://generativelanguage.googleapis.com/v1beta",
             "https://generativelanguage.googleapis.com/v1beta"),
            ("OLLAMA", "http://ollama.example.com:11434", "http://ollama.example.com:11434"),
            ("OLLAMA", "http://localhost:11434", None),
            ("CUSTOM_LLM", "http://192.168.1.20/api", None),
            ("CUSTOM_LLM", "http://172.20.0.1/api", None),
            ("CUSTOM_LLM", "http://metadata.google.internal/", None),
            ("CUSTOM_LLM", "ftp://llm.example.com/", None),
            ("CUSTOM_LLM", "https://llm.example.com/v1", "https://llm.example.com/v1"),
            ("UNKNOWN", "https://llm.example.com/v1", None),
            ("OPENAI", None, None),
        ],
    )
    def test_get_validated_base_url(self, provider, url, expected):
        assert get_validated_base_url(provider, url) == expected

    def test_private_hosts(self):
        assert is_private_or_internal_host("10.1.2.3") is True
        assert is_private_or_internal_host("169.254.169.254") is True
        assert is_private_or_internal_host("172.32.0.1") is False
        assert is_private_or_internal_host("example.com") is False


class TestAzureEndpoint:

    def test_rebuilt_without_credentials_or_fragment(self):
        url = validate_azure_endpoint("https://user:pw@MyRes.openai.azure.com:8443/base/?x=1#frag")
        assert url == "https://myres.openai.azure.com/base?x=1"

    @pytest.mark.parametrize(
        "endpoint",
        ["", "http://myres.openai.azure.com", "https://openai.azure.com", "https://evil.com"],
    )
    def test_rejected(self, endpoint):
        with pytest.raises(AdapterError) as exc_info:
            validate_azure_endpoint(endpoint)
        assert exc_info.value.code == ErrorCode.MISSING_ENDPOINT
        assert exc_info.value.status_code == 400
