import pytest

from codey_gateway.core.settings import Settings
from codey_gateway.providers.env import gateway_base_url, region_header, resolve_api_env
from codey_gateway.providers.models import CLAUDE_4_SONNET, QWEN, get_model, get_model_or_default


def test_settings_read_legacy_username_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CODEY_ORG_USERNAME", raising=False)
    monkeypatch.setenv("SF_LLMG_USERNAME", "legacy@example.com")
    settings = Settings(_env_file=None)
    assert settings.org_username == "legacy@example.com"


def test_settings_prefer_codey_username(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CODEY_ORG_USERNAME", "new@example.com")
    monkeypatch.setenv("SF_LLMG_USERNAME", "legacy@example.com")
    settings = Settings(_env_file=None)
    assert settings.org_username == "new@example.com"


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CODEY_GATEWAY_MODEL", raising=False)
    settings = Settings(_env_file=None)
    assert settings.default_temperature == 0.7
    assert settings.credential_expiry_buffer_seconds == 30
    assert settings.gateway_model == "claude-4-sonnet"


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, "prod"), ("", "prod"), ("STAGE", "stage"), (" dev ", "dev"), ("moon", "prod")],
)
def test_resolve_api_env(value: str | None, expected: str) -> None:
    assert resolve_api_env(value) == expected


def test_gateway_urls_and_regions() -> None:
    assert gateway_base_url("prod") == "https://api.salesforce.com/einstein/gpt/code/v1.1"
    assert gateway_base_url("perf") == "https://perf.api.salesforce.com/einstein/gpt/code/v1.1"
    assert region_header("prod") == "EAST_REGION_1"
    assert region_header("stage") == "EAST_REGION_2"
    assert region_header("test") == "WEST_REGION"


def test_model_registry_lookup() -> None:
    assert get_model("qwen") is QWEN
    assert QWEN.streaming_only and QWEN.inline_function_calls
    assert QWEN.custom_stream_headers == {"x-llm-provider": "InternalTextGeneration"}
    with pytest.raises(KeyError, match="Unknown gateway model"):
        get_model("nope")


def test_model_or_default_accepts_wire_id() -> None:
    assert get_model_or_default("xgen_stream") is QWEN
    assert get_model_or_default("nope") is CLAUDE_4_SONNET
    assert get_model_or_default(None) is CLAUDE_4_SONNET
