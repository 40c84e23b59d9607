import pytest

from core import config
from core.config_adapter import ConfigAdapter, DotEnvConfigSource, EnvConfigSource
from core.models import AgentConfig, ProviderKind, get_provider_by_url


def test_get_default_model_requires_llm_model():
    # No LLM_MODEL → must raise, no implicit defaults.
    with pytest.raises(RuntimeError):
        config.get_default_model()


def test_get_default_model_reads_llm_model(monkeypatch):
    monkeypatch.setenv("LLM_MODEL", "gemini-1.5-pro")
    assert config.get_default_model() == "gemini-1.5-pro"


@pytest.mark.parametrize(
    "raw,expected",
    [(None, 2), ("4", 4), ("0", 0), ("-3", 0), ("many", 2)],
)
def test_get_max_iterations(monkeypatch, raw, expected):
    if raw is not None:
        monkeypatch.setenv("CRITIQUE_MAX_ITERATIONS", raw)
    assert config.get_max_iterations() == expected


@pytest.mark.parametrize(
    "raw,expected",
    [(None, None), ("45", 45.0), ("0", None), ("soon", None)],
)
def test_get_stage_timeout_seconds(monkeypatch, raw, expected):
    if raw is not None:
        monkeypatch.setenv("STAGE_TIMEOUT_SECONDS", raw)
    assert config.get_stage_timeout_seconds() == expected


def test_get_timeout_seconds_default_and_override(monkeypatch):
    monkeypatch.delenv("LLM_TIMEOUT_SECONDS", raising=False)
    assert config.get_timeout_seconds() == 120.0
    monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "90")
    assert config.get_timeout_seconds() == 90.0


def test_dotenv_source_parses_file(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# comment\n"
        "LLM_MODEL=gpt-4o-mini\n"
        "export LLM_PROVIDER=claude\n"
        "LLM_API_KEY='quoted-key'\n"
        "\n"
        "not a pair\n",
        encoding="utf-8",
    )
    source = DotEnvConfigSource(path=env_file)
    assert source.items() == {
        "LLM_MODEL": "gpt-4o-mini",
        "LLM_PROVIDER": "claude",
        "LLM_API_KEY": "quoted-key",
    }
    assert DotEnvConfigSource(path=tmp_path / "missing.env").get("LLM_MODEL") is None


def test_env_wins_over_dotenv(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("LLM_MODEL=from-file\nLLM_BASE_URL=http://file\n", encoding="utf-8")
    monkeypatch.setenv("LLM_MODEL", "from-env")
    adapter = ConfigAdapter((EnvConfigSource(), DotEnvConfigSource(path=env_file)))
    assert adapter.get("LLM_MODEL") == "from-env"
    assert adapter.get("LLM_BASE_URL") == "http://file"
    assert adapter.get("UNSET_KEY", "fallback") == "fallback"


def test_agent_config_from_env(monkeypatch):
    monkeypatch.setenv("LLM_MODEL", "claude-3-5-sonnet")
    monkeypatch.setenv("LLM_PROVIDER", "Claude")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    cfg = AgentConfig.from_env()
    assert cfg.provider is ProviderKind.CLAUDE
    assert cfg.model == "claude-3-5-sonnet"
    assert cfg.endpoint is None
    assert cfg.api_key == "sk-ant"


def test_agent_config_from_env_prefers_llm_api_key(monkeypatch):
    monkeypatch.setenv("LLM_MODEL", "local-model")
    monkeypatch.setenv("LLM_BASE_URL", "http://localhost:1234/v1")
    monkeypatch.setenv("LLM_API_KEY", "generic")
    monkeypatch.setenv("OPENAI_API_KEY", "openai")
    cfg = AgentConfig.from_env()
    assert cfg.provider is ProviderKind.OPENAI
    assert cfg.endpoint == "http://localhost:1234/v1"
    assert cfg.api_key == "generic"


def test_agent_config_placeholder_key():
    assert AgentConfig(model="m").resolved_api_key() == "not-needed"
    assert AgentConfig(model="m", api_key="real").resolved_api_key() == "real"
    with pytest.raises(ValueError):
        AgentConfig(model="")


def test_get_provider_by_url_is_case_insensitive():
    preset = get_provider_by_url("HTTPS://api.groq.com/openai/v1")
    assert preset is not None and preset.name == "Groq"
    assert get_provider_by_url("http://unknown") is None


def test_app_settings_from_config(monkeypatch, tmp_path):
    from core.settings import AppSettings

    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example,")
    monkeypatch.setenv("STAGE_ENDPOINTS", "off")
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    settings = AppSettings.from_config()
    assert settings.cors_allowlist() == ["https://a.example", "https://b.example"]
    assert settings.stage_endpoints is False
    assert settings.log_dir == tmp_path


def test_app_settings_empty_origins_in_dev_allow_all(monkeypatch):
    from core.settings import AppSettings

    monkeypatch.setenv("CORS_ORIGINS", "")
    monkeypatch.delenv("APP_ENV", raising=False)
    settings = AppSettings.from_config()
    assert settings.cors_allowlist() == ["*"]
    assert settings.stage_endpoints is True


def test_agent_config_from_env_explicit_model_covers_missing_llm_model(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    cfg = AgentConfig.from_env(model="claude-3-5-haiku", provider=ProviderKind.CLAUDE)
    assert cfg.model == "claude-3-5-haiku"
    assert cfg.provider is ProviderKind.CLAUDE
    assert cfg.api_key == "sk-ant"
