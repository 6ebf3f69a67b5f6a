from chat_core.config.settings import PLACEHOLDER_API_KEY, Settings


def test_api_key_from_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
    cfg = Settings()
    assert cfg.openai_api_key == "sk-from-env"
    assert cfg.api_key_usable


def test_placeholder_key_is_not_usable():
    assert not Settings(openai_api_key=PLACEHOLDER_API_KEY).api_key_usable
    assert not Settings(openai_api_key="   ").api_key_usable


def test_yaml_config_source(monkeypatch, tmp_path):
    cfg_file = tmp_path / "chat.yaml"
    cfg_file.write_text("context_mode: latest\nrequest_deadline: 15\n", encoding="utf-8")
    monkeypatch.setenv("CHAT_CONFIG_FILE", str(cfg_file))
    monkeypatch.delenv("CONTEXT_MODE", raising=False)
    monkeypatch.delenv("REQUEST_DEADLINE", raising=False)
    cfg = Settings()
    assert cfg.context_mode == "latest"
    assert cfg.request_deadline == 15.0
