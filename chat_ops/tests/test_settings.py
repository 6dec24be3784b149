import pytest
from pydantic import ValidationError

from chat_ops.config.settings import ChatOpsSettings


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ("MESSAGE_MODEL_LABEL", "WEBSOCKET_MANAGER", "NOTIFY_TRANSPORT", "CHAT_OPS_CONFIG_FILE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_yaml_config_is_loaded(clean_env, monkeypatch):
    cfg_file = clean_env / "ops.yaml"
    cfg_file.write_text("message_model_label: Ops Bot\nnotify_transport: http\n", encoding="utf-8")
    monkeypatch.setenv("CHAT_OPS_CONFIG_FILE", str(cfg_file))

    cfg = ChatOpsSettings()
    assert cfg.message_model_label == "Ops Bot"
    assert cfg.notify_transport == "http"


def test_environment_overrides_yaml(clean_env, monkeypatch):
    cfg_file = clean_env / "config.yaml"
    cfg_file.write_text("message_model_label: Ops Bot\n", encoding="utf-8")
    monkeypatch.setenv("MESSAGE_MODEL_LABEL", "Env Bot")
    monkeypatch.setenv("WEBSOCKET_MANAGER", " Redis ")

    cfg = ChatOpsSettings()
    assert cfg.message_model_label == "Env Bot"
    assert cfg.websocket_manager == "redis"


def test_invalid_values_rejected(clean_env):
    with pytest.raises(ValidationError):
        ChatOpsSettings(allowed_roles=[" "])
    with pytest.raises(ValidationError):
        ChatOpsSettings(notify_transport="smoke-signal")
