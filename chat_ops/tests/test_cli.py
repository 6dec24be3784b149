from chat_ops import cli
from chat_ops.domain.exceptions import NotFound


def test_chats_command(monkeypatch, capsys):
    monkeypatch.setattr(
        "chat_ops.api.service.list_chats",
        lambda: [{"id": "c2", "title": "Newer"}, {"id": "c1", "title": "Untitled"}],
    )
    assert cli.main(["chats"]) == 0
    assert capsys.readouterr().out.splitlines() == ["c2 | Newer", "c1 | Untitled"]


def test_message_command(monkeypatch, capsys):
    seen = {}

    def fake_add_message(chat_id, content, role=None, model=None, notifier=None):
        seen.update(chat_id=chat_id, content=content, role=role, notifier=notifier)
        return {"chat_id": chat_id, "message_id": "m-1", "parent_id": None, "notified": True}

    monkeypatch.setattr("chat_ops.api.service.add_message", fake_add_message)
    assert cli.main(["message", "-msg", "deploy finished", "-id", "c1", "--role", "assistant"]) == 0

    out = capsys.readouterr().out
    assert "Message added successfully to chat 'c1'" in out
    assert "Message ID: m-1" in out
    assert seen == {"chat_id": "c1", "content": "deploy finished", "role": "assistant", "notifier": None}


def test_input_command(monkeypatch, capsys):
    calls = []
    monkeypatch.setattr(
        "chat_ops.api.service.set_chat_input",
        lambda chat_id, enabled, notifier=None: calls.append((chat_id, enabled)),
    )
    assert cli.main(["input", "--chat-id", "c1", "--enabled", "no"]) == 0
    assert calls == [("c1", False)]
    assert "Success: Chat input disabled for chat ID: c1" in capsys.readouterr().out


def test_invalid_enabled_value(capsys):
    assert cli.main(["input", "-id", "c1", "-e", "maybe"]) == 1
    assert "--enabled must be 'yes' or 'no' (got: maybe)" in capsys.readouterr().err


def test_business_error_exit_code(monkeypatch, capsys):
    def missing(*a, **kw):
        raise NotFound(code="CHAT_NOT_FOUND", message="Chat with ID 'c9' not found")

    monkeypatch.setattr("chat_ops.api.service.add_message", missing)
    assert cli.main(["message", "-msg", "x", "-id", "c9"]) == 1
    assert "Error: Chat with ID 'c9' not found" in capsys.readouterr().err
