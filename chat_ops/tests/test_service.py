import tempfile
from pathlib import Path

import pytest

from chat_ops.api import service
from chat_ops.domain.exceptions import InvalidArgument, NotFound, NotificationError
from chat_ops.infrastructure.storage.json_store import JsonChatStore


class DummySettings:
    default_role = "user"
    allowed_roles = ["user", "assistant"]
    message_model_label = "Assistant 1"


class RecordingNotifier:
    name = "recording"

    def __init__(self, error=None):
        self.events = []
        self.error = error

    def notify(self, event):
        self.events.append(event)
        if self.error is not None:
            raise self.error


@pytest.fixture
def store(monkeypatch):
    monkeypatch.setattr("chat_ops.api.service.settings", DummySettings())
    with tempfile.TemporaryDirectory() as d:
        s = JsonChatStore(root=Path(d) / ".storage")
        s.create_chat("owner-1", title="Incident 42", chat_id="c1")
        yield s


def test_add_message_chains_and_notifies(store):
    notifier = RecordingNotifier()
    first = service.add_message("c1", "hello", store=store, notifier=notifier)
    second = service.add_message("c1", "hi there", role="assistant", store=store, notifier=notifier)

    assert first["parent_id"] is None
    assert second["parent_id"] == first["message_id"]
    assert first["notified"] is True and second["notified"] is True

    doc = store.load_conversation("c1")
    m1 = doc.messages_by_id[first["message_id"]]
    m2 = doc.messages_by_id[second["message_id"]]
    assert m1.role == "user"
    assert m1.children_ids == [m2.id]
    assert m2.model == "Assistant 1"
    assert doc.current_id == m2.id

    events = notifier.events
    assert [e.type for e in events] == ["chat:tags", "chat:tags"]
    assert events[1].user_id == "owner-1"
    assert events[1].message_id == m2.id


def test_add_message_survives_notification_failure(store):
    notifier = RecordingNotifier(error=NotificationError(code="NOTIFY_HTTP_ERROR", message="HTTP 500"))
    result = service.add_message("c1", "hello", store=store, notifier=notifier)

    assert result["notified"] is False
    assert result["message_id"] in store.load_conversation("c1").messages_by_id


def test_add_message_survives_unexpected_notifier_error(store, caplog):
    notifier = RecordingNotifier(error=RuntimeError("asyncio.run() cannot be called from a running event loop"))
    with caplog.at_level("ERROR", logger="chat_ops"):
        result = service.add_message("c1", "hello", store=store, notifier=notifier)

    assert result["notified"] is False
    assert result["message_id"] in store.load_conversation("c1").messages_by_id
    (record,) = [r for r in caplog.records if r.getMessage() == "Notification crashed"]
    assert record.exc_info is not None


def test_add_message_rejects_bad_input_without_saving(store):
    notifier = RecordingNotifier()
    with pytest.raises(InvalidArgument):
        service.add_message("c1", "x", role="system", store=store, notifier=notifier)
    with pytest.raises(InvalidArgument):
        service.add_message("c1", None, store=store, notifier=notifier)
    with pytest.raises(NotFound):
        service.add_message("missing", "x", store=store, notifier=notifier)

    assert store.load_conversation("c1").messages_by_id == {}
    assert notifier.events == []


def test_set_chat_input(store):
    added = service.add_message("c1", "hello", store=store, notifier=RecordingNotifier())
    notifier = RecordingNotifier()
    result = service.set_chat_input("c1", False, store=store, notifier=notifier)

    assert result == {"chat_id": "c1", "enabled": False, "notified": True}
    (event,) = notifier.events
    assert event.type == "chat:input:toggle"
    assert event.data == {"enabled": False}
    assert event.message_id == added["message_id"]
    assert event.user_id == "owner-1"


def test_set_chat_input_propagates_notification_failure(store):
    notifier = RecordingNotifier(error=NotificationError(code="NOTIFY_BUS_ERROR", message="redis down"))
    with pytest.raises(NotificationError):
        service.set_chat_input("c1", True, store=store, notifier=notifier)


def test_list_chats_defaults_title(store):
    store.create_chat("owner-2", title="", chat_id="c2")
    titles = {c["id"]: c["title"] for c in service.list_chats(store=store)}
    assert titles == {"c1": "Incident 42", "c2": "Untitled"}


@pytest.mark.parametrize("value,expected", [("yes", True), ("TRUE", True), ("1", True), ("No", False), ("false", False), ("0", False)])
def test_parse_enabled(value, expected):
    assert service.parse_enabled(value) is expected


def test_parse_enabled_rejects_other_values():
    with pytest.raises(InvalidArgument) as exc:
        service.parse_enabled("maybe")
    assert "got: maybe" in exc.value.message
