import pytest

from chat_ops.domain.exceptions import InconsistentState, InvalidArgument
from chat_ops.domain.history import ConversationDocument, Message
from chat_ops.domain.mutator import append_message


def ids(*values):
    it = iter(values)
    return lambda: next(it)


def clock(value=1700000000):
    return lambda: value


def test_append_to_empty_document_creates_root():
    doc = ConversationDocument()
    doc, mid = append_message(doc, "user", "hello", ids("m1"), clock())

    assert mid == "m1"
    assert list(doc.messages_by_id) == ["m1"]
    m1 = doc.messages_by_id["m1"]
    assert m1.content == "hello"
    assert m1.role == "user"
    assert m1.parent_id is None
    assert m1.children_ids == []
    assert m1.done is True
    assert m1.timestamp == 1700000000
    assert doc.current_id == "m1"


def test_append_links_parent_and_child():
    doc = ConversationDocument()
    append_message(doc, "user", "hello", ids("m1"), clock())
    doc, mid = append_message(doc, "assistant", "hi there", ids("m2"), clock(1700000005))

    assert mid == "m2"
    assert len(doc.messages_by_id) == 2
    assert doc.messages_by_id["m1"].children_ids == ["m2"]
    assert doc.messages_by_id["m2"].parent_id == "m1"
    assert doc.current_id == "m2"
    assert doc.check_integrity() == []


def test_append_keeps_existing_branches_in_order():
    doc = ConversationDocument(
        messages_by_id={
            "p": Message(id="p", role="user", content="q", children_ids=["a1"], timestamp=1),
            "a1": Message(id="a1", role="assistant", content="first", parent_id="p", timestamp=2),
        },
        current_id="p",
    )
    _, mid = append_message(doc, "assistant", "second", ids("a2"), clock())

    assert doc.messages_by_id["p"].children_ids == ["a1", "a2"]
    assert doc.messages_by_id["p"].children_ids.count(mid) == 1
    assert doc.messages_by_id["a2"].parent_id == "p"


def test_append_is_not_idempotent():
    doc = ConversationDocument()
    _, first = append_message(doc, "user", "same")
    _, second = append_message(doc, "user", "same")

    assert first != second
    assert doc.messages_by_id[second].parent_id == first
    assert doc.messages_by_id[first].children_ids == [second]
    assert len(doc.messages_by_id) == 2


def test_empty_content_is_allowed():
    doc, mid = append_message(ConversationDocument(), "user", "", ids("m1"), clock())
    assert doc.messages_by_id[mid].content == ""


def test_missing_content_is_rejected():
    doc = ConversationDocument()
    with pytest.raises(InvalidArgument) as exc:
        append_message(doc, "user", None, ids("m1"), clock())
    assert exc.value.code == "MISSING_CONTENT"
    assert doc.messages_by_id == {}


def test_unknown_role_is_rejected_unless_allowed():
    doc = ConversationDocument()
    with pytest.raises(InvalidArgument) as exc:
        append_message(doc, "system", "x", ids("m1"), clock())
    assert exc.value.code == "INVALID_ROLE"

    _, mid = append_message(doc, "system", "x", ids("m1"), clock(), allowed_roles=["system"])
    assert doc.messages_by_id[mid].role == "system"


def test_dangling_current_id_appends_as_root_and_logs(caplog):
    doc = ConversationDocument(
        messages_by_id={"m1": Message(id="m1", role="user", content="a", timestamp=1)},
        current_id="deleted",
    )
    with caplog.at_level("WARNING", logger="chat_ops"):
        doc, mid = append_message(doc, "user", "b", ids("m2"), clock())

    assert doc.messages_by_id[mid].parent_id is None
    assert doc.messages_by_id["m1"].children_ids == []
    assert doc.current_id == "m2"
    assert "currentId does not resolve" in caplog.text


def test_dangling_current_id_raises_in_strict_mode():
    doc = ConversationDocument(current_id="deleted")
    with pytest.raises(InconsistentState) as exc:
        append_message(doc, "user", "b", ids("m2"), clock(), strict=True)
    assert exc.value.code == "INCONSISTENT_CURRENT_ID"
    assert doc.messages_by_id == {}


def test_id_collision_fails_loudly():
    doc = ConversationDocument()
    append_message(doc, "user", "a", ids("m1"), clock())
    with pytest.raises(InconsistentState) as exc:
        append_message(doc, "user", "b", ids("m1"), clock())
    assert exc.value.code == "ID_COLLISION"
    assert doc.messages_by_id["m1"].children_ids == []


def test_updated_at_refreshed_on_every_append():
    doc = ConversationDocument(updated_at=10)
    append_message(doc, "user", "a", ids("m1"), clock(100))
    assert doc.updated_at == 100
    append_message(doc, "assistant", "b", ids("m2"), clock(200))
    assert doc.updated_at == 200


def test_model_label_is_stored():
    doc, mid = append_message(ConversationDocument(), "assistant", "a", ids("m1"), clock(), model="Assistant 1")
    assert doc.messages_by_id[mid].model == "Assistant 1"
    assert doc.to_payload()["history"]["messages"]["m1"]["model"] == "Assistant 1"
