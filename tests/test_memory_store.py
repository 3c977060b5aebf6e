import pytest

from agentdesk.memory import ConversationHistory, InMemoryMemoryStore, MemoryCategory


def test_search_semantic_matches_key_or_value_case_insensitively():
    store = InMemoryMemoryStore()
    store.create_semantic(MemoryCategory.CLIENT, "Acme contact", "Jane on call", source="manual")
    store.create_semantic(MemoryCategory.RULE, "refunds", "Approve ACME refunds under 100", source="manual")
    store.create_semantic(MemoryCategory.GENERAL, "weather", "sunny", source="manual")

    assert {m.key for m in store.search_semantic("acme")} == {"Acme contact", "refunds"}
    assert [m.key for m in store.search_semantic("acme", category=MemoryCategory.RULE)] == ["refunds"]
    assert len(store.search_semantic("acme", limit=1)) == 1
    assert store.search_semantic("nothing here") == []


def test_search_semantic_orders_by_most_recent_update():
    store = InMemoryMemoryStore()
    old = store.create_semantic(MemoryCategory.GENERAL, "alpha note", "x", source="s")
    store.create_semantic(MemoryCategory.GENERAL, "alpha other", "y", source="s")
    store.update_semantic(old.id, value="refreshed")

    keys = [m.key for m in store.search_semantic("alpha")]
    assert keys == ["alpha note", "alpha other"]
    assert store.get_semantic(old.id).value == "refreshed"


def test_semantic_crud():
    store = InMemoryMemoryStore()
    memory = store.create_semantic("supplier", "Bolt Co", "ships Fridays", source="agent:general", confidence=0.5)

    assert memory.category == MemoryCategory.SUPPLIER
    assert store.list_semantic(MemoryCategory.SUPPLIER)[0].id == memory.id
    assert store.update_semantic("missing", value="v") is None
    assert store.delete_semantic(memory.id) is True
    assert store.delete_semantic(memory.id) is False
    assert store.get_semantic(memory.id) is None


def test_confidence_must_be_within_unit_interval():
    store = InMemoryMemoryStore()
    with pytest.raises(ValueError):
        store.create_semantic(MemoryCategory.GENERAL, "k", "v", source="s", confidence=1.5)


def test_episodic_memories():
    store = InMemoryMemoryStore()
    first = store.create_episodic("general", 'Completed task "a"', "success", task_id="t1", context={"input": {}})
    store.create_episodic("other", 'Failed task "b": boom', "failed", lessons="boom")
    store.create_episodic("general", 'Failed task "c": timeout', "failed", lessons="retry later")

    assert [m.summary for m in store.list_episodic("general")] == ['Failed task "c": timeout', 'Completed task "a"']
    assert [m.agent_id for m in store.search_episodic("failed")] == ["general", "other"]
    assert [m.summary for m in store.search_episodic("later")] == ['Failed task "c": timeout']
    assert first.task_id == "t1" and first.lessons == ""
    assert store.delete_episodic(first.id) is True
    assert len(store.list_episodic()) == 2


def test_conversation_history_keeps_turns_in_order():
    history = ConversationHistory()
    history.add("user", "one")
    history.add("assistant", "two")
    history.add("user", "three")

    assert [(m.role, m.content) for m in history.dump()] == [("user", "one"), ("assistant", "two"), ("user", "three")]
    history.clear()
    assert len(history) == 0
