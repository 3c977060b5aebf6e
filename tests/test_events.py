import logging

from agentdesk.agents.events import EventChannel, StatusChanged, Thinking
from agentdesk.agents.state import AgentRuntimeState, AgentStatus


def _state():
    return AgentRuntimeState(definition_id="general")


def test_events_are_delivered_in_order_to_every_listener():
    channel = EventChannel()
    first, second = [], []
    channel.subscribe(first.append)
    channel.subscribe(second.append)

    channel.emit(StatusChanged(state=_state()))
    channel.emit(Thinking(state=_state(), text="hmm"))

    assert [event.type for event in first] == ["status_changed", "thinking"]
    assert [event.type for event in second] == ["status_changed", "thinking"]


def test_unsubscribe_stops_delivery():
    channel = EventChannel()
    received = []
    subscription = channel.subscribe(received.append)

    subscription.unsubscribe()
    subscription.unsubscribe()
    channel.emit(StatusChanged(state=_state()))

    assert received == []
    assert subscription.active is False
    assert len(channel) == 0


def test_failing_listener_does_not_block_others(caplog):
    channel = EventChannel()
    received = []

    def broken(event):
        raise RuntimeError("listener bug")

    channel.subscribe(broken)
    channel.subscribe(received.append)

    with caplog.at_level(logging.ERROR, logger="agentdesk.agents.events"):
        channel.emit(StatusChanged(state=_state()))

    assert len(received) == 1
    assert "Event listener failed on status_changed" in caplog.text


def test_runtime_state_snapshot_is_independent():
    state = _state()
    snapshot = state.snapshot()
    snapshot.status = AgentStatus.ERROR
    snapshot.token_usage.add(5, 5)

    assert state.status == AgentStatus.IDLE
    assert state.token_usage.total == 0
    assert snapshot.token_usage.total == 10
