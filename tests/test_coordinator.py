import asyncio

import pytest

from agentdesk.agents import AgentStatus, Coordinator, UnknownAgentError, capability_score
from agentdesk.config import AgentDefinition
from agentdesk.llm import ChatResponse, ScriptedProvider
from agentdesk.memory import InMemoryMemoryStore
from agentdesk.tasks import InMemoryTaskStore, TaskCreate, TaskStatus


class RecordingStore(InMemoryTaskStore):
    def __init__(self):
        super().__init__()
        self.history = []

    def update_task_status(self, task_id, status, **kwargs):
        task = super().update_task_status(task_id, status, **kwargs)
        if task is not None:
            self.history.append((task_id, status))
        return task

    def statuses(self, task_id):
        return [status for tid, status in self.history if tid == task_id]


class GatedProvider:
    """Blocks the first call until the gate opens; tracks overlapping calls."""

    def __init__(self, gate):
        self.gate = gate
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def chat(self, system_prompt, messages, tools=None):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.calls == 1:
                await self.gate.wait()
            return ChatResponse(text=f"answer {self.calls}", model="gated")
        finally:
            self.active -= 1


def _definition(agent_id, capabilities=()):
    return AgentDefinition(id=agent_id, name=agent_id.title(), role="worker", capabilities=tuple(capabilities))


def _coordinator(store=None):
    return Coordinator(store or RecordingStore(), InMemoryMemoryStore())


@pytest.mark.asyncio
async def test_scenario_a_task_needing_approval_ends_in_review():
    store = RecordingStore()
    coordinator = _coordinator(store)
    coordinator.register_agent(_definition("billing", ["reminder", "invoice"]), ScriptedProvider(["Reminder sent."]))

    task = await coordinator.submit(
        TaskCreate(title="Invoice reminder", type="manual", priority=3, requires_approval=True)
    )

    assert store.statuses(task.id) == [TaskStatus.QUEUED, TaskStatus.RUNNING, TaskStatus.REVIEW]
    assert task.status == TaskStatus.REVIEW
    assert task.assigned_agent == "billing"
    assert task.output == {"content": "Reminder sent.", "iterations": 1}
    assert [e.action for e in coordinator.audit.entries(resource_type="task")][:2] == ["task:assigned", "task:created"]


@pytest.mark.asyncio
async def test_scenario_b_no_approval_completes_after_one_call():
    provider = ScriptedProvider(["Done."])
    coordinator = _coordinator()
    coordinator.register_agent(_definition("billing", ["reminder"]), provider)

    task = await coordinator.submit(TaskCreate(title="Invoice reminder", requires_approval=False))

    assert task.status == TaskStatus.COMPLETED
    assert task.completed_at is not None
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_scenario_c_named_task_waits_for_busy_agent():
    store = RecordingStore()
    coordinator = _coordinator(store)
    gate = asyncio.Event()
    agent = coordinator.register_agent(_definition("worker"), GatedProvider(gate))
    completed = []
    coordinator.subscribe(lambda event: event.type == "task_completed" and completed.append(event.task.title))

    first = await coordinator.submit(TaskCreate(title="first", requires_approval=False), dispatch=False)
    running = asyncio.create_task(coordinator.assign(first))
    await asyncio.sleep(0)
    assert agent.status == AgentStatus.BUSY

    low = await coordinator.submit(
        TaskCreate(title="low", priority=4, assigned_agent="worker", requires_approval=False)
    )
    named = await coordinator.submit(
        TaskCreate(title="named", priority=2, assigned_agent="worker", requires_approval=False)
    )
    assert store.get_task(named.id).status == TaskStatus.QUEUED
    assert store.get_task(low.id).status == TaskStatus.QUEUED

    gate.set()
    await running

    assert completed == ["first", "named", "low"]
    assert store.statuses(named.id) == [TaskStatus.QUEUED, TaskStatus.QUEUED, TaskStatus.RUNNING, TaskStatus.COMPLETED]
    assert store.get_task(low.id).status == TaskStatus.COMPLETED
    assert agent.is_idle


@pytest.mark.asyncio
async def test_scenario_d_completion_failure_fails_task():
    coordinator = _coordinator()
    agent = coordinator.register_agent(_definition("general"), ScriptedProvider([]))

    task = await coordinator.submit(TaskCreate(title="Doomed"))

    assert task.status == TaskStatus.FAILED
    assert task.output == {"error": "ScriptedProvider exhausted"}
    assert agent.status == AgentStatus.ERROR
    assert agent.state.error_count == 1
    episodes = coordinator.memory_store.list_episodic("general")
    assert [e.outcome for e in episodes] == ["failed"]


def test_capability_score_is_case_insensitive_substring_count():
    store = InMemoryTaskStore()
    task = store.create_task(TaskCreate(title="Invoice REMINDER", description="send the invoice"))

    assert capability_score(_definition("a", ["Reminder", "invoice", "payroll"]), task) == 2
    assert capability_score(_definition("b", []), task) == 0


def test_best_agent_prefers_higher_score_then_registration_order():
    coordinator = _coordinator()
    coordinator.register_agent(_definition("writer", ["writing"]), ScriptedProvider([]))
    coordinator.register_agent(_definition("research", ["research", "analysis"]), ScriptedProvider([]))
    coordinator.register_agent(_definition("research2", ["research", "analysis"]), ScriptedProvider([]))
    store = coordinator.task_store

    analysis = store.create_task(TaskCreate(title="Research analysis of churn"))
    unrelated = store.create_task(TaskCreate(title="Water the plants"))

    assert coordinator.find_best_agent(analysis).id == "research"
    assert coordinator.find_best_agent(unrelated).id == "writer"
    for _ in range(3):
        assert coordinator.find_best_agent(analysis).id == "research"


@pytest.mark.asyncio
async def test_unknown_target_agent_fails_task():
    coordinator = _coordinator()

    task = await coordinator.submit(TaskCreate(title="Lost", assigned_agent="ghost"))

    assert task.status == TaskStatus.FAILED
    assert task.output == {"error": "Agent ghost not found"}


@pytest.mark.asyncio
async def test_task_stays_queued_without_idle_agents():
    coordinator = _coordinator()
    offline = coordinator.register_agent(_definition("sleepy", ["anything"]), None)

    task = await coordinator.submit(TaskCreate(title="anything at all"))

    assert offline.status == AgentStatus.OFFLINE
    assert task.status == TaskStatus.QUEUED
    assert task.assigned_agent is None


@pytest.mark.asyncio
async def test_concurrent_assigns_never_share_an_agent():
    coordinator = _coordinator()
    gate = asyncio.Event()
    provider = GatedProvider(gate)
    coordinator.register_agent(_definition("solo"), provider)
    store = coordinator.task_store
    one = await coordinator.submit(TaskCreate(title="one", requires_approval=False), dispatch=False)
    two = await coordinator.submit(TaskCreate(title="two", requires_approval=False), dispatch=False)

    both = asyncio.gather(coordinator.assign(one), coordinator.assign(two))
    await asyncio.sleep(0)
    assert store.get_task(one.id).status == TaskStatus.RUNNING
    assert store.get_task(two.id).status == TaskStatus.QUEUED

    gate.set()
    await both

    assert provider.max_active == 1
    assert store.get_task(two.id).status == TaskStatus.COMPLETED


def test_register_agent_rejects_duplicates():
    coordinator = _coordinator()
    coordinator.register_agent(_definition("a"), ScriptedProvider([]))

    with pytest.raises(ValueError):
        coordinator.register_agent(_definition("a"), ScriptedProvider([]))


@pytest.mark.asyncio
async def test_events_are_forwarded_until_unsubscribed():
    coordinator = _coordinator()
    coordinator.register_agent(_definition("a"), ScriptedProvider(["one", "two"]))
    received = []
    subscription = coordinator.subscribe(received.append)

    await coordinator.submit(TaskCreate(title="first", requires_approval=False))
    count = len(received)
    subscription.unsubscribe()
    await coordinator.submit(TaskCreate(title="second", requires_approval=False))

    assert count > 0
    assert len(received) == count
    assert received[-1].type == "task_completed"


@pytest.mark.asyncio
async def test_approve_and_reject_review_tasks():
    coordinator = _coordinator()
    coordinator.register_agent(_definition("a"), ScriptedProvider(["draft", "draft 2"]))

    task = await coordinator.submit(TaskCreate(title="Draft"))
    assert task.status == TaskStatus.REVIEW

    requeued = coordinator.reject(task.id)
    assert requeued.status == TaskStatus.QUEUED
    assert coordinator.approve(task.id) is None

    await coordinator.poll_once()
    assert coordinator.task_store.get_task(task.id).status == TaskStatus.REVIEW
    approved = coordinator.approve(task.id)
    assert approved.status == TaskStatus.COMPLETED
    assert coordinator.reject(task.id) is None


@pytest.mark.asyncio
async def test_poll_once_assigns_queued_batch():
    coordinator = _coordinator()
    coordinator.register_agent(_definition("a"), ScriptedProvider(["ok"] * 5))
    coordinator.register_agent(_definition("b"), ScriptedProvider(["ok"] * 5))
    for title in ("x", "y"):
        await coordinator.submit(TaskCreate(title=title, requires_approval=False), dispatch=False)

    examined = await coordinator.poll_once()

    assert examined == 2
    assert coordinator.task_store.stats().completed == 2
    assert await coordinator.poll_once() == 0


@pytest.mark.asyncio
async def test_polling_picks_up_queued_work():
    coordinator = _coordinator()
    coordinator.register_agent(_definition("a"), ScriptedProvider(["ok"]))
    task = await coordinator.submit(TaskCreate(title="later", requires_approval=False), dispatch=False)

    coordinator.start_polling(0.01)
    assert coordinator.polling
    for _ in range(200):
        if coordinator.task_store.get_task(task.id).status == TaskStatus.COMPLETED:
            break
        await asyncio.sleep(0.01)
    coordinator.stop_polling()

    assert coordinator.task_store.get_task(task.id).status == TaskStatus.COMPLETED
    assert not coordinator.polling


@pytest.mark.asyncio
async def test_reset_agent_after_failure():
    coordinator = _coordinator()
    coordinator.register_agent(_definition("a"), ScriptedProvider([]))
    await coordinator.submit(TaskCreate(title="fails"))

    assert coordinator.get_agent("a").status == AgentStatus.ERROR
    assert coordinator.reset_agent("a").status == AgentStatus.IDLE
    assert [state.status for state in coordinator.agent_states()] == [AgentStatus.IDLE]
    with pytest.raises(UnknownAgentError):
        coordinator.reset_agent("nobody")


@pytest.mark.asyncio
async def test_restarted_polling_waits_for_tick_left_running():
    coordinator = _coordinator()
    release = asyncio.Event()
    state = {"active": 0, "peak": 0, "calls": 0}

    async def slow_poll():
        state["calls"] += 1
        state["active"] += 1
        state["peak"] = max(state["peak"], state["active"])
        try:
            await release.wait()
        finally:
            state["active"] -= 1
        return 0

    coordinator.poll_once = slow_poll
    coordinator.start_polling(0.01)
    for _ in range(200):
        if state["calls"]:
            break
        await asyncio.sleep(0.005)
    coordinator.stop_polling()
    restarted = coordinator.start_polling(0.01)
    await asyncio.sleep(0.05)

    assert state["peak"] == 1
    assert restarted.skipped > 0
    release.set()
    for _ in range(200):
        if state["calls"] >= 2:
            break
        await asyncio.sleep(0.005)
    coordinator.stop_polling()

    assert state["calls"] >= 2
    assert state["peak"] == 1


class VanishingStore(InMemoryTaskStore):
    def update_task_status(self, task_id, status, **kwargs):
        if status == TaskStatus.QUEUED:
            return None
        return super().update_task_status(task_id, status, **kwargs)


@pytest.mark.asyncio
async def test_submit_raises_when_task_cannot_be_queued():
    coordinator = _coordinator(VanishingStore())

    with pytest.raises(RuntimeError, match="could be queued"):
        await coordinator.submit(TaskCreate(title="ghost"), dispatch=False)
