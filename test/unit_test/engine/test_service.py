from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, List

import pytest

from planforge_ai.core.config import EngineConfig, ReasoningConfig
from planforge_ai.engine.capabilities import CapabilityRegistry, FunctionCapability
from planforge_ai.engine.errors import (
    ExecutionCancelled,
    ExecutionFailed,
    ExecutionNotFound,
    PipelineNotFound,
    PlanningError,
)
from planforge_ai.engine.factory import (
    MEMORY_DATABASE_URL,
    build_reasoning_client,
    build_recovery_sweeper,
    build_registry,
    build_repository,
    build_service,
)
from planforge_ai.engine.repos import InMemoryExecutionStateRepository, SqlExecutionStateRepository
from planforge_ai.engine.runtime import Pipeline
from planforge_ai.engine.schemas.domain import (
    APPROVAL_GATE_AGENT,
    ExecutionState,
    ExecutionStatus,
    PlanStep,
    WorkflowNode,
)

_CONFIG = EngineConfig(max_recovery_attempts=1, graph_max_concurrency=2, recovery_sweep_interval_seconds=0.01)


class _ScriptedBackend:
    def __init__(self, *answers: str) -> None:
        self._answers = list(answers)
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self._answers.pop(0)


def _registry(**extra: FunctionCapability) -> CapabilityRegistry:
    async def _greet(context: Dict[str, Any]) -> Dict[str, Any]:
        return {"greeting": f"hello {context.get('who', 'world')}"}

    async def _shout(context: Dict[str, Any]) -> Dict[str, Any]:
        return {"shout": context["greeting"].upper()}

    async def _deploy(context: Dict[str, Any]) -> Dict[str, Any]:
        return {"deployed": True}

    async def _fetch(context: Dict[str, Any]) -> Dict[str, Any]:
        if context.get("url") != "https://ok":
            raise ConnectionError(f"cannot reach {context.get('url')}")
        return {"page": "<html/>"}

    caps = [
        FunctionCapability(name="greet", func=_greet, description="Greet someone"),
        FunctionCapability(name="shout", func=_shout, description="Upper-case the greeting"),
        FunctionCapability(name="deploy", func=_deploy, description="Deploy", requires_approval=True),
        FunctionCapability(name="fetch", func=_fetch, description="Fetch a page"),
        *extra.values(),
    ]
    return build_registry(caps)


@pytest.fixture
def repo() -> InMemoryExecutionStateRepository:
    return InMemoryExecutionStateRepository()


@pytest.mark.asyncio
async def test_build_repository_selects_store_by_url(tmp_path: Path) -> None:
    assert isinstance(await build_repository(MEMORY_DATABASE_URL), InMemoryExecutionStateRepository)

    sql = await build_repository(f"sqlite+aiosqlite:///{tmp_path / 'svc.db'}")
    try:
        assert isinstance(sql, SqlExecutionStateRepository)
        state = ExecutionState(plan_steps=[PlanStep(agent_name="greet")])
        await sql.create(state)
        assert (await sql.get(state.id)) is not None
    finally:
        await sql.session_factory.kw["bind"].dispose()


def test_build_reasoning_client_uses_config() -> None:
    cfg = ReasoningConfig(retry_attempts=7, circuit_failure_threshold=9, circuit_cooldown_seconds=3)
    client = build_reasoning_client(_ScriptedBackend(), config=cfg)
    assert client.circuit_breaker.state == "closed"
    assert client._retry_attempts == 7


@pytest.mark.asyncio
async def test_submit_and_wait_for_explicit_plan(repo: InMemoryExecutionStateRepository) -> None:
    service = build_service(registry=_registry(), repository=repo, config=_CONFIG)

    execution_id = await service.submit(
        plan=[PlanStep(agent_name="greet"), PlanStep(agent_name="shout")],
        context={"who": "ada"},
        session_id="sess",
    )
    results = await service.wait(execution_id)

    assert [r.agent_name for r in results] == ["greet", "shout"]
    assert await service.get_status(execution_id) == ExecutionStatus.completed
    stored = await repo.get(execution_id)
    assert stored is not None
    assert stored.session_id == "sess"
    assert stored.accumulated_context["shout"] == "HELLO ADA"
    assert await service.wait(execution_id) == results


@pytest.mark.asyncio
async def test_submit_pauses_for_approval_then_resume_completes(repo: InMemoryExecutionStateRepository) -> None:
    service = build_service(registry=_registry(), repository=repo, config=_CONFIG)

    execution_id = await service.submit(plan=[PlanStep(agent_name="greet"), PlanStep(agent_name="deploy")])
    paused = await service.wait(execution_id)

    assert [r.agent_name for r in paused] == ["greet", APPROVAL_GATE_AGENT]
    assert await service.get_status(execution_id) == ExecutionStatus.pending_approval

    await service.resume(execution_id)
    final = await service.wait(execution_id)

    assert [r.agent_name for r in final] == ["greet", APPROVAL_GATE_AGENT, "deploy"]
    assert await service.get_status(execution_id) == ExecutionStatus.completed


@pytest.mark.asyncio
async def test_resume_unknown_execution_raises(repo: InMemoryExecutionStateRepository) -> None:
    service = build_service(registry=_registry(), repository=repo, config=_CONFIG)
    with pytest.raises(ExecutionNotFound):
        await service.resume("nope")


@pytest.mark.asyncio
async def test_failure_without_reasoning_is_terminal(repo: InMemoryExecutionStateRepository) -> None:
    service = build_service(registry=_registry(), repository=repo, config=_CONFIG)

    execution_id = await service.submit(plan=[PlanStep(agent_name="fetch", arguments={"url": "https://down"})])

    with pytest.raises(ExecutionFailed) as exc:
        await service.wait(execution_id)
    assert "cannot reach https://down" in exc.value.reason
    assert await service.get_status(execution_id) == ExecutionStatus.failed
    with pytest.raises(ExecutionFailed):
        await service.wait(execution_id)


@pytest.mark.asyncio
async def test_cancel_background_execution(repo: InMemoryExecutionStateRepository) -> None:
    started = asyncio.Event()

    async def _hang(context: Dict[str, Any]) -> None:
        started.set()
        await asyncio.Event().wait()

    service = build_service(
        registry=_registry(hang=FunctionCapability(name="hang", func=_hang)),
        repository=repo,
        config=_CONFIG,
    )
    execution_id = await service.submit(plan=[PlanStep(agent_name="greet"), PlanStep(agent_name="hang")])
    await asyncio.wait_for(started.wait(), timeout=5)

    assert await service.cancel(execution_id) is True

    with pytest.raises(ExecutionCancelled):
        await service.wait(execution_id)
    assert await service.get_status(execution_id) == ExecutionStatus.cancelled
    assert await service.cancel(execution_id) is False


@pytest.mark.asyncio
async def test_shutdown_cancels_in_flight_executions(repo: InMemoryExecutionStateRepository) -> None:
    started = asyncio.Event()

    async def _hang(context: Dict[str, Any]) -> None:
        started.set()
        await asyncio.Event().wait()

    service = build_service(
        registry=_registry(hang=FunctionCapability(name="hang", func=_hang)),
        repository=repo,
        config=_CONFIG,
    )
    execution_id = await service.submit(plan=[PlanStep(agent_name="hang")])
    await asyncio.wait_for(started.wait(), timeout=5)

    await service.shutdown()

    assert await service.get_status(execution_id) == ExecutionStatus.cancelled
    assert service.executor.live_ids() == []


@pytest.mark.asyncio
async def test_goal_is_planned_and_failed_step_is_remediated(repo: InMemoryExecutionStateRepository) -> None:
    backend = _ScriptedBackend(
        '```json\n[{"agentName": "fetch", "arguments": {"url": "https://typo"}}]\n```',
        '{"action": "RETRY_WITH_FIX", "justification": "fix the host", "modifiedArguments": {"url": "https://ok"}}',
    )
    service = build_service(registry=_registry(), repository=repo, reasoning=backend, config=_CONFIG)

    results = await service.run(goal="Fetch the status page")

    assert [r.agent_name for r in results] == ["fetch"]
    assert results[0].details == {"page": "<html/>"}
    assert "Fetch the status page" in backend.prompts[0]
    assert "cannot reach https://typo" in backend.prompts[1]


@pytest.mark.asyncio
async def test_invalid_plan_creates_no_execution(repo: InMemoryExecutionStateRepository) -> None:
    backend = _ScriptedBackend("no idea", "still no idea")
    service = build_service(registry=_registry(), repository=repo, reasoning=backend, config=_CONFIG)

    with pytest.raises(PlanningError):
        await service.submit(goal="do something")
    assert await repo.list() == []


@pytest.mark.asyncio
async def test_plan_arguments_are_validated(repo: InMemoryExecutionStateRepository) -> None:
    service = build_service(registry=_registry(), repository=repo, config=_CONFIG)

    with pytest.raises(ValueError):
        await service.submit()
    with pytest.raises(ValueError):
        await service.submit(goal="g", plan=[])
    with pytest.raises(ValueError, match="planner"):
        await service.run(goal="needs a planner")
    with pytest.raises(ValueError):
        await service.run_workflow()


@pytest.mark.asyncio
async def test_run_workflow_with_nodes_and_with_goal(repo: InMemoryExecutionStateRepository) -> None:
    backend = _ScriptedBackend(
        '{"workflow": [{"id": "g", "agentName": "greet"}, {"id": "s", "agentName": "shout", "dependsOn": ["g"]}]}'
    )
    service = build_service(registry=_registry(), repository=repo, reasoning=backend, config=_CONFIG)

    explicit = await service.run_workflow(
        nodes=[
            WorkflowNode(id="g", agent_name="greet"),
            WorkflowNode(id="s", agent_name="shout", dependencies={"g"}),
        ],
        context={"who": "bob"},
    )
    assert [r.details for r in explicit] == [{"greeting": "hello bob"}, {"shout": "HELLO BOB"}]

    planned = await service.run_workflow(goal="greet loudly")
    assert [r.node_id for r in planned] == ["g", "s"]
    assert planned[-1].details == {"shout": "HELLO WORLD"}
    assert await repo.list() == []


@pytest.mark.asyncio
async def test_recovery_sweeper_ignores_live_executions(repo: InMemoryExecutionStateRepository) -> None:
    started = asyncio.Event()

    async def _hang(context: Dict[str, Any]) -> None:
        started.set()
        await asyncio.Event().wait()

    service = build_service(
        registry=_registry(hang=FunctionCapability(name="hang", func=_hang)),
        repository=repo,
        config=_CONFIG,
    )
    orphan = ExecutionState(plan_steps=[PlanStep(agent_name="greet")])
    await repo.create(orphan)
    live_id = await service.submit(plan=[PlanStep(agent_name="hang")])
    await asyncio.wait_for(started.wait(), timeout=5)

    sweeper = build_recovery_sweeper(service, repo, config=_CONFIG)
    try:
        assert await sweeper.start() == [orphan.id]
        assert await service.get_status(live_id) == ExecutionStatus.running
    finally:
        await sweeper.stop()
        await service.shutdown()


@pytest.mark.asyncio
async def test_submitted_execution_is_not_swept_before_it_starts(repo: InMemoryExecutionStateRepository) -> None:
    service = build_service(registry=_registry(), repository=repo, config=_CONFIG)
    sweeper = build_recovery_sweeper(service, repo, config=_CONFIG)

    execution_id = await service.submit(plan=[PlanStep(agent_name="greet")])
    assert await sweeper.sweep_once() == []

    results = await service.wait(execution_id)
    assert [r.agent_name for r in results] == ["greet"]
    assert await service.get_status(execution_id) == ExecutionStatus.completed


class _FlakyBackend(_ScriptedBackend):
    """Raises ``ConnectionError`` for the first ``failures`` calls."""

    def __init__(self, *answers: str, failures: int = 0) -> None:
        super().__init__(*answers)
        self._failures = failures

    async def complete(self, prompt: str) -> str:
        if self._failures:
            self._failures -= 1
            self.prompts.append(prompt)
            raise ConnectionError("backend hiccup")
        return await super().complete(prompt)


_FAST_REASONING = ReasoningConfig(retry_attempts=2, retry_wait_seconds=0, timeout_seconds=5)


@pytest.mark.asyncio
async def test_raw_backend_gets_retries_from_reasoning_config(repo: InMemoryExecutionStateRepository) -> None:
    backend = _FlakyBackend('[{"agentName": "greet"}]', failures=1)
    service = build_service(
        registry=_registry(), repository=repo, reasoning=backend, config=_CONFIG, reasoning_config=_FAST_REASONING
    )

    execution_id = await service.submit(goal="Say hello")

    assert [r.agent_name for r in await service.wait(execution_id)] == ["greet"]
    assert len(backend.prompts) == 2


@pytest.mark.asyncio
async def test_unreachable_backend_during_remediation_fails_the_execution(
    repo: InMemoryExecutionStateRepository,
) -> None:
    backend = _FlakyBackend(failures=10)
    service = build_service(
        registry=_registry(), repository=repo, reasoning=backend, config=_CONFIG, reasoning_config=_FAST_REASONING
    )

    with pytest.raises(ExecutionFailed) as exc:
        await service.run(plan=[PlanStep(agent_name="fetch", arguments={"url": "https://down"})])

    assert "remediation unavailable" in exc.value.reason
    assert (await repo.list())[0].status == ExecutionStatus.failed
    assert service.executor.live_ids() == []


@pytest.mark.asyncio
async def test_run_pipeline_by_name(repo: InMemoryExecutionStateRepository) -> None:
    service = build_service(
        registry=_registry(),
        repository=repo,
        config=_CONFIG,
        pipelines=[Pipeline(name="greet-loudly", stages=[["greet"], ["shout"]])],
    )

    assert service.pipelines() == ["greet-loudly"]
    results = await service.run_pipeline("greet-loudly", {"who": "eve"})

    assert [r.details for r in results] == [{"greeting": "hello eve"}, {"shout": "HELLO EVE"}]
    with pytest.raises(PipelineNotFound):
        await service.run_pipeline("unknown")
    assert await repo.list() == []
