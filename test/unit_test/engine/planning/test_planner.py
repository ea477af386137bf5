from __future__ import annotations

from typing import Any, Dict, List

import pytest

from planforge_ai.engine.capabilities import CapabilityRegistry, FunctionCapability
from planforge_ai.engine.errors import PlanningError
from planforge_ai.engine.planning import StructuredPlanner
from planforge_ai.engine.schemas.domain import PlanStep


class _ScriptedBackend:
    def __init__(self, *answers: str) -> None:
        self._answers = list(answers)
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self._answers.pop(0)


async def _noop(ctx: Dict[str, Any]) -> None:
    return None


@pytest.fixture
def registry() -> CapabilityRegistry:
    return CapabilityRegistry(
        [
            FunctionCapability(name="search", func=_noop, description="Search the web"),
            FunctionCapability(name="summarize", func=_noop, description="Summarize text"),
        ]
    )


@pytest.mark.asyncio
async def test_create_plan_renders_goal_catalog_and_context(registry: CapabilityRegistry) -> None:
    backend = _ScriptedBackend('[{"agentName": "search", "arguments": {"q": "pricing"}}]')
    planner = StructuredPlanner(reasoning=backend, registry=registry)

    steps = await planner.create_plan("Research pricing", {"region": "EU"})

    assert steps == [PlanStep(agent_name="search", arguments={"q": "pricing"})]
    assert len(backend.prompts) == 1
    prompt = backend.prompts[0]
    assert "Research pricing" in prompt
    assert "Search the web" in prompt and "summarize" in prompt
    assert '"region": "EU"' in prompt


@pytest.mark.asyncio
async def test_create_plan_accepts_empty_plan(registry: CapabilityRegistry) -> None:
    planner = StructuredPlanner(reasoning=_ScriptedBackend("Nothing to do: []"), registry=registry)
    assert await planner.create_plan("noop") == []


@pytest.mark.asyncio
async def test_create_plan_does_not_check_agent_names(registry: CapabilityRegistry) -> None:
    planner = StructuredPlanner(reasoning=_ScriptedBackend('[{"agentName": "unknown"}]'), registry=registry)
    steps = await planner.create_plan("x")
    assert steps == [PlanStep(agent_name="unknown")]


@pytest.mark.asyncio
async def test_create_plan_reasks_exactly_once(registry: CapabilityRegistry) -> None:
    backend = _ScriptedBackend(
        "I would first search and then summarize.",
        '```json\n[{"agentName": "search", "arguments": {}}, {"agentName": "summarize", "arguments": {}}]\n```',
    )
    planner = StructuredPlanner(reasoning=backend, registry=registry)

    steps = await planner.create_plan("Research")

    assert [s.agent_name for s in steps] == ["search", "summarize"]
    assert len(backend.prompts) == 2
    repair = backend.prompts[1]
    assert "Return ONLY the JSON array matching this schema" in repair
    assert "I would first search and then summarize." in repair
    assert "agentName" in repair


@pytest.mark.asyncio
async def test_create_plan_raises_planning_error_with_raw_outputs(registry: CapabilityRegistry) -> None:
    backend = _ScriptedBackend("no json", "still no json", "never asked")
    planner = StructuredPlanner(reasoning=backend, registry=registry)

    with pytest.raises(PlanningError) as exc:
        await planner.create_plan("x")

    assert len(backend.prompts) == 2
    assert exc.value.raw_output is not None
    assert "no json" in exc.value.raw_output and "still no json" in exc.value.raw_output


@pytest.mark.asyncio
async def test_create_workflow_parses_graph(registry: CapabilityRegistry) -> None:
    backend = _ScriptedBackend(
        '{"nodes": ['
        '{"id": "a", "agentName": "search", "arguments": {}, "dependencies": []},'
        '{"id": "b", "agentName": "search", "arguments": {}, "dependencies": []},'
        '{"id": "c", "agentName": "summarize", "arguments": {}, "dependencies": ["a", "b"]}'
        "]}"
    )
    planner = StructuredPlanner(reasoning=backend, registry=registry)

    nodes = await planner.create_workflow("compare")

    assert [n.id for n in nodes] == ["a", "b", "c"]
    assert nodes[2].dependencies == {"a", "b"}


@pytest.mark.asyncio
async def test_create_workflow_rejects_cycles(registry: CapabilityRegistry) -> None:
    backend = _ScriptedBackend(
        '[{"id": "a", "agentName": "search", "dependencies": ["b"]},'
        ' {"id": "b", "agentName": "search", "dependencies": ["a"]}]'
    )
    planner = StructuredPlanner(reasoning=backend, registry=registry)

    with pytest.raises(PlanningError, match="cycle"):
        await planner.create_workflow("loop")


@pytest.fixture
def routed_registry(registry: CapabilityRegistry) -> CapabilityRegistry:
    registry.register(FunctionCapability(name="deploy", func=_noop, description="Deploy a release"))
    registry.add_toolbox("research", "Find and condense information", ["search", "summarize"])
    registry.add_toolbox("release", "Ship software", ["deploy"])
    return registry


@pytest.mark.asyncio
async def test_create_plan_routes_to_a_toolbox_first(routed_registry: CapabilityRegistry) -> None:
    backend = _ScriptedBackend("  `release`\n", '[{"agentName": "deploy"}]')
    planner = StructuredPlanner(reasoning=backend, registry=routed_registry)

    steps = await planner.create_plan("Ship version 2")

    assert steps == [PlanStep(agent_name="deploy")]
    router, plan = backend.prompts
    assert "- research: Find and condense information" in router
    assert "- release: Ship software" in router
    assert "Ship version 2" in router
    assert "Deploy a release" in plan
    assert "Search the web" not in plan


@pytest.mark.asyncio
async def test_unknown_toolbox_answer_raises_planning_error(routed_registry: CapabilityRegistry) -> None:
    backend = _ScriptedBackend("marketing")
    planner = StructuredPlanner(reasoning=backend, registry=routed_registry)

    with pytest.raises(PlanningError, match="no suitable toolbox") as exc:
        await planner.create_plan("Write a tweet")
    assert exc.value.raw_output == "marketing"
    assert len(backend.prompts) == 1


@pytest.mark.asyncio
async def test_create_workflow_uses_the_routed_toolbox(routed_registry: CapabilityRegistry) -> None:
    backend = _ScriptedBackend("research", '[{"id": "s", "agentName": "search"}]')
    planner = StructuredPlanner(reasoning=backend, registry=routed_registry)

    nodes = await planner.create_workflow("Look up pricing")

    assert [n.agent_name for n in nodes] == ["search"]
    assert "Deploy a release" not in backend.prompts[1]
