from __future__ import annotations

"""Convenience factories for wiring the execution engine.

This module contains small helpers that build the registry, the reasoning
client, the execution state store and the executors from ``Settings``.

The intent is to keep application wiring and tests concise, while still
allowing deployments to provide their own registry, backend, repository and
dependency bundles.
"""

from typing import Iterable, Optional, Union

from ..core.config import EngineConfig, ReasoningConfig, settings
from .capabilities import ENTRY_POINT_GROUP, Capability, CapabilityRegistry
from .planning.planner import StructuredPlanner
from .reasoning import (
    CircuitBreaker,
    PydanticAIReasoningBackend,
    ReasoningBackend,
    ReasoningClient,
    SyncReasoningBackend,
)
from .remediation import ErrorRemediationAdvisor
from .repos import (
    ExecutionStateRepository,
    InMemoryExecutionStateRepository,
    SqlExecutionStateRepository,
    create_all,
    create_engine,
    create_sessionmaker,
)
from .runtime import (
    EngineDeps,
    GraphExecutor,
    Pipeline,
    PipelineExecutor,
    PipelineRegistry,
    RecoverySweeper,
    SequentialExecutor,
)
from .service import ExecutionService, ExecutionServiceDeps

MEMORY_DATABASE_URL = "memory://"


def build_registry(
    capabilities: Iterable[Capability] = (),
    *,
    load_plugins: bool = False,
    entry_point_group: str = ENTRY_POINT_GROUP,
) -> CapabilityRegistry:
    """Build a ``CapabilityRegistry`` from an explicit list and, optionally, installed plugins."""
    registry = CapabilityRegistry(capabilities)
    if load_plugins:
        registry.load_entry_points(entry_point_group)
    return registry


def build_reasoning_client(
    backend: Union[ReasoningBackend, SyncReasoningBackend, None] = None,
    *,
    config: Optional[ReasoningConfig] = None,
) -> ReasoningClient:
    """Wrap ``backend`` (default: a pydantic_ai agent for ``config.model``) in a ``ReasoningClient``."""
    cfg = config or settings.reasoning
    return ReasoningClient(
        backend if backend is not None else PydanticAIReasoningBackend(cfg.model),
        timeout_seconds=cfg.timeout_seconds,
        retry_attempts=cfg.retry_attempts,
        retry_wait_seconds=cfg.retry_wait_seconds,
        circuit_breaker=CircuitBreaker(
            failure_threshold=cfg.circuit_failure_threshold,
            cooldown_seconds=cfg.circuit_cooldown_seconds,
        ),
        worker_threads=cfg.worker_threads,
    )


async def build_repository(database_url: Optional[str] = None, *, create_tables: bool = True) -> ExecutionStateRepository:
    """Build the execution state store for ``database_url``.

    ``memory://`` selects the in-memory store; any other URL is handed to
    ``create_engine`` (Postgres URLs are normalized to asyncpg).
    """
    url = database_url or settings.database_url
    if url == MEMORY_DATABASE_URL:
        return InMemoryExecutionStateRepository()
    engine = create_engine(url)
    if create_tables:
        await create_all(engine)
    return SqlExecutionStateRepository(create_sessionmaker(engine))


def build_executor(*, deps: EngineDeps, config: Optional[EngineConfig] = None) -> SequentialExecutor:
    """Construct a ``SequentialExecutor`` from config and dependencies."""
    cfg = config or settings.engine
    return SequentialExecutor(
        deps=deps,
        max_recovery_attempts=cfg.max_recovery_attempts,
        live_ttl_seconds=cfg.live_execution_ttl_seconds,
    )


def build_graph_executor(*, registry: CapabilityRegistry, config: Optional[EngineConfig] = None) -> GraphExecutor:
    cfg = config or settings.engine
    return GraphExecutor(capabilities=registry, max_concurrency=cfg.graph_max_concurrency)


def build_service(
    *,
    registry: CapabilityRegistry,
    repository: ExecutionStateRepository,
    reasoning: Union[ReasoningBackend, SyncReasoningBackend, None] = None,
    config: Optional[EngineConfig] = None,
    reasoning_config: Optional[ReasoningConfig] = None,
    pipelines: Iterable[Pipeline] = (),
) -> ExecutionService:
    """Wire an ``ExecutionService``.

    A raw ``reasoning`` backend is wrapped with ``build_reasoning_client`` so
    planning and remediation calls get the timeout, retry budget and circuit
    breaker of ``reasoning_config``; a ``ReasoningClient`` is used as given.

    Without ``reasoning`` the service has no planner and no remediation
    advisor: only explicit plans can be executed and every step failure is
    terminal.
    """
    cfg = config or settings.engine
    planner: Optional[StructuredPlanner] = None
    advisor: Optional[ErrorRemediationAdvisor] = None
    if reasoning is not None:
        client = reasoning if isinstance(reasoning, ReasoningClient) else build_reasoning_client(
            reasoning, config=reasoning_config
        )
        planner = StructuredPlanner(reasoning=client, registry=registry)
        advisor = ErrorRemediationAdvisor(reasoning=client)
    deps = EngineDeps(executions=repository, capabilities=registry, advisor=advisor)
    graph = build_graph_executor(registry=registry, config=cfg)
    return ExecutionService(
        deps=ExecutionServiceDeps(
            executor=build_executor(deps=deps, config=cfg),
            graph=graph,
            planner=planner,
            pipelines=PipelineExecutor(
                capabilities=registry,
                pipelines=PipelineRegistry(pipelines),
                graph=graph,
            ),
        )
    )


def build_recovery_sweeper(
    service: ExecutionService,
    repository: ExecutionStateRepository,
    *,
    config: Optional[EngineConfig] = None,
) -> RecoverySweeper:
    cfg = config or settings.engine
    return RecoverySweeper(
        repository,
        live_ids=service.executor.live_ids,
        interval_seconds=cfg.recovery_sweep_interval_seconds,
    )
