"""Prompt templates for the planner and the remediation advisor."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable

PLAN_PROMPT = """You are an expert planner for an automated workflow engine.
Decompose the task into an ordered list of steps. Use only the tools listed below.

Task:
{goal}

Available tools (JSON):
{tools}

Initial context (JSON):
{context}

Answer with a JSON array only. Each element must be an object:
{{"agentName": "<tool name>", "arguments": {{...}}}}
"""

WORKFLOW_PROMPT = """You are an expert planner for an automated workflow engine.
Decompose the goal into a dependency graph (DAG) of steps so independent steps can run in parallel.
Use only the tools listed below.

Goal:
{goal}

Available tools (JSON):
{tools}

Initial context (JSON):
{context}

Answer with a JSON array only. Each element must be an object:
{{"id": "<unique node id>", "agentName": "<tool name>", "arguments": {{...}}, "dependencies": ["<node id>", ...]}}
"""

ROUTER_PROMPT = """You route tasks of an automated workflow engine to a toolbox.
Pick the single toolbox best suited to the task below.

Task:
{goal}

Toolboxes:
{toolboxes}

Answer with the toolbox name only, exactly as listed.
"""

REPAIR_PROMPT = """Your previous answer could not be parsed.

Previous answer:
{previous}

Return ONLY the JSON array matching this schema, with no prose and no markdown:
{schema}
"""

REMEDIATION_PROMPT = """A step of an automated workflow failed. Decide whether it can be retried with corrected arguments.

Failed tool: {agent_name}
Input arguments (JSON):
{arguments}

Error message:
{error_message}

Stack trace (excerpt):
{stack_trace}

Answer with a JSON object only:
{{"action": "RETRY_WITH_FIX" | "FAIL_GRACEFULLY", "justification": "<why>", "modifiedArguments": {{...}} | null}}
Use RETRY_WITH_FIX only if changing the arguments is likely to fix the error.
"""


def to_prompt_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def render(template: str, **values: Any) -> str:
    return template.format(**values)


def render_context(context: Dict[str, Any]) -> str:
    return to_prompt_json(context or {})


def render_toolboxes(toolboxes: Iterable[Any]) -> str:
    return "\n".join(f"- {t.name}: {t.description}" for t in toolboxes)
