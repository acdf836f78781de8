"""Placeholder substitution for step configuration fields.

Placeholders look like ``{{name}}``. Names are looked up in the
execution-scoped substitution table; unknown names are left untouched so a
later step (or a second pass) can still see the literal placeholder. The
reserved name ``input`` is never taken from the table, it is expanded by the
executors against the live step input via :func:`expand_input`.
"""

from __future__ import annotations

import re
from typing import Any, List, Mapping

from .contracts import (
    GenericHttpStep,
    HostedModelStep,
    KeyValue,
    MarketplaceStep,
    StepDefinition,
)

PLACEHOLDER_RE = re.compile(r"\{\{([^}]+)\}\}")
INPUT_PLACEHOLDER = "{{input}}"
RESERVED_INPUT = "input"


def resolve_template(text: str, table: Mapping[str, str]) -> str:
    """Replace every known ``{{name}}`` in ``text`` with its table value."""

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name == RESERVED_INPUT:
            return match.group(0)
        value = table.get(name)
        return match.group(0) if value is None else value

    return PLACEHOLDER_RE.sub(_substitute, text)


def resolve_value(value: Any, table: Mapping[str, str]) -> Any:
    """Resolve placeholders in strings, lists and dict values recursively.

    Numbers, booleans and ``None`` pass through unchanged.
    """
    if isinstance(value, str):
        return resolve_template(value, table)
    if isinstance(value, list):
        return [resolve_value(item, table) for item in value]
    if isinstance(value, tuple):
        return tuple(resolve_value(item, table) for item in value)
    if isinstance(value, dict):
        return {key: resolve_value(item, table) for key, item in value.items()}
    return value


def expand_input(value: Any, input_text: str) -> Any:
    """Bind ``{{input}}`` to the current step input text."""
    if isinstance(value, str):
        return value.replace(INPUT_PLACEHOLDER, input_text)
    if isinstance(value, list):
        return [expand_input(item, input_text) for item in value]
    if isinstance(value, dict):
        return {key: expand_input(item, input_text) for key, item in value.items()}
    return value


def _resolve_pairs(pairs: List[KeyValue], table: Mapping[str, str]) -> List[KeyValue]:
    return [
        pair.model_copy(update={"value": resolve_template(pair.value, table)})
        for pair in pairs
    ]


def resolve_step(step: StepDefinition, table: Mapping[str, str]) -> StepDefinition:
    """Return a copy of ``step`` with every templated field resolved."""
    if not table:
        return step
    if isinstance(step, HostedModelStep):
        return step.model_copy(
            update={
                "prompt": resolve_template(step.prompt, table),
                "params": resolve_value(step.params, table),
            }
        )
    if isinstance(step, MarketplaceStep):
        return step.model_copy(
            update={
                "prompt": resolve_template(step.prompt, table),
                "params": resolve_value(step.params, table),
                "endpoint_params": _resolve_pairs(step.endpoint_params, table),
            }
        )
    if isinstance(step, GenericHttpStep):
        return step.model_copy(
            update={
                "url": resolve_template(step.url, table),
                "headers": _resolve_pairs(step.headers, table),
                "query_params": _resolve_pairs(step.query_params, table),
                "result_fields": [
                    field.model_copy(update={"key": resolve_template(field.key, table)})
                    for field in step.result_fields
                ],
            }
        )
    return step
