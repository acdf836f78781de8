"""Fan-in merging and substitution-table bookkeeping."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional

from .contracts import (
    Edge,
    ExecutionInput,
    FileInput,
    InputStep,
    MediaType,
    StepDefinition,
    StepOutput,
)


def dedupe_files(files: Iterable[FileInput]) -> List[FileInput]:
    """Drop files whose URL was already seen, keeping the first occurrence."""
    seen: set[str] = set()
    unique: List[FileInput] = []
    for file in files:
        if file.url in seen:
            continue
        seen.add(file.url)
        unique.append(file)
    return unique


class DependencyResolver:
    """Compute the effective input of a step from its parents' outputs.

    Parents come from the edge list only. Execution order is the declared
    step order, so a parent that has not run yet simply contributes nothing.
    """

    def __init__(self, edges: Iterable[Edge]) -> None:
        self._parents: Dict[str, List[str]] = {}
        for edge in edges:
            self._parents.setdefault(edge.target, []).append(edge.source)

    def parents_of(self, step_id: str) -> List[str]:
        return list(self._parents.get(step_id, []))

    def resolve(
        self,
        step: StepDefinition,
        current: StepOutput,
        outputs: Mapping[str, StepOutput],
        override: Optional[StepOutput] = None,
    ) -> StepOutput:
        if isinstance(step, InputStep) and override is not None:
            return override

        parent_outputs = [
            outputs[pid] for pid in self.parents_of(step.id) if pid in outputs
        ]
        if not parent_outputs:
            return current

        merged_text = "\n\n".join(o.text for o in parent_outputs if o.text)
        merged_files = [f for o in parent_outputs for f in o.files]
        return StepOutput(
            text=merged_text or current.text,
            files=dedupe_files(merged_files + list(current.files)),
        )


# ----------------------------------------------------------------------
# Substitution table
def step_input_override(
    step: StepDefinition, execution_input: ExecutionInput
) -> Optional[StepOutput]:
    """Return the caller's per-step input for an Input step, if any."""
    if not isinstance(step, InputStep):
        return None
    data = execution_input.step_inputs.get(step.id)
    if data is None:
        return None
    return StepOutput(text=data.text, files=list(data.files))


def seed_table(
    steps: Iterable[StepDefinition], execution_input: ExecutionInput
) -> Dict[str, str]:
    """Build the initial table from Input-step anchors and caller parameters.

    Input steps are numbered from 1 in execution order. Each accepted media
    type yields ``input_{n}_{type}``: the text for ``text``, otherwise the URL
    of the first matching file (empty when there is none).
    """
    table: Dict[str, str] = {}
    input_steps = [s for s in steps if isinstance(s, InputStep)]
    for n, step in enumerate(input_steps, start=1):
        data = step_input_override(step, execution_input) or execution_input.as_step_output()
        for media_type in step.accept_types or [MediaType.TEXT]:
            key = f"input_{n}_{media_type.value}"
            if media_type == MediaType.TEXT:
                table[key] = data.text
            else:
                match = data.files_of(media_type)
                table[key] = match[0].url if match else ""

    for key, value in execution_input.params.items():
        table[key] = "" if value is None else str(value)
    return table


def add_custom_params(table: Dict[str, str], step: StepDefinition) -> None:
    for param in step.custom_params:
        if param.name:
            table[param.name] = param.value


def add_step_anchors(table: Dict[str, str], step_id: str, output: StepOutput) -> None:
    """Expose a finished step's text and first file per media type."""
    table[f"step_{step_id}_output"] = output.text
    for file in output.files:
        key = f"step_{step_id}_{file.media_type.value}"
        if not table.get(key):
            table[key] = file.url


def resolve_file_bindings(
    bindings: Iterable[str], table: Mapping[str, str]
) -> List[FileInput]:
    """Turn table references that hold file URLs into file inputs.

    The media type is the last ``_`` separated segment of the binding name
    (``input_1_image`` -> image); unrecognised suffixes become documents.
    """
    files: List[FileInput] = []
    for binding in bindings:
        url = table.get(binding)
        if not url:
            continue
        suffix = binding.rsplit("_", 1)[-1]
        try:
            media_type = MediaType(suffix)
        except ValueError:
            media_type = MediaType.DOCUMENT
        files.append(FileInput(url=url, media_type=media_type, name=binding))
    return files
