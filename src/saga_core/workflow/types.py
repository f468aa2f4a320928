"""Workflow data model types."""

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel

from saga_core.errors import create_error

from .step import StepDefinition


class WiringScope:
    """Read-only view handed to wiring and result functions.

    Exposes the workflow input and the outputs of the steps that already
    ran in this invocation. Reading the output of a step that has not run
    yet raises ``StepForwardError(WIRING_INVALID)``.
    """

    def __init__(self, input: Any, outputs: Mapping[str, Any], reader: str | None = None):
        self._input = input
        self._outputs = MappingProxyType(dict(outputs))
        self._reader = reader

    @property
    def input(self) -> Any:
        return self._input

    @property
    def outputs(self) -> Mapping[str, Any]:
        return self._outputs

    def output(self, step_id: str) -> Any:
        if step_id not in self._outputs:
            raise create_error(
                "WIRING_INVALID",
                step_id=self._reader or "result",
                ref=step_id,
            )
        return self._outputs[step_id]


WireFn = Callable[[WiringScope], Any]


@dataclass
class WorkflowNode:
    """A step placed in a workflow, with its wiring."""

    id: str
    step: StepDefinition
    wire: WireFn | None = None  # None = receive the workflow input


@dataclass
class WorkflowDefinition:
    """Static, ordered composition of steps.

    A definition holds no per-invocation state, so one instance can be
    executed by any number of concurrent invocations.
    """

    name: str
    version: str = "1.0"
    steps: list[WorkflowNode] = field(default_factory=list)
    input_model: type[BaseModel] | None = None
    result: WireFn | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        self.steps = [
            node if isinstance(node, WorkflowNode) else WorkflowNode(id=node.name, step=node)
            for node in self.steps
        ]

    def then(
        self,
        step: StepDefinition,
        wire: WireFn | None = None,
        id: str | None = None,
    ) -> "WorkflowDefinition":
        """Append a step. Declaration order is execution order.

        Args:
            step: Step to run
            wire: Maps the scope (input + prior outputs) to the step input
            id: Node id, defaults to the step name; needed when the same
                step appears twice

        Returns:
            self, for chaining
        """
        self.steps.append(WorkflowNode(id=id or step.name, step=step, wire=wire))
        return self

    def returns(self, result: WireFn) -> "WorkflowDefinition":
        """Set the function mapping the final scope to the workflow result."""
        self.result = result
        return self

    def node(self, step_id: str) -> WorkflowNode | None:
        for node in self.steps:
            if node.id == step_id:
                return node
        return None

    @property
    def step_ids(self) -> list[str]:
        return [node.id for node in self.steps]

    def __iter__(self) -> Iterator[WorkflowNode]:
        return iter(self.steps)


@dataclass
class WorkflowEntry:
    """Registry entry for a workflow."""

    workflow: WorkflowDefinition
    registered_at: str
    source: str = "api"
