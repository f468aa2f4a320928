"""Step definitions: a forward action plus an optional compensation."""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from saga_core.engine.types import ExecutionContext

ForwardFn = Callable[
    [Any, "ExecutionContext"], "StepResponse | Any | Awaitable[StepResponse | Any]"
]
CompensateFn = Callable[[Any, "ExecutionContext"], "None | Awaitable[None]"]

_OUTPUT = object()  # compensation data defaults to the output


class StepResponse:
    """Result of a forward action.

    ``StepResponse(output)`` hands the output itself to the compensation.
    ``StepResponse(output, data)`` hands ``data`` instead, typically an
    identifier or the previous state. ``StepResponse(output, None)`` declares
    that this execution left nothing to undo.
    """

    __slots__ = ("output", "compensation_data")

    def __init__(self, output: Any = None, compensation_data: Any = _OUTPUT):
        self.output = output
        self.compensation_data = output if compensation_data is _OUTPUT else compensation_data

    def __repr__(self) -> str:
        return f"StepResponse(output={self.output!r}, compensation_data={self.compensation_data!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StepResponse):
            return NotImplemented
        return (self.output, self.compensation_data) == (other.output, other.compensation_data)


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass
class StepDefinition:
    """The atomic unit of work.

    Both functions may be plain or ``async``. The compensation receives the
    compensation data captured by the forward action, never the forward
    input, so it must not depend on state that only existed during the
    forward call.
    """

    name: str
    forward: ForwardFn
    compensate: CompensateFn | None = None
    description: str | None = None

    @property
    def is_compensable(self) -> bool:
        return self.compensate is not None

    def compensation(self, fn: CompensateFn) -> CompensateFn:
        """Decorator attaching the compensation function.

        Example:
            @step("reserve-inventory")
            async def reserve_inventory(data, ctx): ...

            @reserve_inventory.compensation
            async def release_inventory(reservation, ctx): ...
        """
        self.compensate = fn
        return fn

    async def run_forward(self, input: Any, ctx: "ExecutionContext") -> StepResponse:
        """Run the forward action, wrapping plain return values."""
        result = await _call(self.forward, input, ctx)
        if isinstance(result, StepResponse):
            return result
        return StepResponse(result)

    async def run_compensation(self, data: Any, ctx: "ExecutionContext") -> None:
        if self.compensate is None:
            return
        await _call(self.compensate, data, ctx)


def step(
    name: str | None = None,
    *,
    description: str | None = None,
) -> Callable[[ForwardFn], StepDefinition]:
    """Decorator turning a forward function into a StepDefinition.

    The step name defaults to the function name with underscores replaced
    by hyphens. The docstring is used as description when none is given.
    """

    def decorator(fn: ForwardFn) -> StepDefinition:
        return StepDefinition(
            name=name or fn.__name__.replace("_", "-"),
            forward=fn,
            description=description or inspect.getdoc(fn),
        )

    return decorator


def create_step(
    name: str,
    forward: ForwardFn,
    compensate: CompensateFn | None = None,
    description: str | None = None,
) -> StepDefinition:
    """Functional form of ``@step``."""
    return StepDefinition(
        name=name,
        forward=forward,
        compensate=compensate,
        description=description,
    )
