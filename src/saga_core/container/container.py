"""Service container - named collaborator resolution for steps."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar, overload

from saga_core.errors import ResolutionError, create_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ServiceEntry:
    """A registered collaborator: either a ready instance or a factory."""

    name: str
    instance: Any = None
    factory: Callable[[], Any] | None = None

    @property
    def is_factory(self) -> bool:
        return self.factory is not None


class ServiceContainer:
    """Catalog of external collaborators, resolved by name.

    The container neither caches factory results nor retries failed
    factories; both are the collaborator's own concern.
    """

    def __init__(self) -> None:
        self._entries: dict[str, ServiceEntry] = {}

    def register(self, name: str, instance: Any) -> None:
        """Register a ready collaborator instance under ``name``.

        Re-registering a name replaces the previous entry.
        """
        if not name:
            raise ValueError("Collaborator name must be non-empty")
        self._entries[name] = ServiceEntry(name=name, instance=instance)
        logger.debug("Registered collaborator %s", name)

    def register_factory(self, name: str, factory: Callable[[], Any]) -> None:
        """Register a zero-argument factory called on every resolution."""
        if not name:
            raise ValueError("Collaborator name must be non-empty")
        if not callable(factory):
            raise TypeError(f"Factory for '{name}' is not callable")
        self._entries[name] = ServiceEntry(name=name, factory=factory)
        logger.debug("Registered collaborator factory %s", name)

    def unregister(self, name: str) -> bool:
        """Remove a collaborator. Returns False if it was not registered."""
        return self._entries.pop(name, None) is not None

    def has(self, name: str) -> bool:
        return name in self._entries

    def names(self) -> list[str]:
        return sorted(self._entries)

    @overload
    def resolve(self, name: str) -> Any: ...

    @overload
    def resolve(self, name: str, expected: type[T]) -> T: ...

    def resolve(self, name: str, expected: type[Any] | None = None) -> Any:
        """Resolve a collaborator by name.

        Args:
            name: Registered collaborator name
            expected: Optional class or runtime-checkable Protocol the
                collaborator must satisfy

        Returns:
            The collaborator

        Raises:
            ResolutionError: Unknown name, failing factory, or a
                collaborator that does not satisfy ``expected``
        """
        entry = self._entries.get(name)
        if entry is None:
            raise self._error(name, f"No collaborator registered under '{name}'")

        if entry.factory is not None:
            try:
                collaborator = entry.factory()
            except Exception as e:
                error = self._error(name, f"Factory for '{name}' raised: {e}")
                raise error from e
        else:
            collaborator = entry.instance

        if expected is not None and not isinstance(collaborator, expected):
            raise self._error(
                name,
                f"Collaborator '{name}' ({type(collaborator).__name__}) "
                f"does not provide {getattr(expected, '__name__', expected)}",
            )

        return collaborator

    def _error(self, name: str, detail: str) -> ResolutionError:
        error = create_error("RESOLUTION_FAILED", name=name, detail=detail)
        return error  # type: ignore[return-value]
