"""Shared validation types."""

from dataclasses import dataclass, field


@dataclass
class ValidationIssue:
    """Single validation issue (error or warning).

    Used by:
    - ConfigLoader (config validation)
    - WorkflowValidator (workflow definition checks)
    """

    path: str  # e.g., "steps[0].forward" or "store.backend"
    message: str
    severity: str = "error"  # "error" | "warning"


@dataclass
class ValidationResult:
    """Result of validating a config or a workflow definition."""

    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Ensure valid is False if there are errors."""
        if self.errors:
            self.valid = False

    def summary(self) -> str:
        """Join error messages into a single line."""
        return "; ".join(f"{e.path}: {e.message}" for e in self.errors)
