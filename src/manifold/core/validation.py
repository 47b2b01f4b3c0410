"""
Structural validation of a discovered dependency graph.
"""

from dataclasses import dataclass

from manifold.core.dependencies import DependencyGraph
from manifold.exceptions import ConfigurationError, CycleError

# Error kinds
DUPLICATE_NAME = "duplicate_name"
MISSING_REF = "missing_ref"
CYCLE = "cycle"

# Warning kinds
ORPHAN = "orphan"
UNUSED_EPHEMERAL = "unused_ephemeral"


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation error or warning."""

    kind: str
    message: str
    model_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()

    def raise_for_errors(self) -> None:
        """
        Raise if any error is present, aggregating every error message.

        Raises:
            CycleError: If the only errors are cycles
            ConfigurationError: For any other error
        """
        if not self.errors:
            return
        messages = [issue.message for issue in self.errors]
        if all(issue.kind == CYCLE for issue in self.errors):
            names = self.errors[0].model_names
            raise CycleError("; ".join(messages), cycle=[*names, names[0]])
        raise ConfigurationError(
            "Project validation failed:\n" + "\n".join(f"  - {m}" for m in messages),
            details={"errors": messages},
        )


def validate_graph(graph: DependencyGraph) -> ValidationResult:
    """
    Check a graph for structural problems.

    Errors, in order: duplicate names, missing references, cycles.
    Warnings: more than one model without dependents, ephemeral models
    nothing depends on. Never raises.
    """
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    for name in graph.duplicates:
        errors.append(
            ValidationIssue(
                DUPLICATE_NAME,
                f"Duplicate model name '{name}': two different Model objects share this name",
                (name,),
            )
        )

    for name, dep in graph.missing_references():
        errors.append(
            ValidationIssue(
                MISSING_REF,
                f"Model '{name}' depends on '{dep}', which is not registered in this project",
                (name, dep),
            )
        )

    cycle = graph.detect_cycle()
    if cycle:
        errors.append(
            ValidationIssue(CYCLE, f"Circular dependency detected: {' -> '.join(cycle)}", tuple(cycle[:-1]))
        )

    leaves = [name for name in graph.models if not graph.get_dependents(name)]
    if len(leaves) > 1:
        warnings.append(
            ValidationIssue(
                ORPHAN,
                f"Multiple models have no downstream dependents: {', '.join(leaves)}",
                tuple(leaves),
            )
        )

    for name in leaves:
        if graph.models[name].is_ephemeral:
            warnings.append(
                ValidationIssue(
                    UNUSED_EPHEMERAL,
                    f"Ephemeral model '{name}' is never used by another model and will not run",
                    (name,),
                )
            )

    return ValidationResult(valid=not errors, errors=tuple(errors), warnings=tuple(warnings))
