"""
Manifold exception hierarchy.

All domain-specific exceptions inherit from ManifoldError, so callers can
catch any framework error with a single base class while still handling
the structural and execution families separately.

Hierarchy::

    ManifoldError
    ├── ConfigurationError          - bad model/project/config definitions
    │   ├── CycleError              - dependency cycle in the model graph
    │   ├── EphemeralReferenceError - ephemeral model addressed by name
    │   └── TargetNotFoundError     - run()/plan() target not in the project
    └── ExecutionError              - store-level failures during a run
        ├── ModelExecutionError     - single-model failure
        └── MaterializationError    - view/collection provisioning failure
"""

from __future__ import annotations

from collections.abc import Sequence


class ManifoldError(Exception):
    """Base exception for all Manifold errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(ManifoldError):
    """Raised when a model, project, or config file is structurally invalid.

    These are programmer errors that can never succeed, so they surface at
    construction time (or at ``run()`` entry) instead of mid-run.
    """


class CycleError(ConfigurationError):
    """Raised when the model graph contains a dependency cycle."""

    def __init__(self, message: str, *, cycle: Sequence[str] = ()) -> None:
        super().__init__(message, details={"cycle": list(cycle)})
        self.cycle = list(cycle)


class EphemeralReferenceError(ConfigurationError):
    """Raised when an ephemeral model's output is addressed by name.

    Ephemeral models have no backing collection; their stages must be
    inlined into the consuming model instead.
    """

    def __init__(self, model_name: str, referenced_by: str | None = None) -> None:
        if referenced_by:
            message = (
                f"Model '{referenced_by}' references ephemeral model '{model_name}' by name. "
                f"Ephemeral models have no output collection and can only be inlined via 'source'."
            )
        else:
            message = f"Ephemeral model '{model_name}' has no output collection"
        super().__init__(message, details={"model": model_name, "referenced_by": referenced_by})
        self.model_name = model_name
        self.referenced_by = referenced_by


class TargetNotFoundError(ConfigurationError):
    """Raised when a requested target model is not registered in the project."""

    def __init__(self, target: str, project: str | None = None) -> None:
        where = f" in project '{project}'" if project else ""
        super().__init__(f"Target model '{target}' not found{where}", details={"target": target})
        self.target = target


# --- Execution ---------------------------------------------------------------


class ExecutionError(ManifoldError):
    """Raised when executing against the backing store fails."""


class ModelExecutionError(ExecutionError):
    """Raised when a single model fails during execution."""

    def __init__(self, model_name: str, message: str, *, cause: Exception | None = None) -> None:
        full = f"Model '{model_name}' failed: {message}"
        super().__init__(full, details={"model": model_name})
        self.model_name = model_name
        if cause is not None:
            self.__cause__ = cause


class MaterializationError(ExecutionError):
    """Raised when view or collection provisioning fails."""
