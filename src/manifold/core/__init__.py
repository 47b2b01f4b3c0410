"""
Core engine: models, dependency discovery, planning and execution.
"""

from manifold.core.dependencies import DependencyGraph, discover
from manifold.core.executor import Executor, ModelRunStats, RunCallbacks, RunResult
from manifold.core.model import MaterializeConfig, MergeOptions, Model, TimeSeriesOptions, model
from manifold.core.plan import ExecutionPlan, create_plan
from manifold.core.project import Project
from manifold.core.source import Collection
from manifold.core.validation import ValidationIssue, ValidationResult, validate_graph

__all__ = [
    "Collection",
    "Model",
    "model",
    "MaterializeConfig",
    "MergeOptions",
    "TimeSeriesOptions",
    "DependencyGraph",
    "discover",
    "ValidationIssue",
    "ValidationResult",
    "validate_graph",
    "ExecutionPlan",
    "create_plan",
    "Executor",
    "RunCallbacks",
    "RunResult",
    "ModelRunStats",
    "Project",
]
