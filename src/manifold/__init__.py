"""
Manifold - dbt-style build orchestration for MongoDB aggregation pipelines.

Models are named pipelines over a raw collection or another model. A
Project discovers the dependency graph behind them, validates it, and runs
it level by level with every independent model in a level in parallel.
"""

__version__ = "0.1.0"

# Config
from manifold.config import Config, load_config

# Store drivers
from manifold.connections import MongoStore, Store

# Core
from manifold.core.dependencies import DependencyGraph, discover
from manifold.core.executor import ModelRunStats, RunResult
from manifold.core.model import MaterializeConfig, MergeOptions, Model, TimeSeriesOptions, model
from manifold.core.plan import ExecutionPlan
from manifold.core.project import Project
from manifold.core.source import Collection
from manifold.core.validation import ValidationIssue, ValidationResult

# Exceptions
from manifold.exceptions import (
    ConfigurationError,
    CycleError,
    EphemeralReferenceError,
    ExecutionError,
    ManifoldError,
    MaterializationError,
    ModelExecutionError,
    TargetNotFoundError,
)

# Logging utilities
from manifold.utils.logging import get_logger, setup_logging, setup_logging_from_config

__all__ = [
    # Models
    "Collection",
    "Model",
    "model",
    "MaterializeConfig",
    "MergeOptions",
    "TimeSeriesOptions",
    # Project
    "Project",
    "DependencyGraph",
    "discover",
    "ExecutionPlan",
    "RunResult",
    "ModelRunStats",
    "ValidationIssue",
    "ValidationResult",
    # Stores
    "Store",
    "MongoStore",
    # Config
    "Config",
    "load_config",
    # Logging
    "setup_logging",
    "setup_logging_from_config",
    "get_logger",
    # Exceptions
    "ManifoldError",
    "ConfigurationError",
    "CycleError",
    "EphemeralReferenceError",
    "TargetNotFoundError",
    "ExecutionError",
    "ModelExecutionError",
    "MaterializationError",
]
