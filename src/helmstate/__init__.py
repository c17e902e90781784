"""helmstate: desired state reconciliation for helm-managed clusters.

This package loads a declarative desired state file, validates it,
prepares cluster access, reconciles namespaces and discovers the releases
it already manages.

Example usage:
    from helmstate import Pipeline, RunOptions

    report = Pipeline(RunOptions(ns_override="staging")).run("desired_state.yaml")
    for namespace, apps in report.owned.items():
        print(namespace, sorted(app.name for app in apps))
"""

__version__ = "0.4.0"

from helmstate.cli import cli
from helmstate.config import RunOptions
from helmstate.exceptions import (
    BinaryNotFoundError,
    BucketFetchError,
    ContextSetupError,
    HelmstateError,
    NamespaceSetupError,
    NoAppsDefined,
    ParameterFetchError,
    ReleaseDiscoveryError,
    StateFileError,
    ValidationError,
)
from helmstate.models import StateDocument
from helmstate.pipeline import Pipeline, RunReport
from helmstate.validation import validate

__all__ = [
    # Version
    "__version__",
    # Main CLI
    "cli",
    # Classes
    "Pipeline",
    "RunOptions",
    "RunReport",
    "StateDocument",
    "validate",
    # Exceptions
    "HelmstateError",
    "StateFileError",
    "ValidationError",
    "NoAppsDefined",
    "ParameterFetchError",
    "BucketFetchError",
    "BinaryNotFoundError",
    "ContextSetupError",
    "NamespaceSetupError",
    "ReleaseDiscoveryError",
]
