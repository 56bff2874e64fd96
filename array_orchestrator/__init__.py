"""
Array Orchestrator - FlashArray and vSphere storage correlation and provisioning.

Provides:
- Registry of live FlashArray connections
- Correlation of datastores, ESXi hosts and clusters with arrays, hosts and host groups
- Workload domain provisioning with rollback
"""

__version__ = "1.0.0"

from .context import OperationContext
from .correlator import ResourceCorrelator
from .errors import (
    ArrayOrchestratorError,
    ConfigurationError,
    ConflictError,
    NotConfiguredError,
    NotFoundError,
    RemoteOperationError,
    UnsupportedDatastoreError,
    WorkflowCancelledError,
)
from .registry import ConnectionRegistry
from .workflow import WorkloadDomainWorkflow, WorkflowStep

__all__ = [
    "OperationContext",
    "ResourceCorrelator",
    "ConnectionRegistry",
    "WorkloadDomainWorkflow",
    "WorkflowStep",
    "ArrayOrchestratorError",
    "ConfigurationError",
    "ConflictError",
    "NotConfiguredError",
    "NotFoundError",
    "RemoteOperationError",
    "UnsupportedDatastoreError",
    "WorkflowCancelledError",
]
