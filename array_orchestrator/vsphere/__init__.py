"""
vSphere integration.

Compute-side collaborator for host sessions, HBA discovery, rescans and
datastore creation.
"""
from .client import VSphereCompute, datastore_from_vim
from .faults import describe_vim_fault

__all__ = ['VSphereCompute', 'datastore_from_vim', 'describe_vim_fault']
