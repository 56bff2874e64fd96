"""
FlashArray REST integration.

Provides authenticated array sessions used by the registry, correlator and
provisioning workflow.
"""

from .connection import ArrayConnection, authenticate, negotiate_rest_version

__all__ = [
    "ArrayConnection",
    "authenticate",
    "negotiate_rest_version",
]
