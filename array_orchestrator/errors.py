"""
Array Orchestrator Errors

Exception taxonomy shared by the registry, correlator and provisioning
workflow, plus mapping of FlashArray REST error bodies onto it.
"""

from typing import Any, Optional


class ArrayOrchestratorError(Exception):
    """Base exception for array orchestration"""

    def __init__(self, message: str, error_code: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(self.message)


class ConfigurationError(ArrayOrchestratorError):
    """Invalid or contradictory caller input"""


class NotConfiguredError(ArrayOrchestratorError):
    """No default or registered array connection is available"""


class NotFoundError(ArrayOrchestratorError):
    """No matching array, host, datastore, volume or host group"""


class UnsupportedDatastoreError(ArrayOrchestratorError):
    """Datastore kind or backing device is not managed by an array"""


class ConflictError(ArrayOrchestratorError):
    """Object already exists where creation was required, or membership is inconsistent"""


class RemoteOperationError(ArrayOrchestratorError):
    """A storage array or vSphere call failed"""


class WorkflowCancelledError(ArrayOrchestratorError):
    """Raised when a provisioning run is cancelled between steps"""

    def __init__(self, step: str):
        super().__init__(f"Workflow cancelled before step {step}", error_code="CANCELLED")
        self.step = step


# Substrings of FlashArray error messages and the exception they map onto
ARRAY_ERROR_PATTERNS = (
    ("does not exist", NotFoundError),
    ("not found", NotFoundError),
    ("already exists", ConflictError),
    ("already in use", ConflictError),
    ("already connected", ConflictError),
    ("already belongs", ConflictError),
)


def _extract_error_messages(payload: Any) -> list:
    """
    Pull message strings out of a FlashArray error body.

    FlashArray 1.x returns a list of ``{"msg": ..., "ctx": ...}`` objects,
    2.x returns ``{"errors": [{"message": ..., "context": ...}]}``.
    """
    if isinstance(payload, dict):
        if "errors" in payload:
            payload = payload["errors"]
        else:
            payload = [payload]

    messages = []
    if isinstance(payload, list):
        for item in payload:
            if not isinstance(item, dict):
                continue
            msg = item.get("msg") or item.get("message") or ""
            ctx = item.get("ctx") or item.get("context")
            if ctx and msg:
                messages.append(f"{ctx}: {msg}")
            elif msg:
                messages.append(msg)
    elif isinstance(payload, str) and payload:
        messages.append(payload)
    return messages


def map_array_error(payload: Any, status_code: Optional[int] = None) -> ArrayOrchestratorError:
    """
    Map a FlashArray error response to an orchestrator exception.

    Args:
        payload: Decoded JSON error body (or raw text)
        status_code: HTTP status code of the failed call

    Returns:
        Exception instance ready to raise
    """
    messages = _extract_error_messages(payload)
    message = "; ".join(messages) or f"FlashArray request failed (HTTP {status_code})"
    lowered = message.lower()

    for pattern, error_cls in ARRAY_ERROR_PATTERNS:
        if pattern in lowered:
            return error_cls(message, error_code=pattern.upper().replace(" ", "_"), status_code=status_code)

    if status_code == 404:
        return NotFoundError(message, error_code="NOT_FOUND", status_code=status_code)

    return RemoteOperationError(message, error_code="ARRAY_ERROR", status_code=status_code)
