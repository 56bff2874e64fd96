"""
Request-scoped operation context.

Replaces a process-wide "current array" pointer. Correlation lookups record
the array they resolved here; the value is last-writer-wins and only tells a
caller what the most recent lookup found. Pass connections explicitly when
correctness matters.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class OperationContext:
    current_array: Optional[Any] = None
    warnings: List[str] = field(default_factory=list)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def record_array(self, connection) -> None:
        self.current_array = connection

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()
