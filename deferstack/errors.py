from __future__ import annotations
from typing import Any, Generic, List, Optional, Tuple, TypeVar

E = TypeVar("E"); A = TypeVar("A")


class Failure(Exception, Generic[E]):
    """A business failure carrying an arbitrary error payload.

    The cleanup core never raises this; it exists for application code that
    wants to tell expected failures apart from defects.
    """
    def __init__(self, error: E, annotations: Optional[list[str]] = None):
        super().__init__(repr(error)); self.error = error; self.annotations = list(annotations or [])


class StackDefect(RuntimeError):
    """Protocol or sizing defect in the code driving a cleanup stack.

    Defects are not runtime conditions to recover from: they signal that the
    caller under-provisioned a stack or unwound past a scope it does not own.
    """


class InvalidCapacity(StackDefect):
    pass


class CapacityExceeded(StackDefect):
    def __init__(self, capacity: int, label: str):
        super().__init__(f"cleanup stack full (capacity={capacity}) while registering {label!r}")
        self.capacity = capacity; self.label = label


class StackUnderflow(StackDefect):
    pass


class UnbalancedActivation(StackDefect):
    def __init__(self, name: str, pending: int):
        super().__init__(f"activation {name!r} returned with {pending} pending cleanup action(s)")
        self.name = name; self.pending = pending


class StrayExitBlock(StackDefect):
    def __init__(self, name: str):
        super().__init__(f"exit_block signal escaped activation {name!r} with no enclosing block()")
        self.name = name


class CleanupFailed(Exception):
    """Raised once an unwind has fully drained and some actions failed."""
    def __init__(self, failures: List[Tuple[str, BaseException]]):
        names = ", ".join(label for label, _ in failures)
        super().__init__(f"{len(failures)} cleanup action(s) failed: {names}")
        self.failures = list(failures)


class ExitBlock(BaseException):
    """Control signal: leave the innermost enclosing ``block()``."""


class ActivationReturn(BaseException, Generic[A]):
    """Control signal: return ``value`` from the enclosing activation."""
    def __init__(self, value: Any = None):
        super().__init__(value); self.value = value
