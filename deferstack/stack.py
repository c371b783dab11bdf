from __future__ import annotations
from typing import Callable, List, Optional, Tuple
from .errors import CapacityExceeded, CleanupFailed, InvalidCapacity, StackUnderflow
from .logger import ConsoleLogger, default_logger

CleanupAction = Callable[[], object]


def _label_of(action: CleanupAction) -> str:
    return getattr(action, "__qualname__", None) or repr(action)


class CleanupStack:
    """Bounded LIFO register of pending cleanup actions.

    Each action is a zero-argument callable registered right after the
    resource it releases was acquired. Actions run strictly in reverse order
    of registration, each exactly once, and only through ``pop_and_run``.

    The capacity is fixed at creation and sized to the largest number of
    resources pending at once within one activation. Going past it is a
    defect of the caller, reported as ``CapacityExceeded`` without touching
    the pending actions.

    Args:
        capacity: Maximum number of simultaneously pending actions
        logger: Where cleanup failures are reported (module default if None)
        raise_errors: Raise ``CleanupFailed`` after an unwind in which
            some action failed; when False failures are only logged

    Example:
        ```python
        stack = CleanupStack(2)
        src = open("in.txt")
        stack.push(src.close)
        dst = open("out.txt", "w")
        stack.push(dst.close)

        stack.unwind_to(0)  # closes dst, then src
        ```
    """
    def __init__(self, capacity: int, logger: Optional[ConsoleLogger] = None, raise_errors: bool = True):
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise InvalidCapacity(f"capacity must be a positive int, got {capacity!r}")
        self._capacity = capacity
        self._actions: List[Tuple[CleanupAction, str]] = []
        self._logger = logger
        self.raise_errors = raise_errors

    @classmethod
    def create(cls, capacity: int, **kwargs) -> "CleanupStack":
        return cls(capacity, **kwargs)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def logger(self) -> ConsoleLogger:
        return self._logger or default_logger()

    def height(self) -> int:
        return len(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    def pending_labels(self) -> List[str]:
        return [label for _, label in reversed(self._actions)]

    def push(self, action: CleanupAction, label: Optional[str] = None) -> None:
        """Register ``action`` as the new top of the stack.

        Raises:
            TypeError: If ``action`` is not callable
            CapacityExceeded: If the stack already holds ``capacity`` actions;
                the stack is left unchanged
        """
        if not callable(action):
            raise TypeError(f"cleanup action must be callable, got {action!r}")
        label = label or _label_of(action)
        if len(self._actions) >= self._capacity:
            raise CapacityExceeded(self._capacity, label)
        self._actions.append((action, label))

    def pop_and_run(self) -> None:
        """Remove the top action and run it.

        The action is removed before it is called, so an exception it raises
        propagates but never leads to a second execution.
        """
        if not self._actions:
            raise StackUnderflow("pop_and_run on an empty cleanup stack")
        action, _ = self._actions.pop()
        action()

    def unwind_to(self, boundary: int) -> None:
        """Run pending actions until the height drops to ``boundary``.

        A failing action is logged and the drain goes on with the next one;
        the failures are reported together once the range is empty.

        Raises:
            StackUnderflow: If ``boundary`` is negative or above the height
            CleanupFailed: If some action raised and ``raise_errors`` is set
        """
        h = len(self._actions)
        if boundary < 0 or boundary > h:
            raise StackUnderflow(f"cannot unwind to {boundary}: stack height is {h}")
        if h == boundary:
            return
        self.logger.debug("unwind", frm=h, to=boundary)
        failures: List[Tuple[str, BaseException]] = []
        interrupt: Optional[BaseException] = None
        while len(self._actions) > boundary:
            label = self._actions[-1][1]
            try:
                self.pop_and_run()
            except Exception as ex:
                self.logger.error(f"cleanup action failed: {label}", error=repr(ex))
                failures.append((label, ex))
            except BaseException as ex:
                # finish the drain before letting e.g. KeyboardInterrupt through
                if interrupt is None: interrupt = ex
        if interrupt is not None:
            raise interrupt
        if failures and self.raise_errors:
            raise CleanupFailed(failures)

    def __repr__(self) -> str:
        return f"CleanupStack(height={len(self._actions)}, capacity={self._capacity})"
