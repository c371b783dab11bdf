from .errors import (
    Failure,
    StackDefect,
    InvalidCapacity,
    CapacityExceeded,
    StackUnderflow,
    UnbalancedActivation,
    StrayExitBlock,
    CleanupFailed,
    ExitBlock,
    ActivationReturn,
)
from .stack import CleanupStack, CleanupAction
from .scope import (
    ScopeBoundary,
    Scope,
    scope,
    block,
    begin_scope,
    end_scope,
    end_scope_and_exit_block,
    end_scope_and_return,
)
from .activation import activation
from .resource import acquire, closing, enter_context
from .logger import ConsoleLogger, default_logger
