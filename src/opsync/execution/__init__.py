"""opsync execution -- controllers that run operation functions.

Modules
-------
operation    OperationController, OperationState, ProgressInfo
retry        RetryPolicy, RetryScheduler, RetryableOperationController
optimistic   OptimisticMutationCoordinator (snapshot / apply / rollback)
"""

from opsync.execution.operation import (
    OperationController,
    OperationState,
    OperationStatus,
    ProgressInfo,
)
from opsync.execution.optimistic import OptimisticMutationCoordinator, OptimisticSnapshot
from opsync.execution.retry import (
    NO_RETRY,
    RetryableOperationController,
    RetryPolicy,
    RetryScheduler,
    RetryTicket,
    compute_delay,
)

__all__ = [
    "NO_RETRY",
    "OperationController",
    "OperationState",
    "OperationStatus",
    "OptimisticMutationCoordinator",
    "OptimisticSnapshot",
    "ProgressInfo",
    "RetryPolicy",
    "RetryScheduler",
    "RetryTicket",
    "RetryableOperationController",
    "compute_delay",
]
