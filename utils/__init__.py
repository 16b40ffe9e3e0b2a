# Utils package for the marketplace settlement backend

from .logging_utils import mask_value
from .transaction_utils import DeadlockError, TransactionError, log_transaction_performance, retry_on_deadlock


__all__ = [
    "mask_value",
    "TransactionError",
    "DeadlockError",
    "retry_on_deadlock",
    "log_transaction_performance",
]
