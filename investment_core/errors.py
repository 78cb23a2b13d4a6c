"""
Engine Error Taxonomy

Every engine operation fails with one of these typed exceptions. Messages name
the specific requirement that was not met so the calling layer can show them
to the user verbatim.
"""

import functools
import logging
from typing import Callable, TypeVar

T = TypeVar("T")


class InvestmentError(Exception):
    """Base class for all engine failures"""
    code = "investment_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(InvestmentError):
    """Bad input shape or range (amount below minimum, empty address, ...)"""
    code = "validation_error"


class InsufficientFunds(InvestmentError):
    """Requested amount exceeds the relevant balance or bucket"""
    code = "insufficient_funds"


class NotFound(InvestmentError):
    """Unknown account, investment, product, request or transaction"""
    code = "not_found"


class InvalidStateTransition(InvestmentError):
    """Acting on a record whose state does not allow the action"""
    code = "invalid_state_transition"


class AlreadySettled(InvalidStateTransition):
    """Claiming against an investment that is no longer active"""
    code = "already_settled"


class NothingToClaim(InvestmentError):
    """Claimable profit is zero or negative"""
    code = "nothing_to_claim"


class ConcurrencyConflict(InvestmentError):
    """Lost a race on a locked or concurrently modified row"""
    code = "concurrency_conflict"


def retry_on_conflict(retries: int = 1) -> Callable:
    """
    Retry the wrapped operation when it raises ConcurrencyConflict.

    Only conflicts are retried; every other error propagates on the first
    attempt. The last conflict is re-raised once retries are exhausted.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except ConcurrencyConflict as e:
                    if attempt >= retries:
                        raise
                    attempt += 1
                    logging.getLogger(__name__).info(
                        f"Retrying {func.__name__} after conflict: {e.message}"
                    )
        return wrapper
    return decorator
