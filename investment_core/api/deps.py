"""
Shared API dependencies and error mapping
"""

from fastapi import Request
from fastapi.responses import JSONResponse

from ..errors import (
    ConcurrencyConflict, InsufficientFunds, InvalidStateTransition, InvestmentError,
    NothingToClaim, NotFound, ValidationError,
)
from ..system import InvestmentSystem

ERROR_STATUS_CODES = {
    ValidationError: 422,
    NotFound: 404,
    InsufficientFunds: 409,
    InvalidStateTransition: 409,
    NothingToClaim: 409,
    ConcurrencyConflict: 409,
}


def get_system(request: Request) -> InvestmentSystem:
    """Dependency returning the system attached to the running app"""
    return request.app.state.system


def status_for(error: InvestmentError) -> int:
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return 400


async def investment_error_handler(request: Request, exc: InvestmentError) -> JSONResponse:
    return JSONResponse(
        status_code=status_for(exc),
        content={"error": exc.code, "detail": exc.message},
    )
