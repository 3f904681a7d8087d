"""
Translation of ledger errors into HTTP errors.

Status codes:
- 422: malformed requests
- 404: unknown sale, product or credit account
- 409: business-rule rejections (stock, credit limit, account status, ...)
- 503: writes that kept conflicting; the client should retry
"""

import logging

from fastapi import HTTPException

from domain.errors import (
    ConcurrentModification,
    CreditAccountNotFound,
    InvalidAdjustment,
    InvalidSaleRequest,
    LedgerError,
    ProductNotFound,
    SaleNotFound,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = {
    InvalidSaleRequest: 422,
    InvalidAdjustment: 422,
    ProductNotFound: 404,
    CreditAccountNotFound: 404,
    SaleNotFound: 404,
    ConcurrentModification: 503,
}


def status_for(error: LedgerError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            return status_code
    return 409


def to_http_exception(error: LedgerError) -> HTTPException:
    """Build the HTTPException for a ledger rejection, logging compensation trouble."""

    if error.compensation_failures:
        logger.error(
            "%s left %d compensation failure(s): %s",
            type(error).__name__,
            len(error.compensation_failures),
            "; ".join(error.compensation_failures),
        )
    status_code = status_for(error)
    headers = {"Retry-After": "1"} if error.retryable else None
    return HTTPException(status_code=status_code, detail=error.user_message, headers=headers)
