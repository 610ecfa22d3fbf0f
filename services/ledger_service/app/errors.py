"""Typed ledger errors and their HTTP rendering.

Every error carries a stable ``code`` and the HTTP status the API layer maps it
to, so callers can decide user-facing messaging without string matching.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger

from shared.errors import error_response


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 400


class InsufficientFunds(LedgerError):
    code = "insufficient_funds"
    status_code = 409


class InsufficientBalanceToReverse(LedgerError):
    code = "insufficient_balance_to_reverse"
    status_code = 409


class PermissionDenied(LedgerError):
    code = "permission_denied"
    status_code = 403


class EntryNotFound(LedgerError):
    code = "entry_not_found"
    status_code = 404


class OrderNotFound(LedgerError):
    code = "order_not_found"
    status_code = 404


class DuplicateOrderNumber(LedgerError):
    code = "duplicate_order_number"
    status_code = 409


class InvalidAmount(LedgerError):
    code = "invalid_amount"
    status_code = 422


class InvalidStatus(LedgerError):
    code = "invalid_status"
    status_code = 422


class InvalidOrderTransition(LedgerError):
    code = "invalid_order_transition"
    status_code = 409


async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    logger.bind(request_id=request_id).info("ledger.error {} {}", exc.code, exc)
    return error_response(exc.status_code, error=exc.code, detail=str(exc), request_id=request_id)
