from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .service import LedgerService
from .settings import ledger_settings

logger = logging.getLogger(__name__)

ACCEPTED_SCOPES = {"access", "ledger_access"}


def get_current_user_id(request: Request) -> int:
    """Extract and validate the caller's numeric user id from a JWT bearer token.

    Administrators authenticate the same way; whether the subject may perform a
    privileged operation is decided by the ledger from its own role table.
    """
    settings = ledger_settings()
    auth = request.headers.get("authorization")
    if not auth or not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = auth.split(" ", 1)[1].strip()
    try:
        decoded = jwt.decode(
            token,
            settings.secret_key,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except JWTError as exc:
        logger.warning("ledger.auth.jwt_decode_failed", extra={"error": str(exc)})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    scope = decoded.get("scope")
    if scope not in ACCEPTED_SCOPES:
        logger.info("ledger.auth.scope_rejected", extra={"scope": scope})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token scope")

    sub = decoded.get("sub")
    if sub is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing subject")

    if isinstance(sub, str) and sub.isdigit():
        return int(sub)

    logger.info("ledger.auth.unsupported_subject_format", extra={"subject": sub})
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unsupported subject format (expected numeric)")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    from .db.session import async_session_factory

    return async_session_factory


def get_ledger_service(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> LedgerService:
    # One service per app so every request shares the same per-user locks
    service = getattr(request.app.state, "ledger_service", None)
    if service is None or service.session_factory is not session_factory:
        service = LedgerService(session_factory)
        request.app.state.ledger_service = service
    return service


CurrentUserIdDep = Depends(get_current_user_id)
LedgerServiceDep = Depends(get_ledger_service)
