import logging

from fastapi import Depends, Header, HTTPException, status

from .config import get_settings
from .database import async_session
from .domain.repositories import UnitOfWork
from .infrastructure.unit_of_work import SqlAlchemyUnitOfWork
from .utils.auth import Caller, decode_access_token

logger = logging.getLogger(__name__)

_unauthorized_headers = {"WWW-Authenticate": "Bearer"}


async def get_uow() -> UnitOfWork:
    return SqlAlchemyUnitOfWork(async_session)


async def get_current_caller(authorization: str | None = Header(default=None)) -> Caller:
    if authorization is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers=_unauthorized_headers,
        )
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bearer token required",
            headers=_unauthorized_headers,
        )

    settings = get_settings()
    try:
        return decode_access_token(token.strip(), secret=settings.auth_secret, algorithms=[settings.auth_algorithm])
    except ValueError as exc:
        logger.info("rejected bearer token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers=_unauthorized_headers,
        ) from exc


async def require_staff(caller: Caller = Depends(get_current_caller)) -> Caller:
    if not caller.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="staff role required")
    return caller
