import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError

from apps.api.core.database import check_connection
from apps.api.core.errors import UnavailableError, to_http_exception
from apps.api.dependencies.auth import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/db", summary="Database connectivity probe", dependencies=[Depends(require_admin)])
async def ping_database(request: Request) -> dict[str, str]:
    engine = getattr(request.app.state, "db_engine", None)
    if engine is None:
        raise to_http_exception(UnavailableError("Database is not configured"))
    try:
        await check_connection(engine)
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Database probe failed: %s", exc)
        raise to_http_exception(UnavailableError("Database is not reachable")) from exc
    return {"status": "ok", "database": "ok"}
