"""Health check API routes.

Provides endpoints for monitoring database connectivity and schema.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from qdash.db.schema_check import check_schema
from qdash.db.store import RecordStore
from qdash.web.dependencies import get_store

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", status_code=status.HTTP_200_OK)
async def health_check(store: RecordStore = Depends(get_store)):
    """Check application health.

    Verifies database connectivity.
    """
    try:
        await store.session.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected"}
    except SQLAlchemyError as e:
        return {
            "status": "error",
            "database": "disconnected",
            "detail": str(e),
        }


@router.get("/schema")
async def schema_check(store: RecordStore = Depends(get_store)):
    """Report missing tables and columns."""
    report = await check_schema(store.session)
    return report.to_dict()
