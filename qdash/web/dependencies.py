"""Shared dependencies for QDash web routes.

Usage:
    from fastapi import Depends
    from qdash.web.dependencies import get_store

    @router.get("/things")
    async def things(store: RecordStore = Depends(get_store)):
        ...
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import HTTPException

from qdash.config import AppConfig, get_config
from qdash.db.connection import get_session
from qdash.db.store import RecordStore
from qdash.ingestion.domains import DOMAINS, DomainKind, DomainSpec
from qdash.metrics.ppm import MetricKind


async def get_store() -> AsyncIterator[RecordStore]:
    """Record store bound to a request-scoped session."""
    async with get_session() as session:
        yield RecordStore(session)


def get_app_config() -> AppConfig:
    return get_config()


def resolve_domain(domain: str) -> DomainSpec:
    """Path parameter → upload domain, 404 when unknown."""
    spec = DOMAINS.get(domain)
    if spec is None:
        raise HTTPException(status_code=404, detail=f"Unknown upload domain: {domain}")
    return spec


def resolve_defect_type_domain(domain: str) -> DomainSpec:
    spec = resolve_domain(domain)
    if spec.kind is not DomainKind.DEFECT_TYPE:
        raise HTTPException(
            status_code=404, detail=f"{domain} has no defect-type breakdown"
        )
    return spec


def resolve_metric_kind(kind: str) -> MetricKind:
    try:
        return MetricKind(kind)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown metric kind: {kind}") from None
