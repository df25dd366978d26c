"""Pytest configuration and fixtures for QDash tests.

Provides common fixtures for testing.
"""

from __future__ import annotations

from datetime import datetime
from io import BytesIO
from typing import Any, Callable

import pytest
import pytest_asyncio
from openpyxl import Workbook
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from qdash.config import AppConfig, DBConfig
from qdash.db.models import Base
from qdash.db.store import RecordStore

# Columns A..M precede the defect-type range N..AG
DIMENSION_HEADERS = [
    "일자",
    "고객사",
    "품번",
    "품명",
    "공정",
    "차종",
    "작업자",
    "설비",
    "LOT",
    "생산수량",
    "검사수량",
    "비고",
    "확인",
]

DEFECT_LABELS = [
    "찍힘",
    "스크래치",
    "이물",
    "미성형",
    "변형",
    "버",
    "기포",
    "색상",
    "오염",
    "크랙",
    "가스",
    "웰드",
    "수축",
    "은조",
    "치수",
    "도금불량",
    "도장불량",
    "조립불량",
    "누락",
    "기타",
]


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    # Drop any cached config so env changes take effect
    monkeypatch.setattr("qdash.config._config", None)


@pytest.fixture
def test_config() -> AppConfig:
    """Application config with default ingestion and reporting settings."""
    return AppConfig(db=DBConfig(url="sqlite+aiosqlite:///:memory:"))


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")

    @event.listens_for(engine.sync_engine, "connect")
    def _fk_on(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest.fixture
def store(db_session: AsyncSession) -> RecordStore:
    return RecordStore(db_session)


def build_xlsx(headers: list[Any], rows: list[list[Any]]) -> bytes:
    """Serialize a single-sheet workbook in memory."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(headers)
    for row in rows:
        sheet.append(row)

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def defect_row(
    day: str | datetime | None,
    counts: dict[int, int],
    customer: str = "LGE",
    process: str = "사출",
    part_name: str = "Bracket-A",
) -> list[Any]:
    """One defect-type sheet row; ``counts`` maps defect column offset (0-19) to count."""
    row: list[Any] = [None] * (len(DIMENSION_HEADERS) + len(DEFECT_LABELS))
    row[0] = day
    row[1] = customer
    row[2] = "PN-001"
    row[3] = part_name
    row[4] = process
    row[5] = "RV"
    for offset, count in counts.items():
        row[len(DIMENSION_HEADERS) + offset] = count
    return row


@pytest.fixture
def make_xlsx() -> Callable[[list[Any], list[list[Any]]], bytes]:
    return build_xlsx


@pytest.fixture
def defect_sheet_bytes() -> bytes:
    """Three-row defect-type workbook dated inside March 2025."""
    return build_xlsx(
        DIMENSION_HEADERS + DEFECT_LABELS,
        [
            defect_row("2025-03-04", {0: 3, 2: 1}),
            defect_row("2025-03-11", {1: 2}, process="도장"),
            defect_row(None, {5: 4, 19: 1}, customer="LGIT"),
        ],
    )


@pytest.fixture
def defect_headers() -> list[str]:
    return DIMENSION_HEADERS + DEFECT_LABELS


@pytest.fixture
def make_defect_row() -> Callable[..., list[Any]]:
    return defect_row
