"""
Pytest configuration and fixtures.
"""
import io
import os
import struct
from datetime import date
from typing import Callable, Generator, List

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.pop("ANALYZER_URL", None)

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from statement_importer.database import Base, get_db
from statement_importer.main import app
from statement_importer.models import ImportedTransaction  # noqa: F401
from statement_importer.services.remote_analyzer import get_remote_analyzer


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override and no remote analyzer."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_remote_analyzer] = lambda: None

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def sample_txt_statement() -> str:
    """Two checking account expenses in Brazilian notation."""
    return "Data;Descrição;Valor\n10/01/2026;Supermercado;-150,00\n11/01/2026;Uber;-25,50"


@pytest.fixture
def make_xlsx() -> Callable[[List[list]], bytes]:
    """Build an .xlsx workbook in memory from a list of rows."""

    def _make(rows: List[list]) -> bytes:
        wb = Workbook()
        ws = wb.active
        for row in rows:
            ws.append(row)
        buffer = io.BytesIO()
        wb.save(buffer)
        return buffer.getvalue()

    return _make


OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
OLE2_SECTOR_SIZE = 512
OLE2_STD_STREAM_MIN = 4096
FREE_SECTOR, END_OF_CHAIN, FAT_SECTOR = -1, -2, -3
DATE_XF_INDEX = 1


def _biff_record(opcode: int, payload: bytes = b"") -> bytes:
    return struct.pack("<HH", opcode, len(payload)) + payload


def _biff_bof(stream_type: int) -> bytes:
    # BIFF8, build 3515, year 1996
    return _biff_record(0x0809, struct.pack("<HHHH", 0x0600, stream_type, 0x0DBB, 0x07CC) + bytes(8))


def _biff_xf(format_key: int) -> bytes:
    return _biff_record(0x00E0, struct.pack("<HHHBBBBIiH", 0, format_key, 0, 0, 0, 0, 0, 0, 0, 0))


def _biff_cell(row: int, col: int, value) -> bytes:
    if value is None:
        return _biff_record(0x0201, struct.pack("<HHH", row, col, 0))
    if isinstance(value, date):
        serial = (value - date(1899, 12, 30)).days
        return _biff_record(0x0203, struct.pack("<HHHd", row, col, DATE_XF_INDEX, serial))
    if isinstance(value, (int, float)):
        return _biff_record(0x0203, struct.pack("<HHHd", row, col, 0, value))
    text = value.encode("latin-1")
    return _biff_record(0x0204, struct.pack("<HHHHB", row, col, 0, len(value), 0) + text)


def _biff_workbook(rows: List[list], sheet_name: str = "Extrato") -> bytes:
    """BIFF8 workbook stream with one worksheet."""

    def globals_block(sheet_offset: int) -> bytes:
        name = sheet_name.encode("latin-1")
        boundsheet = struct.pack("<iBBBB", sheet_offset, 0, 0, len(sheet_name), 0) + name
        return b"".join([
            _biff_bof(0x0005),
            _biff_record(0x0022, struct.pack("<H", 0)),
            _biff_xf(0),
            _biff_xf(14),
            _biff_record(0x0085, boundsheet),
            _biff_record(0x000A),
        ])

    ncols = max((len(row) for row in rows), default=0)
    cells = b"".join(
        _biff_cell(row_index, col_index, value)
        for row_index, row in enumerate(rows)
        for col_index, value in enumerate(row)
    )
    sheet = b"".join([
        _biff_bof(0x0010),
        _biff_record(0x0200, struct.pack("<iiHHH", 0, len(rows), 0, ncols, 0)),
        cells,
        _biff_record(0x000A),
    ])
    offset = len(globals_block(0))
    return globals_block(offset) + sheet


def _dir_entry(name: str, entry_type: int, child: int, start: int, size: int) -> bytes:
    encoded = name.encode("utf-16-le") + b"\x00\x00" if name else b""
    return (
        encoded.ljust(64, b"\x00")
        + struct.pack("<HBBiii", len(encoded), entry_type, 1 if name else 0, -1, -1, child)
        + bytes(36)
        + struct.pack("<iiI", start, size, 0)
    )


def _ole2_container(stream: bytes) -> bytes:
    """Compound document with a single ``Workbook`` stream in regular sectors."""
    stream = stream.ljust(OLE2_STD_STREAM_MIN, b"\x00")
    sectors = -(-len(stream) // OLE2_SECTOR_SIZE)
    stream = stream.ljust(sectors * OLE2_SECTOR_SIZE, b"\x00")

    # Sector 0 holds the FAT, sector 1 the directory, the stream follows
    fat = [FAT_SECTOR, END_OF_CHAIN] + list(range(3, sectors + 2)) + [END_OF_CHAIN]
    fat += [FREE_SECTOR] * (OLE2_SECTOR_SIZE // 4 - len(fat))

    directory = b"".join([
        _dir_entry("Root Entry", 5, 1, END_OF_CHAIN, 0),
        _dir_entry("Workbook", 2, -1, 2, len(stream)),
        _dir_entry("", 0, -1, 0, 0),
        _dir_entry("", 0, -1, 0, 0),
    ])

    header = b"".join([
        OLE2_SIGNATURE,
        bytes(16),
        struct.pack("<HHHHH", 0x003E, 0x0003, 0xFFFE, 9, 6),
        bytes(6),
        struct.pack("<iiiiiiiii", 0, 1, 1, 0, OLE2_STD_STREAM_MIN, END_OF_CHAIN, 0, END_OF_CHAIN, 0),
        struct.pack("<109i", 0, *([FREE_SECTOR] * 108)),
    ])
    return header + struct.pack("<128i", *fat) + directory + stream


@pytest.fixture
def make_xls() -> Callable[[List[list]], bytes]:
    """
    Build a legacy Excel 97 (.xls) workbook in memory from a list of rows.

    Strings become LABEL cells, numbers NUMBER cells, ``date`` values NUMBER
    cells with a date format and ``None`` BLANK cells.
    """
    return lambda rows: _ole2_container(_biff_workbook(rows))
