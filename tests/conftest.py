"""
Pytest configuration and shared fixtures for the import test suite.
"""
import csv
import io
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

import pytest
from openpyxl import Workbook

PROJECT_ROOT = Path(__file__).parent.parent
os.chdir(PROJECT_ROOT)

FROZEN_NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)

HEADERS = [
    "YEAR", "month", "DEPT", "ORDER NO", "Part No", "Part Description",
    "QTY", "Price", "Ordered Qty", "HSN No", "Tax", "GST VALUE", "TOTAL",
]


def _to_csv(rows: list[dict], headers: list[str]) -> bytes:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=headers)
    writer.writeheader()
    for row in rows:
        writer.writerow({h: row.get(h, "") for h in headers})
    return buf.getvalue().encode("utf-8")


def _to_xlsx(rows: list[dict], headers: list[str]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append(headers)
    for row in rows:
        ws.append([row.get(h) for h in headers])
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for test files."""
    tmp_path = tempfile.mkdtemp(prefix="poimport_test_")
    yield Path(tmp_path)
    shutil.rmtree(tmp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> "Config":
    """Provide a test configuration with an isolated database."""
    from config import Config

    config = Config()
    config.output_dir = temp_dir / "output"
    config.output_dir.mkdir(parents=True, exist_ok=True)
    config.db_path = temp_dir / "output" / "poimport.db"
    config.delivery_lead_days = 30
    config.po_number_max_attempts = 1000
    config.fallback_supplier = "General Supplier"
    return config


@pytest.fixture
def test_db(test_config) -> "Database":
    """Provide a test database instance."""
    from importer.database import Database
    return Database(test_config.db_path)


@pytest.fixture
def frozen_now() -> datetime:
    return FROZEN_NOW


@pytest.fixture
def importer(test_db, test_config) -> "PurchaseOrderImporter":
    """Importer over the test database with a frozen clock."""
    from importer.reconciler import PurchaseOrderImporter
    return PurchaseOrderImporter(test_db, test_config, now=lambda: FROZEN_NOW)


@pytest.fixture
def make_csv():
    """Build CSV upload bytes from row dicts keyed by sheet headers."""
    def _make(rows: list[dict], headers: list[str] = HEADERS) -> bytes:
        return _to_csv(rows, headers)
    return _make


@pytest.fixture
def make_xlsx():
    """Build .xlsx upload bytes from row dicts keyed by sheet headers."""
    def _make(rows: list[dict], headers: list[str] = HEADERS) -> bytes:
        return _to_xlsx(rows, headers)
    return _make


@pytest.fixture
def sample_rows() -> list[dict]:
    """Two lines of order PO-100: one unknown part (A1), one existing part (B2)."""
    return [
        {
            "YEAR": "2026", "month": "MAR", "DEPT": "RETAIL", "ORDER NO": "PO-100",
            "Part No": "A1", "Part Description": "Air filter",
            "QTY": 2, "Price": 10, "Ordered Qty": 2, "HSN No": "8421", "Tax": "18% GST",
        },
        {
            "YEAR": "2026", "month": "MAR", "DEPT": "RETAIL", "ORDER NO": "PO-100",
            "Part No": "B2", "Part Description": "Ball bearing",
            "QTY": 3, "Price": 50, "Ordered Qty": 3, "HSN No": "8482", "Tax": "12% GST",
        },
    ]


@pytest.fixture
def existing_b2(test_db) -> "Product":
    """Part B2 already in the product master at price 50."""
    from models.product import Product
    return test_db.create_product(Product(
        name="Ball bearing", part_no="B2", category="spare_part", price=50.0, gst=12.0,
    ))


@pytest.fixture
def order_row():
    """Factory for one sheet row with sensible defaults."""
    def _make(order_no, part_no, qty=1, price=10.0, dept="RETAIL", description=None, **extra) -> dict:
        row = {
            "YEAR": "2026", "month": "MAR", "DEPT": dept, "ORDER NO": order_no,
            "Part No": part_no, "Part Description": description or f"Part {part_no}",
            "QTY": qty, "Price": price,
        }
        row.update(extra)
        return row
    return _make


@pytest.fixture
def api_client(test_db, test_config):
    """TestClient bound to the test database and configuration."""
    from fastapi.testclient import TestClient
    from api.app import app, get_config, get_db

    app.dependency_overrides[get_db] = lambda: test_db
    app.dependency_overrides[get_config] = lambda: test_config
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: API tests")
