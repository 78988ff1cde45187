"""
Integration tests for the SQLite persistence layer.
"""
import json
from datetime import datetime, timedelta, timezone

import pytest

from importer.database import DuplicateKeyError
from models.product import Product
from models.purchase_order import POLineItem, PurchaseOrder


def _product(part_no="A1", **overrides) -> Product:
    values = dict(name=f"Part {part_no}", part_no=part_no, price=10.0, gst=18.0, created_by="alice")
    values.update(overrides)
    return Product(**values)


def _purchase_order(po_number="PO-1", product_id=1, **overrides) -> PurchaseOrder:
    order_date = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)
    values = dict(
        po_number=po_number,
        supplier="Retail Parts Supplier",
        items=[POLineItem(product_id=product_id, quantity=2, unit_price=10, total_price=20,
                          part_no="A1", description="Air filter")],
        total_amount=20.0,
        order_date=order_date,
        expected_delivery_date=order_date + timedelta(days=30),
        notes="Dept: RETAIL, Year: 2026, Month: MAR",
        created_by="alice",
    )
    values.update(overrides)
    return PurchaseOrder(**values)


@pytest.mark.integration
class TestStockLocations:

    def test_default_location_created(self, test_db):
        placement = test_db.ensure_default_location()

        assert placement.location_id > 0
        assert placement.room_id > 0
        assert placement.rack_id > 0

    def test_default_location_idempotent(self, test_db):
        first = test_db.ensure_default_location()
        second = test_db.ensure_default_location()
        assert first == second

    def test_named_locations_are_distinct(self, test_db):
        default = test_db.ensure_default_location()
        other = test_db.ensure_default_location("Annex", "Room B", "Rack 9")
        assert other.location_id != default.location_id


@pytest.mark.integration
class TestProducts:

    def test_create_and_find(self, test_db):
        placement = test_db.ensure_default_location()
        created = test_db.create_product(_product(
            location_id=placement.location_id, room_id=placement.room_id, rack_id=placement.rack_id,
        ))

        assert created.id is not None
        assert created.created_at is not None

        found = test_db.find_product_by_part_no("A1")
        assert found is not None
        assert found.id == created.id
        assert found.gst == 18.0
        assert found.is_active is True
        assert found.rack_id == placement.rack_id

    def test_find_unknown_part(self, test_db):
        assert test_db.find_product_by_part_no("NOPE") is None

    def test_duplicate_part_no_rejected(self, test_db):
        test_db.create_product(_product("A1"))

        with pytest.raises(DuplicateKeyError) as exc_info:
            test_db.create_product(_product("A1", name="Another"))

        assert exc_info.value.key_value == {"part_no": "A1"}

    def test_list_products_search(self, test_db):
        test_db.create_product(_product("A1", name="Air filter"))
        test_db.create_product(_product("B2", name="Ball bearing"))

        assert [p.part_no for p in test_db.list_products()] == ["A1", "B2"]
        assert [p.part_no for p in test_db.list_products(search="bearing")] == ["B2"]


@pytest.mark.integration
class TestPurchaseOrders:

    @pytest.fixture
    def product_id(self, test_db):
        return test_db.create_product(_product("A1")).id

    def test_create_and_get(self, test_db, product_id):
        saved = test_db.create_purchase_order(_purchase_order(product_id=product_id))

        assert saved.id is not None

        po = test_db.get_purchase_order("PO-1")
        assert po is not None
        assert po.supplier == "Retail Parts Supplier"
        assert po.status == "draft"
        assert po.source_type == "manual"
        assert len(po.items) == 1
        assert po.items[0].product_id == product_id
        assert po.items[0].total_price == 20
        assert po.expected_delivery_date - po.order_date == timedelta(days=30)

    def test_po_number_normalised(self, test_db, product_id):
        test_db.create_purchase_order(_purchase_order(" po-7 ", product_id=product_id))

        assert test_db.po_number_exists("PO-7")
        assert test_db.po_number_exists("po-7")
        assert test_db.get_purchase_order("po-7").po_number == "PO-7"

    def test_duplicate_po_number_rejected(self, test_db, product_id):
        test_db.create_purchase_order(_purchase_order(product_id=product_id))

        with pytest.raises(DuplicateKeyError) as exc_info:
            test_db.create_purchase_order(_purchase_order(product_id=product_id))

        assert exc_info.value.key_value == {"po_number": "PO-1"}

    def test_failed_insert_writes_nothing(self, test_db):
        """Line items referencing an unknown product roll the header back too."""
        with pytest.raises(Exception):
            test_db.create_purchase_order(_purchase_order("PO-9", product_id=999))

        assert not test_db.po_number_exists("PO-9")

    def test_list_and_filter(self, test_db, product_id):
        test_db.create_purchase_order(_purchase_order("PO-1", product_id=product_id))
        test_db.create_purchase_order(_purchase_order(
            "PO-2", product_id=product_id, supplier="Telecom Solutions Provider",
        ))

        orders = test_db.list_purchase_orders()
        assert [o["po_number"] for o in orders] == ["PO-2", "PO-1"]
        assert orders[0]["item_count"] == 1

        telecom = test_db.list_purchase_orders(search="telecom")
        assert [o["po_number"] for o in telecom] == ["PO-2"]
        assert test_db.list_purchase_orders(status="sent") == []

    def test_stats(self, test_db, product_id):
        test_db.create_purchase_order(_purchase_order("PO-1", product_id=product_id))
        test_db.create_purchase_order(_purchase_order("PO-2", product_id=product_id, total_amount=30))

        stats = test_db.get_stats()

        assert stats["total_orders"] == 2
        assert stats["draft"] == 2
        assert stats["total_value"] == 50
        assert stats["total_products"] == 1


@pytest.mark.integration
class TestAuditLog:

    def test_creations_are_audited(self, test_db):
        product = test_db.create_product(_product("A1"))
        test_db.create_purchase_order(_purchase_order(product_id=product.id))

        entries = test_db.get_recent_audit_log()

        assert [(e["entity"], e["action"]) for e in entries] == [
            ("purchase_order", "created"),
            ("product", "created"),
        ]
        assert all(e["actor"] == "alice" for e in entries)
        assert json.loads(entries[1]["detail"]) == {"part_no": "A1", "name": "Part A1"}

    def test_log_audit(self, test_db):
        test_db.log_audit("import", "abc123", "import_completed", actor="bob", detail={"failed": 0})

        entry = test_db.get_recent_audit_log(limit=1)[0]

        assert entry["entity_id"] == "abc123"
        assert entry["actor"] == "bob"
        assert json.loads(entry["detail"]) == {"failed": 0}
