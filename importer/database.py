"""
SQLite persistence layer for products, stock locations and purchase orders.

A single database file (output/poimport.db) holds:

  - the product master, keyed by a unique part number
  - stock locations / rooms / racks new products are placed in
  - purchase orders (header + line items), keyed by a unique PO number
  - an append-only audit log of everything imports create

Every public method opens its own connection and commits on success, so a
failure while writing one purchase order never rolls back another.

Unique-constraint violations surface as DuplicateKeyError carrying the
offending key, so callers can report or recover from them.
"""
import json
import logging
import re
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from models.product import Product, StockPlacement
from models.purchase_order import PurchaseOrder, POLineItem, normalise_po_number

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS stock_locations (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT    NOT NULL UNIQUE,
    type        TEXT    NOT NULL DEFAULT 'warehouse',
    is_active   INTEGER NOT NULL DEFAULT 1,
    created_at  TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS stock_rooms (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT    NOT NULL,
    location_id INTEGER NOT NULL REFERENCES stock_locations (id),
    is_active   INTEGER NOT NULL DEFAULT 1,
    created_at  TEXT    NOT NULL,
    UNIQUE (location_id, name)
);

CREATE TABLE IF NOT EXISTS stock_racks (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT    NOT NULL,
    location_id INTEGER NOT NULL REFERENCES stock_locations (id),
    room_id     INTEGER NOT NULL REFERENCES stock_rooms (id),
    is_active   INTEGER NOT NULL DEFAULT 1,
    created_at  TEXT    NOT NULL,
    UNIQUE (room_id, name)
);

CREATE TABLE IF NOT EXISTS products (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT    NOT NULL,
    part_no         TEXT    NOT NULL UNIQUE,
    category        TEXT    NOT NULL,
    dept            TEXT,
    hsn_number      TEXT,
    price           REAL    NOT NULL DEFAULT 0,
    gst             REAL    NOT NULL DEFAULT 0,
    min_stock_level INTEGER NOT NULL DEFAULT 0,
    quantity        INTEGER NOT NULL DEFAULT 0,
    is_active       INTEGER NOT NULL DEFAULT 1,
    location_id     INTEGER REFERENCES stock_locations (id),
    room_id         INTEGER REFERENCES stock_rooms (id),
    rack_id         INTEGER REFERENCES stock_racks (id),
    created_by      TEXT,
    created_at      TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS purchase_orders (
    id                     INTEGER PRIMARY KEY AUTOINCREMENT,
    po_number              TEXT    NOT NULL UNIQUE,
    supplier               TEXT    NOT NULL,
    total_amount           REAL    NOT NULL,
    status                 TEXT    NOT NULL DEFAULT 'draft',
    priority               TEXT    NOT NULL DEFAULT 'medium',
    source_type            TEXT    NOT NULL DEFAULT 'manual',
    order_date             TEXT    NOT NULL,
    expected_delivery_date TEXT,
    notes                  TEXT,
    created_by             TEXT    NOT NULL,
    created_at             TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_po_status     ON purchase_orders (status);
CREATE INDEX IF NOT EXISTS idx_po_supplier   ON purchase_orders (supplier);
CREATE INDEX IF NOT EXISTS idx_po_order_date ON purchase_orders (order_date DESC);

CREATE TABLE IF NOT EXISTS purchase_order_items (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    purchase_order_id INTEGER NOT NULL REFERENCES purchase_orders (id) ON DELETE CASCADE,
    line_number       INTEGER NOT NULL,
    product_id        INTEGER NOT NULL REFERENCES products (id),
    part_no           TEXT,
    description       TEXT,
    quantity          REAL    NOT NULL,
    unit_price        REAL    NOT NULL,
    total_price       REAL    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_po_items_po ON purchase_order_items (purchase_order_id);

CREATE TABLE IF NOT EXISTS audit_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    entity      TEXT    NOT NULL,   -- product | purchase_order | import
    entity_id   TEXT    NOT NULL,
    timestamp   TEXT    NOT NULL,   -- ISO-8601 UTC
    action      TEXT    NOT NULL,   -- created | import_completed
    actor       TEXT    NOT NULL DEFAULT 'system',
    detail      TEXT                -- optional JSON blob with action-specific context
);

CREATE INDEX IF NOT EXISTS idx_audit_entity    ON audit_log (entity, entity_id);
CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log (timestamp DESC);
"""

_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: ([\w.]+(?:, [\w.]+)*)")


class DuplicateKeyError(Exception):
    """A write violated a unique constraint.  key_value maps column -> value."""

    def __init__(self, message: str, key_value: dict):
        super().__init__(message)
        self.key_value = key_value


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _duplicate_key(exc: sqlite3.IntegrityError, values: dict) -> Optional[DuplicateKeyError]:
    """Translate a UNIQUE violation into DuplicateKeyError; None for other integrity errors."""
    match = _UNIQUE_RE.search(str(exc))
    if not match:
        return None
    columns = [c.split(".")[-1] for c in match.group(1).split(", ")]
    key_value = {c: values.get(c) for c in columns}
    return DuplicateKeyError(f"Duplicate key: {json.dumps(key_value)}", key_value)


class Database:
    """Thin wrapper around an SQLite database file for the import service."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._conn() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Database schema ready: %s", self.db_path)

    # ------------------------------------------------------------------
    # Stock locations
    # ------------------------------------------------------------------

    def ensure_default_location(
        self,
        location_name: str = "Default Location",
        room_name: str = "Default Room",
        rack_name: str = "Default Rack",
    ) -> StockPlacement:
        """
        Return the ids of the default location / room / rack, creating any
        that are missing.  Safe to call repeatedly; ids are stable.
        """
        now = _now_iso()
        with self._conn() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO stock_locations (name, created_at) VALUES (?, ?)",
                (location_name, now),
            )
            location_id = conn.execute(
                "SELECT id FROM stock_locations WHERE name = ?", (location_name,)
            ).fetchone()["id"]

            conn.execute(
                """INSERT OR IGNORE INTO stock_rooms (name, location_id, created_at)
                   VALUES (?, ?, ?)""",
                (room_name, location_id, now),
            )
            room_id = conn.execute(
                "SELECT id FROM stock_rooms WHERE location_id = ? AND name = ?",
                (location_id, room_name),
            ).fetchone()["id"]

            conn.execute(
                """INSERT OR IGNORE INTO stock_racks (name, location_id, room_id, created_at)
                   VALUES (?, ?, ?, ?)""",
                (rack_name, location_id, room_id, now),
            )
            rack_id = conn.execute(
                "SELECT id FROM stock_racks WHERE room_id = ? AND name = ?",
                (room_id, rack_name),
            ).fetchone()["id"]

        return StockPlacement(location_id=location_id, room_id=room_id, rack_id=rack_id)

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def find_product_by_part_no(self, part_no: str) -> Optional[Product]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM products WHERE part_no = ?", (part_no,)
            ).fetchone()
        return _row_to_product(row) if row else None

    def create_product(self, product: Product) -> Product:
        """
        Insert a new product and return it with id / created_at filled in.
        Raises DuplicateKeyError if the part number already exists.
        """
        values = product.model_dump(exclude={"id", "created_at"})
        values["is_active"] = int(values["is_active"])
        values["created_at"] = _now_iso()
        try:
            with self._conn() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO products (
                        name, part_no, category, dept, hsn_number,
                        price, gst, min_stock_level, quantity, is_active,
                        location_id, room_id, rack_id, created_by, created_at
                    ) VALUES (
                        :name, :part_no, :category, :dept, :hsn_number,
                        :price, :gst, :min_stock_level, :quantity, :is_active,
                        :location_id, :room_id, :rack_id, :created_by, :created_at
                    )
                    """,
                    values,
                )
                product_id = cur.lastrowid
        except sqlite3.IntegrityError as exc:
            dup = _duplicate_key(exc, values)
            if dup:
                raise dup from exc
            raise

        created = product.model_copy(update={"id": product_id, "created_at": values["created_at"]})
        logger.info("Product created: %s (id=%d)", created.part_no, product_id)
        self.log_audit(
            "product", str(product_id), "created",
            actor=product.created_by or "system",
            detail={"part_no": created.part_no, "name": created.name},
        )
        return created

    def list_products(
        self,
        search: Optional[str] = None,
        limit: int = 500,
        offset: int = 0,
    ) -> list[Product]:
        """Products ordered by part number; *search* matches part_no or name."""
        where = ""
        params: list = []
        if search:
            where = "WHERE part_no LIKE ? OR name LIKE ?"
            like = f"%{search}%"
            params.extend([like, like])
        params.extend([limit, offset])
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM products {where} ORDER BY part_no LIMIT ? OFFSET ?",
                params,
            ).fetchall()
        return [_row_to_product(r) for r in rows]

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    def po_number_exists(self, po_number: str) -> bool:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT 1 FROM purchase_orders WHERE po_number = ?",
                (normalise_po_number(po_number),),
            ).fetchone()
        return row is not None

    def create_purchase_order(self, po: PurchaseOrder) -> PurchaseOrder:
        """
        Insert a purchase order and its line items in one transaction.
        Raises DuplicateKeyError if the PO number is taken.
        """
        created_at = _now_iso()
        header = {
            "po_number":              po.po_number,
            "supplier":               po.supplier,
            "total_amount":           po.total_amount,
            "status":                 po.status,
            "priority":               po.priority,
            "source_type":            po.source_type,
            "order_date":             po.order_date.isoformat(),
            "expected_delivery_date": (
                po.expected_delivery_date.isoformat() if po.expected_delivery_date else None
            ),
            "notes":                  po.notes,
            "created_by":             po.created_by,
            "created_at":             created_at,
        }
        try:
            with self._conn() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO purchase_orders (
                        po_number, supplier, total_amount, status, priority, source_type,
                        order_date, expected_delivery_date, notes, created_by, created_at
                    ) VALUES (
                        :po_number, :supplier, :total_amount, :status, :priority, :source_type,
                        :order_date, :expected_delivery_date, :notes, :created_by, :created_at
                    )
                    """,
                    header,
                )
                po_id = cur.lastrowid
                conn.executemany(
                    """
                    INSERT INTO purchase_order_items (
                        purchase_order_id, line_number, product_id, part_no,
                        description, quantity, unit_price, total_price
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            po_id, n, item.product_id, item.part_no,
                            item.description, item.quantity, item.unit_price, item.total_price,
                        )
                        for n, item in enumerate(po.items, 1)
                    ],
                )
        except sqlite3.IntegrityError as exc:
            dup = _duplicate_key(exc, header)
            if dup:
                raise dup from exc
            raise

        logger.info("Purchase order created: %s (id=%d, %d items)", po.po_number, po_id, len(po.items))
        self.log_audit(
            "purchase_order", str(po_id), "created",
            actor=po.created_by,
            detail={"po_number": po.po_number, "total_amount": po.total_amount},
        )
        return po.model_copy(update={"id": po_id, "created_at": created_at})

    def get_purchase_order(self, po_number: str) -> Optional[PurchaseOrder]:
        """Return the full purchase order (with items) or None."""
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM purchase_orders WHERE po_number = ?",
                (normalise_po_number(po_number),),
            ).fetchone()
            if row is None:
                return None
            items = conn.execute(
                """SELECT product_id, part_no, description, quantity, unit_price, total_price
                   FROM purchase_order_items
                   WHERE purchase_order_id = ?
                   ORDER BY line_number""",
                (row["id"],),
            ).fetchall()

        return PurchaseOrder(
            **dict(row),
            items=[POLineItem(**dict(i)) for i in items],
        )

    def list_purchase_orders(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 500,
        offset: int = 0,
    ) -> list[dict]:
        """
        Return purchase-order summaries (no line items) newest first.

        Args:
            status:  Filter by status value, or None for all.
            search:  Case-insensitive substring match on po_number or supplier.
            limit:   Max rows to return.
            offset:  Pagination offset.
        """
        clauses: list[str] = []
        params: list = []

        if status:
            clauses.append("po.status = ?")
            params.append(status)
        if search:
            clauses.append("(po.po_number LIKE ? OR po.supplier LIKE ?)")
            like = f"%{search}%"
            params.extend([like, like])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.extend([limit, offset])

        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT
                    po.id, po.po_number, po.supplier, po.total_amount,
                    po.status, po.priority, po.order_date, po.expected_delivery_date,
                    po.created_by, po.created_at,
                    (SELECT COUNT(*) FROM purchase_order_items i
                      WHERE i.purchase_order_id = po.id) AS item_count
                FROM purchase_orders po
                {where}
                ORDER BY po.created_at DESC, po.id DESC
                LIMIT ? OFFSET ?
                """,
                params,
            ).fetchall()

        return [dict(r) for r in rows]

    def get_stats(self) -> dict:
        """Return purchase-order counts by status plus product totals."""
        with self._conn() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*)  AS total_orders,
                    SUM(CASE WHEN status = 'draft'     THEN 1 ELSE 0 END) AS draft,
                    SUM(CASE WHEN status = 'sent'      THEN 1 ELSE 0 END) AS sent,
                    SUM(CASE WHEN status = 'confirmed' THEN 1 ELSE 0 END) AS confirmed,
                    SUM(CASE WHEN status = 'received'  THEN 1 ELSE 0 END) AS received,
                    SUM(CASE WHEN status = 'cancelled' THEN 1 ELSE 0 END) AS cancelled,
                    COALESCE(SUM(total_amount), 0) AS total_value,
                    MAX(created_at) AS last_created
                FROM purchase_orders
                """
            ).fetchone()
            products = conn.execute("SELECT COUNT(*) FROM products").fetchone()[0]
        stats = dict(row) if row else {}
        stats["total_products"] = products
        return stats

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def log_audit(
        self,
        entity: str,
        entity_id: str,
        action: str,
        actor: str = "system",
        detail: Optional[dict] = None,
    ) -> None:
        """Append one entry to the audit log."""
        with self._conn() as conn:
            conn.execute(
                """INSERT INTO audit_log (entity, entity_id, timestamp, action, actor, detail)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    entity,
                    entity_id,
                    _now_iso(),
                    action,
                    actor,
                    json.dumps(detail) if detail is not None else None,
                ),
            )

    def get_recent_audit_log(self, limit: int = 200, offset: int = 0) -> list[dict]:
        """Return recent audit entries, newest first."""
        with self._conn() as conn:
            rows = conn.execute(
                """SELECT id, entity, entity_id, timestamp, action, actor, detail
                   FROM audit_log
                   ORDER BY timestamp DESC, id DESC
                   LIMIT ? OFFSET ?""",
                (limit, offset),
            ).fetchall()
        return [dict(r) for r in rows]


def _row_to_product(row: sqlite3.Row) -> Product:
    data = dict(row)
    data["is_active"] = bool(data["is_active"])
    return Product(**data)
