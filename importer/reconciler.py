"""
Purchase-order import reconciliation.

PurchaseOrderImporter turns parsed spreadsheet rows into purchase orders:

  1. group_by_order       -- rows partitioned by ORDER NO, file order kept
  2. ProductResolver      -- each Part No looked up in the product master
                             once per run (cached), created on commit
  3. derivations          -- supplier / priority / delivery date / GST rate
  4. PurchaseOrderValidator + PurchaseOrder record model
  5. Database             -- product and purchase-order writes

Two entry points share steps 1-3:
  - preview()  -- dry run, writes nothing, reports what commit would do
  - commit()   -- persists products and purchase orders

Orders are processed one at a time, in file order.  A failure inside one
order is caught, recorded as readable error line(s) and the run moves on:
no order ever blocks or rolls back another.  Only an empty sheet fails
the whole call.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError

from config import Config
from models.import_row import RawImportRow, COL_PART_NO
from models.product import Product, ProductResolution, StockPlacement, DEFAULT_IMPORT_CATEGORY
from models.purchase_order import PurchaseOrderDraft, DraftLineItem
from models.result import (
    CreatedOrderSummary, ExistingProduct, ImportOutcome, ImportPreview,
    PreviewLineItem, PreviewOrder, PreviewProduct,
)
from .database import Database, DuplicateKeyError
from .derivations import (
    expected_delivery_date, extract_gst_rate, order_notes, priority_from_dept, supplier_from_dept,
)
from .grouper import group_by_order
from .reader import find_missing_columns, read_rows
from .validator import PurchaseOrderValidator

logger = logging.getLogger(__name__)

IMPORT_NOTES_PREFIX = "Imported from Excel - "


class EmptyImportError(ValueError):
    """The uploaded sheet parsed to zero rows."""


class PONumberExhaustedError(RuntimeError):
    """Every candidate PO number for an order is already taken."""


class ProductImportError(RuntimeError):
    """Resolving or creating the product for one row failed."""

    def __init__(self, part_no: Optional[str], cause: Exception):
        super().__init__(f"Product error for {part_no}: {_short_message(cause)}")
        self.part_no = part_no


# ----------------------------------------------------------------------
# Product resolution
# ----------------------------------------------------------------------

class ProductResolver:
    """
    Per-run memo of part number -> ProductResolution.

    The product master is queried at most once per part number however many
    rows and orders carry it.  The cache is only safe because orders are
    processed sequentially; share one resolver between concurrent runs and
    the same part could be created twice.
    """

    def __init__(self, db: Database):
        self.db = db
        self._cache: dict[str, ProductResolution] = {}
        self.created_count = 0

    def resolve(self, row: RawImportRow) -> tuple[ProductResolution, bool]:
        """
        Return the resolution for *row*'s part number and whether this call
        computed it (False means it came from the cache).
        """
        part_no = row.part_no
        cached = self._cache.get(part_no)
        if cached is not None:
            logger.debug("Product cache hit: %s", part_no)
            return cached, False

        existing = self.db.find_product_by_part_no(part_no)
        if existing:
            resolution = _existing_resolution(existing)
        else:
            resolution = ProductResolution(
                part_no=part_no,
                exists=False,
                will_create=True,
                derived_name=row.part_description,
                derived_category=DEFAULT_IMPORT_CATEGORY,
                derived_price=row.price,
                derived_gst_rate=extract_gst_rate(row.tax),
                derived_hsn_number=row.hsn_no,
                derived_dept=row.dept,
            )
        self._cache[part_no] = resolution
        return resolution, True

    def ensure(self, row: RawImportRow, placement: StockPlacement, created_by: str) -> ProductResolution:
        """
        Resolve *row*'s part number, creating the product when it is not in
        the master.  The cache then holds the created product.
        """
        resolution, _ = self.resolve(row)
        if resolution.exists:
            return resolution

        product = self.build_product(resolution, placement, created_by)
        try:
            created = self.db.create_product(product)
            self.created_count += 1
        except DuplicateKeyError:
            # Another import created it since we looked; use theirs
            created = self.db.find_product_by_part_no(resolution.part_no)
            if created is None:
                raise
            logger.info("Product %s created concurrently; re-resolved", resolution.part_no)

        resolution = _existing_resolution(created)
        self._cache[resolution.part_no] = resolution
        return resolution

    @staticmethod
    def build_product(
        resolution: ProductResolution,
        placement: Optional[StockPlacement] = None,
        created_by: Optional[str] = None,
    ) -> Product:
        """
        The Product a will-create resolution turns into.  Raises
        pydantic.ValidationError when the sheet values cannot make a valid
        product (e.g. a blank Part Description).
        """
        return Product(
            name=resolution.derived_name,
            part_no=resolution.part_no,
            category=resolution.derived_category,
            dept=resolution.derived_dept,
            hsn_number=resolution.derived_hsn_number,
            price=resolution.derived_price or 0.0,
            gst=resolution.derived_gst_rate or 0.0,
            min_stock_level=1,
            quantity=0,
            is_active=True,
            location_id=placement.location_id if placement else None,
            room_id=placement.room_id if placement else None,
            rack_id=placement.rack_id if placement else None,
            created_by=created_by,
        )


def _existing_resolution(product: Product) -> ProductResolution:
    return ProductResolution(
        part_no=product.part_no,
        exists=True,
        product_id=product.id,
        name=product.name,
        category=product.category,
        price=product.price,
    )


# ----------------------------------------------------------------------
# Error reporting
# ----------------------------------------------------------------------

def _short_message(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return f"{exc.title} validation failed ({exc.error_count()} error(s))"
    return str(exc) or exc.__class__.__name__


def describe_failure(order_no: str, exc: Exception) -> list[str]:
    """
    Readable error lines for one failed order: a headline, then one line per
    failing field for validation errors and the offending key for duplicates.
    """
    lines = [f"Order {order_no}: {_short_message(exc)}"]
    cause = exc.__cause__ if isinstance(exc, ProductImportError) else exc

    if isinstance(cause, ValidationError):
        for err in cause.errors():
            field = ".".join(str(p) for p in err["loc"]) or "value"
            lines.append(f"Order {order_no} - {field}: {err['msg']}")
    if isinstance(cause, DuplicateKeyError):
        lines.append(f"Order {order_no} - Duplicate key: {json.dumps(cause.key_value)}")
    return lines


def _require_part_no(row: RawImportRow) -> str:
    if not row.part_no:
        raise ValueError(f"{COL_PART_NO} is required")
    return row.part_no


# ----------------------------------------------------------------------
# Importer
# ----------------------------------------------------------------------

class PurchaseOrderImporter:
    """
    Runs preview and commit imports against a Database.

    *now* is the clock used for order dates and expected delivery dates;
    it is read once per run.
    """

    def __init__(
        self,
        db: Database,
        config: Optional[Config] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.config = config or Config()
        self._now = now or (lambda: datetime.now(timezone.utc))
        self.validator = PurchaseOrderValidator()

    # ------------------------------------------------------------------
    # File entry points
    # ------------------------------------------------------------------

    def preview_file(self, content: bytes, filename: Optional[str] = None) -> ImportPreview:
        return self.preview(read_rows(content, filename))

    def import_file(self, content: bytes, created_by: str, filename: Optional[str] = None) -> ImportOutcome:
        return self.commit(read_rows(content, filename), created_by)

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def preview(self, rows: list[dict[str, Any]]) -> ImportPreview:
        """Report what commit() would create.  Performs no writes."""
        if not rows:
            raise EmptyImportError("No data found in file")

        now = self._now()
        grouped = group_by_order(rows)
        resolver = ProductResolver(self.db)

        preview = ImportPreview(missing_columns=find_missing_columns(rows))
        preview.summary.total_rows = len(rows)
        preview.summary.unique_orders = len(grouped.orders)
        preview.summary.skipped_rows = len(grouped.skipped_rows)

        for order_no, raw_rows in grouped.orders.items():
            try:
                order_rows = [RawImportRow.model_validate(r) for r in raw_rows]
                first = self._representative(order_no, order_rows)

                items = []
                for row in order_rows:
                    part_no = _require_part_no(row)
                    resolution, first_seen = resolver.resolve(row)
                    if not resolution.exists:
                        # Fail here exactly where commit's product creation would
                        try:
                            resolver.build_product(resolution)
                        except Exception as exc:
                            raise ProductImportError(part_no, exc) from exc
                    if first_seen:
                        self._tally_product(preview, resolution, row)
                    items.append(PreviewLineItem(
                        part_no=row.part_no,
                        product_name=row.part_description,
                        quantity=row.effective_quantity,
                        unit_price=row.price,
                        total_price=row.line_total,
                        exists=resolution.exists,
                    ))

                preview.orders_to_create.append(PreviewOrder(
                    po_number=order_no,
                    supplier=supplier_from_dept(first.dept, self.config.fallback_supplier),
                    items=items,
                    total_amount=round(sum(i.total_price or 0.0 for i in items), 2),
                    expected_delivery_date=expected_delivery_date(
                        now, first.month, first.year, self.config.delivery_lead_days,
                    ),
                    priority=priority_from_dept(first.dept),
                    notes=order_notes(first.dept, first.year, first.month),
                    order_date=now,
                ))
            except Exception as exc:
                preview.errors.extend(describe_failure(order_no, exc))
                logger.error("Failed to preview PO %s: %s", order_no, exc)

        logger.info("%s", preview.message)
        return preview

    def _tally_product(self, preview: ImportPreview, resolution: ProductResolution,
                       row: RawImportRow) -> None:
        if resolution.exists:
            preview.existing_products.append(ExistingProduct(
                part_no=resolution.part_no,
                name=resolution.name,
                category=resolution.category,
                current_price=resolution.price,
                excel_price=row.price,
            ))
            preview.summary.existing_products += 1
        else:
            preview.products_to_create.append(PreviewProduct(
                part_no=resolution.part_no,
                name=resolution.derived_name,
                category=resolution.derived_category,
                dept=resolution.derived_dept,
                hsn_number=resolution.derived_hsn_number,
                price=resolution.derived_price,
                gst=resolution.derived_gst_rate or 0.0,
            ))
            preview.summary.new_products += 1

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(self, rows: list[dict[str, Any]], created_by: str) -> ImportOutcome:
        """
        Create products and purchase orders for every order group.

        Each order succeeds or fails on its own; see ImportOutcome.summary
        for the split and ImportOutcome.errors for what went wrong.
        """
        if not rows:
            raise EmptyImportError("No data found in file")

        now = self._now()
        grouped = group_by_order(rows)
        resolver = ProductResolver(self.db)
        placement = self.db.ensure_default_location(
            self.config.default_location_name,
            self.config.default_room_name,
            self.config.default_rack_name,
        )

        outcome = ImportOutcome(missing_columns=find_missing_columns(rows))
        outcome.summary.total_rows = len(rows)
        outcome.summary.unique_orders = len(grouped.orders)
        outcome.summary.skipped_rows = len(grouped.skipped_rows)

        for order_no, raw_rows in grouped.orders.items():
            try:
                created = self._commit_order(order_no, raw_rows, resolver, placement, created_by, now)
            except Exception as exc:
                outcome.summary.failed += 1
                outcome.errors.extend(describe_failure(order_no, exc))
                logger.error(
                    "Failed to create PO %s: %s", order_no, exc,
                    exc_info=not isinstance(
                        exc, (ValueError, DuplicateKeyError, ProductImportError, PONumberExhaustedError),
                    ),
                )
                continue
            outcome.summary.successful += 1
            outcome.created_orders.append(created)

        outcome.summary.products_created = resolver.created_count
        self.db.log_audit(
            "import", uuid.uuid4().hex[:12], "import_completed",
            actor=created_by,
            detail=outcome.summary.model_dump(),
        )
        logger.info("%s", outcome.message)
        return outcome

    def _commit_order(
        self,
        order_no: str,
        raw_rows: list[dict[str, Any]],
        resolver: ProductResolver,
        placement: StockPlacement,
        created_by: str,
        now: datetime,
    ) -> CreatedOrderSummary:
        order_rows = [RawImportRow.model_validate(r) for r in raw_rows]
        first = self._representative(order_no, order_rows)

        draft = PurchaseOrderDraft(
            order_number=order_no,
            supplier=supplier_from_dept(first.dept, self.config.fallback_supplier),
            priority=priority_from_dept(first.dept),
            order_date=now,
            expected_delivery_date=expected_delivery_date(
                now, first.month, first.year, self.config.delivery_lead_days,
            ),
            notes=order_notes(first.dept, first.year, first.month, prefix=IMPORT_NOTES_PREFIX),
            created_by=created_by,
        )

        for row in order_rows:
            part_no = _require_part_no(row)
            try:
                resolution = resolver.ensure(row, placement, created_by)
            except Exception as exc:
                raise ProductImportError(part_no, exc) from exc
            draft.items.append(DraftLineItem(
                product_id=resolution.product_id,
                part_no=part_no,
                quantity=row.effective_quantity,
                unit_price=row.price,
                total_price=row.line_total,
                description=row.part_description,
            ))

        draft.total_amount = round(sum(i.total_price or 0.0 for i in draft.items), 2)
        draft.po_number = self._allocate_po_number(order_no)

        self.validator.check(draft)
        saved = self.db.create_purchase_order(draft.to_record())

        return CreatedOrderSummary(
            id=saved.id,
            po_number=saved.po_number,
            order_number=order_no,
            supplier=saved.supplier,
            item_count=len(saved.items),
            total_amount=saved.total_amount,
        )

    def _allocate_po_number(self, order_no: str) -> str:
        """
        First free PO number among ORDER NO, ORDER NO-1, ORDER NO-2, ...
        giving up after config.po_number_max_attempts suffixes.
        """
        if not self.db.po_number_exists(order_no):
            return order_no
        for k in range(1, self.config.po_number_max_attempts + 1):
            candidate = f"{order_no}-{k}"
            if not self.db.po_number_exists(candidate):
                logger.info("PO number %s taken; using %s", order_no, candidate)
                return candidate
        raise PONumberExhaustedError(
            f"Could not allocate a unique PO number for {order_no} "
            f"after {self.config.po_number_max_attempts} attempts"
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _representative(order_no: str, rows: list[RawImportRow]) -> RawImportRow:
        """
        The first row supplies DEPT / YEAR / month for the whole order.
        Later rows that disagree are logged and otherwise ignored.
        """
        first = rows[0]
        for row in rows[1:]:
            if (row.dept, row.year, row.month) != (first.dept, first.year, first.month):
                logger.warning(
                    "Order %s: rows disagree on DEPT/YEAR/month; using first row (%s, %s, %s)",
                    order_no, first.dept, first.year, first.month,
                )
                break
        return first
