"""
Pre-insert validation of assembled purchase orders.

Checks:
  Header:  PO number, supplier, creator present; at least one item
  Items:   product reference present, quantity > 0, unit price >= 0

Field-level limits (string lengths, quantity >= 1 ...) are enforced by the
record model itself when the draft is converted.
"""
import logging

from models.purchase_order import PurchaseOrderDraft

logger = logging.getLogger(__name__)


class PurchaseOrderValidationError(ValueError):
    """The draft fails a business rule; problems lists every failing rule."""

    def __init__(self, problems: list[str]):
        super().__init__("; ".join(problems))
        self.problems = problems


class PurchaseOrderValidator:
    """
    Collects every problem with a draft rather than stopping at the first.

    Usage:
        validator = PurchaseOrderValidator()
        validator.check(draft)      # raises PurchaseOrderValidationError
    """

    def validate(self, draft: PurchaseOrderDraft) -> list[str]:
        """Return human-readable problems; empty when the draft is valid."""
        problems: list[str] = []
        problems.extend(self._check_header(draft))
        problems.extend(self._check_items(draft))
        return problems

    def check(self, draft: PurchaseOrderDraft) -> None:
        problems = self.validate(draft)
        if problems:
            logger.debug("Draft %s rejected: %s", draft.order_number, problems)
            raise PurchaseOrderValidationError(problems)

    def _check_header(self, draft: PurchaseOrderDraft) -> list[str]:
        problems = []
        if not draft.po_number:
            problems.append("PO Number is required")
        if not draft.supplier:
            problems.append("Supplier is required")
        if not draft.items:
            problems.append("At least one item is required")
        if not draft.created_by:
            problems.append("Created by user is required")
        return problems

    def _check_items(self, draft: PurchaseOrderDraft) -> list[str]:
        # One message per rule, however many items break it
        problems = []
        if any(item.product_id is None for item in draft.items):
            problems.append("Product ID is required for all items")
        if any(not item.quantity or item.quantity <= 0 for item in draft.items):
            problems.append("Valid quantity is required for all items")
        if any(item.unit_price is None or item.unit_price < 0 for item in draft.items):
            problems.append("Valid unit price is required for all items")
        return problems
