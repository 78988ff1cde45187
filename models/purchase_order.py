from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal


POStatus = Literal["draft", "sent", "confirmed", "received", "cancelled"]
Priority = Literal["low", "medium", "high", "urgent"]
SourceType = Literal["manual", "amc", "service", "inventory"]


def normalise_po_number(value: str) -> str:
    """PO numbers are stored trimmed and upper-cased; lookups must match."""
    return (value or "").strip().upper()


class POLineItem(BaseModel):
    """A single line item on a Purchase Order."""
    product_id: int
    quantity: float = Field(ge=1)
    unit_price: float = Field(ge=0)
    total_price: float = Field(ge=0)
    description: Optional[str] = None
    part_no: Optional[str] = None


class PurchaseOrder(BaseModel):
    """
    A Purchase Order as persisted in the store.
    po_number is unique; the store rejects a second record with the same one.
    """
    id: Optional[int] = None
    po_number: str = Field(min_length=1, max_length=100)
    supplier: str = Field(min_length=1, max_length=200)
    items: List[POLineItem] = Field(min_length=1)
    total_amount: float = Field(ge=0)
    status: POStatus = "draft"
    priority: Priority = "medium"
    source_type: SourceType = "manual"
    order_date: datetime
    expected_delivery_date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    created_by: str = Field(min_length=1)
    created_at: Optional[str] = None    # ISO 8601, set by the store

    @field_validator("po_number", mode="before")
    @classmethod
    def _normalise_po_number(cls, v):
        return normalise_po_number(v) if isinstance(v, str) else v


class DraftLineItem(BaseModel):
    """A line being assembled from sheet rows; nothing is enforced yet."""
    product_id: Optional[int] = None
    part_no: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    description: Optional[str] = None


class PurchaseOrderDraft(BaseModel):
    """
    A purchase order assembled from one order group, before validation.
    to_record() applies the stored-record constraints.
    """
    po_number: Optional[str] = None
    order_number: str                       # raw ORDER NO the draft came from
    supplier: Optional[str] = None
    items: List[DraftLineItem] = Field(default_factory=list)
    total_amount: float = 0.0
    priority: Priority = "medium"
    order_date: datetime
    expected_delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None

    def to_record(self) -> PurchaseOrder:
        """Build the persisted record; raises pydantic.ValidationError on bad fields."""
        return PurchaseOrder(
            po_number=self.po_number,
            supplier=self.supplier,
            items=[item.model_dump() for item in self.items],
            total_amount=self.total_amount,
            status="draft",
            priority=self.priority,
            source_type="manual",
            order_date=self.order_date,
            expected_delivery_date=self.expected_delivery_date,
            notes=self.notes,
            created_by=self.created_by,
        )
