from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List


class _ApiModel(BaseModel):
    """Serialises with camelCase keys (model_dump(by_alias=True)) for API clients."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MissingColumn(_ApiModel):
    """A required header absent from the uploaded sheet."""
    column: str
    suggestion: Optional[str] = None    # closest header actually present


class PreviewLineItem(_ApiModel):
    part_no: Optional[str] = None
    product_name: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    exists: bool = False


class PreviewOrder(_ApiModel):
    """An order the import would create.  po_number is the raw order number."""
    po_number: str
    supplier: str
    items: List[PreviewLineItem] = Field(default_factory=list)
    total_amount: float = 0.0
    expected_delivery_date: datetime
    priority: str
    notes: str
    order_date: datetime


class PreviewProduct(_ApiModel):
    """A product the import would create for an unknown part number."""
    part_no: str
    name: Optional[str] = None
    category: str
    dept: Optional[str] = None
    hsn_number: Optional[str] = None
    price: Optional[float] = None
    gst: float = 0.0


class ExistingProduct(_ApiModel):
    """A part number already in the product master, with both prices for review."""
    part_no: str
    name: str
    category: Optional[str] = None
    current_price: Optional[float] = None
    excel_price: Optional[float] = None


class PreviewSummary(_ApiModel):
    total_rows: int = 0
    unique_orders: int = 0
    skipped_rows: int = 0
    new_products: int = 0
    existing_products: int = 0


class ImportPreview(_ApiModel):
    """
    Non-mutating dry run of an import.
    Nothing in here has been written to the store.
    """
    orders_to_create: List[PreviewOrder] = Field(default_factory=list)
    products_to_create: List[PreviewProduct] = Field(default_factory=list)
    existing_products: List[ExistingProduct] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    missing_columns: List[MissingColumn] = Field(default_factory=list)
    summary: PreviewSummary = Field(default_factory=PreviewSummary)

    @property
    def message(self) -> str:
        s = self.summary
        return (
            f"Preview completed. {s.unique_orders} orders, {s.new_products} new products, "
            f"{s.existing_products} existing products."
        )


class CreatedOrderSummary(_ApiModel):
    """One purchase order written by a commit run."""
    id: int
    po_number: str                      # as allocated (may carry a -k suffix)
    order_number: str                   # raw ORDER NO from the sheet
    supplier: str
    item_count: int
    total_amount: float


class ImportSummary(_ApiModel):
    total_rows: int = 0
    unique_orders: int = 0
    skipped_rows: int = 0
    successful: int = 0
    failed: int = 0
    products_created: int = 0


class ImportOutcome(_ApiModel):
    """
    Result of a commit run.  Created fresh per import and never persisted.

    A non-zero ``summary.failed`` does not mean the run failed: every order
    is committed or rejected on its own.
    """
    summary: ImportSummary = Field(default_factory=ImportSummary)
    created_orders: List[CreatedOrderSummary] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    missing_columns: List[MissingColumn] = Field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"Import completed. {self.summary.successful} orders created, "
            f"{self.summary.failed} failed."
        )
