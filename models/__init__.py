from .import_row import RawImportRow, REQUIRED_COLUMNS, QUANTITY_COLUMNS
from .product import Product, ProductResolution, StockPlacement
from .purchase_order import PurchaseOrder, POLineItem, PurchaseOrderDraft, DraftLineItem
from .result import (
    ImportPreview, ImportOutcome, PreviewOrder, PreviewLineItem, PreviewProduct,
    ExistingProduct, CreatedOrderSummary, MissingColumn,
)

__all__ = [
    "RawImportRow", "REQUIRED_COLUMNS", "QUANTITY_COLUMNS",
    "Product", "ProductResolution", "StockPlacement",
    "PurchaseOrder", "POLineItem", "PurchaseOrderDraft", "DraftLineItem",
    "ImportPreview", "ImportOutcome", "PreviewOrder", "PreviewLineItem", "PreviewProduct",
    "ExistingProduct", "CreatedOrderSummary", "MissingColumn",
]
