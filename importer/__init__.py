from .reader import read_rows, find_missing_columns, SpreadsheetError
from .grouper import group_by_order, GroupedRows
from .database import Database, DuplicateKeyError
from .validator import PurchaseOrderValidator, PurchaseOrderValidationError
from .reconciler import (
    PurchaseOrderImporter, ProductResolver, EmptyImportError, PONumberExhaustedError,
)

__all__ = [
    "read_rows", "find_missing_columns", "SpreadsheetError",
    "group_by_order", "GroupedRows",
    "Database", "DuplicateKeyError",
    "PurchaseOrderValidator", "PurchaseOrderValidationError",
    "PurchaseOrderImporter", "ProductResolver", "EmptyImportError", "PONumberExhaustedError",
]
