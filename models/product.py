from pydantic import BaseModel, Field
from typing import Optional


DEFAULT_IMPORT_CATEGORY = "spare_part"


class Product(BaseModel):
    """
    A product master record.  part_no is unique across the store and is the
    key imports reconcile against.
    """
    id: Optional[int] = None
    name: str = Field(min_length=1, max_length=200)
    part_no: str = Field(min_length=1, max_length=100)
    category: str = DEFAULT_IMPORT_CATEGORY
    dept: Optional[str] = Field(default=None, max_length=100)
    hsn_number: Optional[str] = Field(default=None, max_length=50)
    price: float = Field(default=0.0, ge=0)
    gst: float = Field(default=0.0, ge=0)          # percent, e.g. 18.0
    min_stock_level: int = Field(default=0, ge=0)
    quantity: int = Field(default=0, ge=0)
    is_active: bool = True
    location_id: Optional[int] = None
    room_id: Optional[int] = None
    rack_id: Optional[int] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None               # ISO 8601


class ProductResolution(BaseModel):
    """
    Outcome of looking a part number up in the product master, computed at
    most once per part number per import run.

    Either ``exists`` is True and the product_* fields describe the master
    record, or ``will_create`` is True and the derived_* fields describe the
    product the import would create.
    """
    part_no: str
    exists: bool
    will_create: bool = False

    product_id: Optional[int] = None
    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None

    derived_name: Optional[str] = None
    derived_category: Optional[str] = None
    derived_price: Optional[float] = None
    derived_gst_rate: Optional[float] = None
    derived_hsn_number: Optional[str] = None
    derived_dept: Optional[str] = None


class StockPlacement(BaseModel):
    """Location / room / rack ids new imported products are attached to."""
    location_id: int
    room_id: int
    rack_id: int
