from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional


# Column headers exactly as they appear in the uploaded sheet
COL_ORDER_NO     = "ORDER NO"
COL_PART_NO      = "Part No"
COL_DESCRIPTION  = "Part Description"
COL_DEPT         = "DEPT"
COL_YEAR         = "YEAR"
COL_MONTH        = "month"
COL_QTY          = "QTY"
COL_ORDERED_QTY  = "Ordered Qty"
COL_PRICE        = "Price"
COL_HSN_NO       = "HSN No"
COL_TAX          = "Tax"
COL_GST_VALUE    = "GST VALUE"
COL_TOTAL        = "TOTAL"

REQUIRED_COLUMNS = [
    COL_ORDER_NO, COL_PART_NO, COL_DESCRIPTION, COL_DEPT, COL_YEAR, COL_MONTH, COL_PRICE,
]
# At least one of these must be present
QUANTITY_COLUMNS = [COL_ORDERED_QTY, COL_QTY]


def clean_text(value: Any) -> Optional[str]:
    """
    Normalise a spreadsheet cell to a stripped string, or None when blank.

    Integral floats (``1234.0``, as produced for numeric part/order numbers)
    lose their trailing ``.0``.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def to_number(value: Any) -> Optional[float]:
    """Coerce a numeric cell; blanks become None, junk raises ValueError."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    return float(text)


class RawImportRow(BaseModel):
    """
    One spreadsheet row keyed by its original column headers.

    Every attribute is optional at this stage; required-ness is enforced
    later when the row is turned into a purchase-order line.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    order_no: Optional[str] = Field(default=None, alias=COL_ORDER_NO)
    part_no: Optional[str] = Field(default=None, alias=COL_PART_NO)
    part_description: Optional[str] = Field(default=None, alias=COL_DESCRIPTION)
    dept: Optional[str] = Field(default=None, alias=COL_DEPT)
    year: Optional[str] = Field(default=None, alias=COL_YEAR)
    month: Optional[str] = Field(default=None, alias=COL_MONTH)
    qty: Optional[float] = Field(default=None, alias=COL_QTY)
    ordered_qty: Optional[float] = Field(default=None, alias=COL_ORDERED_QTY)
    price: Optional[float] = Field(default=None, alias=COL_PRICE)
    hsn_no: Optional[str] = Field(default=None, alias=COL_HSN_NO)
    tax: Optional[str] = Field(default=None, alias=COL_TAX)
    gst_value: Optional[float] = Field(default=None, alias=COL_GST_VALUE)
    total: Optional[float] = Field(default=None, alias=COL_TOTAL)

    @field_validator(
        "order_no", "part_no", "part_description", "dept", "year", "month", "hsn_no", "tax",
        mode="before",
    )
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return clean_text(v)

    @field_validator("qty", "ordered_qty", "price", "gst_value", "total", mode="before")
    @classmethod
    def _number(cls, v: Any) -> Optional[float]:
        return to_number(v)

    @property
    def effective_quantity(self) -> Optional[float]:
        """Ordered Qty when set and non-zero, otherwise QTY."""
        return self.ordered_qty or self.qty

    @property
    def line_total(self) -> Optional[float]:
        """TOTAL when set and non-zero, otherwise Price × effective quantity."""
        if self.total:
            return self.total
        qty = self.effective_quantity
        if self.price is None or qty is None:
            return None
        return round(self.price * qty, 2)
