"""
Purchase-order import API (FastAPI backend).

Accepts Excel / CSV purchase-order sheets, previews or commits them, and
exposes the resulting purchase orders and products for review.

Every response uses one envelope:  {"success": bool, "message": str, "data": ...}
Errors use the same envelope with success=false.

Authentication happens in front of this service; the caller identity
arrives in the header named by Config.api_user_header (default X-User) and
is recorded as created_by on everything an import writes.

Endpoints
---------
  POST /api/purchase-orders/preview-import → dry-run an uploaded sheet
  POST /api/purchase-orders/import         → commit an uploaded sheet
  GET  /api/purchase-orders                → list summaries (?status= ?search=)
  GET  /api/purchase-orders/{po_number}    → one purchase order with items
  GET  /api/products                       → product master (?search=)
  GET  /api/stats                          → aggregate counts
  GET  /api/audit                          → recent audit entries
  GET  /api/health                         → liveness probe
"""
import logging
from typing import Any, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Config
from importer.database import Database
from importer.reader import SpreadsheetError
from importer.reconciler import EmptyImportError, PurchaseOrderImporter
from .models import ApiResponse

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config / database (lazy, created on first request)
# ---------------------------------------------------------------------------
_config: Optional[Config] = None
_db: Optional[Database] = None


def get_config() -> Config:
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_db(config: Config = Depends(get_config)) -> Database:
    global _db
    if _db is None:
        config.ensure_output_dir()
        _db = Database(config.db_path)
    return _db


def get_importer(
    db: Database = Depends(get_db),
    config: Config = Depends(get_config),
) -> PurchaseOrderImporter:
    return PurchaseOrderImporter(db, config)


def current_user(request: Request, config: Config = Depends(get_config)) -> str:
    """Caller identity forwarded by the authenticating proxy."""
    user = (request.headers.get(config.api_user_header) or "").strip()
    if not user:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(title="Purchase Order Import", docs_url=None, redoc_url=None)


def _envelope(message: str, data: Any = None, success: bool = True) -> dict:
    return ApiResponse(success=success, message=message, data=data).model_dump()


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(str(exc.detail), success=False),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()))
    return JSONResponse(
        status_code=422,
        content=_envelope(f"Invalid request: {field} {first.get('msg', '')}".strip(), success=False),
    )


async def _read_upload(file: Optional[UploadFile], config: Config) -> bytes:
    if file is None:
        raise HTTPException(400, "No file uploaded")
    contents = await file.read()
    if len(contents) > config.max_upload_bytes:
        raise HTTPException(413, f"File exceeds the {config.max_upload_bytes} byte upload limit")
    logger.info("Import upload received: %s (%d bytes)", file.filename, len(contents))
    return contents


# ── Import ───────────────────────────────────────────────────────────────────

@app.post("/api/purchase-orders/preview-import")
async def preview_import(
    file: Optional[UploadFile] = File(default=None),
    user: str = Depends(current_user),
    importer: PurchaseOrderImporter = Depends(get_importer),
    config: Config = Depends(get_config),
):
    """Dry-run an uploaded sheet: nothing is written."""
    contents = await _read_upload(file, config)
    try:
        preview = await run_in_threadpool(importer.preview_file, contents, file.filename)
    except (SpreadsheetError, EmptyImportError) as exc:
        raise HTTPException(400, str(exc))
    return _envelope(preview.message, preview.model_dump(mode="json", by_alias=True))


@app.post("/api/purchase-orders/import")
async def import_purchase_orders(
    file: Optional[UploadFile] = File(default=None),
    user: str = Depends(current_user),
    importer: PurchaseOrderImporter = Depends(get_importer),
    config: Config = Depends(get_config),
):
    """
    Commit an uploaded sheet.

    Returns 200 whenever the sheet could be read, even if some or all orders
    failed; the per-order breakdown is in data.summary and data.errors.
    """
    contents = await _read_upload(file, config)
    try:
        outcome = await run_in_threadpool(importer.import_file, contents, user, file.filename)
    except (SpreadsheetError, EmptyImportError) as exc:
        raise HTTPException(400, str(exc))
    return _envelope(outcome.message, outcome.model_dump(mode="json", by_alias=True))


# ── Purchase orders / products ───────────────────────────────────────────────

@app.get("/api/purchase-orders")
def list_purchase_orders(
    status: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    limit: int = Query(default=500, le=2000),
    offset: int = Query(default=0, ge=0),
    db: Database = Depends(get_db),
):
    orders = db.list_purchase_orders(
        status=status or None,
        search=search or None,
        limit=limit,
        offset=offset,
    )
    return _envelope(f"{len(orders)} purchase orders", orders)


@app.get("/api/purchase-orders/{po_number}")
def get_purchase_order(po_number: str, db: Database = Depends(get_db)):
    po = db.get_purchase_order(po_number)
    if po is None:
        raise HTTPException(status_code=404, detail=f"Purchase order not found: {po_number}")
    return _envelope("Purchase order retrieved", po.model_dump(mode="json"))


@app.get("/api/products")
def list_products(
    search: Optional[str] = Query(default=None),
    limit: int = Query(default=500, le=2000),
    offset: int = Query(default=0, ge=0),
    db: Database = Depends(get_db),
):
    products = db.list_products(search=search or None, limit=limit, offset=offset)
    return _envelope(
        f"{len(products)} products",
        [p.model_dump(mode="json") for p in products],
    )


# ── Misc ─────────────────────────────────────────────────────────────────────

@app.get("/api/stats")
def stats(db: Database = Depends(get_db)):
    return _envelope("Statistics retrieved", db.get_stats())


@app.get("/api/audit")
def audit(
    limit: int = Query(default=200, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Database = Depends(get_db),
):
    return _envelope("Audit log retrieved", db.get_recent_audit_log(limit=limit, offset=offset))


@app.get("/api/health")
def health(config: Config = Depends(get_config)):
    return _envelope("ok", {
        "db_path":   str(config.db_path),
        "db_exists": config.db_path.exists(),
    })
