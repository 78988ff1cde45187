"""
Central configuration for the purchase-order import service.

All paths, limits, and import defaults are defined here.
Override via environment variables or by passing a Config instance directly.

Settings priority (highest wins):
  1. Environment variables
  2. config/import_settings.json  (admin-editable, persisted)
  3. Hardcoded defaults in this file
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# Project root (directory containing this file)
PROJECT_ROOT = Path(__file__).parent

DEFAULT_OUTPUT_DIR = PROJECT_ROOT / "output"
DEFAULT_DB_PATH    = DEFAULT_OUTPUT_DIR / "poimport.db"


@dataclass
class Config:
    # --- Storage ---
    output_dir: Path = field(
        default_factory=lambda: Path(os.getenv("OUTPUT_DIR", str(DEFAULT_OUTPUT_DIR)))
    )
    db_path: Path = field(
        default_factory=lambda: Path(os.getenv("DB_PATH", str(DEFAULT_DB_PATH)))
    )

    # --- Import defaults ---
    delivery_lead_days: int = field(
        default_factory=lambda: int(os.getenv("DELIVERY_LEAD_DAYS", "30"))
    )
    # Expected delivery is always "now + delivery_lead_days"; the sheet's
    # YEAR / month columns are deliberately not used.

    po_number_max_attempts: int = field(
        default_factory=lambda: int(os.getenv("PO_NUMBER_MAX_ATTEMPTS", "1000"))
    )
    # How many "-k" suffixes to try when ORDER NO collides with an existing PO.

    fallback_supplier: str = field(
        default_factory=lambda: os.getenv("FALLBACK_SUPPLIER", "General Supplier")
    )

    # Where newly created products are placed (created on first commit run)
    default_location_name: str = "Default Location"
    default_room_name:     str = "Default Room"
    default_rack_name:     str = "Default Rack"

    # --- API ---
    max_upload_bytes: int = field(
        default_factory=lambda: int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
    )
    api_user_header: str = field(
        default_factory=lambda: os.getenv("API_USER_HEADER", "X-User")
    )
    # Authentication happens upstream; the proxy forwards the caller identity
    # in this header and it becomes created_by on every record.

    def __post_init__(self) -> None:
        """Overlay runtime-tunable settings from import_settings.json if present."""
        config_dir = Path(os.getenv("CONFIG_DIR", str(PROJECT_ROOT / "config")))
        settings_file = config_dir / "import_settings.json"
        if not settings_file.exists():
            return
        # key -> (type, environment variable that outranks the file)
        _type_map: dict[str, tuple[type, str | None]] = {
            "delivery_lead_days":      (int, "DELIVERY_LEAD_DAYS"),
            "po_number_max_attempts":  (int, "PO_NUMBER_MAX_ATTEMPTS"),
            "fallback_supplier":       (str, "FALLBACK_SUPPLIER"),
            "default_location_name":   (str, None),
            "default_room_name":       (str, None),
            "default_rack_name":       (str, None),
            "max_upload_bytes":        (int, "MAX_UPLOAD_BYTES"),
        }
        try:
            with open(settings_file, encoding="utf-8") as f:
                overrides = {k: v for k, v in json.load(f).items() if not k.startswith("_")}
            for key, val in overrides.items():
                if key not in _type_map or not hasattr(self, key):
                    continue
                cast, env_var = _type_map[key]
                if env_var and os.getenv(env_var) is not None:
                    continue
                setattr(self, key, cast(val))
        except Exception as exc:
            logger.warning("Failed to load import_settings.json: %s", exc)

    def ensure_output_dir(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
