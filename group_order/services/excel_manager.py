"""
Spreadsheet Manager

Spreadsheet work for the menu editor and the group archive:
- Menu import: name | price | optional note, parsed into upsert rows
- Summary download: one group's summary as an .xlsx file
- Archive: closed group summaries appended to one workbook, under a file lock

Author: Khalil Bannouri
Version: 1.0.0
"""

import csv
import io
import logging
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import pandas as pd
from filelock import FileLock, Timeout
from pydantic import ValidationError

from group_order.core.config import get_settings
from group_order.schemas import ProductUpsert

settings = get_settings()
logger = logging.getLogger(__name__)

DATA_DIR = Path(settings.data_directory)
ARCHIVE_FILE = DATA_DIR / settings.summary_workbook
ARCHIVE_LOCK = DATA_DIR / f"{settings.summary_workbook}.lock"


class SpreadsheetError(ValueError):
    """The uploaded file could not be read as a menu sheet."""


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return str(value).strip() == ""


def _cell_text(value: Any) -> Optional[str]:
    if _is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _cell_price(value: Any) -> Optional[float]:
    if _is_blank(value):
        return None
    try:
        price = float(str(value).strip().replace(",", ""))
    except ValueError:
        return None
    if math.isnan(price) or price < 0:
        return None
    return price


def format_purchasers(order_details: list[dict[str, Any]]) -> str:
    """'Amy x2, Bob' style list of who ordered a summary row."""
    parts = []
    for detail in order_details:
        qty = detail.get("quantity") or 1
        name = detail.get("customer_name", "")
        parts.append(f"{name} x{qty}" if qty > 1 else name)
    return ", ".join(parts)


class ExcelManager:
    """Menu import and summary export/archive."""

    LOCK_TIMEOUT = settings.excel_lock_timeout

    MENU_EXTENSIONS = {".xlsx", ".csv"}

    SUMMARY_COLUMNS = [
        "item_name",
        "count",
        "total",
        "purchasers",
    ]

    ARCHIVE_COLUMNS = [
        "group_id",
        "group_name",
        "store_name",
        "order_date",
        "end_time",
        "item_name",
        "count",
        "total",
        "purchasers",
        "archived_at",
    ]

    @classmethod
    def _ensure_data_dir(cls) -> None:
        """Create data directory if needed."""
        if not DATA_DIR.exists():
            DATA_DIR.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {DATA_DIR}")

    @classmethod
    def _load_or_create_df(cls, file_path: Path, columns: list) -> pd.DataFrame:
        """Load existing file or create new DataFrame."""
        if file_path.exists():
            try:
                return pd.read_excel(file_path, engine="openpyxl")
            except Exception as e:
                logger.warning(f"Error reading {file_path}: {e}")
                return pd.DataFrame(columns=columns)
        return pd.DataFrame(columns=columns)

    # =========================================================================
    # MENU IMPORT
    # =========================================================================

    @classmethod
    def read_menu_frame(cls, content: bytes, filename: str) -> pd.DataFrame:
        """
        Read the first sheet of an uploaded menu without a header row.

        Raises:
            SpreadsheetError: unsupported extension or unreadable file
        """
        suffix = Path(filename or "").suffix.lower()
        if suffix not in cls.MENU_EXTENSIONS:
            raise SpreadsheetError(
                f"Unsupported file type '{suffix or filename}'. Use .xlsx or .csv"
            )

        try:
            if suffix == ".csv":
                # Rows may or may not carry the note column
                text = content.decode("utf-8-sig")
                rows = [row for row in csv.reader(io.StringIO(text)) if row]
                return pd.DataFrame(rows)
            return pd.read_excel(io.BytesIO(content), header=None, sheet_name=0, engine="openpyxl")
        except Exception as e:
            raise SpreadsheetError(f"Could not read {filename}: {e}") from e

    @classmethod
    def parse_menu_rows(cls, frame: pd.DataFrame) -> list[ProductUpsert]:
        """
        Turn sheet rows into upsert payloads.

        Column 0 is the item name, column 1 the price, column 2 an optional
        note. Rows with a blank name or a non-numeric price are skipped,
        which also drops header rows. A name repeated in the same sheet
        keeps its last row.
        """
        rows: dict[str, ProductUpsert] = {}

        for raw in frame.itertuples(index=False, name=None):
            name = _cell_text(raw[0]) if len(raw) > 0 else None
            if not name:
                continue

            price = _cell_price(raw[1]) if len(raw) > 1 else None
            if price is None:
                logger.debug(f"Skipping menu row without a usable price: {raw!r}")
                continue

            note = _cell_text(raw[2]) if len(raw) > 2 else None

            try:
                rows[name] = ProductUpsert(name=name, price=price, description=note)
            except ValidationError as e:
                logger.debug(f"Skipping invalid menu row {raw!r}: {e}")

        return list(rows.values())

    @classmethod
    def parse_menu_file(cls, content: bytes, filename: str) -> list[ProductUpsert]:
        """Read and parse an uploaded menu sheet."""
        products = cls.parse_menu_rows(cls.read_menu_frame(content, filename))
        logger.info(f"Parsed {len(products)} menu rows from {filename}")
        return products

    # =========================================================================
    # SUMMARY EXPORT
    # =========================================================================

    @classmethod
    def summary_rows(cls, summary: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [
            {
                "item_name": row["name"],
                "count": row["count"],
                "total": row["total"],
                "purchasers": format_purchasers(row.get("order_details", [])),
            }
            for row in summary
        ]

    @classmethod
    def summary_workbook_bytes(cls, summary: list[dict[str, Any]]) -> bytes:
        """One group's summary as an in-memory .xlsx file."""
        df = pd.DataFrame(cls.summary_rows(summary), columns=cls.SUMMARY_COLUMNS)
        buffer = io.BytesIO()
        df.to_excel(buffer, index=False, engine="openpyxl")
        return buffer.getvalue()

    @classmethod
    def archive_group_summary(cls, summary_data: dict[str, Any]) -> dict[str, Any]:
        """Append a closed group's summary to the archive workbook with file locking."""
        cls._ensure_data_dir()

        group_id = summary_data.get("group_id", 0)
        result = {
            "success": False,
            "message": "",
            "group_id": group_id,
            "rows": 0,
            "archived_at": None,
        }

        try:
            lock = FileLock(str(ARCHIVE_LOCK), timeout=cls.LOCK_TIMEOUT)

            with lock:
                logger.debug(f"Lock acquired for Group #{group_id}")

                df = cls._load_or_create_df(ARCHIVE_FILE, cls.ARCHIVE_COLUMNS)

                archive_time = datetime.now().isoformat()
                new_rows = [
                    {
                        "group_id": group_id,
                        "group_name": summary_data.get("group_name"),
                        "store_name": summary_data.get("store_name"),
                        "order_date": summary_data.get("order_date"),
                        "end_time": summary_data.get("end_time"),
                        "archived_at": archive_time,
                        **row,
                    }
                    for row in cls.summary_rows(summary_data.get("summary", []))
                ]

                if new_rows:
                    df = pd.concat(
                        [df, pd.DataFrame(new_rows, columns=cls.ARCHIVE_COLUMNS)],
                        ignore_index=True,
                    )
                    df.to_excel(str(ARCHIVE_FILE), index=False, engine="openpyxl")

                logger.info(f"Group #{group_id} archived ({len(new_rows)} rows)")

                result["success"] = True
                result["message"] = f"Group #{group_id} archived"
                result["rows"] = len(new_rows)
                result["archived_at"] = archive_time

            logger.debug(f"Lock released for Group #{group_id}")

        except Timeout:
            result["message"] = f"Lock timeout ({cls.LOCK_TIMEOUT}s)"
            logger.error(f"Lock timeout for Group #{group_id}")

        except Exception as e:
            result["message"] = str(e)
            logger.exception(f"Error archiving Group #{group_id}")

        return result

    @classmethod
    def get_archived_summaries(cls) -> list[dict[str, Any]]:
        """Get all archived summary rows."""
        cls._ensure_data_dir()

        if not ARCHIVE_FILE.exists():
            return []

        try:
            df = pd.read_excel(ARCHIVE_FILE, engine="openpyxl")
            return df.to_dict("records")
        except Exception as e:
            logger.error(f"Error reading archive: {e}")
            return []

    @classmethod
    def clear_all(cls) -> bool:
        """Delete the archive workbook and its lock."""
        try:
            for f in [ARCHIVE_FILE, ARCHIVE_LOCK]:
                if f.exists():
                    f.unlink()
            logger.info("Archive workbook cleared")
            return True
        except Exception as e:
            logger.error(f"Error clearing files: {e}")
            return False
