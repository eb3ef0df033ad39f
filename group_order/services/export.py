"""
Summary export for a group: a one-page PDF and the LINE share link.
"""

import io
import logging
from datetime import datetime
from functools import lru_cache
from typing import Optional, Sequence
from urllib.parse import quote, urlencode

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from group_order.core.config import get_settings
from group_order.schemas import SummaryItem
from group_order.services.ordering import as_utc, describe_time_left, summary_totals

logger = logging.getLogger(__name__)

TITLE_COLOUR = colors.HexColor("#C0392B")
TEXT_BLACK = colors.HexColor("#1a1a1a")
TEXT_GREY = colors.HexColor("#4a4a4a")
RULE_GREY = colors.HexColor("#cccccc")

LEFT = 40
RIGHT = A4[0] - 40
LINE_HEIGHT = 16
FOOTER_Y = 30
# Column x positions: item, count (right aligned), subtotal (right aligned), purchasers
COL_ITEM = LEFT
COL_COUNT = 260
COL_TOTAL = 330
COL_PURCHASERS = 350


@lru_cache()
def summary_font() -> str:
    """
    Register the summary font once and return its name.

    Store, item and purchaser names are usually Chinese, which the
    standard Type1 fonts cannot draw.
    """
    settings = get_settings()
    if settings.pdf_font_file:
        pdfmetrics.registerFont(TTFont("SummaryFont", settings.pdf_font_file))
        return "SummaryFont"
    pdfmetrics.registerFont(UnicodeCIDFont(settings.pdf_font))
    return settings.pdf_font


def _purchasers(row: SummaryItem) -> str:
    parts = []
    for detail in row.order_details:
        parts.append(
            f"{detail.customer_name} x{detail.quantity}"
            if detail.quantity > 1
            else detail.customer_name
        )
    return ", ".join(parts)


def _fit(c: canvas.Canvas, text: str, max_width: float, font: str, size: int) -> str:
    """Cut text with an ellipsis so it fits the column."""
    if c.stringWidth(text, font, size) <= max_width:
        return text
    while text and c.stringWidth(text + "...", font, size) > max_width:
        text = text[:-1]
    return text + "..."


def format_money(value: float) -> str:
    """101.0 -> "101", 90.5 -> "90.5"."""
    return f"{value:.1f}".rstrip("0").rstrip(".")


def local_deadline(end_time: datetime) -> str:
    """Deadline as office-local "YYYY-MM-DD HH:MM"."""
    return as_utc(end_time).astimezone(get_settings().tz).strftime("%Y-%m-%d %H:%M")


def build_summary_pdf(
    store_name: str,
    group_name: str,
    end_time: datetime,
    summary: Sequence[SummaryItem],
    now: Optional[datetime] = None,
) -> bytes:
    """
    Render a group's summary as a single A4 page.

    Rows that do not fit on the page are left out and counted in a final
    line, so the table stays one page for printing.
    """
    buffer = io.BytesIO()
    font = summary_font()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(f"{store_name} - {group_name}")
    height = A4[1]
    y = height - 60

    c.setFont(font, 18)
    c.setFillColor(TITLE_COLOUR)
    c.drawString(LEFT, y, store_name)
    y -= 22

    c.setFont(font, 11)
    c.setFillColor(TEXT_GREY)
    state = describe_time_left(end_time, now)
    c.drawString(LEFT, y, f"{group_name}  |  Deadline {local_deadline(end_time)}  |  {state.text}")
    y -= 28

    # Header row
    c.setFont(font, 10)
    c.setFillColor(TEXT_BLACK)
    c.drawString(COL_ITEM, y, "Item")
    c.drawRightString(COL_COUNT, y, "Qty")
    c.drawRightString(COL_TOTAL, y, "Subtotal")
    c.drawString(COL_PURCHASERS, y, "Purchasers")
    y -= 6
    c.setStrokeColor(RULE_GREY)
    c.line(LEFT, y, RIGHT, y)
    y -= LINE_HEIGHT

    bottom = FOOTER_Y + 3 * LINE_HEIGHT
    c.setFont(font, 10)
    shown = 0
    for row in summary:
        if y < bottom:
            break
        c.drawString(COL_ITEM, y, _fit(c, row.name, COL_COUNT - COL_ITEM - 40, font, 10))
        c.drawRightString(COL_COUNT, y, str(row.count))
        c.drawRightString(COL_TOTAL, y, format_money(row.total))
        c.drawString(
            COL_PURCHASERS, y,
            _fit(c, _purchasers(row), RIGHT - COL_PURCHASERS, font, 10),
        )
        y -= LINE_HEIGHT
        shown += 1

    if shown < len(summary):
        c.setFillColor(TEXT_GREY)
        c.drawString(COL_ITEM, y, f"... {len(summary) - shown} more items not shown")
        y -= LINE_HEIGHT

    if not summary:
        c.setFillColor(TEXT_GREY)
        c.drawString(COL_ITEM, y, "No orders yet")
        y -= LINE_HEIGHT

    c.setStrokeColor(RULE_GREY)
    c.line(LEFT, y + LINE_HEIGHT - 6, RIGHT, y + LINE_HEIGHT - 6)

    total_count, total_amount = summary_totals(summary)
    c.setFont(font, 11)
    c.setFillColor(TEXT_BLACK)
    c.drawString(COL_ITEM, y - 4, "Total")
    c.drawRightString(COL_COUNT, y - 4, str(total_count))
    c.drawRightString(COL_TOTAL, y - 4, format_money(total_amount))

    c.setFont(font, 8)
    c.setFillColor(TEXT_GREY)
    printed = (now or datetime.now(get_settings().tz)).astimezone(get_settings().tz)
    c.drawString(LEFT, FOOTER_Y, f"Printed {printed.strftime('%Y-%m-%d %H:%M')}")

    c.showPage()
    c.save()
    return buffer.getvalue()


def build_share_text(
    store_name: str,
    group_name: str,
    end_time: datetime,
    group_url: str,
) -> str:
    return (
        f"Group order: {store_name} ({group_name})\n"
        f"Order before {local_deadline(end_time)}\n"
        f"{group_url}"
    )


def build_share_link(
    group_id: int,
    store_name: str,
    group_name: str,
    end_time: datetime,
    base_url: Optional[str] = None,
) -> tuple[str, str]:
    """
    LINE share deep link for a group.

    Returns:
        (url, text) where text is the pre-filled message
    """
    settings = get_settings()
    base_url = (base_url or settings.app_base_url).rstrip("/")
    group_url = f"{base_url}/?{urlencode({'group': group_id})}"

    text = build_share_text(store_name, group_name, end_time, group_url)
    url = f"{settings.share_link_base.rstrip('/')}/?{quote(text, safe='')}"
    return url, text
