# Summary PDF and the LINE share link.

import io
from urllib.parse import unquote

from pypdf import PdfReader

from group_order.schemas import OrderDetail, SummaryItem
from group_order.services.export import (
    build_share_link,
    build_summary_pdf,
    format_money,
    local_deadline,
)
from tests.conftest import utc

DEADLINE = utc(2026, 10, 17, 4, 0, 0)


def test_local_deadline_uses_office_timezone():
    assert local_deadline(DEADLINE) == "2026-10-17 12:00"


def test_format_money():
    assert format_money(101.0) == "101"
    assert format_money(90.5) == "90.5"
    assert format_money(0) == "0"


def test_summary_pdf():
    summary = [
        SummaryItem(
            name="Fried Rice",
            count=3,
            total=270.0,
            order_details=[
                OrderDetail(id=1, customer_name="Amy", quantity=2),
                OrderDetail(id=2, customer_name="Ben", quantity=1),
            ],
        ),
    ]

    content = build_summary_pdf("Golden Bento", "Lunch", DEADLINE, summary, now=utc(2026, 10, 17, 3))

    assert content.startswith(b"%PDF")
    assert b"/Count 1" in content


def test_summary_pdf_long_list_stays_one_page():
    summary = [
        SummaryItem(name=f"Item {i}", count=1, total=10.0, order_details=[
            OrderDetail(id=i, customer_name="Amy", quantity=1)
        ])
        for i in range(120)
    ]

    content = build_summary_pdf("Golden Bento", "Lunch", DEADLINE, summary, now=utc(2026, 10, 17, 3))

    assert content.startswith(b"%PDF")
    assert b"/Count 1" in content


def test_empty_summary_pdf():
    content = build_summary_pdf("Golden Bento", "Lunch", DEADLINE, [], now=utc(2026, 10, 17, 5))

    assert content.startswith(b"%PDF")


def test_share_link():
    url, text = build_share_link(5, "Golden Bento", "Lunch", DEADLINE, base_url="https://lunch.example.com/")

    assert url.startswith("https://line.me/R/msg/text/?")
    assert unquote(url.split("?", 1)[1]) == text
    assert "Golden Bento (Lunch)" in text
    assert "2026-10-17 12:00" in text
    assert text.endswith("https://lunch.example.com/?group=5")


def test_summary_pdf_keeps_chinese_names():
    summary = [
        SummaryItem(
            name="雞腿便當",
            count=2,
            total=180.0,
            order_details=[OrderDetail(id=1, customer_name="小明", quantity=2)],
        ),
    ]

    content = build_summary_pdf("金華便當", "午餐團", DEADLINE, summary, now=utc(2026, 10, 17, 3))

    text = PdfReader(io.BytesIO(content)).pages[0].extract_text()
    assert "金華便當" in text
    assert "雞腿便當" in text
    assert "小明" in text
    assert "■" not in text
