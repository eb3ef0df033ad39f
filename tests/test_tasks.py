# Celery tasks, run eagerly in-process.

from group_order.services.excel_manager import ExcelManager
from group_order.tasks import archive_group_summary, celery_app


def test_archive_task_runs_eagerly():
    ExcelManager.clear_all()
    payload = {
        "group_id": 11,
        "group_name": "Lunch",
        "store_name": "Golden Bento",
        "order_date": "2026-10-17",
        "end_time": "2026-10-17T04:00:00+00:00",
        "summary": [
            {
                "name": "Tea",
                "count": 2,
                "total": 60.0,
                "order_details": [{"id": 1, "customer_name": "Amy", "quantity": 2}],
            },
        ],
    }

    result = archive_group_summary.delay(payload).get()

    assert result["success"] is True
    assert result["rows"] == 1
    assert "processing_time_seconds" in result
    assert [row["purchasers"] for row in ExcelManager.get_archived_summaries()] == ["Amy x2"]
    ExcelManager.clear_all()


def test_only_archive_task_is_registered():
    own_tasks = {name for name in celery_app.tasks if name.startswith("group_order.")}

    assert own_tasks == {"group_order.tasks.archive_group_summary"}
