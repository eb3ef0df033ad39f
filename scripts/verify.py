"""
Archive Verification Script

Verifies data integrity of the group summary archive workbook.
Run from project root: python scripts/verify.py

Author: Khalil_Bannouri
Version: 1.0.0
"""

import os
import sys
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from group_order.services.excel_manager import ARCHIVE_FILE, ExcelManager


def verify_archive() -> bool:
    """Verify the archive workbook written when groups are closed."""

    print("=" * 60)
    print("🔍 SUMMARY ARCHIVE VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📄 File: {ARCHIVE_FILE}")
    print("=" * 60)

    # Check if file exists
    if not ARCHIVE_FILE.exists():
        print("\n❌ Archive workbook not found!")
        print("   Close a group with orders first (DELETE /api/groups/<id>)")
        return False

    # Load Excel file
    try:
        df = pd.read_excel(ARCHIVE_FILE, engine='openpyxl')
        print(f"\n✅ File loaded successfully!")
    except Exception as e:
        print(f"\n❌ Could not read archive: {e}")
        return False

    # Statistics
    print(f"\n📊 STATISTICS:")
    print(f"   Summary Rows: {len(df)}")
    print(f"   Columns: {len(df.columns)}")

    # Check required columns
    missing = [col for col in ExcelManager.ARCHIVE_COLUMNS if col not in df.columns]
    if missing:
        print(f"\n⚠️ Missing Columns: {missing}")
    else:
        print(f"\n✅ All required columns present")

    ok = not missing

    # One row per item per group
    if {'group_id', 'item_name'} <= set(df.columns):
        duplicates = df.duplicated(subset=['group_id', 'item_name']).sum()
        if duplicates > 0:
            print(f"\n⚠️ {duplicates} repeated (group, item) rows - a group was archived twice?")
            ok = False
        else:
            print(f"✅ No repeated (group, item) rows")

    # Counts and totals
    if {'count', 'total'} <= set(df.columns):
        bad_counts = (df['count'] < 1).sum()
        bad_totals = (df['total'] < 0).sum()
        if bad_counts or bad_totals:
            print(f"\n⚠️ {bad_counts} rows with count < 1, {bad_totals} rows with negative total")
            ok = False

        print(f"\n💰 TOTALS:")
        print(f"   Groups: {df['group_id'].nunique() if 'group_id' in df.columns else '?'}")
        print(f"   Portions: {int(df['count'].sum())}")
        print(f"   Amount: ${df['total'].sum():.1f}")

    # Sample data
    print(f"\n📋 RECENT ROWS:")
    print("-" * 60)
    if len(df) > 0:
        cols = ['group_id', 'store_name', 'item_name', 'count', 'total']
        cols = [c for c in cols if c in df.columns]
        print(df[cols].tail(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if ok else "⚠️ VERIFICATION FOUND ISSUES")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    sys.exit(0 if verify_archive() else 1)
