"""
Create Admin Script

Creates a back office account, or resets the password of an existing one.
Run from project root: python scripts/create_admin.py admin@example.com

Author: Khalil_Bannouri
Version: 1.0.0
"""

import argparse
import asyncio
import getpass
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from group_order.core.auth import ensure_admin
from group_order.database import async_session_maker, engine, init_db


async def create_admin(email: str, password: str) -> None:
    await init_db()
    try:
        async with async_session_maker() as session:
            admin = await ensure_admin(session, email, password)
        print(f"✅ Admin ready: {admin.email} (id {admin.id})")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create or reset an admin account")
    parser.add_argument("email", help="Admin email")
    parser.add_argument("--password", help="Password (prompted when omitted)")
    args = parser.parse_args()

    password = args.password or getpass.getpass("Password: ")
    if not password:
        print("❌ Password must not be empty")
        sys.exit(1)

    asyncio.run(create_admin(args.email, password))
