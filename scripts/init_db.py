#!/usr/bin/env python3
"""
Create the credential store tables (clients, licenses, reports, report_grants,
login_audit, login_throttle) if they do not exist.

Usage:
    python scripts/init_db.py
"""

import asyncio
import logging

from kaizen_gate.core.config import settings
from kaizen_gate.core.logging_config import setup_logging
from kaizen_gate.db.session import Database

logger = logging.getLogger("kaizen.init_db")


async def init_db() -> None:
    database = Database.from_settings(settings)
    try:
        await database.create_all()
        logger.info("Schema is up to date")
    finally:
        await database.dispose()


if __name__ == "__main__":
    setup_logging(service_name="kaizen-init-db")
    asyncio.run(init_db())
