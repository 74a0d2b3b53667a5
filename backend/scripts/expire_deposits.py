"""Expire unpaid deposit checkouts and lapsed holds.

Meant to run periodically (cron or a scheduler) against the configured
database.
"""
from __future__ import annotations

import asyncio
import logging

from gomonto.db.session import dispose_engine, session_scope
from gomonto.services.deposit_service import expire_stale_deposits


async def run_expiry() -> int:
    async with session_scope() as session:
        expired = await expire_stale_deposits(session)
    await dispose_engine()
    print(f"Expired {expired} deposit transaction(s).")
    return expired


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_expiry())


if __name__ == "__main__":
    main()
