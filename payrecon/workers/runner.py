"""
Entry point for the scheduled workers.

    python -m payrecon.workers.runner refunds            # one run, for cron
    python -m payrecon.workers.runner disputes --loop    # poll every WORKER_POLL_INTERVAL
"""

import argparse
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from payrecon.core.config import WORKER_POLL_INTERVAL
from payrecon.core.db import close_db, init_db
from payrecon.core.logging import setup_logging
from payrecon.workers.dispute_automation import run_dispute_automation
from payrecon.workers.financial_reconciliation import run_financial_reconciliation
from payrecon.workers.refund_reconciliation import run_refund_reconciliation
from payrecon.workers.supplier_sla import run_supplier_scoring

log = logging.getLogger("payrecon.runner")

JOBS: Dict[str, Callable[[], Awaitable[Dict[str, Any]]]] = {
    "refunds": run_refund_reconciliation,
    "disputes": run_dispute_automation,
    "financials": run_financial_reconciliation,
    "suppliers": run_supplier_scoring,
}


async def run_job(name: str) -> Dict[str, Any]:
    job = JOBS.get(name)
    if job is None:
        raise ValueError(f"Unknown job '{name}'. Expected one of: {', '.join(sorted(JOBS))}")
    return await job()


async def run_forever(name: str, interval: float = WORKER_POLL_INTERVAL) -> None:
    """Polling loop; a failed run is logged and retried on the next tick."""
    if name not in JOBS:
        raise ValueError(f"Unknown job '{name}'")
    log.info(f"--- Worker '{name}' started (interval {interval}s) ---")
    while True:
        try:
            await run_job(name)
        except Exception as e:
            log.error(f"Worker '{name}' run failed: {e}", exc_info=True)
        await asyncio.sleep(interval)


async def _run(name: str, loop: bool, interval: float) -> Optional[Dict[str, Any]]:
    await init_db()
    try:
        if loop:
            await run_forever(name, interval)
            return None
        result = await run_job(name)
        log.info(f"Worker '{name}' finished: {result}")
        return result
    finally:
        await close_db()


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run a payment reconciliation worker.")
    parser.add_argument("job", choices=sorted(JOBS))
    parser.add_argument("--loop", action="store_true", help="keep polling instead of running once")
    parser.add_argument("--interval", type=float, default=WORKER_POLL_INTERVAL)
    args = parser.parse_args(argv)

    setup_logging()
    try:
        asyncio.run(_run(args.job, args.loop, args.interval))
    except KeyboardInterrupt:
        log.info(f"Worker '{args.job}' stopped.")


if __name__ == "__main__":
    main()
