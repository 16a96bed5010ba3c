"""Periodic reconciliation process.

Runs the deposit sweep and stale-lock recovery on a fixed interval. It can run
alongside any number of API workers and other sweepers: the ledger's
compare-and-set keeps every gift at-most-once.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from .api.dependencies import (
    get_chain_provider_dependency,
    get_database_client_dependency,
    get_deposit_reconciler,
    get_settings_dependency,
    get_store_dependency,
)
from .application.gift.dtos import SweepResultDTO
from .application.gift.use_cases.reconciler import DepositReconciler
from .domain.errors import ConfigurationError
from .infrastructure.scripts import register_ledger_scripts

logger = logging.getLogger("lockgift.sweeper")


def _install_uvloop() -> None:
    # Install uvloop for better async performance (Linux/macOS only)
    if sys.platform != "win32":
        try:
            import uvloop

            asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        except ImportError:
            pass  # uvloop not available, continue with default event loop


async def run_once(
    reconciler: DepositReconciler, locking_lease_seconds: int
) -> tuple[SweepResultDTO, SweepResultDTO]:
    """One pass: lock funded gifts, then resolve gifts stuck in ``locking``."""
    result = await reconciler.reconcile_pending()
    logger.info("Sweep processed %d gifts: %s", result.processed, result.outcomes)

    recovered = await reconciler.recover_stale_locking(locking_lease_seconds)
    if recovered.processed:
        logger.info("Recovered %d stale gifts: %s", recovered.processed, recovered.outcomes)
    return result, recovered


async def run_forever() -> None:
    settings = get_settings_dependency()
    await register_ledger_scripts(get_store_dependency())
    reconciler = get_deposit_reconciler()
    try:
        while True:
            try:
                await run_once(reconciler, settings.locking_lease_seconds)
            except ConfigurationError:
                raise
            except Exception:
                logger.exception("Sweep pass failed")
            await asyncio.sleep(settings.sweep_interval_seconds)
    finally:
        await get_chain_provider_dependency().aclose()
        await get_database_client_dependency().close()


def main() -> None:
    """Main entry point for the sweeper process."""
    settings = get_settings_dependency()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print(f"Starting {settings.app_name} sweeper ({settings.network})")
    print(f"Sweep interval: {settings.sweep_interval_seconds}s")

    _install_uvloop()
    try:
        asyncio.run(run_forever())
    except ConfigurationError as e:
        logger.error("Sweeper cannot run: %s", e)
        sys.exit(2)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
