from __future__ import annotations

import asyncio
import os
import sys
import uvicorn

from .bitcoin.addresses import address_to_script_pubkey
from .env import Settings, get_settings
from .infrastructure.database import redact_url


def _install_uvloop() -> None:
    # Install uvloop for better async performance (Linux/macOS only)
    if sys.platform != "win32":
        try:
            import uvloop

            asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        except ImportError:
            pass  # uvloop not available, continue with default event loop


def _setup_prometheus_multiproc_dir() -> None:
    """Prepare the Prometheus multiprocess directory before Uvicorn forks workers.

    Each start begins from an empty directory so the multiprocess collector
    never aggregates counters left behind by a previous run.
    """
    prom_dir = os.environ.get("PROMETHEUS_MULTIPROC_DIR")
    if not prom_dir:
        return

    os.makedirs(prom_dir, exist_ok=True)
    for filename in os.listdir(prom_dir):
        file_path = os.path.join(prom_dir, filename)
        if os.path.isfile(file_path):
            os.remove(file_path)


def configuration_warnings(settings: Settings) -> list[str]:
    """Describe what the API cannot do with the given settings.

    The API still starts: routes that need the missing pieces answer 503.
    """
    warnings: list[str] = []
    if not settings.hd_seed:
        warnings.append(
            "LOCKGIFT_HD_SEED is not set: gift creation and reconciliation are disabled"
        )
    if not settings.fee_address:
        warnings.append("LOCKGIFT_FEE_ADDRESS is not set: reconciliation is disabled")
    else:
        try:
            address_to_script_pubkey(settings.fee_address, settings.bitcoin_network)
        except ValueError as e:
            warnings.append(f"LOCKGIFT_FEE_ADDRESS is invalid: {e}")
    if settings.bitcoin_network.is_mainnet and settings.min_confirmations == 0:
        warnings.append("Unconfirmed deposits are locked on mainnet")
    if settings.api_debug and settings.api_workers > 1:
        warnings.append("Debug reload runs a single worker")
    return warnings


def main() -> None:
    """Main entry point for the LockGift API."""

    settings = get_settings()

    print(f"Starting {settings.app_name} v{settings.app_version} ({settings.network})")
    print(f"Database: {redact_url(settings.database_url)}")
    print(f"Chain API: {settings.chain_api_url}")
    print(f"API will be available at: http://{settings.api_host}:{settings.api_port}")
    print(f"API Documentation: http://{settings.api_host}:{settings.api_port}/docs")
    for warning in configuration_warnings(settings):
        print(f"WARNING: {warning}")

    # Uvicorn doesn't support multi-worker with reload.
    reload = settings.api_debug
    workers = 1 if reload else settings.api_workers

    _install_uvloop()
    _setup_prometheus_multiproc_dir()

    uvicorn.run(
        "lockgift.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=reload,
        workers=workers,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
