"""
==============================================================================
Local Scan Runner
==============================================================================

Scan with a camera attached to this machine and print accepted codes.

Usage:
------
    python -m scan_engine.local_scan

    # Keep scanning after each code
    SCAN_CONTINUOUS=true python -m scan_engine.local_scan

Stops on Ctrl+C, or after the first code when not continuous.

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from scan_engine.camera import OpenCVCameraCapability
from scan_engine.config import Settings, get_settings
from scan_engine.scanner import ScanOptions, ScanSession
from scan_engine.schemas.scan import SessionState


logger = logging.getLogger(__name__)


async def scan(
    settings: Optional[Settings] = None,
    capability: Optional[OpenCVCameraCapability] = None
) -> List[str]:
    """
    Run one session until it ends or is cancelled.

    Returns:
        Accepted codes, in order
    """
    settings = settings or get_settings()
    capability = capability or OpenCVCameraCapability(max_devices=settings.max_devices)

    codes: List[str] = []
    finished = asyncio.Event()

    def on_result(code: str) -> None:
        codes.append(code)
        print(code, flush=True)
        if not settings.continuous:
            finished.set()

    def on_error(kind: str, message: str) -> None:
        logger.error(f"❌ {kind}: {message}")
        finished.set()

    options = ScanOptions(on_result=on_result, on_error=on_error)

    async with ScanSession(capability, options, settings=settings) as session:
        await session.open()
        if session.state in (SessionState.SCANNING, SessionState.INITIALIZING):
            await finished.wait()

    return codes


def main() -> None:
    """Console entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    try:
        asyncio.run(scan(settings))
    except KeyboardInterrupt:
        logger.info("🛑 Interrupted")


if __name__ == "__main__":
    main()
