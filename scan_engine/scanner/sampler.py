"""
==============================================================================
Frame Sampler Module
==============================================================================

Background frame-pulling loop for one stream.

This module implements:
- FrameSampler: Owns the capture loop and its lifecycle

Background Task:
---------------
The sampler runs one asyncio task that, at a bounded cadence:
1. Pulls a frame from the stream (in a worker thread for blocking streams)
2. Skips pending pulls and zero-dimension frames
3. Hands the frame to the consumer callback

``stop()`` is synchronous: it flips the running flag before returning, so
every iteration still in flight becomes a no-op.

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from scan_engine.camera.capability import StreamHandle
from scan_engine.core.exceptions import StreamInterrupted
from scan_engine.schemas.scan import FrameSample


# Module logger
logger = logging.getLogger(__name__)


DEFAULT_FPS = 10.0

FrameCallback = Callable[[FrameSample], None]
ErrorCallback = Callable[[StreamInterrupted], None]


class FrameSampler:
    """
    Pulls frames from a stream at a bounded rate.

    Example:
        >>> sampler = FrameSampler(handle, fps=10)
        >>> sampler.start(on_frame)   # Start background task
        >>> # ... frames flow ...
        >>> sampler.stop()            # Cancel synchronously
        >>> await sampler.join()
    """

    def __init__(self, handle: StreamHandle, fps: float = DEFAULT_FPS) -> None:
        """
        Initialize the sampler.

        Args:
            handle: Stream to pull from
            fps: Frames pulled per second
        """
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")

        self._handle = handle
        self._interval = 1.0 / fps
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._on_frame: Optional[FrameCallback] = None
        self._on_error: Optional[ErrorCallback] = None

        self.frames_pulled = 0
        self.frames_skipped = 0

    @property
    def interval(self) -> float:
        return self._interval

    async def _sample_loop(self) -> None:
        """Background sampling loop."""
        logger.debug(f"🔄 Sampling {self._handle.device_id} every {self._interval:.3f}s")

        while self._running:
            try:
                frame = await self._pull()

                if not self._running:
                    break

                if frame is None or frame.is_empty:
                    self.frames_skipped += 1
                else:
                    self.frames_pulled += 1
                    self._deliver(frame)

                await asyncio.sleep(self._interval)

            except asyncio.CancelledError:
                logger.debug("Sampling task cancelled")
                break
            except StreamInterrupted as e:
                logger.warning(f"📷 Stream interrupted: {e.message}")
                if self._running:
                    self._running = False
                    if self._on_error is not None:
                        self._on_error(e)
                break
            except Exception as e:
                logger.error(f"Frame pull error: {e}")
                self.frames_skipped += 1
                await asyncio.sleep(self._interval)

        logger.debug(
            f"Sampling stopped: {self.frames_pulled} pulled, "
            f"{self.frames_skipped} skipped"
        )

    async def _pull(self) -> Optional[FrameSample]:
        if self._handle.blocking:
            return await asyncio.to_thread(self._handle.pull_frame)
        return self._handle.pull_frame()

    def _deliver(self, frame: FrameSample) -> None:
        try:
            self._on_frame(frame)
        except Exception as e:
            logger.error(f"Frame consumer error: {e}", exc_info=True)

    def start(
        self,
        on_frame: FrameCallback,
        on_error: Optional[ErrorCallback] = None
    ) -> Optional[asyncio.Task]:
        """
        Start the background sampling task.

        Calling start while already running logs a warning and keeps the
        existing loop.

        Returns:
            The asyncio Task object
        """
        if self.is_running:
            logger.warning("Frame sampler already running; start ignored")
            return self._task

        self._on_frame = on_frame
        self._on_error = on_error
        self._running = True
        self._task = asyncio.create_task(self._sample_loop())
        logger.info("✅ Frame sampler started")
        return self._task

    def stop(self) -> None:
        """Stop sampling. Safe before start and when already stopped."""
        if not self._running and self._task is None:
            return

        was_running = self._running
        self._running = False

        if self._task and not self._task.done():
            self._task.cancel()

        if was_running:
            logger.info("🛑 Frame sampler stopped")

    async def join(self) -> None:
        """Wait for the sampling task to finish."""
        task = self._task
        if task is None or task is asyncio.current_task():
            return

        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def is_running(self) -> bool:
        """Check if the loop is live."""
        return self._running and self._task is not None and not self._task.done()
