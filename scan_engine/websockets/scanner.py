"""
==============================================================================
Scanner WebSocket Module
==============================================================================

Real-time barcode scanning via WebSocket connection.

The browser owns the camera and pushes frames; the server runs one
ScanSession per connection on top of a RemoteCameraCapability.

Protocol:
---------
Client -> server:
    init    {devices?, preferred_facing?, continuous?}  (re)start a session
    frame   {frame: base64 JPEG/PNG}
    manual  {text}
    switch  {device_id?}
    retry
    stop

Server -> client:
    ready    {devices, state}
    result   {code, format, source, accepted_at}
    rejected {reason, text}
    error    {kind, message}
    state    {state}

==============================================================================
"""

import asyncio
import base64
import binascii
import logging
from typing import Any, Dict, List, Optional

import cv2
import numpy as np
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from scan_engine.camera import RemoteCameraCapability
from scan_engine.config import Settings, get_settings
from scan_engine.core.exceptions import ScanEngineError
from scan_engine.scanner import ScanOptions, ScanSession
from scan_engine.schemas.scan import CameraDevice, Facing, FrameSample, SessionState


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter()

DRAIN_TIMEOUT_S = 1.0


class ScannerWebSocketHandler:
    """
    Handler for barcode scanning WebSocket connections.

    Manages the lifecycle of a scanning session including:
    - Session setup from the client's declared devices
    - Frame decoding and hand-off to the remote camera
    - Manual entry and camera switching
    - Ordered delivery of results, errors and state changes
    """

    def __init__(self, websocket: WebSocket, settings: Settings):
        self._websocket = websocket
        self._settings = settings
        self._capability: Optional[RemoteCameraCapability] = None
        self._session: Optional[ScanSession] = None
        self._outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self._reported_state: Optional[SessionState] = None
        self.frame_count = 0

    # =========================================================================
    # OUTBOUND
    # =========================================================================

    async def _send_loop(self) -> None:
        """Forward queued messages in order."""
        while True:
            message = await self._outbox.get()
            try:
                await self._websocket.send_json(message)
            finally:
                self._outbox.task_done()

    def _queue(self, message: Dict[str, Any]) -> None:
        self._outbox.put_nowait(message)

    def send_error(self, kind: str, message: str) -> None:
        """Queue error message to client."""
        self._queue({"type": "error", "kind": kind, "message": message})

    def _report_state(self) -> None:
        if self._session is None:
            return
        state = self._session.state
        if state is not self._reported_state:
            self._reported_state = state
            self._queue({"type": "state", "state": state.value})

    def _on_result(self, code: str) -> None:
        result = self._session.last_result
        self._queue(result.to_message())

    def _on_error(self, kind: str, message: str) -> None:
        self.send_error(kind, message)
        self._report_state()

    # =========================================================================
    # INBOUND
    # =========================================================================

    @staticmethod
    def parse_devices(raw: Any) -> List[CameraDevice]:
        """Build CameraDevice entries from the client's device list."""
        devices = []
        for index, entry in enumerate(raw or []):
            if isinstance(entry, str):
                entry = {"id": entry}
            devices.append(CameraDevice(
                id=str(entry.get("id") or f"remote-{index}"),
                label=str(entry.get("label") or ""),
                facing=entry.get("facing") or Facing.UNKNOWN
            ))
        return devices

    async def handle_init(self, data: dict) -> None:
        """Start a fresh session, closing any previous one."""
        await self._close_session()

        devices = self.parse_devices(data.get("devices"))
        self._capability = RemoteCameraCapability(devices or None)

        options = ScanOptions(
            preferred_facing=data.get("preferred_facing") or Facing.BACK,
            continuous=data.get("continuous"),
            on_result=self._on_result,
            on_error=self._on_error
        )
        self._session = ScanSession(self._capability, options, settings=self._settings)
        self._reported_state = None

        logger.info(f"Init: {len(devices)} declared device(s), continuous={self._session.continuous}")

        await self._session.open()

        self._queue({
            "type": "ready",
            "devices": [device.model_dump(mode="json") for device in self._session.devices],
            "state": self._session.state.value
        })
        self._reported_state = self._session.state

    def handle_frame(self, data: dict) -> None:
        """Decode a base64 image and offer it to the remote camera."""
        if self._capability is None:
            return

        try:
            img_data = base64.b64decode(data["frame"], validate=False)
        except (KeyError, TypeError, binascii.Error) as e:
            logger.debug(f"Bad frame payload: {e}")
            return

        nparr = np.frombuffer(img_data, np.uint8)
        frame = cv2.imdecode(nparr, cv2.IMREAD_COLOR) if nparr.size else None
        if frame is None:
            return

        self.frame_count += 1
        self._capability.push_frame(FrameSample.from_array(frame))

    def handle_manual(self, data: dict) -> None:
        """Validate typed text and accept it as a scan."""
        text = str(data.get("text") or "")
        result = self._require_session().submit_manual(text)
        if not result.accepted:
            self._queue({"type": "rejected", "reason": result.reason, "text": text})

    async def handle_switch(self, data: dict) -> None:
        await self._require_session().switch_camera(data.get("device_id"))

    async def handle_retry(self) -> None:
        await self._require_session().retry()

    def _require_session(self) -> ScanSession:
        if self._session is None:
            raise ScanEngineError("Send an init message first", {"hint": "init"})
        return self._session

    async def _close_session(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._report_state()
            self._session = None
            self._capability = None

    async def dispatch(self, data: dict) -> bool:
        """
        Handle one client message.

        Returns:
            False when the client asked to stop
        """
        message_type = data.get("type")

        if message_type == "frame":
            self.handle_frame(data)
        elif message_type == "init":
            await self.handle_init(data)
        elif message_type == "manual":
            self.handle_manual(data)
        elif message_type == "switch":
            await self.handle_switch(data)
        elif message_type == "retry":
            await self.handle_retry()
        elif message_type == "stop":
            logger.info("🛑 Client requested stop")
            return False
        else:
            self.send_error("unknown_message", f"Unknown message type: {message_type}")

        self._report_state()
        return True

    async def run(self) -> None:
        """Main handler loop."""
        await self._websocket.accept()
        logger.info("📱 Scanner WebSocket connected")

        sender = asyncio.create_task(self._send_loop())
        connected = True

        try:
            while True:
                data = await self._websocket.receive_json()

                try:
                    if not await self.dispatch(data):
                        break
                except ScanEngineError as e:
                    logger.warning(f"Scan request failed: {e.message}")
                    self.send_error(e.kind, e.message)
                except ValidationError as e:
                    logger.warning(f"Invalid message: {e}")
                    self.send_error("invalid_message", str(e))

            await self._close_session()

        except WebSocketDisconnect:
            connected = False
            logger.info("📱 Client disconnected")
        except Exception as e:
            logger.error(f"WebSocket error: {e}", exc_info=True)
            self.send_error("internal_error", str(e))
        finally:
            if self._session is not None:
                await self._session.close()

            await self._drain(sender)

            if connected:
                try:
                    await self._websocket.close()
                except RuntimeError as e:
                    logger.debug(f"Close after disconnect: {e}")

            logger.info(f"✅ Scanner WebSocket closed ({self.frame_count} frames)")

    async def _drain(self, sender: asyncio.Task) -> None:
        """Flush queued messages, then stop the sender."""
        if not sender.done():
            try:
                await asyncio.wait_for(self._outbox.join(), timeout=DRAIN_TIMEOUT_S)
            except asyncio.TimeoutError:
                logger.debug("Outbox not drained before close")

        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Sender stopped: {e}")


@router.websocket("/ws/scan")
async def websocket_scan(
    websocket: WebSocket,
    settings: Settings = Depends(get_settings)
):
    """Real-time barcode scanning via WebSocket."""
    handler = ScannerWebSocketHandler(websocket, settings)
    await handler.run()
