"""
==============================================================================
WebSocket Package
==============================================================================

Real-time WebSocket handlers for barcode scanning.

Handlers:
---------
- scanner: Client-pushed frames decoded by a per-connection ScanSession

==============================================================================
"""

from .scanner import router as scanner_router

__all__ = ["scanner_router"]
