"""
==============================================================================
API v1 Endpoints
==============================================================================

Version 1 of the REST API.

Routers:
--------
- health: Health check endpoints
- barcodes: Stateless validation and check-digit helpers

==============================================================================
"""

from . import barcodes, health

__all__ = ["barcodes", "health"]
