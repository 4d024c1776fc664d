"""
Stela API - webhook receiver and order book HTTP surface.

Provides REST endpoints for:
- Receiving indexer batches (POST /webhook/events)
- Health and cursor (GET /health)
- Inscription, event, locker and share reads
- Off-chain orders and offers (SNIP-12 signed)
"""

__version__ = "0.1.0"
