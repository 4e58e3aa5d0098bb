"""API routers package."""

from transfer_reconciliation.routers import transfers

__all__ = ["transfers"]
