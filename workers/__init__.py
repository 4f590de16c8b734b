"""Background workers for async processing."""
from .deposit_clearance_worker import start_deposit_clearance_worker

__all__ = ["start_deposit_clearance_worker"]
