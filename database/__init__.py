"""Database package for the deposit clearance service."""
from .connection import get_db, get_session_factory, init_db
from .immutability import ImmutabilityViolationError, register_immutability_listeners
from .models import (
    AuditLog,
    Base,
    Communication,
    JobLock,
    Transaction,
    VirtualAccount,
    Wallet,
)

__all__ = [
    "AuditLog",
    "Base",
    "Communication",
    "ImmutabilityViolationError",
    "JobLock",
    "Transaction",
    "VirtualAccount",
    "Wallet",
    "get_db",
    "get_session_factory",
    "init_db",
    "register_immutability_listeners",
]
