"""
Database models for the agent earnings backend.
"""

from .base import Base, BaseModel, TimestampMixin
from .agent import Agent
from .earnings import Earning
from .ledger import LedgerEntry

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "Agent",
    "Earning",
    "LedgerEntry",
]
