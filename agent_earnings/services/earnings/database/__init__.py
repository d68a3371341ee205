"""
SQLAlchemy implementations of the earnings collaborators.
"""

from .agent_repository import SqlAgentDirectory
from .earnings_repository import SqlEarningsStore

__all__ = [
    "SqlAgentDirectory",
    "SqlEarningsStore",
]
