"""
API dependencies for FastAPI endpoints.
Provides the engine, caller identity and the immutable listing query.
"""

from datetime import datetime
from typing import Optional

from fastapi import Header, HTTPException, Query, status

import structlog

from agent_earnings.core.config import settings
from agent_earnings.services.earnings.core.types import EarningsQuery, EarningStatus, EarningType
from agent_earnings.services.earnings.engine import EarningsEngine, get_earnings_engine


logger = structlog.get_logger(__name__)


async def get_engine() -> EarningsEngine:
    """Get earnings engine dependency."""
    return get_earnings_engine()


async def get_admin_user(
    x_admin_user: Optional[str] = Header(None, description="Admin identity established upstream")
) -> str:
    """Caller identity; authentication happens before requests reach this service."""
    if not x_admin_user or not x_admin_user.strip():
        logger.warning("Request without admin identity")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "MISSING_ADMIN_USER",
                "message": "X-Admin-User header is required"
            }
        )
    return x_admin_user.strip()


async def get_earnings_query(
    status_filter: Optional[EarningStatus] = Query(None, alias="status"),
    type_filter: Optional[EarningType] = Query(None, alias="type"),
    agent_id: Optional[str] = Query(None, alias="agentId"),
    agent_code: Optional[str] = Query(None, alias="agentCode"),
    tier: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    search: Optional[str] = Query(None, max_length=100),
    batch_id: Optional[str] = Query(None, alias="batchId"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(
        settings.list_default_limit,
        ge=1,
        le=settings.list_max_limit,
        description="Number of items per page"
    ),
) -> EarningsQuery:
    """Build an immutable listing query from query parameters."""
    return EarningsQuery(
        status=status_filter,
        type=type_filter,
        agent_id=agent_id,
        agent_code=agent_code,
        tier=tier,
        start_date=start_date,
        end_date=end_date,
        search=search,
        batch_id=batch_id,
        page=page,
        limit=limit,
    )
