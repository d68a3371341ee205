"""
Notification of earning transitions.

Delivery channels (email, push) live outside this service; the default
notifier only records transitions in the structured log.
"""

from typing import Optional

import structlog

from agent_earnings.services.earnings.core.protocols import Notifier
from agent_earnings.services.earnings.core.types import EarningRecord

logger = structlog.get_logger(__name__)


class LoggingNotifier:
    """Notifier that emits one structured log event per transition."""

    async def earning_transitioned(self, earning: EarningRecord) -> None:
        logger.info(
            "Earning transition notification",
            earning_id=earning.id,
            agent_code=earning.agent_code,
            status=earning.status.value,
            amount=str(earning.amount),
            currency=earning.currency,
            reviewed_by=earning.reviewed_by,
            rejection_reason=earning.rejection_reason
        )


async def notify_transition(notifier: Optional[Notifier], earning: EarningRecord) -> None:
    """Fire-and-forget: notifier failures are logged and never reach the caller."""
    if notifier is None:
        return
    try:
        await notifier.earning_transitioned(earning)
    except Exception as e:
        logger.error(
            "Error sending earning transition notification",
            earning_id=earning.id,
            status=earning.status.value,
            error=str(e)
        )
