"""
Per-draft business rule validation.
"""

from decimal import Decimal
from typing import Optional

import structlog

from agent_earnings.core.config import EngineConfig
from agent_earnings.core.exceptions import RecordValidationError
from ..core.protocols import AgentDirectory
from ..core.resilience import RetryPolicy, call_with_retry
from ..core.types import EarningDraft, EarningType, ErrorCategory, ValidatedDraft


logger = structlog.get_logger(__name__)


class DraftValidator:
    """
    Checks each draft independently of the others.

    Cheap field checks run before the agent lookup so malformed rows never
    reach the directory. PersistenceError from the directory propagates to the
    caller; it is not a validation failure.
    """

    def __init__(
        self,
        agents: AgentDirectory,
        policy: RetryPolicy,
        default_currency: str = "USD",
        max_description_length: int = 500,
    ):
        self.agents = agents
        self.policy = policy
        self.default_currency = default_currency
        self.max_description_length = max_description_length

    async def validate(
        self,
        draft: EarningDraft,
        default_currency: Optional[str] = None,
    ) -> ValidatedDraft:
        if not draft.agent_code:
            raise RecordValidationError(
                f"Row {draft.row_number}: agent code is required",
                category=ErrorCategory.VALIDATION.value
            )

        self._check_amount(draft)
        earning_type = self._check_type(draft)
        self._check_commission_rate(draft)
        currency = self._check_currency(draft, default_currency)
        description = self._check_description(draft, earning_type)

        agent = await call_with_retry(
            "resolve_agent",
            lambda: self.agents.resolve_agent(draft.agent_code),
            self.policy,
        )
        if agent is None or not agent.is_active:
            raise RecordValidationError(
                f"Row {draft.row_number}: agent code {draft.agent_code} not found",
                category=ErrorCategory.INVALID_AGENT_CODE.value,
                details={"agent_code": draft.agent_code}
            )

        return ValidatedDraft(
            draft=draft,
            agent=agent,
            earning_type=earning_type,
            currency=currency,
            description=description,
        )

    @staticmethod
    def _check_amount(draft: EarningDraft) -> None:
        if draft.amount is None or not draft.amount.is_finite() or draft.amount <= 0:
            raise RecordValidationError(
                f"Row {draft.row_number}: amount must be a positive number",
                details={"amount": str(draft.amount)}
            )

    @staticmethod
    def _check_type(draft: EarningDraft) -> EarningType:
        if draft.type is None:
            return EarningType.REFERRAL_COMMISSION
        earning_type = EarningType.parse(draft.type)
        if earning_type is None:
            allowed = ", ".join(t.value for t in EarningType)
            raise RecordValidationError(
                f"Row {draft.row_number}: invalid type '{draft.type}' (allowed: {allowed})",
                details={"type": draft.type}
            )
        return earning_type

    @staticmethod
    def _check_commission_rate(draft: EarningDraft) -> None:
        rate = draft.commission_rate
        if rate is None:
            return
        low = Decimal(EngineConfig.COMMISSION_RATE_MIN)
        high = Decimal(EngineConfig.COMMISSION_RATE_MAX)
        if rate < low or rate > high:
            raise RecordValidationError(
                f"Row {draft.row_number}: commission rate must be between {low} and {high}",
                details={"commission_rate": str(rate)}
            )

    def _check_currency(self, draft: EarningDraft, default_currency: Optional[str]) -> str:
        currency = draft.currency or default_currency or self.default_currency
        currency = currency.upper()
        if len(currency) != 3 or not currency.isalpha():
            raise RecordValidationError(
                f"Row {draft.row_number}: invalid currency '{currency}'",
                details={"currency": currency}
            )
        return currency

    def _check_description(self, draft: EarningDraft, earning_type: EarningType) -> str:
        description = draft.description or f"{earning_type.label} earning"
        if len(description) > self.max_description_length:
            raise RecordValidationError(
                f"Row {draft.row_number}: description exceeds {self.max_description_length} characters",
                details={"length": len(description)}
            )
        return description
