"""
Test per-draft validation rules.
"""

from decimal import Decimal

import pytest

from agent_earnings.core.exceptions import CollaboratorTimeoutError, PersistenceError, RecordValidationError
from agent_earnings.services.earnings.core.types import EarningDraft, EarningType
from agent_earnings.services.earnings.ingestion import DraftValidator


def make_draft(**overrides) -> EarningDraft:
    values = {"row_number": 1, "agent_code": "AG001", "amount": Decimal("10.00")}
    values.update(overrides)
    return EarningDraft(**values)


@pytest.fixture
def validator(agents, policy):
    return DraftValidator(agents, policy, default_currency="USD", max_description_length=30)


@pytest.mark.asyncio
async def test_valid_draft_gets_defaults(validator):
    """Missing type, currency and description fall back to defaults."""
    validated = await validator.validate(make_draft(agent_code="ag001"))

    assert validated.agent.agent_code == "AG001"
    assert validated.earning_type is EarningType.REFERRAL_COMMISSION
    assert validated.currency == "USD"
    assert validated.description == "Referral commission earning"


@pytest.mark.asyncio
async def test_batch_default_currency_wins_over_engine_default(validator):
    validated = await validator.validate(make_draft(), default_currency="eur")
    assert validated.currency == "EUR"

    validated = await validator.validate(make_draft(currency="GBP"), default_currency="EUR")
    assert validated.currency == "GBP"


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
async def test_non_positive_amount(validator, amount):
    with pytest.raises(RecordValidationError) as exc_info:
        await validator.validate(make_draft(amount=amount))

    assert exc_info.value.category == "validation"
    assert "amount must be a positive number" in exc_info.value.message


@pytest.mark.asyncio
async def test_type_parsing(validator):
    validated = await validator.validate(make_draft(type="Promotion Bonus"))
    assert validated.earning_type is EarningType.PROMOTION_BONUS

    with pytest.raises(RecordValidationError) as exc_info:
        await validator.validate(make_draft(type="tip"))
    assert "invalid type 'tip'" in exc_info.value.message


@pytest.mark.asyncio
@pytest.mark.parametrize("rate", [Decimal("-0.01"), Decimal("100.01")])
async def test_commission_rate_bounds(validator, rate):
    with pytest.raises(RecordValidationError):
        await validator.validate(make_draft(commission_rate=rate))


@pytest.mark.asyncio
async def test_commission_rate_edges_are_allowed(validator):
    await validator.validate(make_draft(commission_rate=Decimal("0")))
    await validator.validate(make_draft(commission_rate=Decimal("100")))


@pytest.mark.asyncio
async def test_invalid_currency(validator):
    with pytest.raises(RecordValidationError):
        await validator.validate(make_draft(currency="US"))


@pytest.mark.asyncio
async def test_description_length(validator):
    with pytest.raises(RecordValidationError):
        await validator.validate(make_draft(description="x" * 31))


@pytest.mark.asyncio
async def test_unknown_and_inactive_agents(validator):
    """Unknown and deactivated agents are reported as invalid agent codes."""
    for code in ("AG404", "AG999"):
        with pytest.raises(RecordValidationError) as exc_info:
            await validator.validate(make_draft(agent_code=code))
        assert exc_info.value.category == "invalid_agent_code"
        assert exc_info.value.message == f"Row 1: agent code {code} not found"


@pytest.mark.asyncio
async def test_field_checks_run_before_agent_lookup(validator, agents):
    with pytest.raises(RecordValidationError):
        await validator.validate(make_draft(agent_code="AG404", amount=Decimal("0")))

    assert agents.resolve_calls == 0


@pytest.mark.asyncio
async def test_empty_agent_code(validator, agents):
    with pytest.raises(RecordValidationError) as exc_info:
        await validator.validate(make_draft(agent_code=""))

    assert exc_info.value.category == "validation"
    assert agents.resolve_calls == 0


@pytest.mark.asyncio
async def test_transient_directory_failure_is_retried(validator, agents):
    agents.resolve_failures = 1
    validated = await validator.validate(make_draft())

    assert validated.agent.agent_code == "AG001"
    assert agents.resolve_calls == 2


@pytest.mark.asyncio
async def test_persistent_directory_failure_propagates(validator, agents):
    agents.resolve_failures = 5
    with pytest.raises(PersistenceError):
        await validator.validate(make_draft())


@pytest.mark.asyncio
async def test_directory_timeout(validator, agents):
    agents.resolve_delay = 2
    with pytest.raises(CollaboratorTimeoutError):
        await validator.validate(make_draft())
