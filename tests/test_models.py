"""
Tests for Household Core

Test strategy:
1. Unit tests for individual components (models, store, resolver, gate, engine)
2. Integration tests for flows (with an in-memory fake backend)
3. No real API calls in tests (use fakes and httpx.MockTransport)
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from household_core.models.account import Account, AccountType
from household_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from household_core.models.household import (
    Household,
    HouseholdRole,
    SelectionRecord,
)
from household_core.models.money import money_sum, to_money
from household_core.models.transaction import Split, Transaction, TransactionType

from tests.conftest import make_household, make_member


class TestMoney:
    """Tests for the Decimal money helpers."""

    def test_to_money_quantizes_to_cents(self):
        """Floats and strings become two-place Decimals."""
        assert to_money("10.005") == Decimal("10.01")
        assert to_money("10.004") == Decimal("10.00")
        assert to_money(0.1) == Decimal("0.10")
        assert to_money(3) == Decimal("3.00")

    def test_money_sum_is_exact(self):
        """Summing cents never drifts."""
        assert money_sum([Decimal("0.10")] * 10) == Decimal("1.00")


class TestHouseholdModels:
    """Tests for household-related Pydantic models."""

    def test_household_parses_camel_case(self):
        """Wire format is camelCase."""
        household = Household.model_validate({
            "id": "h1",
            "name": "Home",
            "role": "EDITOR",
            "createdAt": "2024-01-01T00:00:00Z",
        })
        assert household.role == HouseholdRole.EDITOR
        assert household.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_household_sort_key_falls_back_to_joined_at(self):
        """Without created_at, joined_at orders the household."""
        joined = datetime(2023, 5, 1, tzinfo=timezone.utc)
        household = Household(id="h1", joined_at=joined)
        assert household.sort_key == joined

    def test_member_email_requires_user(self):
        """A member with an empty user email has no resolvable email."""
        member = make_member("u1", email=None)
        assert member.email is None
        assert member.is_settlement_eligible is False

    def test_viewer_is_not_settlement_eligible(self):
        """Only EDITOR and OWNER members take split shares."""
        assert make_member("u1", role=HouseholdRole.OWNER).is_settlement_eligible
        assert make_member("u2", role=HouseholdRole.EDITOR).is_settlement_eligible
        assert not make_member("u3", role=HouseholdRole.VIEWER).is_settlement_eligible

    def test_shares_account_needs_both_flags(self):
        """shared_account_ids alone exposes nothing."""
        listed_only = make_member("u2", allow=False, shared=["acc-1"])
        allowed_only = make_member("u2", allow=True, shared=[])
        both = make_member("u2", allow=True, shared=["acc-1"])

        assert listed_only.shares_account("acc-1") is False
        assert allowed_only.shares_account("acc-1") is False
        assert both.shares_account("acc-1") is True

    def test_member_rejects_duplicate_shared_ids(self):
        """shared_account_ids is a set in practice."""
        with pytest.raises(ValueError):
            make_member("u2", allow=True, shared=["acc-1", "acc-1"])

    def test_selection_record_differs_from(self):
        """Name or role changes count; the id is not compared."""
        record = SelectionRecord(id="h1", name="Home", role=HouseholdRole.OWNER)
        assert not record.differs_from(make_household("h1", name="Home"))
        assert record.differs_from(make_household("h1", name="New name"))
        assert record.differs_from(
            make_household("h1", name="Home", role=HouseholdRole.EDITOR)
        )

    def test_selection_record_requires_id(self):
        """An empty id is not a selection."""
        with pytest.raises(ValueError):
            SelectionRecord(id="")


class TestAccountModels:
    """Tests for account balance derivation."""

    def test_explicit_balances_are_used(self):
        account = Account(
            id="a1",
            type=AccountType.CHECKING,
            total_balance=Decimal("100"),
            available_balance=Decimal("70"),
            allocated_balance=Decimal("30"),
        )
        balances = account.balances()
        assert balances.available == Decimal("70.00")
        assert balances.total == Decimal("100.00")

    def test_legacy_balance_fallback(self):
        """Only the legacy balance: all of it is available."""
        account = Account(id="a1", type=AccountType.CASH, balance=Decimal("50"))
        assert account.available == Decimal("50.00")

    def test_available_never_negative_when_derived(self):
        account = Account(
            id="a1",
            type=AccountType.SAVINGS,
            total_balance=Decimal("10"),
            allocated_balance=Decimal("25"),
        )
        assert account.available == Decimal("0.00")

    def test_credit_flag(self):
        assert Account(id="c1", type=AccountType.CREDIT).is_credit
        assert not Account(id="a1", type=AccountType.CHECKING).is_credit


class TestTransactionModels:
    """Tests for transaction and split models."""

    def test_split_requires_splits(self):
        """is_split without splits is rejected."""
        with pytest.raises(ValueError):
            Transaction(amount=Decimal("10"), is_split=True)

    def test_splits_without_flag_rejected(self):
        with pytest.raises(ValueError):
            Transaction(
                amount=Decimal("10"),
                splits=[Split(user_id="u1", amount=Decimal("10"))],
            )

    def test_only_expenses_split(self):
        with pytest.raises(ValueError):
            Transaction(
                amount=Decimal("10"),
                type=TransactionType.INCOME,
                is_split=True,
                splits=[Split(user_id="u1", amount=Decimal("10"))],
            )

    def test_transfer_to_same_account_rejected(self):
        with pytest.raises(ValueError):
            Transaction(
                amount=Decimal("10"),
                type=TransactionType.TRANSFER,
                from_account_id="a1",
                to_account_id="a1",
            )

    def test_amount_must_be_positive(self):
        with pytest.raises(ValueError):
            Transaction(amount=Decimal("0"))

    def test_payload_includes_split_account_ids(self):
        """Split account ids travel with the split when set."""
        transaction = Transaction(
            household_id="h1",
            amount=Decimal("10.00"),
            account_id="a1",
            transaction_date=date(2024, 3, 1),
            is_split=True,
            splits=[
                Split(user_id="u1", amount=Decimal("5.00"), account_id="a1"),
                Split(user_id="u2", amount=Decimal("5.00")),
            ],
        )
        payload = transaction.to_payload()

        assert payload["householdId"] == "h1"
        assert payload["date"] == "2024-03-01"
        assert payload["isSplit"] is True
        assert payload["splits"][0] == {"userId": "u1", "amount": 5.0, "accountId": "a1"}
        assert "accountId" not in payload["splits"][1]

    def test_transfer_payload_uses_from_and_to(self):
        transaction = Transaction(
            amount=Decimal("20"),
            type=TransactionType.TRANSFER,
            from_account_id="a1",
            to_account_id="a2",
        )
        payload = transaction.to_payload()
        assert payload["fromAccountId"] == "a1"
        assert payload["toAccountId"] == "a2"
        assert "accountId" not in payload


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.HOUSEHOLD_SELECTED,
            description="Test household selected",
        )
        assert event.event_type == AuditEventType.HOUSEHOLD_SELECTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.CACHE_INVALIDATED,
            household_id="h1",
            description="Cache invalidated",
            details={"keys": ["transactions/h1"]},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "cache_invalidated"
        assert log_dict["household_id"] == "h1"
        assert log_dict["details"]["keys"] == ["transactions/h1"]

    def test_builder_household_selected(self):
        """Test AuditEventBuilder.household_selected."""
        event = AuditEventBuilder.household_selected(
            household_id="h2",
            name="Shared",
            previous_id="h1",
            user_action=True,
        )
        assert event.event_type == AuditEventType.HOUSEHOLD_SELECTED
        assert event.entity_id == "h2"
        assert event.is_user_action is True

    def test_builder_permission_divergence_is_error(self):
        event = AuditEventBuilder.permission_divergence("h1", "denied", ["acc-9"])
        assert event.severity == AuditSeverity.ERROR
        assert event.details["account_ids"] == ["acc-9"]

    def test_builder_identity_sync_severity(self):
        pending = AuditEventBuilder.identity_sync(
            AuditEventType.IDENTITY_SYNC_PENDING, "uid", attempts=3
        )
        failed = AuditEventBuilder.identity_sync(AuditEventType.IDENTITY_SYNC_FAILED, "uid")
        assert pending.severity == AuditSeverity.WARNING
        assert failed.severity == AuditSeverity.ERROR
        assert pending.details["attempts"] == 3
