from datetime import datetime, timezone

import pytest

from apps.api.ledger import RenewalType, ServiceLevel, ThresholdNotifier


def _level(remaining: int, *, warned: bool = False) -> ServiceLevel:
    moment = datetime(2026, 1, 1, tzinfo=timezone.utc)
    return ServiceLevel(
        id="sl-1",
        company_id="company-1",
        name="Basic",
        time_volume_minutes=300,
        remaining_minutes=remaining,
        hourly_rate=90.0,
        renewal_type=RenewalType.MONTHLY,
        start_date=moment,
        last_renewed_at=moment,
        next_renewal_at=datetime(2026, 2, 1, tzinfo=timezone.utc),
        low_volume_warned=warned,
    )


def test_crossing_emits_event_with_payload():
    decision = ThresholdNotifier(60).evaluate(_level(45), previous=90, company_name="Acme")

    assert decision.warned is True
    assert decision.event is not None
    assert decision.event.company_name == "Acme"
    assert decision.event.service_level_name == "Basic"
    assert decision.event.remaining_minutes == 45
    assert decision.event.usage_percentage == 85
    assert decision.event.hourly_rate == 90.0


def test_already_warned_level_stays_silent():
    decision = ThresholdNotifier(60).evaluate(_level(30, warned=True), previous=45, company_name="Acme")

    assert decision.warned is True
    assert decision.event is None


def test_depletion_to_zero_is_not_a_warning():
    decision = ThresholdNotifier(60).evaluate(_level(0), previous=75, company_name="Acme")

    assert decision.event is None
    assert decision.warned is False


def test_balance_above_threshold_clears_marker():
    decision = ThresholdNotifier(60).evaluate(_level(120, warned=True), previous=30, company_name="Acme")

    assert decision.warned is False
    assert decision.event is None


def test_increase_within_band_does_not_warn():
    decision = ThresholdNotifier(60).evaluate(_level(50), previous=20, company_name="Acme")

    assert decision.event is None


def test_negative_threshold_is_rejected():
    with pytest.raises(ValueError):
        ThresholdNotifier(-1)
