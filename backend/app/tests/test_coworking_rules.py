from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.core.coworking_rules import (
    Tariff,
    apply_tolerance,
    compute_coworking_cost,
    compute_session_total,
    cost_for_minutes,
    raw_duration_minutes,
)
from app.core.entities import ConsumedExtra, CoworkingSession


START = datetime(2026, 3, 10, 10, 0)


def _cost(minutes, tariff=Tariff()):
    return compute_coworking_cost(START, START + timedelta(minutes=minutes), tariff)


@pytest.mark.parametrize("minutes, expected_cost, expected_minutes", [
    (42, Decimal("58.00"), 42),
    (60, Decimal("58.00"), 60),
    (63, Decimal("58.00"), 60),
    (65, Decimal("58.00"), 60),
    (66, Decimal("87.00"), 66),
    (95, Decimal("87.00"), 90),
    (100, Decimal("116.00"), 100),
    (175, Decimal("174.00"), 175),
    (182, Decimal("180.00"), 180),
    (190, Decimal("180.00"), 190),
    (600, Decimal("180.00"), 600),
])
def test_cost_by_duration(minutes, expected_cost, expected_minutes):
    result = _cost(minutes)
    assert result.cost == expected_cost
    assert result.minutes == expected_minutes


def test_partial_minutes_round_up():
    end = START + timedelta(minutes=66, milliseconds=1)
    assert raw_duration_minutes(START, end) == 67


def test_tolerance_never_leaves_small_remainder():
    tariff = Tariff()
    for minutes in range(0, 400):
        adjusted = apply_tolerance(minutes, tariff)
        remainder = adjusted % tariff.block_minutes
        assert not (0 < remainder <= tariff.tolerance_minutes)
        assert adjusted <= minutes


def test_day_rate_from_threshold():
    tariff = Tariff()
    for minutes in range(180, 480, 7):
        assert cost_for_minutes(minutes, tariff) == Decimal("180.00")


def test_zero_minutes_cost_nothing():
    assert cost_for_minutes(0, Tariff()) == Decimal("0.00")
    assert _cost(0).cost == Decimal("0.00")


def test_end_before_start_counts_as_zero():
    result = compute_coworking_cost(START, START - timedelta(minutes=30), Tariff())
    assert result.minutes == 0
    assert result.cost == Decimal("0.00")


def test_malformed_timestamps_count_as_zero():
    assert compute_coworking_cost("not-a-date", START, Tariff()).cost == Decimal("0.00")
    assert compute_coworking_cost(START, None, Tariff()).minutes == 0
    assert raw_duration_minutes("", "") == 0


def test_iso_strings_and_aware_datetimes():
    start = "2026-03-10T10:00:00Z"
    end = datetime(2026, 3, 10, 5, 3, tzinfo=timezone(timedelta(hours=-6)))
    result = compute_coworking_cost(start, end, Tariff())
    assert result.minutes == 60
    assert result.cost == Decimal("58.00")


def test_session_total_includes_extras():
    session = CoworkingSession(
        client_name="Ana",
        start_time=START,
        end_time=START + timedelta(minutes=63),
        consumed_extras=[ConsumedExtra(item_id="latte", price=Decimal("20"), quantity=2)],
    )
    assert compute_session_total(session, Tariff()) == Decimal("98.00")


def test_session_total_is_stable():
    session = CoworkingSession(
        client_name="Luis",
        start_time=START,
        end_time=START + timedelta(minutes=100),
        consumed_extras=[ConsumedExtra(item_id="agua", price=Decimal("15.50"), quantity=1)],
    )
    first = compute_session_total(session, Tariff())
    assert compute_session_total(session, Tariff()) == first == Decimal("131.50")


def test_open_session_charge_uses_now():
    session = CoworkingSession(client_name="Eva", start_time=START)
    assert compute_session_total(session, Tariff()) == Decimal("0.00")
    assert compute_session_total(session, Tariff(), now=START + timedelta(minutes=90)) == Decimal("87.00")


def test_custom_tariff():
    tariff = Tariff(first_hour_rate=Decimal("40"), block_rate=Decimal("20"), day_rate=Decimal("150"))
    assert _cost(125, tariff).cost == Decimal("80.00")
