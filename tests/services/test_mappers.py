"""Tests for API item to storage row transforms."""

from __future__ import annotations

from datetime import date

import pytest

from jquants_ingest.services.mappers import (
    EQUITY_MASTER_TRACKED_FIELDS,
    INVESTOR_METRICS,
    financial_disclosure_id,
    map_earnings_calendar,
    map_equity_bar,
    map_equity_master,
    map_financial_disclosure,
    map_investor_types,
    map_topix_bar,
    map_trading_calendar,
    to_float,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (12, 12.0),
        (1.5, 1.5),
        ("1,234.5", 1234.5),
        (" 42 ", 42.0),
        ("", None),
        ("-", None),
        ("n/a", None),
        (None, None),
        (True, None),
    ],
)
def test_to_float(raw: object, expected: float | None) -> None:
    assert to_float(raw) == expected


def test_map_trading_calendar_derives_business_day_flag() -> None:
    full = map_trading_calendar({"Date": "2026-10-16", "HolDiv": "1"})
    half = map_trading_calendar({"Date": "20261230", "HolDiv": "2"})
    closed = map_trading_calendar({"Date": "2026-10-17", "HolDiv": "0"})
    unknown = map_trading_calendar({"Date": "2026-10-18", "HolDiv": "9"})

    assert full == {
        "calendar_date": date(2026, 10, 16),
        "hol_div": "1",
        "is_business_day": True,
    }
    assert half["calendar_date"] == date(2026, 12, 30)
    assert half["is_business_day"] is True
    assert closed["is_business_day"] is False
    assert unknown["is_business_day"] is False


def test_map_equity_bar_parses_prices_and_defaults_session() -> None:
    row = map_equity_bar(
        {
            "Date": "2026-10-16",
            "Code": "72030",
            "O": "2500",
            "H": 2550,
            "L": "2480.5",
            "C": "2540",
            "Vo": "1,000,000",
            "AdjC": "",
        }
    )

    assert row["local_code"] == "72030"
    assert row["trade_date"] == date(2026, 10, 16)
    assert row["session"] == "DAY"
    assert row["low"] == 2480.5
    assert row["volume"] == 1_000_000.0
    assert row["adj_close"] is None


def test_required_fields_raise_value_error() -> None:
    with pytest.raises(ValueError, match="'Code'"):
        map_equity_bar({"Date": "2026-10-16"})
    with pytest.raises(ValueError, match="'Date'"):
        map_topix_bar({"C": "2700"})


def test_financial_disclosure_id_prefers_disclosure_number() -> None:
    item = {"DiscNo": "20261016123456", "Code": "72030", "DiscDate": "2026-10-16"}
    fallback = {"Code": "72030", "DiscDate": "2026-10-16", "DocType": "FYFinancial"}

    assert financial_disclosure_id(item) == "20261016123456"
    assert financial_disclosure_id(fallback) == "72030_2026-10-16_FYFinancial"
    assert financial_disclosure_id({"Code": "72030", "DiscDate": "2026-10-16"}) == (
        "72030_2026-10-16_unknown"
    )


def test_map_financial_disclosure_keeps_raw_payload() -> None:
    item = {
        "DiscNo": "1",
        "DiscDate": "2026-10-16",
        "DiscTime": "15:00:00",
        "Code": "72030",
        "CurPerEn": "2026-09-30",
        "Sales": "1000",
        "EPS": "",
    }

    row = map_financial_disclosure(item)

    assert row["disclosure_id"] == "1"
    assert row["period_end"] == date(2026, 9, 30)
    assert row["net_sales"] == 1000.0
    assert row["earnings_per_share"] is None
    assert row["raw_json"] == item
    assert row["raw_json"] is not item


def test_map_equity_master_keeps_only_tracked_attributes() -> None:
    row = map_equity_master(
        {"Date": "2026-10-01", "Code": "13010", "CoName": " Kyokuyo ", "S33": "0050"}
    )

    assert set(row) == {"local_code", *EQUITY_MASTER_TRACKED_FIELDS}
    assert row["local_code"] == "13010"
    assert row["company_name"] == "Kyokuyo"
    assert row["sector33_code"] == "0050"
    assert row["market_code"] is None


def test_map_earnings_calendar() -> None:
    row = map_earnings_calendar(
        {"Date": "2026-10-19", "Code": "72030", "CoName": "Toyota", "FQ": "2Q"}
    )

    assert row["announcement_date"] == date(2026, 10, 19)
    assert row["fiscal_quarter"] == "2Q"
    assert row["fiscal_year"] is None


def test_map_investor_types_expands_present_metrics_only() -> None:
    rows = map_investor_types(
        {
            "PubDate": "2026-10-15",
            "StartDate": "2026-10-05",
            "EndDate": "2026-10-09",
            "Section": "TSEPrime",
            "ForS": "100",
            "ForP": "150",
            "ForB": "50",
            "IndS": "",
            "TotalT": 250,
        }
    )

    values = {(row["investor_type"], row["metric"]): row["value_kjpy"] for row in rows}
    assert values == {
        ("For", "sales"): 100.0,
        ("For", "purchases"): 150.0,
        ("For", "balance"): 50.0,
        ("Total", "total"): 250.0,
    }
    assert {row["section"] for row in rows} == {"TSEPrime"}
    assert {row["published_date"] for row in rows} == {date(2026, 10, 15)}
    assert set(INVESTOR_METRICS.values()) == {"sales", "purchases", "total", "balance"}
