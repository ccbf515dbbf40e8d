"""Pure transforms from J-Quants API items to storage rows."""

from __future__ import annotations

from datetime import date
from typing import Any, Final

from jquants_ingest.services.business_days import is_business_day
from jquants_ingest.utils.dates import parse_api_date

ApiItem = dict[str, Any]
Row = dict[str, Any]

INVESTOR_TYPES: Final[tuple[str, ...]] = (
    "Prop",
    "Brok",
    "InvTr",
    "BusCo",
    "OthCo",
    "InsCo",
    "CityBk",
    "TrBk",
    "OthFI",
    "Ind",
    "For",
    "Total",
)
INVESTOR_METRICS: Final[dict[str, str]] = {
    "S": "sales",
    "P": "purchases",
    "T": "total",
    "B": "balance",
}
INVESTOR_SECTIONS: Final[tuple[str, ...]] = (
    "TSEPrime",
    "TSEStandard",
    "TSEGrowth",
    "TSE1st",
    "TSE2nd",
    "TSEMothers",
    "JASDAQ",
    "Total",
)

TRADING_CALENDAR_CONFLICT_KEY: Final[tuple[str, ...]] = ("calendar_date",)
EQUITY_BAR_CONFLICT_KEY: Final[tuple[str, ...]] = ("local_code", "trade_date", "session")
TOPIX_BAR_CONFLICT_KEY: Final[tuple[str, ...]] = ("trade_date",)
FINANCIAL_DISCLOSURE_CONFLICT_KEY: Final[tuple[str, ...]] = ("disclosure_id",)
EQUITY_MASTER_TRACKED_FIELDS: Final[tuple[str, ...]] = (
    "company_name",
    "company_name_en",
    "sector17_code",
    "sector17_name",
    "sector33_code",
    "sector33_name",
    "scale_category",
    "market_code",
    "market_name",
    "margin_code",
    "margin_code_name",
)
EARNINGS_CALENDAR_CONFLICT_KEY: Final[tuple[str, ...]] = (
    "announcement_date",
    "local_code",
)
INVESTOR_TYPE_CONFLICT_KEY: Final[tuple[str, ...]] = (
    "published_date",
    "section",
    "start_date",
    "end_date",
    "investor_type",
    "metric",
)

DAY_SESSION = "DAY"
_MISSING_NUMBER_MARKERS = frozenset({"", "-", "－"})


def to_float(value: Any) -> float | None:
    """Parse upstream numbers, which may arrive as strings or blanks."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip().replace(",", "")
    if text in _MISSING_NUMBER_MARKERS:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _required_date(item: ApiItem, key: str) -> date:
    parsed = parse_api_date(item.get(key))
    if parsed is None:
        raise ValueError(f"API item is missing required date field {key!r}")
    return parsed


def _required_code(item: ApiItem) -> str:
    code = _text(item.get("Code"))
    if code is None:
        raise ValueError("API item is missing required field 'Code'")
    return code


def map_trading_calendar(item: ApiItem) -> Row:
    hol_div = str(item.get("HolDiv", "")).strip()
    return {
        "calendar_date": _required_date(item, "Date"),
        "hol_div": hol_div,
        "is_business_day": is_business_day(hol_div),
    }


def map_equity_bar(item: ApiItem) -> Row:
    return {
        "local_code": _required_code(item),
        "trade_date": _required_date(item, "Date"),
        "session": DAY_SESSION,
        "open": to_float(item.get("O")),
        "high": to_float(item.get("H")),
        "low": to_float(item.get("L")),
        "close": to_float(item.get("C")),
        "volume": to_float(item.get("Vo")),
        "turnover_value": to_float(item.get("Va")),
        "adjustment_factor": to_float(item.get("AdjFactor")),
        "adj_open": to_float(item.get("AdjO")),
        "adj_high": to_float(item.get("AdjH")),
        "adj_low": to_float(item.get("AdjL")),
        "adj_close": to_float(item.get("AdjC")),
        "adj_volume": to_float(item.get("AdjVo")),
    }


def map_topix_bar(item: ApiItem) -> Row:
    return {
        "trade_date": _required_date(item, "Date"),
        "open": to_float(item.get("O")),
        "high": to_float(item.get("H")),
        "low": to_float(item.get("L")),
        "close": to_float(item.get("C")),
    }


def financial_disclosure_id(item: ApiItem) -> str:
    """Stable identifier for a disclosure, preferring the upstream number."""

    disclosure_number = _text(item.get("DiscNo"))
    if disclosure_number is not None:
        return disclosure_number
    return "_".join(
        [
            _required_code(item),
            _required_date(item, "DiscDate").isoformat(),
            _text(item.get("DocType")) or "unknown",
        ]
    )


def map_financial_disclosure(item: ApiItem) -> Row:
    return {
        "disclosure_id": financial_disclosure_id(item),
        "disclosed_date": _required_date(item, "DiscDate"),
        "disclosed_time": _text(item.get("DiscTime")),
        "local_code": _required_code(item),
        "document_type": _text(item.get("DocType")),
        "period_type": _text(item.get("CurPerType")),
        "period_end": parse_api_date(item.get("CurPerEn")),
        "fiscal_year_end": parse_api_date(item.get("CurFYEn")),
        "net_sales": to_float(item.get("Sales")),
        "operating_profit": to_float(item.get("OP")),
        "ordinary_profit": to_float(item.get("OdP")),
        "profit": to_float(item.get("NP")),
        "earnings_per_share": to_float(item.get("EPS")),
        "total_assets": to_float(item.get("TA")),
        "equity": to_float(item.get("Eq")),
        "raw_json": dict(item),
    }


def map_equity_master(item: ApiItem) -> Row:
    """Map a master record to the tracked attributes of one issue version."""

    return {
        "local_code": _required_code(item),
        "company_name": _text(item.get("CoName")),
        "company_name_en": _text(item.get("CoNameEn")),
        "sector17_code": _text(item.get("S17")),
        "sector17_name": _text(item.get("S17Nm")),
        "sector33_code": _text(item.get("S33")),
        "sector33_name": _text(item.get("S33Nm")),
        "scale_category": _text(item.get("ScaleCat")),
        "market_code": _text(item.get("Mkt")),
        "market_name": _text(item.get("MktNm")),
        "margin_code": _text(item.get("Mrgn")),
        "margin_code_name": _text(item.get("MrgnNm")),
    }


def map_earnings_calendar(item: ApiItem) -> Row:
    return {
        "announcement_date": _required_date(item, "Date"),
        "local_code": _required_code(item),
        "company_name": _text(item.get("CoName")),
        "fiscal_year": _text(item.get("FY")),
        "fiscal_quarter": _text(item.get("FQ")),
        "sector_name": _text(item.get("SectorNm")),
    }


def map_investor_types(item: ApiItem) -> list[Row]:
    """Expand one wide weekly record into one row per (investor type, metric)."""

    base = {
        "published_date": _required_date(item, "PubDate"),
        "start_date": _required_date(item, "StartDate"),
        "end_date": _required_date(item, "EndDate"),
        "section": _text(item.get("Section")) or "",
    }
    rows: list[Row] = []
    for investor_type in INVESTOR_TYPES:
        for suffix, metric in INVESTOR_METRICS.items():
            value = to_float(item.get(f"{investor_type}{suffix}"))
            if value is None:
                continue
            rows.append(
                {
                    **base,
                    "investor_type": investor_type,
                    "metric": metric,
                    "value_kjpy": value,
                }
            )
    return rows


__all__ = [
    "EARNINGS_CALENDAR_CONFLICT_KEY",
    "EQUITY_BAR_CONFLICT_KEY",
    "EQUITY_MASTER_TRACKED_FIELDS",
    "FINANCIAL_DISCLOSURE_CONFLICT_KEY",
    "INVESTOR_METRICS",
    "INVESTOR_SECTIONS",
    "INVESTOR_TYPES",
    "INVESTOR_TYPE_CONFLICT_KEY",
    "TOPIX_BAR_CONFLICT_KEY",
    "TRADING_CALENDAR_CONFLICT_KEY",
    "financial_disclosure_id",
    "map_earnings_calendar",
    "map_equity_bar",
    "map_equity_master",
    "map_financial_disclosure",
    "map_investor_types",
    "map_topix_bar",
    "map_trading_calendar",
    "to_float",
]
