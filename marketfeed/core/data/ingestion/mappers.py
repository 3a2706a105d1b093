"""Pure mapping from raw upstream rows to domain records."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from marketfeed.core.models import EtfQuoteRecord, MarketIndexRecord

_PLACEHOLDERS = {"", "-", "NA", "N/A"}


def _to_float(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    if text in _PLACEHOLDERS:
        return None
    return float(text)


def _to_int(value: Any) -> int | None:
    number = _to_float(value)
    return int(number) if number is not None else None


def _require(row: Mapping[str, Any], field: str) -> str:
    value = row.get(field)
    if value is None or not str(value).strip():
        raise ValueError(f"missing required field {field!r}")
    return str(value).strip()


def map_index_row(row: Mapping[str, Any]) -> MarketIndexRecord:
    return MarketIndexRecord(
        key=_require(row, "key"),
        index=_require(row, "index"),
        index_symbol=row.get("indexSymbol"),
        last=_to_float(row.get("last")),
        variation=_to_float(row.get("variation")),
        percent_change=_to_float(row.get("percentChange")),
        open=_to_float(row.get("open")),
        high=_to_float(row.get("high")),
        low=_to_float(row.get("low")),
        previous_close=_to_float(row.get("previousClose")),
        year_high=_to_float(row.get("yearHigh")),
        year_low=_to_float(row.get("yearLow")),
        pe=_to_float(row.get("pe")),
        pb=_to_float(row.get("pb")),
        dy=_to_float(row.get("dy")),
        advances=_to_int(row.get("advances")),
        declines=_to_int(row.get("declines")),
        unchanged=_to_int(row.get("unchanged")),
    )


def map_etf_row(row: Mapping[str, Any]) -> EtfQuoteRecord:
    return EtfQuoteRecord(
        symbol=_require(row, "symbol"),
        asset=row.get("assets"),
        open=_to_float(row.get("open")),
        high=_to_float(row.get("high")),
        low=_to_float(row.get("low")),
        last_price=_to_float(row.get("ltP")),
        change=_to_float(row.get("chn")),
        percent_change=_to_float(row.get("per")),
        quantity=_to_float(row.get("qty")),
        traded_value=_to_float(row.get("trdVal")),
        nav=_to_float(row.get("nav")),
        week52_high=_to_float(row.get("wkhi")),
        week52_low=_to_float(row.get("wklo")),
    )


def map_index_records(rows: Sequence[Mapping[str, Any]]) -> list[MarketIndexRecord]:
    """Map every raw index row; raises ``ValueError`` on a malformed row."""

    return [map_index_row(row) for row in rows]


def map_etf_records(rows: Sequence[Mapping[str, Any]]) -> list[EtfQuoteRecord]:
    """Map every raw ETF row; raises ``ValueError`` on a malformed row."""

    return [map_etf_row(row) for row in rows]


__all__ = ["map_etf_records", "map_etf_row", "map_index_records", "map_index_row"]
