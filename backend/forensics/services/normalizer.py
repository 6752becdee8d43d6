"""
Normalizer - Ingestion boundary for running-trade and distribution data

Converts the vendor's textual fields into canonical integer/enum forms:
- "HH:MM:SS" -> seconds since midnight
- "9,272" / "2.187216779e+07" -> non-negative int
- "EP [D]" -> "EP"
- BROKER_TYPE_FOREIGN / "Asing" -> InvestorType.FOREIGN

Every function is pure. Malformed input raises ParseError with the
offending record index; nothing is defaulted silently except empty numerals.
"""

import math
import re
from typing import Any, Dict, Iterable, List, Optional

from forensics.core.exceptions import ParseError
from forensics.models.records import InvestorType, Side, TradeRecord

_DIGITS = re.compile(r"^\d+$")
_BRACKET_TAG = re.compile(r"\[([A-Za-z])\]")

# Single-letter tags used in broker labels, e.g. "ZP [F]"
_TAG_TYPES = {
    "F": InvestorType.FOREIGN,
    "G": InvestorType.GOVERNMENT,
    "D": InvestorType.DOMESTIC,
}


def parse_time(text: Any, index: Optional[int] = None) -> int:
    """
    Convert "HH:MM:SS" to seconds since midnight.

    Raises:
        ParseError: if the string does not have exactly two ':' separators,
            a component is non-numeric, or a component is out of range.
    """
    if not isinstance(text, str):
        raise ParseError("time", text, index, "expected HH:MM:SS string")

    parts = text.strip().split(":")
    if len(parts) != 3:
        raise ParseError("time", text, index, "expected exactly two ':' separators")
    if not all(_DIGITS.match(p) for p in parts):
        raise ParseError("time", text, index, "non-numeric component")

    hours, minutes, seconds = (int(p) for p in parts)
    if hours > 23 or minutes > 59 or seconds > 59:
        raise ParseError("time", text, index, "component out of range")

    return hours * 3600 + minutes * 60 + seconds


def parse_numeral(value: Any, index: Optional[int] = None, field: str = "numeral") -> int:
    """
    Convert a thousands-separated numeral to a non-negative int.

    Empty or absent input is 0. Scientific notation and decimals are parsed
    as float and rounded half-up, matching how the vendor's lot totals
    (e.g. "2.187216779e+07") are displayed.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ParseError(field, value, index, "boolean is not a numeral")
    if isinstance(value, int):
        if value < 0:
            raise ParseError(field, value, index, "negative value")
        return value

    if isinstance(value, float):
        number = value
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return 0
        if _DIGITS.match(text):
            return int(text)
        try:
            number = float(text)
        except ValueError:
            raise ParseError(field, value, index, "not a number")

    if math.isnan(number) or math.isinf(number):
        raise ParseError(field, value, index, "not a finite number")
    if number < 0:
        raise ParseError(field, value, index, "negative value")

    return int(math.floor(number + 0.5))


def broker_code(label: Any, index: Optional[int] = None, field: str = "broker") -> str:
    """Extract the broker code from a label such as "EP [D]"."""
    text = str(label).strip() if label is not None else ""
    if not text:
        raise ParseError(field, label, index, "missing broker code")
    return text.split()[0].upper()


def parse_side(value: Any, index: Optional[int] = None) -> Side:
    """Accepts 'buy'/'sell' and the vendor's RUNNING_TRADE_ACTION_TYPE_* forms."""
    if isinstance(value, Side):
        return value
    text = str(value).strip().upper() if value is not None else ""
    if text == "BUY" or text.endswith("_BUY"):
        return Side.BUY
    if text == "SELL" or text.endswith("_SELL"):
        return Side.SELL
    raise ParseError("action", value, index, "expected buy or sell")


def parse_investor_type(value: Any) -> InvestorType:
    """Map vendor type strings (BROKER_TYPE_*, Lokal/Asing/Pemerintah, F/G/D) to InvestorType."""
    if isinstance(value, InvestorType):
        return value
    text = str(value).strip().upper() if value is not None else ""
    if "FOREIGN" in text or text in ("ASING", "F"):
        return InvestorType.FOREIGN
    if "GOVERNMENT" in text or text in ("PEMERINTAH", "G"):
        return InvestorType.GOVERNMENT
    return InvestorType.DOMESTIC


def _type_from_label(label: Any) -> InvestorType:
    match = _BRACKET_TAG.search(str(label or ""))
    if match:
        return _TAG_TYPES.get(match.group(1).upper(), InvestorType.DOMESTIC)
    return InvestorType.DOMESTIC


def parse_trade(raw: Dict[str, Any], index: int) -> TradeRecord:
    """
    Build a TradeRecord from a raw running-trade row.

    Expected keys: time, action, price, lot, buyer, seller and optionally
    buyer_type, seller_type, market_board, trade_number.
    """
    buyer_label = raw.get("buyer")
    seller_label = raw.get("seller")

    buyer_type = raw.get("buyer_type")
    seller_type = raw.get("seller_type")

    trade_number = raw.get("trade_number")

    return TradeRecord(
        sequence_id=index,
        time_of_day=parse_time(raw.get("time"), index),
        price=parse_numeral(raw.get("price"), index, "price"),
        lot_size=parse_numeral(raw.get("lot"), index, "lot"),
        side=parse_side(raw.get("action"), index),
        buyer_code=broker_code(buyer_label, index, "buyer"),
        seller_code=broker_code(seller_label, index, "seller"),
        buyer_type=parse_investor_type(buyer_type) if buyer_type else _type_from_label(buyer_label),
        seller_type=parse_investor_type(seller_type) if seller_type else _type_from_label(seller_label),
        market_board=str(raw.get("market_board") or "RG"),
        trade_number=str(trade_number) if trade_number not in (None, "") else None,
    )


def parse_trades(rows: Iterable[Dict[str, Any]]) -> List[TradeRecord]:
    """Normalize a page (or a whole day) of raw rows; the first bad row aborts."""
    return [parse_trade(row, i) for i, row in enumerate(rows)]
