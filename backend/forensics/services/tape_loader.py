"""
Tape Loader - Running trade pages, request filters and tape files

The vendor serves the running trade newest-first in pages, continued with
the trade number of the last row as cursor. TradeTapeSession keeps every
page seen so far and re-analyzes the whole accumulated set on each call;
there is no incremental update model.
"""

import io
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd

from forensics.core.config import ForensicsThresholds
from forensics.core.exceptions import ParseError
from forensics.models.records import Side, TradeRecord
from forensics.services.normalizer import parse_side, parse_trades
from forensics.services.trade_tape import TapeAnalysis, TradeTapeAnalyzer

logger = logging.getLogger(__name__)

# Vendor board codes -> short board names used on the tape
MARKET_BOARDS = {
    "BOARD_TYPE_REGULAR": "RG",
    "MARKET_BOARD_REGULER": "RG",
    "BOARD_TYPE_NEGOTIATION": "NG",
    "MARKET_BOARD_NEGO": "NG",
    "BOARD_TYPE_CASH": "TN",
    "MARKET_BOARD_TUNAI": "TN",
}

REQUIRED_COLUMNS = ("time", "action", "lot", "buyer", "seller")


def normalize_board(board: Optional[str]) -> Optional[str]:
    if not board:
        return None
    text = str(board).strip().upper()
    return MARKET_BOARDS.get(text, text)


def filter_trades(trades: Iterable[TradeRecord],
                  side: Optional[Union[Side, str]] = None,
                  market_board: Optional[str] = None,
                  minimum_lot: Optional[int] = None) -> List[TradeRecord]:
    """
    Apply the running-trade request filters locally.

    Args:
        side: Keep only HAKA (buy) or HAKI (sell) trades
        market_board: Keep one board (RG, NG, TN or the vendor board code)
        minimum_lot: Keep trades with lot_size >= minimum_lot
    """
    wanted_side = parse_side(side) if side else None
    wanted_board = normalize_board(market_board)

    kept = []
    for trade in trades:
        if wanted_side is not None and trade.side != wanted_side:
            continue
        if wanted_board is not None and normalize_board(trade.market_board) != wanted_board:
            continue
        if minimum_lot and trade.lot_size < minimum_lot:
            continue
        kept.append(trade)
    return kept


class TradeTapeSession:
    """
    Cumulative running-trade state for one (symbol, date).

    Usage:
        session = TradeTapeSession("PSAB", "2025-01-10")
        session.add_page(rows)               # first page
        fetch(..., trade_number=session.cursor)
        session.add_page(more_rows)
        result = session.analyze()
    """

    def __init__(self, symbol: str, date: str,
                 thresholds: Optional[ForensicsThresholds] = None):
        self.symbol = symbol.upper()
        self.date = date
        self.thresholds = thresholds
        self._rows: List[Dict[str, Any]] = []
        self._seen: set = set()
        self.cursor: Optional[str] = None

    def __len__(self) -> int:
        return len(self._rows)

    def _key(self, row: Dict[str, Any]):
        trade_number = row.get("trade_number")
        if trade_number not in (None, ""):
            return ("trade_number", str(trade_number))
        if row.get("id") not in (None, ""):
            return ("id", str(row["id"]))
        return None

    def add_page(self, rows: Iterable[Dict[str, Any]]) -> int:
        """
        Add one page of raw rows. Rows already seen (same trade number)
        are skipped. Returns the number of new rows.
        """
        added = 0
        last_row = None
        for row in rows:
            last_row = row
            key = self._key(row)
            if key is not None:
                if key in self._seen:
                    continue
                self._seen.add(key)
            self._rows.append(row)
            added += 1

        if last_row is not None and last_row.get("trade_number") not in (None, ""):
            self.cursor = str(last_row["trade_number"])

        logger.debug(f"{self.symbol} {self.date}: +{added} rows, {len(self._rows)} total, cursor {self.cursor}")
        return added

    def trades(self) -> List[TradeRecord]:
        return parse_trades(self._rows)

    def analyze(self, side: Optional[str] = None, market_board: Optional[str] = None,
                minimum_lot: Optional[int] = None) -> TapeAnalysis:
        """Recompute the full analysis over every accumulated page."""
        trades = filter_trades(self.trades(), side, market_board, minimum_lot)
        return TradeTapeAnalyzer(self.thresholds).analyze(trades, symbol=self.symbol)


# ==================== FILES ====================

def read_tape_csv(content: Union[bytes, str]) -> List[Dict[str, Any]]:
    """
    Parse a running-trade CSV export into raw rows.

    Every column is read as text so the normalizer sees "9,272" rather
    than a float, and empty cells stay empty strings.
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8")

    first_line = content.split("\n", 1)[0]
    delimiter = ";" if ";" in first_line else ","

    df = pd.read_csv(io.StringIO(content), sep=delimiter, dtype=str, keep_default_na=False)
    df.columns = [str(c).strip().lower().replace(" ", "_") for c in df.columns]

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ParseError("columns", missing, reason="tape file is missing required columns")

    return df.to_dict(orient="records")


def read_tape_json(content: Union[bytes, str]) -> List[Dict[str, Any]]:
    """Accepts a list of rows, {"data": {"running_trade": [...]}} or {"trades": [...]}."""
    payload = json.loads(content)
    if isinstance(payload, list):
        return payload
    data = payload.get("data", payload)
    if isinstance(data, list):
        return data
    return data.get("running_trade") or data.get("trades") or []


def load_tape_file(path: Union[str, Path]) -> List[Dict[str, Any]]:
    path = Path(path)
    content = path.read_bytes()
    if path.suffix.lower() == ".json":
        rows = read_tape_json(content)
    else:
        rows = read_tape_csv(content)
    logger.info(f"Loaded {len(rows)} rows from {path.name}")
    return rows
