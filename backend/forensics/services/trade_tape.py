"""
Trade Tape Analyzer - Running Trade Forensics

Batch analysis of one trading day's executed-trade tape for a symbol.

Key Concepts:
- Net Position: bought lot minus sold lot per broker
- Split Order: a large order fragmented into consecutive small trades by the
  same broker on the same side (iceberg disguise)
- Bandar Classification: RETAIL / TRADER / BANDAR / BANDAR_BESAR by average
  lot per transaction and total lot
- Sentiment: HAKA vs HAKI volume dominance

The tape is processed newest-first (time descending). Split adjacency is
defined on that order.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from forensics.core.config import ForensicsThresholds, get_thresholds
from forensics.models.records import InvestorType, Side, TradeRecord
from forensics.services.normalizer import parse_trades

logger = logging.getLogger(__name__)

# Minimum average / total lot for an active trader
TRADER_AVG_LOT = 100
TRADER_TOTAL_LOT = 1000


class BrokerClass(str, Enum):
    """Participant tiers, lowest to highest"""
    RETAIL = "RETAIL"              # Small transactions
    TRADER = "TRADER"              # Avg lot >= 100
    BANDAR = "BANDAR"              # Avg lot >= 500 or repeated split orders
    BANDAR_BESAR = "BANDAR_BESAR"  # Avg lot >= 1000 (whale)

    @property
    def tier(self) -> int:
        return _CLASS_TIERS[self]


_CLASS_TIERS = {
    BrokerClass.RETAIL: 0,
    BrokerClass.TRADER: 1,
    BrokerClass.BANDAR: 2,
    BrokerClass.BANDAR_BESAR: 3,
}


class Sentiment(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


@dataclass
class BrokerPosition:
    """Running buy/sell tally for one broker code"""
    code: str
    type: InvestorType
    bought_lot: int = 0
    sold_lot: int = 0
    buy_tx_count: int = 0
    sell_tx_count: int = 0

    @property
    def net_lot(self) -> int:
        return self.bought_lot - self.sold_lot


@dataclass
class SplitOrderGroup:
    """Consecutive same-broker, same-side trades inside the split window"""
    broker_code: str
    side: Side
    anchor_time: int  # Time of the first (latest) member
    members: List[TradeRecord] = field(default_factory=list)

    @property
    def total_lot(self) -> int:
        return sum(t.lot_size for t in self.members)


@dataclass
class BrokerProfile:
    """BrokerPosition plus derived classification"""
    position: BrokerPosition
    classification: BrokerClass
    split_groups: List[SplitOrderGroup] = field(default_factory=list)

    @property
    def code(self) -> str:
        return self.position.code

    @property
    def type(self) -> InvestorType:
        return self.position.type

    @property
    def net_lot(self) -> int:
        return self.position.net_lot

    @property
    def total_tx(self) -> int:
        return self.position.buy_tx_count + self.position.sell_tx_count

    @property
    def total_lot(self) -> int:
        return self.position.bought_lot + self.position.sold_lot

    @property
    def avg_lot_per_tx(self) -> float:
        return self.total_lot / self.total_tx if self.total_tx > 0 else 0.0


@dataclass
class NationalityFlow:
    """Buy/sell lots and value for one investor type"""
    buy_lot: int = 0
    sell_lot: int = 0
    buy_value: int = 0
    sell_value: int = 0

    @property
    def net_lot(self) -> int:
        return self.buy_lot - self.sell_lot

    @property
    def net_value(self) -> int:
        return self.buy_value - self.sell_value


@dataclass
class TapeAnalysis:
    """Complete result of one tape analysis"""
    symbol: Optional[str] = None
    trade_count: int = 0
    buy_volume: int = 0
    sell_volume: int = 0
    buy_count: int = 0
    sell_count: int = 0
    buy_percent: float = 50.0
    total_value: int = 0
    big_trade_count: int = 0
    foreign_net: int = 0
    sentiment: Optional[Sentiment] = None
    nationality: Dict[InvestorType, NationalityFlow] = field(default_factory=dict)
    positions: Dict[str, BrokerPosition] = field(default_factory=dict)
    broker_profiles: List[BrokerProfile] = field(default_factory=list)
    split_groups: List[SplitOrderGroup] = field(default_factory=list)
    top_accumulators: List[BrokerPosition] = field(default_factory=list)
    top_distributors: List[BrokerPosition] = field(default_factory=list)

    @property
    def sell_percent(self) -> float:
        return 100 - self.buy_percent

    @property
    def total_volume(self) -> int:
        return self.buy_volume + self.sell_volume

    @property
    def is_empty(self) -> bool:
        return self.trade_count == 0


def sort_tape(trades: Iterable[TradeRecord]) -> List[TradeRecord]:
    """Newest first. Stable, so equal timestamps keep arrival order."""
    return sorted(trades, key=lambda t: t.time_of_day, reverse=True)


def classify_broker(avg_lot: float, total_lot: int, split_count: int,
                    thresholds: ForensicsThresholds) -> BrokerClass:
    """First matching tier wins, checked from the top."""
    if avg_lot >= thresholds.big_lot or total_lot >= thresholds.big_lot * 5:
        return BrokerClass.BANDAR_BESAR
    if (avg_lot >= thresholds.bandar_lot
            or total_lot >= thresholds.bandar_lot * 10
            or split_count >= 2):
        return BrokerClass.BANDAR
    if avg_lot >= TRADER_AVG_LOT or total_lot >= TRADER_TOTAL_LOT:
        return BrokerClass.TRADER
    return BrokerClass.RETAIL


class SplitOrderDetector:
    """
    One-step look-back split detection over a time-descending tape.

    A pair (prev, current) qualifies when:
    1. |time difference| <= split window
    2. Both trades have the same initiating side
    3. The acting broker (buyer on HAKA, seller on HAKI) is the same

    Qualifying pairs chain into one group; the first non-qualifying pair
    closes it. Groups shorter than two trades are dropped.
    """

    def __init__(self, window_seconds: int):
        self.window_seconds = window_seconds

    def qualifies(self, prev: TradeRecord, current: TradeRecord) -> bool:
        return (
            abs(current.time_of_day - prev.time_of_day) <= self.window_seconds
            and current.side == prev.side
            and current.acting_broker == prev.acting_broker
        )

    def detect(self, sorted_trades: List[TradeRecord]) -> List[SplitOrderGroup]:
        groups: List[SplitOrderGroup] = []
        current_group: Optional[SplitOrderGroup] = None

        for prev, current in zip(sorted_trades, sorted_trades[1:]):
            if self.qualifies(prev, current):
                if current_group is None:
                    current_group = SplitOrderGroup(
                        broker_code=current.acting_broker,
                        side=current.side,
                        anchor_time=prev.time_of_day,
                        members=[prev],
                    )
                current_group.members.append(current)
            elif current_group is not None:
                self._close(current_group, groups)
                current_group = None

        if current_group is not None:
            self._close(current_group, groups)

        return groups

    @staticmethod
    def _close(group: SplitOrderGroup, groups: List[SplitOrderGroup]):
        if len(group.members) >= 2:
            groups.append(group)


class TradeTapeAnalyzer:
    """
    Running trade analyzer for one (symbol, date).

    Usage:
        analyzer = TradeTapeAnalyzer(get_thresholds(big_lot=2000))
        result = analyzer.analyze(trades)
    """

    def __init__(self, thresholds: Optional[ForensicsThresholds] = None):
        self.thresholds = thresholds or get_thresholds()
        self.split_detector = SplitOrderDetector(self.thresholds.split_window_seconds)

    def analyze(self, trades: Iterable[TradeRecord], symbol: Optional[str] = None) -> TapeAnalysis:
        """
        Full recomputation over the given trades.

        Returns:
            TapeAnalysis; zero-valued with sentiment None when there are no trades.
        """
        sorted_trades = sort_tape(trades)
        result = TapeAnalysis(
            symbol=symbol,
            trade_count=len(sorted_trades),
            nationality={t: NationalityFlow() for t in InvestorType},
        )

        if not sorted_trades:
            logger.info(f"Empty tape for {symbol or 'symbol'}: nothing to analyze")
            return result

        self._accumulate(sorted_trades, result)
        result.split_groups = self.split_detector.detect(sorted_trades)
        result.broker_profiles = self._build_profiles(result.positions, result.split_groups)
        self._rank(result)
        self._score_sentiment(result)

        logger.info(
            f"Analyzed {result.trade_count} trades for {symbol or 'symbol'}: "
            f"{len(result.positions)} brokers, {len(result.split_groups)} split groups, "
            f"sentiment {result.sentiment.value}"
        )
        for group in result.split_groups:
            logger.debug(
                f"Split order {group.broker_code} {group.side.value}: "
                f"{len(group.members)}x, {group.total_lot} lot"
            )

        return result

    def _accumulate(self, sorted_trades: List[TradeRecord], result: TapeAnalysis):
        """Single pass over the tape: volumes, positions, nationality flow, value."""
        positions = result.positions

        for trade in sorted_trades:
            lot = trade.lot_size
            value = trade.value

            result.total_value += value
            if lot >= self.thresholds.big_lot:
                result.big_trade_count += 1

            if trade.side == Side.BUY:
                result.buy_volume += lot
                result.buy_count += 1
            else:
                result.sell_volume += lot
                result.sell_count += 1

            buyer = positions.get(trade.buyer_code)
            if buyer is None:
                buyer = positions[trade.buyer_code] = BrokerPosition(trade.buyer_code, trade.buyer_type)
            buyer.bought_lot += lot
            buyer.buy_tx_count += 1

            seller = positions.get(trade.seller_code)
            if seller is None:
                seller = positions[trade.seller_code] = BrokerPosition(trade.seller_code, trade.seller_type)
            seller.sold_lot += lot
            seller.sell_tx_count += 1

            buy_flow = result.nationality[trade.buyer_type]
            buy_flow.buy_lot += lot
            buy_flow.buy_value += value
            sell_flow = result.nationality[trade.seller_type]
            sell_flow.sell_lot += lot
            sell_flow.sell_value += value

        result.foreign_net = result.nationality[InvestorType.FOREIGN].net_lot

    def _build_profiles(self, positions: Dict[str, BrokerPosition],
                        split_groups: List[SplitOrderGroup]) -> List[BrokerProfile]:
        groups_by_broker: Dict[str, List[SplitOrderGroup]] = {}
        for group in split_groups:
            groups_by_broker.setdefault(group.broker_code, []).append(group)

        profiles = []
        for code, position in positions.items():
            broker_groups = groups_by_broker.get(code, [])
            total_tx = position.buy_tx_count + position.sell_tx_count
            total_lot = position.bought_lot + position.sold_lot
            avg_lot = total_lot / total_tx if total_tx > 0 else 0.0
            profiles.append(BrokerProfile(
                position=position,
                classification=classify_broker(avg_lot, total_lot, len(broker_groups), self.thresholds),
                split_groups=broker_groups,
            ))

        profiles.sort(key=lambda p: p.total_lot, reverse=True)
        return profiles

    def _rank(self, result: TapeAnalysis):
        size = self.thresholds.ranking_size
        net_positions = sorted(result.positions.values(), key=lambda p: p.net_lot, reverse=True)
        result.top_accumulators = [p for p in net_positions if p.net_lot > 0][:size]
        result.top_distributors = sorted(
            (p for p in net_positions if p.net_lot < 0), key=lambda p: p.net_lot
        )[:size]

    @staticmethod
    def _score_sentiment(result: TapeAnalysis):
        total = result.total_volume
        result.buy_percent = (result.buy_volume * 100 / total) if total > 0 else 50.0

        if result.buy_percent > 60:
            result.sentiment = Sentiment.BULLISH
        elif result.buy_percent < 40:
            result.sentiment = Sentiment.BEARISH
        else:
            result.sentiment = Sentiment.NEUTRAL


def analyze_tape(rows: Iterable[Dict[str, Any]],
                 thresholds: Optional[ForensicsThresholds] = None,
                 symbol: Optional[str] = None) -> TapeAnalysis:
    """Normalize raw running-trade rows and analyze them."""
    return TradeTapeAnalyzer(thresholds).analyze(parse_trades(rows), symbol=symbol)
