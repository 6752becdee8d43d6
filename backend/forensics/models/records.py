"""
Input Records for the Forensics Engine

Immutable, validated records produced at the ingestion boundary:
- TradeRecord: one executed trade from the running-trade tape
- DistributionEdge / BuyerAllocation: broker-to-broker share distribution
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class Side(str, Enum):
    """Which side initiated the trade"""
    BUY = "buy"    # HAKA - buyer hit the offer
    SELL = "sell"  # HAKI - seller hit the bid


class InvestorType(str, Enum):
    """Broker nationality as reported by the exchange"""
    DOMESTIC = "domestic"
    FOREIGN = "foreign"
    GOVERNMENT = "government"


@dataclass(frozen=True)
class TradeRecord:
    """Single executed trade. 1 lot = 100 shares."""
    sequence_id: int
    time_of_day: int  # Seconds since midnight, 0-86399
    price: int
    lot_size: int
    side: Side
    buyer_code: str
    seller_code: str
    buyer_type: InvestorType = InvestorType.DOMESTIC
    seller_type: InvestorType = InvestorType.DOMESTIC
    market_board: str = "RG"
    trade_number: Optional[str] = None

    @property
    def acting_broker(self) -> str:
        """Broker on the initiating side"""
        return self.buyer_code if self.side == Side.BUY else self.seller_code

    @property
    def value(self) -> int:
        return self.lot_size * self.price * 100


@dataclass(frozen=True)
class DistributionEdge:
    """Shares a buyer received from one seller"""
    buyer_code: str
    buyer_type: InvestorType
    seller_code: str
    seller_type: InvestorType
    amount: int


@dataclass(frozen=True)
class BuyerAllocation:
    """A ranked buyer with its aggregate amount and seller allocations"""
    code: str
    type: InvestorType
    amount: int
    edges: Tuple[DistributionEdge, ...] = field(default_factory=tuple)
