from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any, Literal

from forensics.services.distribution_graph import DistributionGraph, LayoutSpec
from forensics.services.trade_tape import BrokerPosition, SplitOrderGroup, TapeAnalysis
from forensics.services.verdict import Verdict


# ==================== REQUESTS ====================

class ThresholdOverrides(BaseModel):
    """Per-request threshold overrides; omitted fields use settings"""
    big_lot: Optional[int] = None
    bandar_lot: Optional[int] = None
    split_window_seconds: Optional[int] = None
    ranking_size: Optional[int] = None
    churn_ratio_pct: Optional[float] = None
    churn_min_value: Optional[float] = None

    def to_kwargs(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class TradeTapeRequest(BaseModel):
    """Running trade rows for one (symbol, date)"""
    symbol: str
    date: Optional[str] = None
    trades: List[Dict[str, Any]] = []
    side: Optional[str] = None          # buy | sell
    market_board: Optional[str] = None  # RG | NG | TN
    minimum_lot: Optional[int] = Field(None, ge=0)
    thresholds: ThresholdOverrides = Field(default_factory=ThresholdOverrides)


class DistributionRequest(BaseModel):
    """Broker distribution payload (vendor shape) or its ranked buyer list"""
    symbol: str
    date: Optional[str] = None
    metric: Literal["value", "volume"] = "value"
    payload: Optional[Dict[str, Any]] = None
    buyers: Optional[List[Dict[str, Any]]] = None
    top_n: Optional[int] = None
    edges_per_buyer: Optional[int] = None
    top_k: Optional[int] = None


class DistributionQueryRequest(DistributionRequest):
    broker_code: str
    mode: Literal["buyer", "seller"] = "buyer"


# ==================== TRADE TAPE RESPONSES ====================

class BrokerPositionData(BaseModel):
    code: str
    type: str
    bought_lot: int = 0
    sold_lot: int = 0
    buy_tx_count: int = 0
    sell_tx_count: int = 0
    net_lot: int = 0

    @classmethod
    def from_position(cls, p: BrokerPosition) -> "BrokerPositionData":
        return cls(
            code=p.code, type=p.type.value,
            bought_lot=p.bought_lot, sold_lot=p.sold_lot,
            buy_tx_count=p.buy_tx_count, sell_tx_count=p.sell_tx_count,
            net_lot=p.net_lot,
        )


class TradeData(BaseModel):
    sequence_id: int
    time_of_day: int
    price: int
    lot_size: int
    side: str
    buyer_code: str
    seller_code: str
    trade_number: Optional[str] = None


class SplitOrderGroupData(BaseModel):
    broker_code: str
    side: str
    anchor_time: int
    total_lot: int
    member_count: int
    members: List[TradeData] = []

    @classmethod
    def from_group(cls, g: SplitOrderGroup) -> "SplitOrderGroupData":
        return cls(
            broker_code=g.broker_code,
            side=g.side.value,
            anchor_time=g.anchor_time,
            total_lot=g.total_lot,
            member_count=len(g.members),
            members=[
                TradeData(
                    sequence_id=t.sequence_id, time_of_day=t.time_of_day, price=t.price,
                    lot_size=t.lot_size, side=t.side.value, buyer_code=t.buyer_code,
                    seller_code=t.seller_code, trade_number=t.trade_number,
                )
                for t in g.members
            ],
        )


class BrokerProfileData(BrokerPositionData):
    total_tx: int = 0
    total_lot: int = 0
    avg_lot_per_tx: float = 0.0
    classification: str = "RETAIL"
    split_group_count: int = 0


class NationalityFlowData(BaseModel):
    buy_lot: int = 0
    sell_lot: int = 0
    buy_value: int = 0
    sell_value: int = 0
    net_lot: int = 0
    net_value: int = 0


class VerdictData(BaseModel):
    verdict: str
    score: int
    churn_ratio: float
    rationale: str
    signals: List[str] = []
    churn_level: Optional[str] = None

    @classmethod
    def from_verdict(cls, v: Verdict) -> "VerdictData":
        return cls(
            verdict=v.verdict.value, score=v.score, churn_ratio=v.churn_ratio,
            rationale=v.rationale, signals=list(v.signals),
            churn_level=v.churn_level.value if v.churn_level else None,
        )


class TapeAnalysisData(BaseModel):
    """Trade tape forensics result for the presentation layer"""
    symbol: Optional[str] = None
    date: Optional[str] = None
    trade_count: int = 0
    buy_volume: int = 0
    sell_volume: int = 0
    buy_count: int = 0
    sell_count: int = 0
    buy_percent: float = 50.0
    sell_percent: float = 50.0
    total_volume: int = 0
    total_value: int = 0
    big_trade_count: int = 0
    foreign_net: int = 0
    sentiment: Optional[str] = None
    nationality: Dict[str, NationalityFlowData] = {}
    broker_profiles: List[BrokerProfileData] = []
    split_groups: List[SplitOrderGroupData] = []
    top_accumulators: List[BrokerPositionData] = []
    top_distributors: List[BrokerPositionData] = []
    verdict: Optional[VerdictData] = None

    @classmethod
    def from_analysis(cls, a: TapeAnalysis, verdict: Optional[Verdict] = None,
                      date: Optional[str] = None) -> "TapeAnalysisData":
        return cls(
            symbol=a.symbol,
            date=date,
            trade_count=a.trade_count,
            buy_volume=a.buy_volume,
            sell_volume=a.sell_volume,
            buy_count=a.buy_count,
            sell_count=a.sell_count,
            buy_percent=round(a.buy_percent, 4),
            sell_percent=round(a.sell_percent, 4),
            total_volume=a.total_volume,
            total_value=a.total_value,
            big_trade_count=a.big_trade_count,
            foreign_net=a.foreign_net,
            sentiment=a.sentiment.value if a.sentiment else None,
            nationality={
                t.value: NationalityFlowData(
                    buy_lot=f.buy_lot, sell_lot=f.sell_lot,
                    buy_value=f.buy_value, sell_value=f.sell_value,
                    net_lot=f.net_lot, net_value=f.net_value,
                )
                for t, f in a.nationality.items()
            },
            broker_profiles=[
                BrokerProfileData(
                    **BrokerPositionData.from_position(p.position).model_dump(),
                    total_tx=p.total_tx,
                    total_lot=p.total_lot,
                    avg_lot_per_tx=round(p.avg_lot_per_tx, 4),
                    classification=p.classification.value,
                    split_group_count=len(p.split_groups),
                )
                for p in a.broker_profiles
            ],
            split_groups=[SplitOrderGroupData.from_group(g) for g in a.split_groups],
            top_accumulators=[BrokerPositionData.from_position(p) for p in a.top_accumulators],
            top_distributors=[BrokerPositionData.from_position(p) for p in a.top_distributors],
            verdict=VerdictData.from_verdict(verdict) if verdict else None,
        )


# ==================== DISTRIBUTION RESPONSES ====================

class BrokerFlowData(BaseModel):
    code: str
    type: str
    amount: int


class NodeBoxData(BrokerFlowData):
    y: float
    height: float


class FlowPathData(BaseModel):
    buyer_code: str
    seller_code: str
    buyer_type: str
    seller_type: str
    amount: int
    thickness: float
    start_y: float
    end_y: float


class DistributionGraphData(BaseModel):
    symbol: str
    date: Optional[str] = None
    metric: str = "value"
    buyers: List[NodeBoxData] = []
    sellers: List[NodeBoxData] = []
    flows: List[FlowPathData] = []
    crossings: List[BrokerFlowData] = []
    summary: Dict[str, int] = {}

    @classmethod
    def from_graph(cls, graph: DistributionGraph, symbol: str, date: Optional[str],
                   metric: str, spec: Optional[LayoutSpec] = None) -> "DistributionGraphData":
        spec = spec or LayoutSpec()
        buyer_boxes, seller_boxes = graph.layout(spec)
        flows = graph.flows(spec)

        def box(b):
            return NodeBoxData(code=b.code, type=b.type.value, amount=b.amount, y=b.y, height=b.height)

        def path(f):
            return FlowPathData(
                buyer_code=f.buyer_code, seller_code=f.seller_code,
                buyer_type=f.buyer_type.value, seller_type=f.seller_type.value,
                amount=f.amount, thickness=f.thickness, start_y=f.start_y, end_y=f.end_y,
            )

        return cls(
            symbol=symbol,
            date=date,
            metric=metric,
            buyers=[box(b) for b in buyer_boxes],
            sellers=[box(s) for s in seller_boxes],
            flows=[path(f) for f in flows],
            crossings=[
                BrokerFlowData(code=e.buyer_code, type=e.buyer_type.value, amount=e.amount)
                for e in graph.crossings()
            ],
            summary=graph.summary(),
        )


class DistributionQueryData(BaseModel):
    broker_code: str
    mode: str
    total_amount: int = 0
    counterparties: List[BrokerFlowData] = []
