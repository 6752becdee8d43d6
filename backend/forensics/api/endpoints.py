"""
API Endpoints for the Order-Flow Forensics Engine

Provides endpoints for:
1. Running trade forensics (broker positions, split orders, classification, verdict)
2. Broker distribution graph (layout + flows for the Sankey view)
3. Forward / inverse broker queries on the distribution graph

Engine errors propagate to the app-level handlers (ParseError -> 422,
ConfigurationError -> 400). Endpoints are sync so the engine runs in the
threadpool.
"""

import logging
from typing import List

from fastapi import APIRouter

from forensics.core.config import get_thresholds, settings
from forensics.models.records import BuyerAllocation
from forensics.models.schemas import (
    BrokerFlowData, DistributionGraphData, DistributionQueryData,
    DistributionQueryRequest, DistributionRequest, TapeAnalysisData, TradeTapeRequest,
)
from forensics.services.distribution_graph import DistributionGraph, build_graph, buyers_from_payload, parse_allocation
from forensics.services.normalizer import parse_trades
from forensics.services.tape_loader import filter_trades
from forensics.services.trade_tape import TradeTapeAnalyzer
from forensics.services.verdict import synthesize_verdict

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/running-trade", response_model=TapeAnalysisData)
def analyze_running_trade(request: TradeTapeRequest):
    """
    Analyze one day's running trade for a symbol.

    Returns broker profiles, split order groups, sentiment and verdict.
    An empty trade list returns a zero-valued result.
    """
    thresholds = get_thresholds(**request.thresholds.to_kwargs())
    trades = filter_trades(
        parse_trades(request.trades),
        side=request.side,
        market_board=request.market_board,
        minimum_lot=request.minimum_lot,
    )

    symbol = request.symbol.upper()
    analysis = TradeTapeAnalyzer(thresholds).analyze(trades, symbol=symbol)
    verdict = synthesize_verdict(analysis, thresholds)
    return TapeAnalysisData.from_analysis(analysis, verdict, date=request.date)


def _resolve_buyers(request: DistributionRequest) -> List[BuyerAllocation]:
    if request.payload is not None:
        return buyers_from_payload(request.payload, request.metric)
    return [parse_allocation(row, i) for i, row in enumerate(request.buyers or [])]


def _or_default(value, default):
    return default if value is None else value


def _build(request: DistributionRequest) -> DistributionGraph:
    return build_graph(
        _resolve_buyers(request),
        top_n=_or_default(request.top_n, settings.FORENSICS_GRAPH_TOP_N),
        edges_per_buyer=_or_default(request.edges_per_buyer, settings.FORENSICS_GRAPH_EDGES_PER_BUYER),
        top_k=_or_default(request.top_k, settings.FORENSICS_GRAPH_TOP_K),
    )


@router.post("/distribution", response_model=DistributionGraphData)
def broker_distribution(request: DistributionRequest):
    """
    Build the buyer -> seller distribution graph.

    Returns column layout, flow geometry, self-crossings and a summary.
    """
    graph = _build(request)
    return DistributionGraphData.from_graph(graph, request.symbol.upper(), request.date, request.metric)


@router.post("/distribution/query", response_model=DistributionQueryData)
def query_distribution(request: DistributionQueryRequest):
    """
    Forward (mode=buyer): the sellers on this buyer's distribution list.
    Inverse (mode=seller): every buyer whose list includes this seller.
    """
    graph = _build(request)
    code = request.broker_code.upper()

    if request.mode == "buyer":
        counterparties = [
            BrokerFlowData(code=e.seller_code, type=e.seller_type.value, amount=e.amount)
            for e in graph.query_forward(code)
        ]
    else:
        counterparties = [
            BrokerFlowData(code=f.code, type=f.type.value, amount=f.amount)
            for f in graph.query_inverse(code)
        ]

    return DistributionQueryData(
        broker_code=code,
        mode=request.mode,
        total_amount=sum(c.amount for c in counterparties),
        counterparties=counterparties,
    )
