"""
Broker Distribution Graph

Bipartite buyer -> seller graph built from the broker distribution summary
("who sold to whom"). Buyers come ranked by their aggregate amount, each with
the sellers that supplied them.

Supports:
1. Forward query: the sellers on a buyer's distribution list
2. Inverse query: every buyer that lists a given seller
3. Proportional column layout with a minimum box height per node
4. Flow geometry (thickness and offsets) for the edges between columns

The graph is a networkx DiGraph keyed by (role, code) so a broker that both
buys and sells appears once per column. Successor/predecessor maps serve the
forward/inverse queries without rescanning the buyer list.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import networkx as nx
import numpy as np

from forensics.core.exceptions import ConfigurationError, ParseError
from forensics.models.records import BuyerAllocation, DistributionEdge, InvestorType
from forensics.services.normalizer import broker_code, parse_investor_type, parse_numeral

logger = logging.getLogger(__name__)

METRICS = {"value": "by_value", "volume": "by_volume"}


class BrokerRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"


@dataclass(frozen=True)
class LayoutSpec:
    """Column geometry. Boxes share `height - gap * slots` proportionally."""
    height: float = 550
    gap: float = 6
    slots: int = 12
    buyer_floor: float = 35
    seller_floor: float = 28
    max_thickness: float = 25
    min_thickness: float = 1

    def __post_init__(self):
        for name in ("height", "slots", "buyer_floor", "seller_floor",
                     "max_thickness", "min_thickness"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(name, value)
        if self.gap < 0:
            raise ConfigurationError("gap", self.gap, f"gap must not be negative, got {self.gap!r}")
        if self.usable_height <= 0:
            raise ConfigurationError(
                "height", self.height,
                f"height {self.height} leaves no room after {self.slots} gaps of {self.gap}"
            )

    @property
    def usable_height(self) -> float:
        return self.height - self.gap * self.slots


@dataclass
class BrokerFlow:
    """Counterparty entry returned by queries"""
    code: str
    type: InvestorType
    amount: int


@dataclass
class SellerTotal:
    code: str
    type: InvestorType
    amount: int = 0


@dataclass
class NodeBox:
    code: str
    type: InvestorType
    amount: int
    y: float
    height: float


@dataclass
class FlowPath:
    buyer_code: str
    seller_code: str
    buyer_type: InvestorType
    seller_type: InvestorType
    amount: int
    thickness: float
    start_y: float
    end_y: float


# ==================== INGESTION ====================

def parse_allocation(raw: Dict[str, Any], index: int) -> BuyerAllocation:
    """
    Parse one vendor buyer entry:
        {"detail": {"code", "type", "amount"}, "distribute_to": [{"code", "type", "amount"}]}
    """
    if not isinstance(raw, dict):
        raise ParseError("buyer", raw, index, "expected mapping")
    detail = raw.get("detail")
    if not isinstance(detail, dict):
        raise ParseError("detail", detail, index, "expected mapping")
    code = broker_code(detail.get("code"), index, "buyer")
    buyer_type = parse_investor_type(detail.get("type"))

    edges = []
    sellers = raw.get("distribute_to")
    if sellers is None:
        sellers = []
    elif not isinstance(sellers, list):
        raise ParseError("distribute_to", sellers, index, "expected list")
    for seller in sellers:
        if not isinstance(seller, dict):
            raise ParseError("seller", seller, index, "expected mapping")
        edges.append(DistributionEdge(
            buyer_code=code,
            buyer_type=buyer_type,
            seller_code=broker_code(seller.get("code"), index, "seller"),
            seller_type=parse_investor_type(seller.get("type")),
            amount=parse_numeral(seller.get("amount"), index, "amount"),
        ))

    return BuyerAllocation(
        code=code,
        type=buyer_type,
        amount=parse_numeral(detail.get("amount"), index, "amount"),
        edges=tuple(edges),
    )


def buyers_from_payload(payload: Dict[str, Any], metric: str = "value") -> List[BuyerAllocation]:
    """
    Select the ranked buyer list for a metric from a distribution response.

    Accepts the response envelope ({"data": {...}}) or its data object.
    """
    key = METRICS.get(metric)
    if key is None:
        raise ConfigurationError("metric", metric, f"metric must be one of {sorted(METRICS)}, got {metric!r}")

    if payload and not isinstance(payload, dict):
        raise ParseError("payload", payload, reason="expected mapping")
    data = payload.get("data", payload) if payload else {}
    if data and not isinstance(data, dict):
        raise ParseError("data", data, reason="expected mapping")
    source = (data or {}).get(key)
    if source is None:
        source = {}
    elif not isinstance(source, dict):
        raise ParseError(key, source, reason="expected mapping")
    rows = source.get("top_broker_buy")
    if rows is None:
        rows = []
    elif not isinstance(rows, list):
        raise ParseError("top_broker_buy", rows, reason="expected list")
    return [parse_allocation(row, i) for i, row in enumerate(rows)]


def _as_allocation(buyer: Union[BuyerAllocation, Dict[str, Any]], index: int) -> BuyerAllocation:
    if isinstance(buyer, BuyerAllocation):
        return buyer
    if isinstance(buyer, dict):
        return parse_allocation(buyer, index)
    raise ParseError("buyer", buyer, index, "expected allocation mapping")


# ==================== LAYOUT ====================

def _column_layout(entries: Sequence[Tuple[str, InvestorType, int]], floor: float,
                   spec: LayoutSpec) -> List[NodeBox]:
    if not entries:
        return []

    amounts = np.array([amount for _, _, amount in entries], dtype=float)
    total = amounts.sum()
    if total > 0:
        heights = np.maximum(floor, amounts / total * spec.usable_height)
    else:
        heights = np.full(len(entries), float(floor))
    tops = np.concatenate(([0.0], np.cumsum(heights + spec.gap)[:-1]))

    return [
        NodeBox(code=code, type=node_type, amount=amount, y=float(y), height=float(h))
        for (code, node_type, amount), y, h in zip(entries, tops, heights)
    ]


def layout(buyers: Sequence[BuyerAllocation], sellers: Sequence[SellerTotal],
           spec: Optional[LayoutSpec] = None) -> Tuple[List[NodeBox], List[NodeBox]]:
    """
    Vertical extent per node, proportional to its share of its column.

    Boxes below the floor are clamped up so every broker stays clickable;
    order is preserved and `y` accumulates height plus gap.
    """
    spec = spec or LayoutSpec()
    buyer_boxes = _column_layout([(b.code, b.type, b.amount) for b in buyers], spec.buyer_floor, spec)
    seller_boxes = _column_layout([(s.code, s.type, s.amount) for s in sellers], spec.seller_floor, spec)
    return buyer_boxes, seller_boxes


# ==================== GRAPH ====================

class DistributionGraph:
    """
    Immutable query view over the top buyers and the sellers that fed them.

    Build with build_graph(); do not mutate `graph` directly.
    """

    def __init__(self, buyers: List[BuyerAllocation], top_k: int):
        self.buyers = buyers
        self.top_k = top_k
        self.graph = nx.DiGraph()
        self.seller_totals: Dict[str, SellerTotal] = {}

        for buyer in buyers:
            buyer_node = (BrokerRole.BUYER, buyer.code)
            self.graph.add_node(buyer_node, code=buyer.code, type=buyer.type, amount=buyer.amount)

            for edge in buyer.edges:
                seller_node = (BrokerRole.SELLER, edge.seller_code)
                total = self.seller_totals.get(edge.seller_code)
                if total is None:
                    total = self.seller_totals[edge.seller_code] = SellerTotal(edge.seller_code, edge.seller_type)
                    self.graph.add_node(seller_node, code=edge.seller_code, type=edge.seller_type)
                total.amount += edge.amount

                # Repeated seller within one buyer: merge into one weighted edge
                if self.graph.has_edge(buyer_node, seller_node):
                    self.graph[buyer_node][seller_node]["amount"] += edge.amount
                else:
                    self.graph.add_edge(buyer_node, seller_node, amount=edge.amount)

        self.sellers = sorted(self.seller_totals.values(), key=lambda s: s.amount, reverse=True)[:top_k]

    def __len__(self) -> int:
        return len(self.buyers)

    def query_forward(self, buyer_code: str) -> List[DistributionEdge]:
        """Outgoing edges of a buyer, largest first. Unknown code -> []."""
        node = (BrokerRole.BUYER, str(buyer_code).upper())
        if node not in self.graph:
            return []

        buyer_type = self.graph.nodes[node]["type"]
        edges = [
            DistributionEdge(
                buyer_code=node[1],
                buyer_type=buyer_type,
                seller_code=seller[1],
                seller_type=self.graph.nodes[seller]["type"],
                amount=data["amount"],
            )
            for _, seller, data in self.graph.out_edges(node, data=True)
        ]
        return sorted(edges, key=lambda e: e.amount, reverse=True)

    def query_inverse(self, seller_code: str) -> List[BrokerFlow]:
        """Every buyer this seller supplied, largest first. Unknown code -> []."""
        node = (BrokerRole.SELLER, str(seller_code).upper())
        if node not in self.graph:
            return []

        flows = [
            BrokerFlow(code=buyer[1], type=self.graph.nodes[buyer]["type"], amount=data["amount"])
            for buyer, _, data in self.graph.in_edges(node, data=True)
        ]
        return sorted(flows, key=lambda f: f.amount, reverse=True)

    def seller_total(self, seller_code: str) -> int:
        total = self.seller_totals.get(str(seller_code).upper())
        return total.amount if total else 0

    def layout(self, spec: Optional[LayoutSpec] = None) -> Tuple[List[NodeBox], List[NodeBox]]:
        return layout(self.buyers, self.sellers, spec)

    def flows(self, spec: Optional[LayoutSpec] = None) -> List[FlowPath]:
        """
        Edge geometry between the two columns.

        Thickness is relative to the largest buyer. Edges stack downward
        inside the buyer box and, on the seller side, below the edges of
        earlier buyers into the same seller. Sellers outside the top-K
        column are not drawn.
        """
        spec = spec or LayoutSpec()
        buyer_boxes, seller_boxes = self.layout(spec)
        seller_by_code = {box.code: box for box in seller_boxes}
        max_buyer_amount = max((b.amount for b in self.buyers), default=0)

        seller_fill: Dict[str, float] = {}
        paths = []
        for box in buyer_boxes:
            node = (BrokerRole.BUYER, box.code)
            offset = 0.0
            for _, seller, data in self.graph.out_edges(node, data=True):
                seller_box = seller_by_code.get(seller[1])
                if seller_box is None:
                    continue

                amount = data["amount"]
                if max_buyer_amount > 0:
                    thickness = max(spec.min_thickness, amount / max_buyer_amount * spec.max_thickness)
                else:
                    thickness = spec.min_thickness

                filled = seller_fill.get(seller_box.code, 0.0)
                paths.append(FlowPath(
                    buyer_code=box.code,
                    seller_code=seller_box.code,
                    buyer_type=box.type,
                    seller_type=seller_box.type,
                    amount=amount,
                    thickness=thickness,
                    start_y=box.y + offset + thickness / 2,
                    end_y=seller_box.y + filled + thickness / 2,
                ))
                offset += thickness
                seller_fill[seller_box.code] = filled + thickness

        return paths

    def crossings(self) -> List[DistributionEdge]:
        """Edges where a broker bought from itself (crossing / possible churn)."""
        crossed = []
        for buyer in self.buyers:
            for edge in self.query_forward(buyer.code):
                if edge.seller_code == edge.buyer_code:
                    crossed.append(edge)
        return crossed

    def summary(self) -> Dict[str, int]:
        return {
            "buyer_count": len(self.buyers),
            "seller_count": len(self.seller_totals),
            "ranked_seller_count": len(self.sellers),
            "edge_count": self.graph.number_of_edges(),
            "total_buy_amount": sum(b.amount for b in self.buyers),
            "total_edge_amount": sum(s.amount for s in self.seller_totals.values()),
        }


def build_graph(buyers: Iterable[Union[BuyerAllocation, Dict[str, Any]]],
                top_n: int = 12, edges_per_buyer: int = 10, top_k: int = 12) -> DistributionGraph:
    """
    Build the distribution graph from a ranked buyer list.

    Args:
        buyers: Ranked buyers (BuyerAllocation or vendor dicts)
        top_n: Ranked entries considered, from the top; entries repeating a
            buyer code are merged into its first occurrence
        edges_per_buyer: Seller allocations kept per buyer, in given order
        top_k: Sellers kept in the ranked seller column

    Raises:
        ConfigurationError: if any limit is not positive
    """
    for name, value in (("top_n", top_n), ("edges_per_buyer", edges_per_buyer), ("top_k", top_k)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigurationError(name, value)

    merged: Dict[str, BuyerAllocation] = {}
    for i, buyer in enumerate(buyers):
        if i >= top_n:
            break
        allocation = _as_allocation(buyer, i)
        edges = tuple(allocation.edges[:edges_per_buyer])

        # Repeated buyer code: one node at its first rank, amounts and edges combined
        previous = merged.get(allocation.code)
        if previous is not None:
            logger.debug(f"Merging repeated buyer {allocation.code} at rank {i}")
            merged[allocation.code] = replace(
                previous,
                amount=previous.amount + allocation.amount,
                edges=previous.edges + edges,
            )
        else:
            merged[allocation.code] = replace(allocation, edges=edges)

    kept = list(merged.values())
    graph = DistributionGraph(kept, top_k)
    logger.info(
        f"Distribution graph: {len(kept)} buyers, {len(graph.seller_totals)} sellers, "
        f"{graph.graph.number_of_edges()} edges"
    )
    return graph
