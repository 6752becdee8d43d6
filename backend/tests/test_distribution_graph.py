"""Tests for the broker distribution graph: queries, truncation, layout and flows."""
import pytest

from forensics.core.exceptions import ConfigurationError, ParseError
from forensics.models.records import InvestorType
from forensics.services.distribution_graph import (
    LayoutSpec, build_graph, buyers_from_payload, layout, parse_allocation,
)


def allocation(code, amount, *sellers, type_="BROKER_TYPE_LOCAL"):
    return {
        "detail": {"code": code, "type": type_, "amount": amount},
        "distribute_to": [
            {"code": s, "type": "BROKER_TYPE_LOCAL", "amount": a} for s, a in sellers
        ],
    }


@pytest.fixture
def buyers(distribution_payload):
    return buyers_from_payload(distribution_payload, "value")


@pytest.fixture
def graph(buyers):
    return build_graph(buyers)


class TestIngestion:

    def test_payload_envelope(self, buyers):
        assert [b.code for b in buyers] == ["ZP", "AK", "CC"]
        assert buyers[0].type == InvestorType.FOREIGN
        assert buyers[0].amount == 1000
        assert [(e.seller_code, e.amount) for e in buyers[0].edges] == [("YP", 600), ("CC", 400)]

    def test_data_object(self, distribution_payload):
        assert len(buyers_from_payload(distribution_payload["data"], "value")) == 3

    def test_empty_metric(self, distribution_payload):
        assert buyers_from_payload(distribution_payload, "volume") == []

    def test_unknown_metric(self, distribution_payload):
        with pytest.raises(ConfigurationError):
            buyers_from_payload(distribution_payload, "price")

    def test_bad_amount(self):
        with pytest.raises(ParseError) as exc_info:
            parse_allocation(allocation("ZP", "1,000", ("YP", "lots")), 4)
        assert exc_info.value.index == 4

    @pytest.mark.parametrize("raw,field", [
        ({"detail": {"code": "ZP", "amount": "10"}, "distribute_to": ["YP"]}, "seller"),
        ({"detail": "ZP", "distribute_to": []}, "detail"),
        ({"detail": {"code": "ZP", "amount": "10"}, "distribute_to": {"code": "YP"}}, "distribute_to"),
        ("ZP", "buyer"),
    ])
    def test_wrong_shape(self, raw, field):
        with pytest.raises(ParseError) as exc_info:
            parse_allocation(raw, 2)
        assert exc_info.value.field == field
        assert exc_info.value.index == 2

    @pytest.mark.parametrize("payload", [
        {"data": {"by_value": [{"detail": {"code": "ZP"}}]}},
        {"data": {"by_value": []}},
        {"data": {"by_value": {"top_broker_buy": {"detail": {}}}}},
        {"data": ["ZP"]},
    ])
    def test_wrong_payload_shape(self, payload):
        with pytest.raises(ParseError):
            buyers_from_payload(payload, "value")


class TestQueries:

    def test_forward(self, graph):
        edges = graph.query_forward("zp")
        assert [(e.seller_code, e.amount) for e in edges] == [("YP", 600), ("CC", 400)]
        assert edges[0].buyer_type == InvestorType.FOREIGN

    def test_inverse(self, graph):
        assert [(f.code, f.amount) for f in graph.query_inverse("YP")] == [("ZP", 600), ("AK", 300)]
        assert [(f.code, f.amount) for f in graph.query_inverse("CC")] == [("ZP", 400), ("CC", 50)]

    def test_unknown_broker(self, graph):
        assert graph.query_forward("XX") == []
        assert graph.query_inverse("XX") == []

    def test_forward_inverse_symmetry(self, graph):
        for buyer in graph.buyers:
            for edge in graph.query_forward(buyer.code):
                inverse = {f.code: f.amount for f in graph.query_inverse(edge.seller_code)}
                assert inverse[buyer.code] == edge.amount

    def test_seller_totals(self, graph):
        for code in ("YP", "CC", "AK", "NI"):
            assert graph.seller_total(code) == sum(f.amount for f in graph.query_inverse(code))
        assert [(s.code, s.amount) for s in graph.sellers] == [
            ("YP", 900), ("CC", 450), ("AK", 200), ("NI", 200),
        ]
        assert graph.seller_totals["NI"].type == InvestorType.GOVERNMENT

    def test_crossings(self, graph):
        assert [(e.buyer_code, e.amount) for e in graph.crossings()] == [("AK", 200), ("CC", 50)]

    def test_summary(self, graph):
        assert graph.summary() == {
            "buyer_count": 3,
            "seller_count": 4,
            "ranked_seller_count": 4,
            "edge_count": 6,
            "total_buy_amount": 1750,
            "total_edge_amount": 1750,
        }

    def test_repeated_buyer_is_merged(self):
        graph = build_graph([
            allocation("ZP", "100", ("YP", "100")),
            allocation("AK", "80", ("YP", "80")),
            allocation("ZP", "50", ("CC", "50")),
        ])

        assert [(b.code, b.amount) for b in graph.buyers] == [("ZP", 150), ("AK", 80)]
        assert [(e.seller_code, e.amount) for e in graph.query_forward("ZP")] == [("YP", 100), ("CC", 50)]
        assert len(graph.layout()[0]) == 2
        assert sorted((f.buyer_code, f.seller_code) for f in graph.flows()) == [
            ("AK", "YP"), ("ZP", "CC"), ("ZP", "YP"),
        ]
        assert graph.summary()["total_buy_amount"] == 230
        assert graph.summary()["total_edge_amount"] == 230

    def test_repeated_seller_is_merged(self):
        graph = build_graph([allocation("ZP", "150", ("YP", "100"), ("YP", "50"))])
        assert [(e.seller_code, e.amount) for e in graph.query_forward("ZP")] == [("YP", 150)]
        assert graph.seller_total("YP") == 150


class TestTruncation:

    def test_top_n(self, buyers):
        graph = build_graph(buyers, top_n=2)
        assert [b.code for b in graph.buyers] == ["ZP", "AK"]
        assert graph.query_inverse("NI") == []

    def test_edges_per_buyer(self, buyers):
        graph = build_graph(buyers, edges_per_buyer=1)
        assert [(s.code, s.amount) for s in graph.sellers] == [("YP", 900), ("CC", 50)]

    def test_top_k(self, buyers):
        graph = build_graph(buyers, top_k=2)
        assert [s.code for s in graph.sellers] == ["YP", "CC"]
        # Queries still see every seller
        assert graph.seller_total("NI") == 200

    @pytest.mark.parametrize("kwargs", [{"top_n": 0}, {"edges_per_buyer": -1}, {"top_k": 0}, {"top_n": 2.5}])
    def test_invalid_limits(self, buyers, kwargs):
        with pytest.raises(ConfigurationError):
            build_graph(buyers, **kwargs)


class TestLayout:

    def test_proportional_heights(self, graph):
        spec = LayoutSpec()
        buyer_boxes, seller_boxes = graph.layout(spec)

        assert [b.code for b in buyer_boxes] == ["ZP", "AK", "CC"]
        assert buyer_boxes[0].height == pytest.approx(1000 / 1750 * 478)
        assert buyer_boxes[0].y == 0.0
        assert buyer_boxes[1].y == pytest.approx(buyer_boxes[0].height + 6)
        assert [s.code for s in seller_boxes] == ["YP", "CC", "AK", "NI"]

    def test_floor(self):
        graph = build_graph([allocation("ZP", "1000"), allocation("AK", "1")])
        buyer_boxes, _ = graph.layout()
        assert buyer_boxes[1].height == 35

    def test_zero_total_uses_floor(self):
        graph = build_graph([allocation("ZP", "0", ("YP", "0")), allocation("AK", "0", ("CC", "0"))])
        buyer_boxes, seller_boxes = graph.layout()

        assert [b.height for b in buyer_boxes] == [35, 35]
        assert [s.height for s in seller_boxes] == [28, 28]
        assert buyer_boxes[1].y == 41

    def test_empty(self):
        assert layout([], []) == ([], [])

    @pytest.mark.parametrize("kwargs", [{"height": 50}, {"height": 0}, {"gap": -1}, {"buyer_floor": 0}])
    def test_invalid_geometry(self, kwargs):
        with pytest.raises(ConfigurationError):
            LayoutSpec(**kwargs)


class TestFlows:

    def test_thickness_and_offsets(self, graph):
        flows = graph.flows()
        by_pair = {(f.buyer_code, f.seller_code): f for f in flows}
        _, seller_boxes = graph.layout()
        yp = next(s for s in seller_boxes if s.code == "YP")

        assert len(flows) == 6
        assert by_pair[("ZP", "YP")].thickness == pytest.approx(15.0)
        assert by_pair[("ZP", "CC")].thickness == pytest.approx(10.0)
        assert by_pair[("ZP", "YP")].start_y == pytest.approx(7.5)
        assert by_pair[("ZP", "CC")].start_y == pytest.approx(20.0)
        assert by_pair[("ZP", "YP")].end_y == pytest.approx(yp.y + 7.5)
        # AK stacks under ZP's edge into YP
        assert by_pair[("AK", "YP")].end_y == pytest.approx(yp.y + 15.0 + 3.75)

    def test_minimum_thickness(self):
        graph = build_graph([allocation("ZP", "10,000", ("YP", "9,990"), ("CC", "10"))])
        thin = next(f for f in graph.flows() if f.seller_code == "CC")
        assert thin.thickness == 1

    def test_unranked_sellers_not_drawn(self, buyers):
        graph = build_graph(buyers, top_k=1)
        assert {f.seller_code for f in graph.flows()} == {"YP"}
