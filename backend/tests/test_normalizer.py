"""Tests for the ingestion boundary (time, numerals, broker labels, trade rows)."""
import math

import pytest

from forensics.core.exceptions import ParseError
from forensics.models.records import InvestorType, Side
from forensics.services.normalizer import (
    broker_code, parse_investor_type, parse_numeral, parse_side,
    parse_time, parse_trade, parse_trades,
)


class TestParseTime:

    def test_seconds_since_midnight(self):
        assert parse_time("00:00:00") == 0
        assert parse_time("09:00:01") == 32401
        assert parse_time("23:59:59") == 86399

    def test_unpadded_components(self):
        assert parse_time("9:0:1") == 32401

    @pytest.mark.parametrize("text", ["10:00", "10:00:00:00", "aa:00:00", "10:-1:00", "", "10::00"])
    def test_malformed_shape(self, text):
        with pytest.raises(ParseError) as exc_info:
            parse_time(text, 7)
        assert exc_info.value.field == "time"
        assert exc_info.value.index == 7

    @pytest.mark.parametrize("text", ["24:00:00", "10:60:00", "10:00:60"])
    def test_out_of_range(self, text):
        with pytest.raises(ParseError):
            parse_time(text)

    def test_non_string(self):
        with pytest.raises(ParseError):
            parse_time(None)


class TestParseNumeral:

    def test_thousands_separator(self):
        assert parse_numeral("9,272") == 9272
        assert parse_numeral("1,234,567") == 1234567

    def test_scientific_notation_rounds(self):
        assert parse_numeral("2.187216779e+07") == 21872168

    def test_half_up(self):
        assert parse_numeral("2.5") == 3
        assert parse_numeral("2.49") == 2

    def test_empty_is_zero(self):
        assert parse_numeral(None) == 0
        assert parse_numeral("") == 0
        assert parse_numeral("   ") == 0

    def test_native_numbers(self):
        assert parse_numeral(42) == 42
        assert parse_numeral(41.6) == 42

    @pytest.mark.parametrize("value", ["abc", "-5", -1, float("nan"), math.inf, "inf", True])
    def test_rejected(self, value):
        with pytest.raises(ParseError):
            parse_numeral(value, 3, "lot")

    def test_error_carries_field(self):
        with pytest.raises(ParseError) as exc_info:
            parse_numeral("x", 4, "price")
        assert exc_info.value.field == "price"
        assert "record 4" in exc_info.value.message


class TestBrokerLabels:

    def test_code_from_label(self):
        assert broker_code("EP [D]") == "EP"
        assert broker_code("  zp ") == "ZP"

    def test_missing_code(self):
        with pytest.raises(ParseError):
            broker_code("", 0, "buyer")
        with pytest.raises(ParseError):
            broker_code(None, 0, "seller")

    @pytest.mark.parametrize("value,expected", [
        ("BROKER_TYPE_FOREIGN", InvestorType.FOREIGN),
        ("Asing", InvestorType.FOREIGN),
        ("BROKER_TYPE_GOVERNMENT", InvestorType.GOVERNMENT),
        ("Pemerintah", InvestorType.GOVERNMENT),
        ("BROKER_TYPE_LOCAL", InvestorType.DOMESTIC),
        ("Lokal", InvestorType.DOMESTIC),
        (None, InvestorType.DOMESTIC),
    ])
    def test_investor_type(self, value, expected):
        assert parse_investor_type(value) == expected


class TestParseSide:

    def test_plain_and_vendor_forms(self):
        assert parse_side("buy") == Side.BUY
        assert parse_side("SELL") == Side.SELL
        assert parse_side("RUNNING_TRADE_ACTION_TYPE_BUY") == Side.BUY
        assert parse_side("RUNNING_TRADE_ACTION_TYPE_SELL") == Side.SELL

    def test_unknown_side(self):
        with pytest.raises(ParseError):
            parse_side("hold", 2)


class TestParseTrade:

    def test_full_row(self, make_trade):
        row = make_trade("09:30:15", "1,200", "RUNNING_TRADE_ACTION_TYPE_SELL",
                         buyer="ZP [F]", seller="NI [G]", price="4,150",
                         market_board="RG", trade_number=123456)
        trade = parse_trade(row, 9)

        assert trade.sequence_id == 9
        assert trade.time_of_day == 9 * 3600 + 30 * 60 + 15
        assert trade.lot_size == 1200
        assert trade.price == 4150
        assert trade.side == Side.SELL
        assert trade.buyer_code == "ZP"
        assert trade.seller_code == "NI"
        assert trade.buyer_type == InvestorType.FOREIGN
        assert trade.seller_type == InvestorType.GOVERNMENT
        assert trade.acting_broker == "NI"
        assert trade.trade_number == "123456"
        assert trade.value == 1200 * 4150 * 100

    def test_explicit_type_wins_over_label(self, make_trade):
        row = make_trade("10:00:00", "1", "buy", buyer="ZP [D]", buyer_type="Asing")
        assert parse_trade(row, 0).buyer_type == InvestorType.FOREIGN

    def test_defaults(self, make_trade):
        trade = parse_trade(make_trade("10:00:00", "5", "buy"), 0)
        assert trade.market_board == "RG"
        assert trade.trade_number is None
        assert trade.buyer_type == InvestorType.DOMESTIC

    def test_first_bad_row_aborts(self, make_trade):
        rows = [
            make_trade("10:00:00", "5", "buy"),
            make_trade("10:00:xx", "5", "buy"),
            make_trade("10:00:02", "5", "buy"),
        ]
        with pytest.raises(ParseError) as exc_info:
            parse_trades(rows)
        assert exc_info.value.index == 1

    def test_sequence_follows_arrival(self, make_trade):
        trades = parse_trades([make_trade("10:00:05", "1", "buy"), make_trade("10:00:00", "1", "buy")])
        assert [t.sequence_id for t in trades] == [0, 1]
