"""Shared fixtures for the forensics test suite."""
import pytest

from forensics.core.config import ForensicsThresholds


def trade(time, lot, action, buyer="AA", seller="BB", price="1,000", **extra):
    row = {
        "time": time,
        "action": action,
        "price": price,
        "lot": lot,
        "buyer": buyer,
        "seller": seller,
    }
    row.update(extra)
    return row


@pytest.fixture
def make_trade():
    return trade


@pytest.fixture
def thresholds():
    """Default policy: big lot 1000, bandar lot 500, 2 second window."""
    return ForensicsThresholds()


@pytest.fixture
def example_rows():
    """Two quick HAKA prints by AA and one later HAKI by BB."""
    return [
        trade("10:00:00", "300", "buy", buyer="AA", seller="BB"),
        trade("10:00:01", "400", "buy", buyer="AA", seller="BB"),
        trade("10:05:00", "100", "sell", buyer="CC", seller="BB"),
    ]


@pytest.fixture
def distribution_payload():
    """Vendor broker distribution response, value metric only."""
    return {
        "message": "Successfully retrieved broker distribution",
        "data": {
            "by_value": {
                "top_broker_buy": [
                    {
                        "detail": {"code": "ZP", "type": "BROKER_TYPE_FOREIGN", "amount": "1,000"},
                        "distribute_to": [
                            {"code": "YP", "type": "BROKER_TYPE_LOCAL", "amount": "600"},
                            {"code": "CC", "type": "BROKER_TYPE_LOCAL", "amount": "400"},
                        ],
                    },
                    {
                        "detail": {"code": "AK", "type": "BROKER_TYPE_FOREIGN", "amount": "500"},
                        "distribute_to": [
                            {"code": "YP", "type": "BROKER_TYPE_LOCAL", "amount": "300"},
                            {"code": "AK", "type": "BROKER_TYPE_FOREIGN", "amount": "200"},
                        ],
                    },
                    {
                        "detail": {"code": "CC", "type": "BROKER_TYPE_LOCAL", "amount": "250"},
                        "distribute_to": [
                            {"code": "CC", "type": "BROKER_TYPE_LOCAL", "amount": "50"},
                            {"code": "NI", "type": "BROKER_TYPE_GOVERNMENT", "amount": "200"},
                        ],
                    },
                ]
            },
            "by_volume": {"top_broker_buy": []},
        },
    }
