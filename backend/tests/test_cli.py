"""Tests for the forensics command line."""
import io
import json

import pytest
from rich.console import Console

from forensics import cli
from forensics.cli import main


@pytest.fixture
def output(monkeypatch):
    """Plain-text console so assertions see no styling codes."""
    buffer = io.StringIO()
    monkeypatch.setattr(cli, "console", Console(file=buffer, width=120, color_system=None))
    return buffer


@pytest.fixture
def tape_file(tmp_path):
    path = tmp_path / "psab.csv"
    path.write_text(
        "time;action;price;lot;buyer;seller\n"
        "10:00:00;buy;1,000;300;AA;BB\n"
        "10:00:01;buy;1,000;400;AA;BB\n"
        "10:05:00;sell;1,000;100;CC;BB\n",
        encoding="utf-8",
    )
    return path


class TestTapeCommand:

    def test_renders_analysis(self, tape_file, output):
        assert main(["tape", str(tape_file)]) == 0

        out = output.getvalue()
        assert "PSAB" in out
        assert "BULLISH" in out
        assert "Split Orders (1)" in out

    def test_filtered_to_nothing(self, tape_file, output):
        assert main(["tape", str(tape_file), "--min-lot", "5000"]) == 0
        assert "No trades" in output.getvalue()

    def test_bad_threshold(self, tape_file, output):
        assert main(["tape", str(tape_file), "--big-lot", "0"]) == 2
        assert "big_lot" in output.getvalue()

    def test_malformed_row(self, tmp_path, output):
        path = tmp_path / "bad.csv"
        path.write_text("time,action,price,lot,buyer,seller\n10:00,buy,1,1,AA,BB\n", encoding="utf-8")
        assert main(["tape", str(path)]) == 2


class TestDistributionCommand:

    @pytest.fixture
    def payload_file(self, tmp_path, distribution_payload):
        path = tmp_path / "distribution.json"
        path.write_text(json.dumps(distribution_payload), encoding="utf-8")
        return path

    def test_seller_column(self, payload_file, output):
        assert main(["distribution", str(payload_file)]) == 0

        out = output.getvalue()
        assert "YP" in out
        assert "Self-crossing: AK, CC" in out

    def test_inverse_query(self, payload_file, output):
        assert main(["distribution", str(payload_file), "--broker", "yp", "--mode", "seller"]) == 0

        out = output.getvalue()
        assert "ZP" in out
        assert "Total: 900" in out
