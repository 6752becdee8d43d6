"""
Forensics CLI

    python -m forensics.cli tape trades.csv --big-lot 1000 --split-window 2
    python -m forensics.cli distribution distribution.json --metric volume
    python -m forensics.cli distribution distribution.json --broker ZP --mode seller
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from forensics.core.config import get_thresholds, settings
from forensics.core.exceptions import ForensicsError
from forensics.services.distribution_graph import build_graph, buyers_from_payload
from forensics.services.tape_loader import filter_trades, load_tape_file
from forensics.services.normalizer import parse_trades
from forensics.services.trade_tape import BrokerClass, TradeTapeAnalyzer
from forensics.services.verdict import VerdictSignal, synthesize_verdict

console = Console()

CLASS_STYLES = {
    BrokerClass.BANDAR_BESAR: "bold yellow",
    BrokerClass.BANDAR: "cyan",
    BrokerClass.TRADER: "blue",
    BrokerClass.RETAIL: "white",
}

VERDICT_STYLES = {
    VerdictSignal.BULLISH: "bold green",
    VerdictSignal.BEARISH: "bold red",
    VerdictSignal.NEUTRAL: "white",
    VerdictSignal.AVOID_CHURN: "bold magenta",
}


def _clock(seconds: int) -> str:
    return f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}:{seconds % 60:02d}"


def run_tape(args) -> int:
    thresholds = get_thresholds(
        big_lot=args.big_lot,
        bandar_lot=args.bandar_lot,
        split_window_seconds=args.split_window,
    )
    trades = filter_trades(parse_trades(load_tape_file(args.file)),
                           side=args.side, market_board=args.board, minimum_lot=args.min_lot)
    symbol = (args.symbol or Path(args.file).stem).upper()

    analysis = TradeTapeAnalyzer(thresholds).analyze(trades, symbol=symbol)
    verdict = synthesize_verdict(analysis, thresholds)

    if analysis.is_empty:
        console.print(f"[yellow]No trades for {symbol}[/yellow]")
        return 0

    v_style = VERDICT_STYLES[verdict.verdict]
    console.print(f"[bold cyan]{symbol}[/bold cyan] {analysis.trade_count} trades, "
                  f"buy {analysis.buy_percent:.1f}% / sell {analysis.sell_percent:.1f}%, "
                  f"foreign net {analysis.foreign_net:+,} lot")
    console.print(f"Verdict: [{v_style}]{verdict.verdict.value}[/{v_style}] ({verdict.rationale})")

    table = Table(title="Broker Profiles", box=box.ROUNDED)
    table.add_column("Broker", style="cyan", no_wrap=True)
    table.add_column("Type", style="white")
    table.add_column("Buy Lot", justify="right")
    table.add_column("Sell Lot", justify="right")
    table.add_column("Net", style="bold", justify="right")
    table.add_column("Tx", justify="right")
    table.add_column("Avg/Tx", justify="right")
    table.add_column("Class")
    table.add_column("Split", style="magenta", justify="right")

    for p in analysis.broker_profiles[:args.limit]:
        net = p.net_lot
        net_str = f"[green]+{net:,}[/green]" if net > 0 else f"[red]{net:,}[/red]" if net < 0 else "0"
        c_style = CLASS_STYLES[p.classification]
        table.add_row(
            p.code,
            p.type.value,
            f"{p.position.bought_lot:,}",
            f"{p.position.sold_lot:,}",
            net_str,
            str(p.total_tx),
            f"{p.avg_lot_per_tx:,.0f}",
            f"[{c_style}]{p.classification.value}[/{c_style}]",
            str(len(p.split_groups)) if p.split_groups else "-",
        )
    console.print(table)

    if analysis.split_groups:
        splits = Table(title=f"Split Orders ({len(analysis.split_groups)})", box=box.ROUNDED)
        splits.add_column("Time", style="white")
        splits.add_column("Broker", style="cyan")
        splits.add_column("Side")
        splits.add_column("Trades", justify="right")
        splits.add_column("Total Lot", style="bold", justify="right")
        for g in analysis.split_groups:
            side = "[green]BUY[/green]" if g.side.value == "buy" else "[red]SELL[/red]"
            splits.add_row(_clock(g.anchor_time), g.broker_code, side,
                           str(len(g.members)), f"{g.total_lot:,}")
        console.print(splits)

    return 0


def run_distribution(args) -> int:
    payload = json.loads(Path(args.file).read_text(encoding="utf-8"))
    graph = build_graph(
        buyers_from_payload(payload, args.metric),
        top_n=settings.FORENSICS_GRAPH_TOP_N,
        edges_per_buyer=settings.FORENSICS_GRAPH_EDGES_PER_BUYER,
        top_k=settings.FORENSICS_GRAPH_TOP_K,
    )

    if args.broker:
        code = args.broker.upper()
        if args.mode == "buyer":
            rows = [(e.seller_code, e.seller_type.value, e.amount) for e in graph.query_forward(code)]
            title = f"{code} -> sellers"
        else:
            rows = [(f.code, f.type.value, f.amount) for f in graph.query_inverse(code)]
            title = f"buyers -> {code}"

        table = Table(title=title, box=box.ROUNDED)
        table.add_column("#", justify="right")
        table.add_column("Broker", style="cyan")
        table.add_column("Type")
        table.add_column("Amount", style="bold", justify="right")
        for i, (code_, type_, amount) in enumerate(rows, 1):
            table.add_row(str(i), code_, type_, f"{amount:,}")
        console.print(table)
        console.print(f"Total: {sum(r[2] for r in rows):,}")
        return 0

    table = Table(title=f"Top Sellers by {args.metric}", box=box.ROUNDED)
    table.add_column("Seller", style="red")
    table.add_column("Type")
    table.add_column("Amount", style="bold", justify="right")
    table.add_column("Buyers", justify="right")
    for s in graph.sellers:
        table.add_row(s.code, s.type.value, f"{s.amount:,}", str(len(graph.query_inverse(s.code))))
    console.print(table)

    crossings = graph.crossings()
    if crossings:
        console.print(f"[magenta]Self-crossing: {', '.join(e.buyer_code for e in crossings)}[/magenta]")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="forensics", description="Order-flow forensics")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    sub = parser.add_subparsers(dest="command", required=True)

    tape = sub.add_parser("tape", help="Analyze a running trade file (CSV or JSON)")
    tape.add_argument("file")
    tape.add_argument("--symbol")
    tape.add_argument("--big-lot", type=int)
    tape.add_argument("--bandar-lot", type=int)
    tape.add_argument("--split-window", type=int)
    tape.add_argument("--side", choices=["buy", "sell"])
    tape.add_argument("--board")
    tape.add_argument("--min-lot", type=int)
    tape.add_argument("--limit", type=int, default=20)
    tape.set_defaults(func=run_tape)

    dist = sub.add_parser("distribution", help="Analyze a broker distribution JSON")
    dist.add_argument("file")
    dist.add_argument("--metric", choices=["value", "volume"], default="value")
    dist.add_argument("--broker")
    dist.add_argument("--mode", choices=["buyer", "seller"], default="buyer")
    dist.set_defaults(func=run_distribution)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        return args.func(args)
    except ForensicsError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        return 2


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("Stopped.")
