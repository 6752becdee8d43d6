"""Forensics services: normalization, tape analysis, verdict and distribution graph."""

from .distribution_graph import DistributionGraph, build_graph
from .trade_tape import TradeTapeAnalyzer, analyze_tape
from .verdict import synthesize_verdict

__all__ = [
    "DistributionGraph",
    "TradeTapeAnalyzer",
    "analyze_tape",
    "build_graph",
    "synthesize_verdict",
]
