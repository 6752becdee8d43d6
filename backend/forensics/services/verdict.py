"""
Verdict Synthesizer - Coarse directional call from a tape analysis

Combines:
1. Buy/sell dominance (tape sentiment)
2. Foreign net flow
3. Split-order side balance (hidden accumulation vs distribution)
4. Net position of BANDAR / BANDAR_BESAR brokers

Churning (tektokan) overrides everything: heavy traded value with almost no
net foreign flow means volume without conviction, so the call is AVOID_CHURN.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from forensics.core.config import ForensicsThresholds, get_thresholds
from forensics.models.records import InvestorType, Side
from forensics.services.trade_tape import BrokerClass, Sentiment, TapeAnalysis

logger = logging.getLogger(__name__)

# Score needed for a directional call
DIRECTIONAL_SCORE = 2

# Churn ratio (%) below which churning is severe
CHURN_HIGH_PCT = 2.0


class VerdictSignal(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"
    AVOID_CHURN = "AVOID_CHURN"


class ChurnLevel(str, Enum):
    """Tektokan severity, from the churn ratio alone"""
    HIGH = "HIGH"      # < 2%
    MEDIUM = "MEDIUM"  # < churn ratio threshold
    LOW = "LOW"


@dataclass
class Verdict:
    verdict: VerdictSignal
    score: int
    churn_ratio: float
    rationale: str
    signals: List[str] = field(default_factory=list)
    churn_level: Optional[ChurnLevel] = None


def calculate_churn_ratio(analysis: TapeAnalysis) -> float:
    """
    Churning Ratio = |Net Foreign Value| / Total Value * 100

    Returns 0.0 when nothing traded.
    """
    if analysis.total_value <= 0:
        return 0.0
    foreign = analysis.nationality.get(InvestorType.FOREIGN)
    net_foreign_value = foreign.net_value if foreign else 0
    return abs(net_foreign_value) / analysis.total_value * 100


def grade_churn(churn_ratio: float, thresholds: ForensicsThresholds) -> ChurnLevel:
    if churn_ratio < thresholds.churn_ratio_pct:
        return ChurnLevel.HIGH if churn_ratio < CHURN_HIGH_PCT else ChurnLevel.MEDIUM
    return ChurnLevel.LOW


def synthesize_verdict(analysis: TapeAnalysis,
                       thresholds: Optional[ForensicsThresholds] = None) -> Verdict:
    """
    Fold a TapeAnalysis into BULLISH / BEARISH / NEUTRAL / AVOID_CHURN.

    Args:
        analysis: Result of TradeTapeAnalyzer.analyze
        thresholds: Churn parameters; defaults from settings

    Returns:
        Verdict with score and a "; "-joined rationale
    """
    thresholds = thresholds or get_thresholds()

    if analysis.is_empty:
        return Verdict(
            verdict=VerdictSignal.NEUTRAL,
            score=0,
            churn_ratio=0.0,
            rationale="No trades to analyze",
        )

    churn_ratio = calculate_churn_ratio(analysis)
    churn_level = grade_churn(churn_ratio, thresholds)
    if (analysis.total_value > thresholds.churn_min_value
            and churn_ratio < thresholds.churn_ratio_pct):
        rationale = (
            f"Churning detected ({churn_level.value}): net foreign flow is {churn_ratio:.1f}% of "
            f"{analysis.total_value:,} traded value"
        )
        logger.info(f"{analysis.symbol or 'symbol'}: AVOID_CHURN ({churn_ratio:.2f}%)")
        return Verdict(
            verdict=VerdictSignal.AVOID_CHURN,
            score=0,
            churn_ratio=round(churn_ratio, 4),
            rationale=rationale,
            signals=[rationale],
            churn_level=churn_level,
        )

    score = 0
    signals = []

    if analysis.sentiment == Sentiment.BULLISH:
        score += 2
        signals.append(f"Buy dominant ({analysis.buy_percent:.1f}%)")
    elif analysis.sentiment == Sentiment.BEARISH:
        score -= 2
        signals.append(f"Sell dominant ({analysis.sell_percent:.1f}%)")

    if analysis.foreign_net > 0:
        score += 1
        signals.append(f"Foreign net buy {analysis.foreign_net:,} lot")
    elif analysis.foreign_net < 0:
        score -= 1
        signals.append(f"Foreign net sell {abs(analysis.foreign_net):,} lot")

    buy_splits = sum(1 for g in analysis.split_groups if g.side == Side.BUY)
    sell_splits = len(analysis.split_groups) - buy_splits
    if buy_splits > sell_splits:
        score += 1
        signals.append(f"Split orders on buy side ({buy_splits} vs {sell_splits})")
    elif sell_splits > buy_splits:
        score -= 1
        signals.append(f"Split orders on sell side ({sell_splits} vs {buy_splits})")

    bandar_net = sum(
        p.net_lot for p in analysis.broker_profiles
        if p.classification in (BrokerClass.BANDAR, BrokerClass.BANDAR_BESAR)
    )
    if bandar_net > 0:
        score += 1
        signals.append(f"Bandar accumulating {bandar_net:,} lot")
    elif bandar_net < 0:
        score -= 1
        signals.append(f"Bandar distributing {abs(bandar_net):,} lot")

    if score >= DIRECTIONAL_SCORE:
        verdict = VerdictSignal.BULLISH
    elif score <= -DIRECTIONAL_SCORE:
        verdict = VerdictSignal.BEARISH
    else:
        verdict = VerdictSignal.NEUTRAL

    return Verdict(
        verdict=verdict,
        score=score,
        churn_ratio=round(churn_ratio, 4),
        rationale="; ".join(signals) if signals else "Balanced order flow",
        signals=signals,
        churn_level=churn_level,
    )
