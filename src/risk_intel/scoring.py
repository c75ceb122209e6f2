"""Shared scoring helpers for fingerprint panel evaluators."""

import math
from typing import Dict, Iterable, List, Optional, Sequence

from risk_intel.models import DetailedSignal, EnhancedPanelResult, PanelStatus, SignalImpact

TRUSTWORTHY_THRESHOLD = 80
SUSPICIOUS_THRESHOLD = 60


def status_from_score(score: float) -> PanelStatus:
    if score >= TRUSTWORTHY_THRESHOLD:
        return PanelStatus.TRUSTWORTHY
    if score >= SUSPICIOUS_THRESHOLD:
        return PanelStatus.SUSPICIOUS
    return PanelStatus.UNRELIABLE


def clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


def calculate_entropy(values: Sequence[str]) -> float:
    """Identifiability estimate: ``-log2(1/N)`` bits per distinct value."""
    if not values:
        return 0.0
    return -math.log2(1 / len(values)) * len(set(values))


def calculate_confidence(signals: Iterable[DetailedSignal], base_confidence: float) -> float:
    signals = list(signals)
    critical = sum(1 for s in signals if s.impact == SignalImpact.CRITICAL)
    high = sum(1 for s in signals if s.impact == SignalImpact.HIGH)

    if critical > 0:
        return max(20, base_confidence - 30)
    if high > 2:
        return max(40, base_confidence - 15)
    return base_confidence


class PanelScorer:
    """Accumulates penalties and signals for one panel evaluation."""

    def __init__(self, breakdown: Dict[str, float], base_confidence: float):
        self.score = 100.0
        self.breakdown = dict(breakdown)
        self.base_confidence = base_confidence
        self.signals: List[DetailedSignal] = []

    def penalize(
        self,
        category: str,
        penalty: float,
        message: str,
        impact: SignalImpact,
        explanation: str,
        recommendation: Optional[str] = None,
    ) -> None:
        self.score -= penalty
        self.breakdown[category] -= penalty
        self.signals.append(DetailedSignal(
            message=message,
            impact=impact,
            score_penalty=penalty,
            explanation=explanation,
            recommendation=recommendation,
        ))

    def note(
        self,
        message: str,
        explanation: str,
        recommendation: Optional[str] = None,
        impact: SignalImpact = SignalImpact.INFO,
    ) -> None:
        """Record a signal that carries no penalty."""
        self.signals.append(DetailedSignal(
            message=message,
            impact=impact,
            score_penalty=0,
            explanation=explanation,
            recommendation=recommendation,
        ))

    def has_findings(self) -> bool:
        return any(s.impact != SignalImpact.INFO for s in self.signals)

    def result(self, entropy_inputs: Sequence[str]) -> EnhancedPanelResult:
        score = clamp_score(self.score)
        return EnhancedPanelResult(
            status=status_from_score(score),
            score=score,
            signals=[s.message for s in self.signals],
            detailed_signals=self.signals,
            confidence=calculate_confidence(self.signals, self.base_confidence),
            entropy=calculate_entropy(entropy_inputs),
            breakdown=self.breakdown,
        )
