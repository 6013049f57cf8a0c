from __future__ import annotations

import math

from cyberguard.models import ProviderMetadata, ProviderStats, RiskDistribution, RiskScore

SAFE_THRESHOLD = 75
CAUTION_THRESHOLD = 50


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


def score(stats: ProviderStats, metadata: ProviderMetadata) -> RiskScore:
    """Derive the safety verdict and a 0-100 score.

    A provider reputation, when present, always wins over the engine ratio.
    """
    is_safe = stats.malicious == 0 and stats.suspicious == 0
    if metadata.reputation is not None:
        safety_score = _clamp(round_half_up((metadata.reputation + 100) / 2))
    elif stats.total == 0:
        safety_score = 0
    else:
        safety_score = round_half_up(100 * (stats.harmless + stats.undetected) / stats.total)
    return RiskScore(is_safe=is_safe, safety_score=safety_score)


def risk_distribution(stats: ProviderStats) -> RiskDistribution:
    total = stats.total or 1
    return RiskDistribution(
        safe_pct=round_half_up(100 * (stats.harmless + stats.undetected) / total),
        malicious_pct=round_half_up(100 * stats.malicious / total),
        suspicious_pct=round_half_up(100 * stats.suspicious / total),
    )


def status_label(safety_score: int) -> str:
    if safety_score >= SAFE_THRESHOLD:
        return "Safe"
    if safety_score >= CAUTION_THRESHOLD:
        return "Caution"
    return "Unsafe"
