"""Impact score formula (v1) for awareness programs.

Formula:
1. Normalize each input score to the 0-1 range (missing inputs contribute 0).
2. Weighted sum of the normalized scores, clamped to [0, 1].
3. Scale to 0-100 and round half-up to 2 decimals.
4. Derive the risk level from the score.
5. Derive the confidence level from the number of missing inputs.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import math
from typing import Literal

RiskLevel = Literal["very_low", "low", "medium", "high"]

RISK_LEVEL_LABELS: dict[str, str] = {
    "very_low": "Very Low Risk",
    "low": "Low Risk",
    "medium": "Medium Risk",
    "high": "High Risk",
}

METRIC_FIELDS = (
    "engagement_score",
    "completion_score",
    "feedback_quality_score",
    "compliance_linkage_score",
)

CONFIDENCE_BASE = 90
CONFIDENCE_STEP = 10
CONFIDENCE_FLOOR = 50
CONFIDENCE_CEILING = 99


@dataclass(frozen=True)
class InputMetrics:
    """Four optional 0-100 sub-scores feeding the impact formula."""

    engagement_score: float | None = None
    completion_score: float | None = None
    feedback_quality_score: float | None = None
    compliance_linkage_score: float | None = None

    def values(self) -> tuple[float | None, ...]:
        return tuple(getattr(self, name) for name in METRIC_FIELDS)

    @property
    def missing_count(self) -> int:
        return sum(1 for value in self.values() if value is None)


@dataclass(frozen=True)
class ImpactWeights:
    """Per-metric weights, expected to sum to 1.0."""

    engagement_weight: float = 0.25
    completion_weight: float = 0.25
    feedback_quality_weight: float = 0.25
    compliance_linkage_weight: float = 0.25

    def values(self) -> tuple[float, float, float, float]:
        return (
            self.engagement_weight,
            self.completion_weight,
            self.feedback_quality_weight,
            self.compliance_linkage_weight,
        )

    @property
    def total(self) -> float:
        return sum(self.values())


@dataclass(frozen=True)
class ComputedImpactResult:
    """Output of one impact score computation."""

    impact_score: float
    risk_level: RiskLevel
    confidence_level: int


DEFAULT_WEIGHTS = ImpactWeights()


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def normalize_score(score: float | None) -> float:
    """Map a 0-100 score to 0-1; a missing score maps to 0."""

    if score is None:
        return 0.0
    return clamp(score, 0.0, 100.0) / 100.0


def _round_half_up(value: float, digits: int = 2) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def derive_risk_level(impact_score: float) -> RiskLevel:
    """Lower bounds are inclusive: 40 is medium, 70 is low, 85 is very_low."""

    if impact_score < 40:
        return "high"
    if impact_score < 70:
        return "medium"
    if impact_score < 85:
        return "low"
    return "very_low"


def compute_confidence(missing_metrics: int) -> int:
    return int(
        clamp(
            CONFIDENCE_BASE - missing_metrics * CONFIDENCE_STEP,
            CONFIDENCE_FLOOR,
            CONFIDENCE_CEILING,
        )
    )


def compute_impact_score(
    metrics: InputMetrics | Mapping[str, float | None],
    weights: ImpactWeights = DEFAULT_WEIGHTS,
) -> ComputedImpactResult:
    """Compute impact score, risk level and confidence for one metric set."""

    payload = metrics if isinstance(metrics, InputMetrics) else InputMetrics(
        **{name: metrics.get(name) for name in METRIC_FIELDS}
    )

    weighted = sum(
        normalize_score(score) * weight
        for score, weight in zip(payload.values(), weights.values())
    )
    base_score = clamp(weighted, 0.0, 1.0)
    impact_score = _round_half_up(base_score * 100)

    return ComputedImpactResult(
        impact_score=impact_score,
        risk_level=derive_risk_level(impact_score),
        confidence_level=compute_confidence(payload.missing_count),
    )


def validate_weights(weights: ImpactWeights, tolerance: float = 0.01) -> bool:
    """Return True when the weights sum to 1.0 within `tolerance`."""

    return abs(weights.total - 1.0) <= tolerance


def risk_level_label(risk_level: RiskLevel) -> str:
    return RISK_LEVEL_LABELS[risk_level]
