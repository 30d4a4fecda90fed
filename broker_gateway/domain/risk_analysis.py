"""Risk analysis engine - deterministic classification of terminal credit checks"""

from typing import Iterable, List, Optional
from broker_gateway.domain.models import (
    ApprovalRecommendation,
    CreditCheckRequest,
    CreditCheckStats,
    CreditCheckStatus,
    CreditTier,
    RiskClassification,
    RiskLevel,
)
from broker_gateway.domain.exceptions import ValidationError

# Ordered from least to most severe; escalation only ever moves right
_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]
_RECOMMENDATION_ORDER = [
    ApprovalRecommendation.APPROVE,
    ApprovalRecommendation.APPROVE_WITH_CONDITIONS,
    ApprovalRecommendation.REVIEW,
    ApprovalRecommendation.REJECT,
]

_BASELINE_RISK = {
    CreditTier.EXCELLENT: RiskLevel.LOW,
    CreditTier.GOOD: RiskLevel.LOW,
    CreditTier.FAIR: RiskLevel.MEDIUM,
    CreditTier.POOR: RiskLevel.HIGH,
    CreditTier.VERY_POOR: RiskLevel.CRITICAL,
}


def determine_tier(score: Optional[int]) -> Optional[CreditTier]:
    """
    Map a provider score to a creditworthiness tier.

    Score bands:
    - 750+:    excellent
    - 650-749: good
    - 550-649: fair
    - 450-549: poor
    - 1-449:   very poor
    A missing or non-positive score has no tier.
    """
    if score is None or score <= 0:
        return None
    if score >= 750:
        return CreditTier.EXCELLENT
    elif score >= 650:
        return CreditTier.GOOD
    elif score >= 550:
        return CreditTier.FAIR
    elif score >= 450:
        return CreditTier.POOR
    else:
        return CreditTier.VERY_POOR


def escalate(level: RiskLevel) -> RiskLevel:
    """One step up for protests and adverse filings; high and critical are unaffected"""
    if level == RiskLevel.LOW:
        return RiskLevel.MEDIUM
    if level == RiskLevel.MEDIUM:
        return RiskLevel.HIGH
    return level


def _stricter(current: ApprovalRecommendation, candidate: ApprovalRecommendation) -> ApprovalRecommendation:
    if _RECOMMENDATION_ORDER.index(candidate) > _RECOMMENDATION_ORDER.index(current):
        return candidate
    return current


def recommended_limit(risk_level: RiskLevel, nominal_limit: float) -> float:
    """
    Cap the operative limit by risk level.

    - critical: 0, do not extend credit
    - high:     30% of nominal, at most 5,000
    - medium:   70% of nominal, at most 15,000
    - low:      nominal unchanged
    """
    if risk_level == RiskLevel.CRITICAL:
        return 0.0
    elif risk_level == RiskLevel.HIGH:
        return min(nominal_limit * 0.3, 5000.0)
    elif risk_level == RiskLevel.MEDIUM:
        return min(nominal_limit * 0.7, 15000.0)
    return float(nominal_limit)


def analyze_credit_check(request: CreditCheckRequest, nominal_limit: float) -> RiskClassification:
    """
    Main entry point: classify a terminal credit check.

    Flow:
    1. Tier and baseline risk from the score
    2. Escalate for protests and adverse filings (one step each, never down)
    3. Insolvency proceeding forces critical and reject regardless of score
    4. Cap the recommended limit by the final risk level

    Raises:
        ValidationError: if the credit check is still pending
    """
    if request.status == CreditCheckStatus.PENDING:
        raise ValidationError(f"Credit check {request.id} is still pending")

    risk_factors: List[str] = []
    recommendations: List[str] = []
    conditions: List[str] = []

    score = request.score if request.status == CreditCheckStatus.COMPLETED else None
    tier = determine_tier(score)

    if tier is None:
        risk_level = RiskLevel.MEDIUM
        recommendation = ApprovalRecommendation.REVIEW
        risk_factors.append("No credit score available")
        recommendations.append("Request a new credit check before deciding")
    else:
        risk_level = _BASELINE_RISK[tier]
        recommendation = ApprovalRecommendation.APPROVE
        if tier == CreditTier.EXCELLENT:
            recommendations.append("Client has an excellent credit profile")
        elif tier == CreditTier.GOOD:
            recommendations.append("Client has a good credit profile")
        elif tier == CreditTier.FAIR:
            risk_factors.append("Average credit score")
            recommendations.append("Evaluate additional documentation")
        elif tier == CreditTier.POOR:
            risk_factors.append("Low credit score")
            recommendations.append("Request additional guarantees")
            recommendation = ApprovalRecommendation.REVIEW
        else:
            risk_factors.append("Very low credit score")
            recommendations.append("Approval not advised without substantial guarantees")
            recommendation = ApprovalRecommendation.REJECT

    flags = request.flags if request.status == CreditCheckStatus.COMPLETED else None

    if flags is not None and flags.protests:
        risk_level = escalate(risk_level)
        risk_factors.append("Protests on record")
        recommendations.append("Verify nature and amount of the protests")
        conditions.append("Detailed analysis of protests")
        recommendation = _stricter(recommendation, ApprovalRecommendation.APPROVE_WITH_CONDITIONS)

    if flags is not None and flags.adverse_filings:
        risk_level = escalate(risk_level)
        risk_factors.append("Adverse filings on record")
        recommendations.append("Carefully assess the adverse filings")
        conditions.append("Verification of adverse filings")
        recommendation = _stricter(recommendation, ApprovalRecommendation.APPROVE_WITH_CONDITIONS)

    if flags is not None and flags.insolvency_proceeding:
        risk_level = RiskLevel.CRITICAL
        risk_factors.append("Insolvency proceeding in progress")
        recommendations.append("Client has an insolvency proceeding in progress")
        conditions.append("Do not approve without in-depth legal analysis")
        recommendation = ApprovalRecommendation.REJECT

    max_limit = recommended_limit(risk_level, nominal_limit)
    if risk_level == RiskLevel.CRITICAL:
        recommendations.append("Operative limit: 0 - do not extend credit")
    elif risk_level == RiskLevel.HIGH:
        recommendations.append(f"Reduced operative limit: {max_limit:,.2f}")
    elif risk_level == RiskLevel.MEDIUM:
        recommendations.append(f"Moderate operative limit: {max_limit:,.2f}")

    return RiskClassification(
        tier=tier,
        risk_level=risk_level,
        approval_recommendation=recommendation,
        conditions=tuple(conditions),
        max_recommended_limit=max_limit,
        risk_factors=tuple(risk_factors),
        recommendations=tuple(recommendations),
    )


def risk_rank(level: RiskLevel) -> int:
    return _RISK_ORDER.index(level)


def recommendation_rank(recommendation: ApprovalRecommendation) -> int:
    return _RECOMMENDATION_ORDER.index(recommendation)


def summarize_credit_check(request: CreditCheckRequest, classification: Optional[RiskClassification]) -> str:
    """One-line text summary for dashboards and assistant context"""
    summary = f"Credit check {request.id} for client {request.client_id}: "
    if request.status != CreditCheckStatus.COMPLETED or classification is None:
        return summary + f"status {request.status.value}"

    summary += f"score {request.score}"
    if classification.tier is not None:
        summary += f" ({classification.tier.value})"
    summary += f" - risk {classification.risk_level.value}"
    summary += f" - recommendation {classification.approval_recommendation.value}"
    if classification.risk_factors:
        summary += f" | risk factors: {', '.join(classification.risk_factors)}"
    if classification.max_recommended_limit:
        summary += f" | recommended limit: {classification.max_recommended_limit:,.2f}"
    return summary


def credit_check_stats(requests: Iterable[CreditCheckRequest], nominal_limit: float) -> CreditCheckStats:
    """Aggregate counts, average score and risk distribution over a set of credit checks"""
    requests = list(requests)
    total = len(requests)
    completed = [r for r in requests if r.status == CreditCheckStatus.COMPLETED]
    pending = sum(1 for r in requests if r.status == CreditCheckStatus.PENDING)
    failed = sum(1 for r in requests if r.status == CreditCheckStatus.FAILED)

    scored = [r.score for r in completed if r.score is not None]
    avg_score = round(sum(scored) / len(scored)) if scored else 0

    risk_levels: dict = {}
    approvals: dict = {}
    for request in completed:
        classification = analyze_credit_check(request, nominal_limit)
        risk_levels[classification.risk_level.value] = risk_levels.get(classification.risk_level.value, 0) + 1
        key = classification.approval_recommendation.value
        approvals[key] = approvals.get(key, 0) + 1

    return CreditCheckStats(
        total=total,
        completed=len(completed),
        pending=pending,
        failed=failed,
        avg_score=avg_score,
        with_protests=sum(1 for r in completed if r.flags.protests),
        with_adverse_filings=sum(1 for r in completed if r.flags.adverse_filings),
        with_insolvency_proceedings=sum(1 for r in completed if r.flags.insolvency_proceeding),
        completion_rate=round(len(completed) / total * 100) if total > 0 else 0,
        risk_levels=risk_levels,
        approval_recommendations=approvals,
    )
