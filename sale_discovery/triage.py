"""
Triage decision engine.

Maps a classifier confidence onto a decision. No I/O and no knowledge of
persistence: the caller sinks the decision (publish, review queue, drop).
"""

from .models import TriageDecision, TriageThresholds

DEFAULT_THRESHOLDS = TriageThresholds()


def decide(confidence: float, thresholds: TriageThresholds = DEFAULT_THRESHOLDS) -> TriageDecision:
    """
    Decide what to do with a classified candidate.

    Both bounds are inclusive:
        confidence >= auto_publish_threshold -> AUTO_PUBLISHED
        confidence >= review_floor           -> QUEUED_FOR_REVIEW
        otherwise                            -> REJECTED
    """
    if confidence >= thresholds.auto_publish_threshold:
        return TriageDecision.AUTO_PUBLISHED
    if confidence >= thresholds.review_floor:
        return TriageDecision.QUEUED_FOR_REVIEW
    return TriageDecision.REJECTED
