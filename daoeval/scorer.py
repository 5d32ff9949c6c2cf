"""Scoring engine: weighted aggregation of 8 criterion scores.

The overall score is a fixed-weight sum rounded half-up to 2 decimals. The
recommendation is read off a top-down threshold ladder, and the
clarification flag fires only when the model lists enough missing
information AND at least one critical criterion scored low.

Weights, thresholds and clarification limits come from an injected
``ScoringConfig``; the module-level functions use the default config.
"""
from __future__ import annotations

import math
from typing import Mapping

from daoeval.config import CRITERIA, DEFAULT_SCORING, ScoringConfig
from daoeval.parser import ParsedEvaluation
from daoeval.schemas import Recommendation


def round_half_up(value: float, digits: int = 2) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


class ScoringEngine:
    def __init__(self, config: ScoringConfig = DEFAULT_SCORING):
        self.config = config

    def overall_score(self, scores: Mapping[str, float]) -> float:
        total = sum(scores[c] * self.config.weights[c] for c in CRITERIA)
        return round_half_up(total)

    def recommendation(self, overall_score: float) -> Recommendation:
        cfg = self.config
        if overall_score >= cfg.strongly_approve:
            return "strongly-approve"
        if overall_score >= cfg.approve:
            return "approve"
        if overall_score >= cfg.review:
            return "review"
        if overall_score >= cfg.reject:
            return "reject"
        return "strongly-reject"

    def needs_clarification(self, parsed: ParsedEvaluation, scores: Mapping[str, float]) -> bool:
        # Both conditions must hold; either one alone does not trigger.
        cfg = self.config
        many_missing = len(parsed.missing_information) >= cfg.missing_info_threshold
        weak_critical = any(scores[c] < cfg.low_score_threshold for c in cfg.critical_criteria)
        return many_missing and weak_critical


_default_engine = ScoringEngine()


def calculate_overall_score(scores: Mapping[str, float]) -> float:
    return _default_engine.overall_score(scores)


def determine_recommendation(overall_score: float) -> Recommendation:
    return _default_engine.recommendation(overall_score)


def needs_clarification(parsed: ParsedEvaluation, scores: Mapping[str, float]) -> bool:
    return _default_engine.needs_clarification(parsed, scores)
