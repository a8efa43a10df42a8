"""Evaluates red-flag pattern conditions against a finding."""

import operator
from typing import Any, Callable, Dict, List, Optional

from coordinator.schemas.enums import CombinationLogic, ComparisonOperator
from coordinator.schemas.findings import Finding
from coordinator.schemas.red_flags import NumericThreshold, PatternConditions

_COMPARATORS: Dict[ComparisonOperator, Callable[[float, float], bool]] = {
    ComparisonOperator.GT: operator.gt,
    ComparisonOperator.LT: operator.lt,
    ComparisonOperator.GTE: operator.ge,
    ComparisonOperator.LTE: operator.le,
    ComparisonOperator.EQ: operator.eq,
    ComparisonOperator.NE: operator.ne,
}


def _numeric(value: Any) -> Optional[float]:
    # bool is an int subclass but never a metric
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def threshold_holds(threshold: NumericThreshold, metadata: Dict[str, Any]) -> bool:
    """A missing or non-numeric field fails the comparison."""
    if threshold.field not in metadata:
        return False
    actual = _numeric(metadata[threshold.field])
    if actual is None:
        return False
    return _COMPARATORS[threshold.operator](actual, threshold.value)


def evaluate_categories(finding: Finding, conditions: PatternConditions) -> List[bool]:
    """One result per condition category the pattern declares."""
    results: List[bool] = []

    if conditions.keywords:
        text = finding.searchable_text
        results.append(any(keyword.lower() in text for keyword in conditions.keywords))

    if conditions.finding_types:
        results.append(finding.category in conditions.finding_types)

    if conditions.agent_sources:
        results.append(finding.generated_by_agent in conditions.agent_sources)

    if conditions.confidence_threshold is not None:
        results.append(finding.confidence_score >= conditions.confidence_threshold)

    if conditions.numeric_thresholds:
        results.append(
            all(threshold_holds(t, finding.metadata) for t in conditions.numeric_thresholds)
        )

    return results


def matches(finding: Finding, conditions: PatternConditions) -> bool:
    """Combine the declared categories with the pattern's AND/OR rule.

    A pattern declaring no categories never matches.
    """
    results = evaluate_categories(finding, conditions)
    if not results:
        return False
    if conditions.combination_logic == CombinationLogic.AND:
        return all(results)
    return any(results)
