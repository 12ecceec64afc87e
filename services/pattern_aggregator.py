"""
Reduces raw detector output to a short, ranked list.

Pipeline: recency filter, one candidate per pattern type, priority ranking,
truncation.
"""

from models.technicals import (
    DetectedPattern, PatternFamily, PatternGroups, PatternStrength, PatternType, SignalDirection,
)

STRENGTH_RANK = {
    PatternStrength.VERY_STRONG: 4,
    PatternStrength.STRONG: 3,
    PatternStrength.MODERATE: 2,
    PatternStrength.WEAK: 1,
}

STRENGTH_WEIGHT = {
    PatternStrength.VERY_STRONG: 150,
    PatternStrength.STRONG: 100,
    PatternStrength.MODERATE: 50,
    PatternStrength.WEAK: 10,
}

TYPE_WEIGHT = {
    PatternType.HEAD_AND_SHOULDERS: 90,
    PatternType.INVERSE_HEAD_AND_SHOULDERS: 90,
    PatternType.DOUBLE_TOP: 85,
    PatternType.DOUBLE_BOTTOM: 85,
    PatternType.CUP_AND_HANDLE: 80,
    PatternType.ASCENDING_TRIANGLE: 75,
    PatternType.DESCENDING_TRIANGLE: 75,
    PatternType.RISING_WEDGE: 70,
    PatternType.FALLING_WEDGE: 70,
    PatternType.BULL_FLAG: 65,
    PatternType.BEAR_FLAG: 65,
    PatternType.SYMMETRICAL_TRIANGLE: 60,
}
DEFAULT_TYPE_WEIGHT = 30

GROUP_FIELDS = {
    PatternFamily.TRIANGLE: "triangles",
    PatternFamily.HEAD_AND_SHOULDERS: "head_and_shoulders",
    PatternFamily.DOUBLE: "double_patterns",
    PatternFamily.CUP_AND_HANDLE: "cup_and_handle",
    PatternFamily.FLAG: "flags",
    PatternFamily.WEDGE: "wedges",
    PatternFamily.TRENDLINE: "trendlines",
}


def filter_recent_patterns(
    patterns: list[DetectedPattern], data_length: int, max_periods_back: int = 30,
) -> list[DetectedPattern]:
    cutoff = data_length - max_periods_back
    return [p for p in patterns if p.index >= cutoff]


def deduplicate_patterns(patterns: list[DetectedPattern]) -> list[DetectedPattern]:
    """Keep the most recent candidate of each pattern type; stronger wins an index tie."""
    best: dict[PatternType, DetectedPattern] = {}
    for pattern in patterns:
        current = best.get(pattern.pattern_type)
        if current is None:
            best[pattern.pattern_type] = pattern
        elif (pattern.index, STRENGTH_RANK[pattern.strength]) > (current.index, STRENGTH_RANK[current.strength]):
            best[pattern.pattern_type] = pattern
    return list(best.values())


def priority_score(pattern: DetectedPattern) -> float:
    score = pattern.index * 10
    score += STRENGTH_WEIGHT[pattern.strength]
    score += pattern.confidence * 50
    if pattern.signal != SignalDirection.NEUTRAL:
        score += 25
    score += TYPE_WEIGHT.get(pattern.pattern_type, DEFAULT_TYPE_WEIGHT)
    return score


def prioritize_patterns(patterns: list[DetectedPattern], max_patterns: int = 5) -> list[DetectedPattern]:
    return sorted(patterns, key=priority_score, reverse=True)[:max_patterns]


def aggregate_patterns(
    patterns: list[DetectedPattern],
    data_length: int,
    max_patterns: int = 5,
    max_periods_back: int = 30,
) -> list[DetectedPattern]:
    recent = filter_recent_patterns(patterns, data_length, max_periods_back)
    return prioritize_patterns(deduplicate_patterns(recent), max_patterns)


def group_by_family(patterns: list[DetectedPattern]) -> PatternGroups:
    groups: dict[str, list[DetectedPattern]] = {name: [] for name in GROUP_FIELDS.values()}
    for pattern in patterns:
        field = GROUP_FIELDS.get(pattern.family)
        if field is not None:
            groups[field].append(pattern)
    return PatternGroups(**groups)


def group_by_signal(patterns: list[DetectedPattern]) -> dict[SignalDirection, list[DetectedPattern]]:
    grouped: dict[SignalDirection, list[DetectedPattern]] = {s: [] for s in SignalDirection}
    for pattern in patterns:
        grouped[pattern.signal].append(pattern)
    return grouped
