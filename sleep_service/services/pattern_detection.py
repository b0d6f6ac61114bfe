"""
Sleep Pattern Detection
Closed-form classifiers that turn a rolling window of sleep sessions into
labeled patterns with a confidence score and a severity tier.

All detectors are pure: they read the sessions they are given (newest first)
and return either None or a DetectedPattern. Severity is always derived from
raw metric thresholds, never from confidence.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from statistics import mean, pstdev, correlation, StatisticsError
from typing import Any, Callable, Dict, List, Optional, Sequence

from sleep_service.enums import PatternType, PatternSeverity
from sleep_service.models.sleep_session import SleepSession
from sleep_service.core.logger import get_logger

logger = get_logger("pattern_detection")


MIN_WINDOW_SESSIONS = 7       # one week of data before any detector runs
MIN_DETECTOR_SAMPLES = 5      # per-metric sample floor inside each detector
MAX_CONFIDENCE = 0.95
MINUTES_PER_DAY = 24 * 60

# Late night: after 02:00 or before 06:00, minutes past midnight
LATE_NIGHT_AFTER = 2 * 60
LATE_NIGHT_BEFORE = 6 * 60

IRREGULARITY_THRESHOLD = 90   # minutes of bedtime/wake-time standard deviation
INSUFFICIENT_SLEEP_THRESHOLD = 6 * 60
LOW_QUALITY_SCORE = 4
LOW_EFFICIENCY_PCT = 80


@dataclass
class DetectedPattern:
    pattern_type: PatternType
    severity_level: PatternSeverity
    confidence_score: float
    pattern_data: Dict[str, Any] = field(default_factory=dict)
    intervention_recommended: bool = False

    @property
    def pattern_subtype(self) -> str:
        return self.severity_level.value


def time_to_minutes(value: datetime) -> int:
    return value.hour * 60 + value.minute


def minutes_to_time(minutes: float) -> str:
    total = int(round(minutes)) % MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def circular_mean_minutes(values: Sequence[int]) -> float:
    """Mean clock time, so that 23:30 and 00:30 average to midnight rather than noon."""
    angles = [v / MINUTES_PER_DAY * 2 * math.pi for v in values]
    angle = math.atan2(mean(math.sin(a) for a in angles), mean(math.cos(a) for a in angles))
    return (angle / (2 * math.pi) * MINUTES_PER_DAY) % MINUTES_PER_DAY


def unwrap_clock_minutes(values: Sequence[int]) -> List[float]:
    """Place every clock time within half a day of the circular mean."""
    anchor = circular_mean_minutes(values)
    half_day = MINUTES_PER_DAY / 2
    return [anchor + ((v - anchor + half_day) % MINUTES_PER_DAY) - half_day for v in values]


def clock_stdev(values: Sequence[int]) -> float:
    """Population standard deviation of clock times, in minutes, across midnight."""
    return pstdev(unwrap_clock_minutes(values))


def clamp_confidence(value: float) -> float:
    return max(0.0, min(value, MAX_CONFIDENCE))


def is_late_night(bedtime_minutes: int) -> bool:
    # Wrap-around window; either side of the disjunction counts.
    return bedtime_minutes > LATE_NIGHT_AFTER or bedtime_minutes < LATE_NIGHT_BEFORE


def max_consecutive_late_nights(bedtimes: Sequence[int]) -> int:
    longest = 0
    current = 0
    for bedtime in bedtimes:
        if is_late_night(bedtime):
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def _quality_severity(avg_quality: float) -> PatternSeverity:
    if avg_quality <= 3:
        return PatternSeverity.SEVERE
    elif avg_quality <= 4:
        return PatternSeverity.MODERATE
    return PatternSeverity.MILD


def _quality_scores(sessions: Sequence[SleepSession]) -> List[int]:
    return [s.quality_score for s in sessions if s.quality_score]


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------

def detect_delayed_phase(sessions: Sequence[SleepSession]) -> Optional[DetectedPattern]:
    """Most nights start late."""
    bedtimes = [time_to_minutes(s.bedtime) for s in sessions if s.bedtime]
    if len(bedtimes) < MIN_DETECTOR_SAMPLES:
        return None

    late_nights = sum(1 for b in bedtimes if is_late_night(b))
    late_fraction = late_nights / len(bedtimes)
    if late_fraction < 0.6:
        return None

    if late_fraction >= 0.8:
        severity = PatternSeverity.SEVERE
    elif late_fraction >= 0.7:
        severity = PatternSeverity.MODERATE
    else:
        severity = PatternSeverity.MILD

    return DetectedPattern(
        pattern_type=PatternType.DELAYED_PHASE,
        severity_level=severity,
        confidence_score=clamp_confidence(late_fraction),
        pattern_data={
            "averageBedtime": minutes_to_time(circular_mean_minutes(bedtimes)),
            "lateNightPercentage": round(late_fraction, 4),
            "consecutiveLateNights": max_consecutive_late_nights(bedtimes),
        },
        intervention_recommended=severity != PatternSeverity.MILD,
    )


def detect_irregular_schedule(sessions: Sequence[SleepSession]) -> Optional[DetectedPattern]:
    """Bedtimes or wake times swing by more than an hour and a half."""
    bedtimes = [time_to_minutes(s.bedtime) for s in sessions if s.bedtime]
    wake_times = [time_to_minutes(s.wake_time) for s in sessions if s.wake_time]
    if len(bedtimes) < MIN_DETECTOR_SAMPLES or len(wake_times) < MIN_DETECTOR_SAMPLES:
        return None

    bedtime_sd = clock_stdev(bedtimes)
    wake_sd = clock_stdev(wake_times)
    if bedtime_sd <= IRREGULARITY_THRESHOLD and wake_sd <= IRREGULARITY_THRESHOLD:
        return None

    if bedtime_sd > 150 or wake_sd > 150:
        severity = PatternSeverity.SEVERE
    elif bedtime_sd > 120 or wake_sd > 120:
        severity = PatternSeverity.MODERATE
    else:
        severity = PatternSeverity.MILD

    return DetectedPattern(
        pattern_type=PatternType.IRREGULAR,
        severity_level=severity,
        confidence_score=clamp_confidence(max(bedtime_sd, wake_sd) / 180),
        pattern_data={
            "bedtimeVariability": round(bedtime_sd),
            "wakeTimeVariability": round(wake_sd),
            "scheduleConsistencyScore": round(max(0.0, 100 - (bedtime_sd + wake_sd) / 2), 1),
        },
        intervention_recommended=severity != PatternSeverity.MILD,
    )


def detect_insufficient_sleep(sessions: Sequence[SleepSession]) -> Optional[DetectedPattern]:
    """Half or more of the nights fall short of six hours."""
    durations = [s.total_sleep_duration for s in sessions if s.total_sleep_duration and s.total_sleep_duration > 0]
    if len(durations) < MIN_DETECTOR_SAMPLES:
        return None

    short_nights = sum(1 for d in durations if d < INSUFFICIENT_SLEEP_THRESHOLD)
    short_fraction = short_nights / len(durations)
    if short_fraction < 0.5:
        return None

    avg_duration = mean(durations)
    if avg_duration < 5 * 60:
        severity = PatternSeverity.SEVERE
    elif avg_duration < 5.5 * 60:
        severity = PatternSeverity.MODERATE
    else:
        severity = PatternSeverity.MILD

    average_deficit = max(0.0, INSUFFICIENT_SLEEP_THRESHOLD - avg_duration)
    return DetectedPattern(
        pattern_type=PatternType.INSUFFICIENT,
        severity_level=severity,
        confidence_score=clamp_confidence(short_fraction + 0.2),
        pattern_data={
            "averageDuration": round(avg_duration),
            "shortNightPercentage": round(short_fraction, 4),
            "averageDeficit": round(average_deficit, 1),
            "weeklyDeficit": round(average_deficit * 7, 1),
        },
        intervention_recommended=severity != PatternSeverity.MILD,
    )


def detect_fragmented_sleep(sessions: Sequence[SleepSession]) -> Optional[DetectedPattern]:
    """Low quality nights combined with low (or unknown) efficiency."""
    quality_scores = _quality_scores(sessions)
    efficiencies = [s.sleep_efficiency for s in sessions if s.sleep_efficiency]
    if len(quality_scores) < MIN_DETECTOR_SAMPLES:
        return None

    avg_quality = mean(quality_scores)
    avg_efficiency = mean(efficiencies) if efficiencies else None
    low_fraction = sum(1 for q in quality_scores if q <= LOW_QUALITY_SCORE) / len(quality_scores)

    if not (avg_quality <= 5 and low_fraction >= 0.4
            and (avg_efficiency is None or avg_efficiency < LOW_EFFICIENCY_PCT)):
        return None

    severity = _quality_severity(avg_quality)
    return DetectedPattern(
        pattern_type=PatternType.FRAGMENTED,
        severity_level=severity,
        confidence_score=clamp_confidence(low_fraction + 0.3),
        pattern_data={
            "averageQuality": round(avg_quality, 1),
            "averageEfficiency": round(avg_efficiency, 1) if avg_efficiency is not None else None,
            "lowQualityPercentage": round(low_fraction, 4),
            "fragmentationIndicators": fragmentation_indicators(sessions),
        },
        intervention_recommended=severity != PatternSeverity.MILD,
    )


def detect_poor_quality(sessions: Sequence[SleepSession]) -> Optional[DetectedPattern]:
    """Average quality is low, or a sizeable share of nights are rated poorly."""
    quality_scores = _quality_scores(sessions)
    if len(quality_scores) < MIN_DETECTOR_SAMPLES:
        return None

    avg_quality = mean(quality_scores)
    poor_fraction = sum(1 for q in quality_scores if q <= LOW_QUALITY_SCORE) / len(quality_scores)
    if avg_quality > 5 and poor_fraction < 0.4:
        return None

    return DetectedPattern(
        pattern_type=PatternType.POOR_QUALITY,
        severity_level=_quality_severity(avg_quality),
        confidence_score=clamp_confidence(poor_fraction + 0.2),
        pattern_data={
            "averageQuality": round(avg_quality, 1),
            "poorQualityPercentage": round(poor_fraction, 4),
            "qualityTrend": quality_trend(quality_scores),
            "contributingFactors": quality_factors(sessions),
        },
        intervention_recommended=True,
    )


DETECTORS: List[Callable[[Sequence[SleepSession]], Optional[DetectedPattern]]] = [
    detect_delayed_phase,
    detect_irregular_schedule,
    detect_insufficient_sleep,
    detect_fragmented_sleep,
    detect_poor_quality,
]


def detect_patterns(sessions: Sequence[SleepSession]) -> List[DetectedPattern]:
    """
    Run every detector over the window and collect whatever fires.

    Patterns are not mutually exclusive. A detector that raises is logged and
    skipped; the remaining detectors still run.
    """
    if len(sessions) < MIN_WINDOW_SESSIONS:
        logger.debug(f"Skipping pattern detection: {len(sessions)} sessions in window")
        return []

    detected = []
    for detector in DETECTORS:
        try:
            pattern = detector(sessions)
        except Exception as e:
            logger.error(f"Pattern detector {detector.__name__} failed: {e}", exc_info=True)
            continue
        if pattern:
            detected.append(pattern)
    return detected


# ---------------------------------------------------------------------------
# Evidence helpers
# ---------------------------------------------------------------------------

def fragmentation_indicators(sessions: Sequence[SleepSession]) -> Dict[str, int]:
    return {
        "lowEfficiencyNights": sum(1 for s in sessions if s.sleep_efficiency and s.sleep_efficiency < LOW_EFFICIENCY_PCT),
        "highStressBeforeBed": sum(1 for s in sessions if s.stress_level_before_bed and s.stress_level_before_bed >= 7),
        "caffeineLateInDay": sum(1 for s in sessions if s.caffeine_after_2pm),
        "screenTimeIssues": sum(1 for s in sessions if s.screen_time_before_bed and s.screen_time_before_bed > 60),
    }


def quality_trend(quality_scores: Sequence[int]) -> str:
    """Compare the newer half of the window against the older half."""
    if len(quality_scores) < 3:
        return "stable"

    half = len(quality_scores) // 2
    diff = mean(quality_scores[:half]) - mean(quality_scores[half:])
    if diff > 0.5:
        return "improving"
    if diff < -0.5:
        return "declining"
    return "stable"


def quality_factors(sessions: Sequence[SleepSession]) -> Dict[str, Any]:
    return {
        "stressCorrelation": stress_quality_correlation(sessions),
        "caffeineImpact": _split_quality_impact(
            [s for s in sessions if s.caffeine_after_2pm],
            [s for s in sessions if s.caffeine_after_2pm is False],
            "samplesWithCaffeine", "samplesWithoutCaffeine",
        ),
        "screenTimeImpact": _split_quality_impact(
            [s for s in sessions if s.screen_time_before_bed is not None and s.screen_time_before_bed > 60],
            [s for s in sessions if s.screen_time_before_bed is not None and s.screen_time_before_bed <= 60],
            "samplesHighScreen", "samplesLowScreen",
        ),
        "environmentalFactors": room_temperature_breakdown(sessions),
    }


def stress_quality_correlation(sessions: Sequence[SleepSession]) -> float:
    """Pearson correlation of pre-bed stress against quality, over nights that have both."""
    pairs = [(s.stress_level_before_bed, s.quality_score) for s in sessions
             if s.stress_level_before_bed and s.quality_score]
    if len(pairs) < 3:
        return 0.0
    try:
        return round(correlation([p[0] for p in pairs], [p[1] for p in pairs]), 3)
    except StatisticsError:
        # constant input
        return 0.0


def _split_quality_impact(
    exposed: Sequence[SleepSession],
    unexposed: Sequence[SleepSession],
    exposed_key: str,
    unexposed_key: str,
) -> Optional[Dict[str, Any]]:
    """Average quality gap between nights without and with a factor."""
    if len(exposed) < 2 or len(unexposed) < 2:
        return None

    exposed_avg = mean(s.quality_score or 0 for s in exposed)
    unexposed_avg = mean(s.quality_score or 0 for s in unexposed)
    return {
        "qualityDifference": round(unexposed_avg - exposed_avg, 2),
        exposed_key: len(exposed),
        unexposed_key: len(unexposed),
    }


def room_temperature_breakdown(sessions: Sequence[SleepSession]) -> Dict[str, Dict[str, float]]:
    grouped: Dict[str, List[int]] = {}
    for s in sessions:
        if s.room_temperature and s.quality_score:
            grouped.setdefault(s.room_temperature, []).append(s.quality_score)

    return {
        temp: {"count": len(scores), "avgQuality": round(mean(scores), 2)}
        for temp, scores in grouped.items()
    }
