"""
Category catalog for biometric collection.

One authoritative table of every category the collector queries, the metric
it produces and the HELP text the exposition formatter prints for it. The
order of the tables is the order of metrics in a collected batch.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from health_exporter.telemetry.schemas import MetricKind

METRIC_PREFIX = "healthkit_"

GENERIC_DESCRIPTION = "Health metric from Apple HealthKit"


@dataclass(frozen=True)
class QuantityCategory:
    """A quantity category read either as a daily sum or as its latest sample."""

    category: str  # Identifier understood by the BiometricSource
    suffix: str  # Metric name without prefix (and without _total)
    kind: MetricKind
    unit: str
    description: Optional[str] = None

    @property
    def metric_name(self) -> str:
        if self.kind == MetricKind.COUNTER:
            return f"{METRIC_PREFIX}{self.suffix}_total"
        return f"{METRIC_PREFIX}{self.suffix}"


@dataclass(frozen=True)
class EventCategory:
    """A category whose matching events are counted over the window."""

    category: str
    predicate: str
    metric_name: str


@dataclass(frozen=True)
class SummaryField:
    """One field of the daily activity summary."""

    category: str
    metric_name: str
    unit: str
    only_positive: bool = False


# ============================================================================
# QUANTITY CATEGORIES
# ============================================================================

CUMULATIVE_CATEGORIES: Tuple[QuantityCategory, ...] = (
    QuantityCategory(
        "step_count", "steps", MetricKind.COUNTER, "count",
        "Total number of steps taken today",
    ),
    QuantityCategory(
        "distance_walking_running", "distance_walking_running_meters", MetricKind.COUNTER, "m",
        "Total distance walked or run in meters today",
    ),
    QuantityCategory(
        "active_energy_burned", "active_energy_burned_calories", MetricKind.COUNTER, "kcal",
        "Total active energy burned in calories today",
    ),
    QuantityCategory(
        "basal_energy_burned", "basal_energy_burned_calories", MetricKind.COUNTER, "kcal",
        "Total basal energy burned in calories today",
    ),
    QuantityCategory("flights_climbed", "flights_climbed", MetricKind.COUNTER, "count"),
    QuantityCategory(
        "apple_exercise_time", "apple_exercise_time_minutes", MetricKind.COUNTER, "min"
    ),
    QuantityCategory("apple_stand_time", "apple_stand_time_minutes", MetricKind.COUNTER, "min"),
)

LATEST_SAMPLE_CATEGORIES: Tuple[QuantityCategory, ...] = (
    QuantityCategory(
        "heart_rate", "heart_rate_bpm", MetricKind.GAUGE, "count/min",
        "Most recent heart rate measurement in beats per minute",
    ),
    QuantityCategory(
        "resting_heart_rate", "resting_heart_rate_bpm", MetricKind.GAUGE, "count/min",
        "Most recent resting heart rate in beats per minute",
    ),
    QuantityCategory(
        "walking_heart_rate_average", "walking_heart_rate_average_bpm", MetricKind.GAUGE,
        "count/min",
    ),
    QuantityCategory(
        "heart_rate_variability_sdnn", "heart_rate_variability_sdnn_ms", MetricKind.GAUGE, "ms"
    ),
    QuantityCategory("respiratory_rate", "respiratory_rate_bpm", MetricKind.GAUGE, "count/min"),
    QuantityCategory("vo2_max", "vo2_max_ml_min_kg", MetricKind.GAUGE, "ml/(kg*min)"),
    QuantityCategory(
        "oxygen_saturation", "oxygen_saturation_percent", MetricKind.GAUGE, "%",
        "Most recent blood oxygen saturation percentage",
    ),
    QuantityCategory(
        "body_mass", "body_weight_kg", MetricKind.GAUGE, "kg",
        "Most recent body weight measurement in kilograms",
    ),
    QuantityCategory(
        "body_mass_index", "body_mass_index", MetricKind.GAUGE, "count",
        "Most recent body mass index",
    ),
    QuantityCategory(
        "body_fat_percentage", "body_fat_percent", MetricKind.GAUGE, "%",
        "Most recent body fat percentage",
    ),
    QuantityCategory(
        "blood_pressure_systolic", "blood_pressure_systolic_mmhg", MetricKind.GAUGE, "mmHg",
        "Most recent systolic blood pressure in mmHg",
    ),
    QuantityCategory(
        "blood_pressure_diastolic", "blood_pressure_diastolic_mmhg", MetricKind.GAUGE, "mmHg",
        "Most recent diastolic blood pressure in mmHg",
    ),
    QuantityCategory(
        "blood_glucose", "blood_glucose_mg_dl", MetricKind.GAUGE, "mg/dL",
        "Most recent blood glucose level in mg/dL",
    ),
    # Mobility
    QuantityCategory("walking_speed", "walking_speed_mph", MetricKind.GAUGE, "mi/hr"),
    QuantityCategory("walking_step_length", "walking_step_length_inches", MetricKind.GAUGE, "in"),
    QuantityCategory(
        "walking_double_support_percentage", "walking_double_support_percent", MetricKind.GAUGE, "%"
    ),
    QuantityCategory(
        "walking_asymmetry_percentage", "walking_asymmetry_percent", MetricKind.GAUGE, "%"
    ),
    QuantityCategory("stair_ascent_speed", "stair_ascent_speed_fps", MetricKind.GAUGE, "ft/s"),
    QuantityCategory("stair_descent_speed", "stair_descent_speed_fps", MetricKind.GAUGE, "ft/s"),
    QuantityCategory(
        "six_minute_walk_test_distance", "six_minute_walk_distance_meters", MetricKind.GAUGE, "m"
    ),
    QuantityCategory(
        "apple_walking_steadiness", "apple_walking_steadiness_percent", MetricKind.GAUGE, "%"
    ),
    # Audio exposure
    QuantityCategory(
        "environmental_audio_exposure", "environmental_audio_exposure_db", MetricKind.GAUGE,
        "dBASPL",
    ),
    QuantityCategory(
        "headphone_audio_exposure", "headphone_audio_exposure_db", MetricKind.GAUGE, "dBASPL"
    ),
    QuantityCategory(
        "environmental_sound_reduction", "environmental_sound_reduction_db", MetricKind.GAUGE,
        "dBASPL",
    ),
    QuantityCategory(
        "physical_effort", "physical_effort_kcal_hr_kg", MetricKind.GAUGE, "kcal/(kg*hr)"
    ),
)

# ============================================================================
# CATEGORY EVENTS AND SLEEP
# ============================================================================

SLEEP_CATEGORY = "sleep_analysis"
SLEEP_METRIC = "healthkit_sleep_minutes_total"

EVENT_CATEGORIES: Tuple[EventCategory, ...] = (
    EventCategory("apple_stand_hour", "stood", "healthkit_apple_stand_hours_total"),
    EventCategory(
        "environmental_audio_exposure_event",
        "momentary_limit",
        "healthkit_environmental_audio_exposure_events_total",
    ),
    EventCategory(
        "headphone_audio_exposure_event",
        "seven_day_limit",
        "healthkit_headphone_audio_exposure_events_total",
    ),
)

# ============================================================================
# ACTIVITY SUMMARY
# ============================================================================

ACTIVITY_SUMMARY_FIELDS: Tuple[SummaryField, ...] = (
    SummaryField(
        "activity_summary.apple_move_time",
        "healthkit_apple_move_time_minutes",
        "min",
        only_positive=True,
    ),
    SummaryField(
        "activity_summary.apple_move_time_goal",
        "healthkit_apple_move_time_goal_minutes",
        "min",
        only_positive=True,
    ),
    SummaryField(
        "activity_summary.active_energy_burned",
        "healthkit_activity_summary_active_energy_burned_calories",
        "kcal",
    ),
    SummaryField(
        "activity_summary.active_energy_burned_goal",
        "healthkit_activity_summary_active_energy_burned_goal_calories",
        "kcal",
    ),
    SummaryField(
        "activity_summary.apple_exercise_time",
        "healthkit_activity_summary_exercise_time_minutes",
        "min",
    ),
    SummaryField(
        "activity_summary.apple_exercise_time_goal",
        "healthkit_activity_summary_exercise_time_goal_minutes",
        "min",
    ),
    SummaryField(
        "activity_summary.apple_stand_hours", "healthkit_activity_summary_stand_hours", "count"
    ),
    SummaryField(
        "activity_summary.apple_stand_hours_goal",
        "healthkit_activity_summary_stand_hours_goal",
        "count",
    ),
)

# ============================================================================
# WORKOUTS AND SYNC
# ============================================================================

WORKOUT_MINUTES_METRIC = "healthkit_workout_minutes_total"
WORKOUT_CALORIES_METRIC = "healthkit_workout_calories_total"

WORKOUT_ACTIVITY_NAMES: Dict[str, str] = {
    "running": "running",
    "walking": "walking",
    "cycling": "cycling",
    "swimming": "swimming",
    "yoga": "yoga",
    "functional_strength_training": "functional_strength_training",
    "traditional_strength_training": "traditional_strength_training",
    "high_intensity_interval_training": "hiit",
}

OTHER_ACTIVITY = "other"

LAST_SYNC_METRIC = "healthkit_last_sync_seconds"


def workout_activity_label(activity: str) -> str:
    """Map a source activity type onto the label used on the wire."""
    return WORKOUT_ACTIVITY_NAMES.get(activity.strip().lower(), OTHER_ACTIVITY)


# ============================================================================
# DESCRIPTIONS
# ============================================================================


def _build_descriptions() -> Dict[str, str]:
    descriptions: Dict[str, str] = {}
    for entry in CUMULATIVE_CATEGORIES + LATEST_SAMPLE_CATEGORIES:
        if entry.description:
            descriptions[entry.metric_name] = entry.description
    descriptions[SLEEP_METRIC] = "Total sleep duration in minutes today"
    descriptions[WORKOUT_MINUTES_METRIC] = (
        "Total workout duration in minutes by activity type today"
    )
    descriptions[WORKOUT_CALORIES_METRIC] = (
        "Total calories burned during workouts by activity type today"
    )
    return descriptions


METRIC_DESCRIPTIONS: Dict[str, str] = _build_descriptions()


def describe(metric_name: str) -> str:
    """HELP text for ``metric_name``, never empty."""
    return METRIC_DESCRIPTIONS.get(metric_name, GENERIC_DESCRIPTION)
