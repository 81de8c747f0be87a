"""Workout type -> coding minutes earned per workout minute."""

DEFAULT_RATIO = 12

# Ordered; first matching row wins ("cross-country run" is cardio, not HIIT).
RATIO_TABLE: tuple[tuple[tuple[str, ...], int], ...] = (
    (("walk", "hik"), 8),
    (("run", "cycl", "swim"), 12),
    (("strength", "weight", "functional"), 15),
    (("hiit", "interval", "cross"), 18),
    (("yoga", "pilates"), 10),
)


def ratio_for_workout_type(workout_type: str) -> int:
    """Case-insensitive substring match against RATIO_TABLE, DEFAULT_RATIO when nothing matches."""
    lowered = workout_type.lower()
    for needles, ratio in RATIO_TABLE:
        if any(n in lowered for n in needles):
            return ratio
    return DEFAULT_RATIO


def resolve_ratio(
    workout_type: str | None,
    fallback_ratio: float,
    override: float | None = None,
) -> float:
    """Explicit override, else the type table, else the user's configured ratio."""
    if override is not None:
        return override
    if workout_type and workout_type.strip():
        return ratio_for_workout_type(workout_type)
    return fallback_ratio
