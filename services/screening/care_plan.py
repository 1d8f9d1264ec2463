from dataclasses import dataclass

from services.screening import models


@dataclass(frozen=True)
class ScheduleComplexity:
    level: str
    task_count: int
    task_duration: str
    description: str


SEVERITY_COLORS: dict[models.SeverityLevel, str] = {
    models.SeverityLevel.low: "mint",
    models.SeverityLevel.mild: "bright-blue",
    models.SeverityLevel.moderate: "lavender",
    models.SeverityLevel.high: "coral",
    models.SeverityLevel.very_high: "destructive",
}

_HIGH_SCHEDULE = ScheduleComplexity(
    level="High",
    task_count=7,
    task_duration="5-12 min",
    description="Short microtasks with frequent breaks and clinician contact",
)

SCHEDULES: dict[models.SeverityLevel, ScheduleComplexity] = {
    models.SeverityLevel.low: ScheduleComplexity(
        level="Low",
        task_count=2,
        task_duration="20-40 min",
        description="Optional gentle tasks with flexible timing",
    ),
    models.SeverityLevel.mild: ScheduleComplexity(
        level="Medium",
        task_count=3,
        task_duration="15-20 min",
        description="Structured tasks with visual timers",
    ),
    models.SeverityLevel.moderate: ScheduleComplexity(
        level="Medium-High",
        task_count=5,
        task_duration="10-15 min",
        description="Microtasks with calming breaks and parent support",
    ),
    models.SeverityLevel.high: _HIGH_SCHEDULE,
    models.SeverityLevel.very_high: _HIGH_SCHEDULE,
}


def severity_color(level: models.SeverityLevel) -> str:
    return SEVERITY_COLORS[models.SeverityLevel(level)]


def schedule_complexity(level: models.SeverityLevel) -> ScheduleComplexity:
    """Daily task plan sized to the severity tier."""
    return SCHEDULES[models.SeverityLevel(level)]
