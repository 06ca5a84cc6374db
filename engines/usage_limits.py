"""Daily request quota status for the free tier."""

from __future__ import annotations

from dataclasses import dataclass

WARNING_PERCENT = 80.0
NOTICE_PERCENT = 60.0


@dataclass
class UsageStatus:
    used_today: int
    daily_limit: int
    percent_used: float
    level: str  # ok | warning | exhausted
    color: str

    def to_dict(self) -> dict:
        return {
            "usedToday": self.used_today,
            "dailyLimit": self.daily_limit,
            "percentUsed": self.percent_used,
            "level": self.level,
            "color": self.color,
        }


def _color_for(percent_used: float) -> str:
    if percent_used >= 100:
        return "red"
    if percent_used >= WARNING_PERCENT:
        return "orange"
    if percent_used >= NOTICE_PERCENT:
        return "yellow"
    return "blue"


def usage_status(used_today: int, daily_limit: int) -> UsageStatus:
    if daily_limit <= 0:
        raise ValueError("daily_limit must be positive")
    used = max(0, int(used_today))
    percent_used = used / daily_limit * 100

    if used >= daily_limit:
        level = "exhausted"
    elif percent_used >= WARNING_PERCENT:
        level = "warning"
    else:
        level = "ok"

    return UsageStatus(
        used_today=used,
        daily_limit=daily_limit,
        percent_used=percent_used,
        level=level,
        color=_color_for(percent_used),
    )
