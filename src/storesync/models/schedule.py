from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any
import pytz
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from storesync.utils.constants import Frequency

WEEKDAY_NAMES = ['sun', 'mon', 'tue', 'wed', 'thu', 'fri', 'sat']

class RecurrenceRule(BaseModel):
    """
    Declarative schedule. day_of_week follows cron numbering (0 = Sunday) and is
    only used by weekly rules; every_6h / every_12h only use minute.
    """
    frequency: Frequency = Frequency.DAILY
    hour: int = Field(default=2, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)

    def cron_fields(self) -> Dict[str, Any]:
        """CronTrigger keyword arguments for this rule"""
        if self.frequency == Frequency.EVERY_6H:
            return {'hour': '*/6', 'minute': self.minute}
        if self.frequency == Frequency.EVERY_12H:
            return {'hour': '*/12', 'minute': self.minute}
        if self.frequency == Frequency.WEEKLY:
            return {
                'day_of_week': WEEKDAY_NAMES[self.day_of_week or 0],
                'hour': self.hour,
                'minute': self.minute,
            }
        return {'hour': self.hour, 'minute': self.minute}

    def cron_expression(self) -> str:
        if self.frequency == Frequency.EVERY_6H:
            return f"{self.minute} */6 * * *"
        if self.frequency == Frequency.EVERY_12H:
            return f"{self.minute} */12 * * *"
        if self.frequency == Frequency.WEEKLY:
            return f"{self.minute} {self.hour} * * {self.day_of_week or 0}"
        return f"{self.minute} {self.hour} * * *"

def calculate_next_run_at(rule: RecurrenceRule, now: Optional[datetime] = None) -> datetime:
    """First occurrence of the rule strictly after now, in UTC with seconds zeroed."""
    now = now or datetime.now(pytz.UTC)
    if now.tzinfo is None:
        now = pytz.UTC.localize(now)
    now = now.astimezone(pytz.UTC)
    today = now.replace(second=0, microsecond=0)

    if rule.frequency in (Frequency.EVERY_6H, Frequency.EVERY_12H):
        step = 6 if rule.frequency == Frequency.EVERY_6H else 12
        for slot in range(0, 24, step):
            candidate = today.replace(hour=slot, minute=rule.minute)
            if candidate > now:
                return candidate
        return (today + timedelta(days=1)).replace(hour=0, minute=rule.minute)

    candidate = today.replace(hour=rule.hour, minute=rule.minute)

    if rule.frequency == Frequency.WEEKLY:
        target_day = rule.day_of_week or 0
        current_day = (now.weekday() + 1) % 7
        days_until = (target_day - current_day) % 7
        candidate = candidate + timedelta(days=days_until)
        if candidate <= now:
            candidate = candidate + timedelta(days=7)
        return candidate

    if candidate <= now:
        candidate = candidate + timedelta(days=1)
    return candidate

class SyncSchedule(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    connection_id: str
    resource_types: List[str] = Field(default_factory=list)
    frequency: Frequency = Frequency.DAILY
    hour: int = 2
    minute: int = 0
    day_of_week: Optional[int] = None
    enabled: bool = True
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    last_run_status: Optional[str] = None
    last_run_summary: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def rule(self) -> RecurrenceRule:
        return RecurrenceRule(
            frequency=self.frequency,
            hour=self.hour,
            minute=self.minute,
            day_of_week=self.day_of_week,
        )

class ScheduleRequest(BaseModel):
    connection_id: str
    resource_types: List[str]
    frequency: Frequency = Frequency.DAILY
    hour: int = Field(default=2, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    enabled: bool = True

    @field_validator('resource_types')
    @classmethod
    def _require_types(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError('At least one resource type is required')
        return value

    @model_validator(mode='after')
    def _weekly_needs_day(self) -> 'ScheduleRequest':
        if self.frequency == Frequency.WEEKLY and self.day_of_week is None:
            self.day_of_week = 0
        return self

    @property
    def rule(self) -> RecurrenceRule:
        return RecurrenceRule(
            frequency=self.frequency,
            hour=self.hour,
            minute=self.minute,
            day_of_week=self.day_of_week,
        )

class ToggleRequest(BaseModel):
    enabled: bool
