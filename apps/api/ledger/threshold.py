from __future__ import annotations

from dataclasses import dataclass

from apps.api.notifications.events import VolumeLow

from .models import ServiceLevel

DEFAULT_WARNING_THRESHOLD_MINUTES = 60


@dataclass(frozen=True, slots=True)
class ThresholdDecision:
    """New value of the ``low_volume_warned`` marker and the event to emit, if any."""

    warned: bool
    event: VolumeLow | None = None


class ThresholdNotifier:
    """Detect downward crossings of the low-volume warning threshold.

    The marker stored on the service level makes the warning fire once per
    crossing: it is set when the event fires and cleared as soon as the balance
    is above the threshold again (a refund or a renewal).
    """

    def __init__(self, threshold_minutes: int = DEFAULT_WARNING_THRESHOLD_MINUTES) -> None:
        if threshold_minutes < 0:
            raise ValueError("threshold_minutes must not be negative")
        self._threshold = threshold_minutes

    @property
    def threshold_minutes(self) -> int:
        return self._threshold

    def evaluate(self, level: ServiceLevel, *, previous: int, company_name: str) -> ThresholdDecision:
        """Evaluate ``level`` after its balance changed from ``previous``."""

        current = level.remaining_minutes
        if current > self._threshold:
            return ThresholdDecision(warned=False)
        if current >= previous or current <= 0:
            # Only decreases can warn; depletion to zero is not a warning.
            return ThresholdDecision(warned=level.low_volume_warned)
        if level.low_volume_warned:
            return ThresholdDecision(warned=True)
        return ThresholdDecision(warned=True, event=self.build_event(level, company_name=company_name))

    @staticmethod
    def build_event(level: ServiceLevel, *, company_name: str) -> VolumeLow:
        return VolumeLow(
            company_id=level.company_id,
            company_name=company_name,
            service_level_id=level.id,
            service_level_name=level.name,
            remaining_minutes=level.remaining_minutes,
            total_minutes=level.time_volume_minutes,
            usage_percentage=level.usage_percentage,
            next_renewal_at=level.next_renewal_at,
            hourly_rate=level.hourly_rate,
        )
