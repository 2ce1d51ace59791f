"""
Daily schedule for the lifecycle batch jobs.

Celery beat fires each job at its configured wall-clock time. Tests never go
through beat; they call the batch runner directly.
"""

from dataclasses import dataclass

from celery.schedules import crontab

from saascore.billing.config import ScheduleConfig
from saascore.billing.core.enums import LifecycleJob


@dataclass(frozen=True)
class ScheduledJob:
    job: LifecycleJob
    task_name: str
    hour: int
    minute: int

    @property
    def entry_name(self) -> str:
        return f"subscriptions-{self.job.value}"

    def as_crontab(self) -> crontab:
        return crontab(hour=self.hour, minute=self.minute)


TASK_NAMES: dict[LifecycleJob, str] = {
    LifecycleJob.RENEWALS: "subscriptions.run_renewals",
    LifecycleJob.DELINQUENCIES: "subscriptions.run_delinquencies",
    LifecycleJob.SUSPENSIONS: "subscriptions.run_suspensions",
    LifecycleJob.EXPIRATIONS: "subscriptions.run_expirations",
}


class LifecycleSchedule:
    """Maps the four lifecycle jobs to their daily run times."""

    def __init__(self, config: ScheduleConfig | None = None) -> None:
        self.config = config or ScheduleConfig()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def jobs(self) -> list[ScheduledJob]:
        """Scheduled jobs in run order; empty when scheduling is disabled."""
        if not self.config.enabled:
            return []

        scheduled = []
        for job in LifecycleJob:
            hour, minute = self.config.hour_minute(job.value)
            scheduled.append(ScheduledJob(job, TASK_NAMES[job], hour, minute))
        return scheduled

    def beat_schedule(self) -> dict[str, dict[str, object]]:
        """Schedule in Celery's ``beat_schedule`` format."""
        return {
            scheduled.entry_name: {"task": scheduled.task_name, "schedule": scheduled.as_crontab()}
            for scheduled in self.jobs()
        }
