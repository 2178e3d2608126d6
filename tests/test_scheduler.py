import pytest
from apscheduler.triggers.cron import CronTrigger

from library_service.scheduler import JOB_ID, build_scheduler


def test_sweep_job_is_registered(service):
    scheduler = build_scheduler(service, "30 8 * * *")

    job = scheduler.get_job(JOB_ID)
    assert job is not None
    assert job.func == service.update_missed_deadlines
    assert isinstance(job.trigger, CronTrigger)
    fields = {f.name: str(f) for f in job.trigger.fields}
    assert fields["hour"] == "8"
    assert fields["minute"] == "30"


def test_invalid_cron_expression_is_rejected(service):
    with pytest.raises(ValueError):
        build_scheduler(service, "every day")
