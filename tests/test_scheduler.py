# tests/test_scheduler.py
from signup_service import scheduler as scheduler_module


def test_scheduler_registers_sweeper_jobs():
    try:
        scheduler_module.init_scheduler(start=False)
        status = scheduler_module.get_scheduler_status()

        assert status["status"] == "stopped"
        assert sorted(job["id"] for job in status["jobs"]) == [
            "complete_started_instances",
            "expire_waitlist_offers",
            "publish_due_events",
            "send_event_reminders",
        ]
    finally:
        scheduler_module.shutdown_scheduler()

    assert scheduler_module.get_scheduler_status() == {"status": "not_initialized", "jobs": []}
