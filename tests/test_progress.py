from plexmix.services.progress import JobProgress


def test_job_lifecycle():
    tracker = JobProgress()
    tracker.start("job", 3)

    callback = tracker.callback_for("job")
    callback(1, 3, "Queen - Radio Ga Ga")

    assert tracker.snapshot("job") == {
        "processed": 1,
        "total": 3,
        "status": "running",
        "label": "Queen - Radio Ga Ga",
    }

    tracker.finish("job")
    assert tracker.pop("job")["status"] == "completed"
    assert tracker.snapshot("job") is None


def test_updates_for_unknown_jobs_are_ignored():
    tracker = JobProgress()
    tracker.update("ghost", 5)
    tracker.error("ghost")
    assert tracker.snapshot("ghost") is None


def test_snapshot_is_a_copy():
    tracker = JobProgress()
    tracker.start("job")
    tracker.snapshot("job")["processed"] = 99
    assert tracker.snapshot("job")["processed"] == 0
