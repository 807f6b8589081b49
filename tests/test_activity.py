from chatrelay.activity import ActivityLog
from chatrelay.stats import StatsManager


def test_append_writes_one_line_per_event(tmp_path) -> None:
    path = tmp_path / "logs" / "activity.log"
    log = ActivityLog(str(path))

    log.append("alice joined (12:00)")
    log.append("alice(12:00): hi")

    assert path.read_text(encoding="utf-8") == "alice joined (12:00)\nalice(12:00): hi\n"


def test_mark_start_writes_separator(tmp_path) -> None:
    path = tmp_path / "activity.log"
    log = ActivityLog(str(path))
    log.mark_start()

    text = path.read_text(encoding="utf-8")
    assert "-" * 120 in text
    assert "SERVER START: " in text


def test_disabled_log_is_a_no_op() -> None:
    log = ActivityLog(None)
    assert not log.enabled
    log.append("ignored")


def test_append_failure_is_swallowed_and_counted(tmp_path) -> None:
    stats = StatsManager()
    # A directory cannot be opened for appending.
    log = ActivityLog(str(tmp_path), stats=stats)

    log.append("alice joined (12:00)")

    assert stats.get("activity_failures") == 1
