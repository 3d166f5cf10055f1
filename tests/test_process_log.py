from datetime import datetime

from ai_dj.process_log import ProcessLog

from doubles import FakeClock, make_tracks


def test_entries_are_newest_first_and_timestamped():
    log = ProcessLog(clock=FakeClock(datetime(2025, 1, 1, 9, 30, 5)))
    log.add("first")
    log.add("second")

    assert log.entries() == ["[09:30:05] second", "[09:30:05] first"]


def test_log_is_bounded():
    log = ProcessLog(max_entries=100)
    for i in range(150):
        log.add(f"entry {i}")

    entries = log.entries()
    assert len(entries) == 100
    assert entries[0].endswith("entry 149")
    assert entries[-1].endswith("entry 50")


def test_entries_returns_a_snapshot():
    log = ProcessLog()
    log.add("one")
    snapshot = log.entries()
    log.add("two")
    log.clear()

    assert len(snapshot) == 1
    assert len(log) == 0


def test_sample_lists_three_tracks_and_a_remainder():
    log = ProcessLog()
    log.sample("Sample", make_tracks("t", 5))

    (entry,) = log.entries()
    assert "Song t0" in entry and "Song t2" in entry
    assert "Song t3" not in entry
    assert "and 2 more" in entry
