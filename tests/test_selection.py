import random

from ai_dj.process_log import ProcessLog
from ai_dj.selection import filter_by_popularity, place_priority_first, select_tracks

from doubles import make_track, make_tracks


def test_preferred_cutoff_used_when_enough_tracks_clear_it():
    pool = make_tracks("hi", 6, popularity=40) + make_tracks("lo", 4, popularity=8)

    kept = filter_by_popularity(pool)

    assert {t.id for t in kept} == {f"hi{i}" for i in range(6)}


def test_relaxed_cutoff_applied_when_preferred_is_too_strict():
    # 10 tracks, only 2 clear 15, 6 more clear 5
    pool = (
        make_tracks("a", 2, popularity=30)
        + make_tracks("b", 6, popularity=7)
        + make_tracks("c", 2, popularity=1)
    )
    log = ProcessLog()

    kept = filter_by_popularity(pool, log=log)

    assert len(kept) == 8
    assert all(t.popularity >= 5 for t in kept)
    assert any("Relaxing" in entry for entry in log.entries())


def test_small_pool_does_not_relax():
    pool = make_tracks("a", 1, popularity=30) + make_tracks("b", 2, popularity=7)

    kept = filter_by_popularity(pool)

    assert [t.id for t in kept] == ["a0"]


def test_everything_below_relaxed_cutoff_returns_whole_pool():
    pool = make_tracks("z", 7, popularity=0)

    kept = filter_by_popularity(pool)

    assert kept == pool


def test_select_tracks_truncates_to_maximum_and_keeps_members():
    pool = make_tracks("t", 60)

    chosen = select_tracks(pool, max_tracks=40, rng=random.Random(7))

    assert len(chosen) == 40
    assert len({t.id for t in chosen}) == 40
    assert {t.id for t in chosen} <= {t.id for t in pool}


def test_select_tracks_shuffles():
    pool = make_tracks("t", 30)

    chosen = select_tracks(pool, max_tracks=30, rng=random.Random(3))

    assert [t.id for t in chosen] != [t.id for t in pool]
    assert sorted(t.id for t in chosen) == sorted(t.id for t in pool)


def test_priority_track_moves_to_front_exactly_once():
    priority = make_track("p", name="Anthem", artist="Band")
    tracks = make_tracks("x", 3) + [make_track("p", name="Anthem", artist="Band")] + make_tracks("y", 2)

    final = place_priority_first(tracks, priority)

    assert final[0].id == "p"
    assert [t.id for t in final].count("p") == 1
    assert len(final) == 6


def test_priority_duplicate_by_name_variant_is_removed():
    priority = make_track("p", name="Anthem", artist="Band")
    live = make_track("p-live", name="Anthem (Live)", artist="Band")

    final = place_priority_first([live] + make_tracks("x", 2), priority)

    assert [t.id for t in final] == ["p", "x0", "x1"]


def test_priority_placement_respects_maximum():
    priority = make_track("p")
    final = place_priority_first(make_tracks("x", 40), priority, max_tracks=40)

    assert len(final) == 40
    assert final[0].id == "p"


def test_no_priority_leaves_list_untouched():
    tracks = make_tracks("x", 3)
    assert place_priority_first(tracks, None) == tracks
