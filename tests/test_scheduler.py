"""
Round generation, court dispatch and match lifecycle
"""
import copy
import random

import pytest

from badminton.errors import (
    CourtsFullError, ImportFormatError, NoEligibleMatchError, QueueEmptyError, ValidationError,
)
from badminton.models import Settings
from badminton.roster import Roster
from badminton.scheduler import CourtScheduler
from badminton.state import SessionState
from conftest import make_players


def _playing(scheduler):
    return [m for m in scheduler.state.matches.values() if m.status == "playing"]


def test_generate_round_enqueues_matches(make_scheduler):
    s = make_scheduler(count=8, court_count=2)

    outcome = s.generate_round()

    assert outcome.level == "success"
    assert s.state.current_round == 1
    rnd = s.state.rounds[0]
    assert rnd.round_number == 1
    assert rnd.match_ids == s.state.queue
    assert len(s.state.queue) == 2
    for m in s.state.queued_matches():
        assert m.round_id == rnd.id
        assert m.round_number == 1


def test_round_numbers_increase(make_scheduler):
    s = make_scheduler(count=8, court_count=2)

    s.generate_round()
    s.generate_round()

    assert [r.round_number for r in s.state.rounds] == [1, 2]
    assert len(s.state.queue) == 4


def test_generate_round_needs_enough_players(make_scheduler):
    s = make_scheduler(count=3)

    with pytest.raises(ValidationError):
        s.generate_round()

    assert s.state.current_round == 0
    assert s.state.rounds == []
    assert s.state.queue == []


def test_resting_players_are_not_paired(make_scheduler):
    s = make_scheduler(count=4)
    s.toggle_rest("p1")

    with pytest.raises(ValidationError):
        s.generate_round()

    s.toggle_rest("p1")
    s.generate_round()
    assert len(s.state.queue) == 1


def test_start_next_fills_free_courts(make_scheduler):
    s = make_scheduler(count=8, court_count=2)
    s.generate_round()

    outcome = s.start_next()

    assert outcome.text == "Started 2 matches"
    assert s.state.queue == []
    assert sorted(m.court for m in s.state.active_matches()) == [1, 2]
    for p in s.roster:
        assert p.is_playing
        assert p.match_count == 1
    for m in _playing(s):
        assert m.started_at is not None


def test_start_next_with_empty_queue(make_scheduler):
    s = make_scheduler(count=8)
    before = s.export_state()

    with pytest.raises(QueueEmptyError) as err:
        s.start_next()

    assert err.value.level == "info"
    assert s.export_state() == before


def test_start_next_when_courts_are_full(make_scheduler):
    s = make_scheduler(count=12, court_count=2)
    s.generate_round()
    s.start_next()
    s.generate_round()
    before = s.export_state()

    with pytest.raises(CourtsFullError):
        s.start_next()

    assert s.export_state() == before


def test_start_next_skips_match_with_busy_players(make_scheduler):
    s = make_scheduler(count=4, court_count=2)
    s.generate_round()
    s.generate_round()  # same four players queued twice

    s.start_next()

    assert len(s.state.active) == 1
    assert len(s.state.queue) == 1
    before = s.export_state()
    with pytest.raises(NoEligibleMatchError):
        s.start_next()
    assert s.export_state() == before


def test_start_next_takes_first_eligible_match_in_queue(make_scheduler):
    s = make_scheduler(count=8, court_count=2)
    s.generate_round()
    first, second = s.state.queue
    # Same players as the first match, queued between the two
    dup = copy.deepcopy(s.state.matches[first])
    dup.id = "dup"
    s.state.matches["dup"] = dup
    s.state.queue.insert(1, "dup")
    s.state.settings.court_count = 3

    s.start_next()

    assert s.state.matches[first].court == 1
    assert s.state.matches[second].court == 2
    assert s.state.queue == ["dup"]


def test_players_never_on_two_courts(make_scheduler):
    s = make_scheduler(count=10, court_count=3, seed=9)
    for _ in range(5):
        s.generate_round()
        try:
            s.start_next()
        except (NoEligibleMatchError, CourtsFullError):
            pass
        seen = set()
        for m in _playing(s):
            assert not seen & set(m.player_ids)
            seen.update(m.player_ids)
        s.complete_all()


def test_multi_court_allows_same_player_twice(make_scheduler):
    s = make_scheduler(count=4, court_count=2, multi_court=True)
    s.generate_round()
    s.generate_round()

    s.start_next()

    assert len(s.state.active) == 2
    assert all(p.match_count == 2 for p in s.roster)


def test_complete_match_releases_players(make_scheduler):
    s = make_scheduler(count=4, court_count=1)
    s.generate_round()
    s.start_next()
    match_id = s.state.active[0]

    s.complete_match(match_id)

    match = s.state.matches[match_id]
    assert match.status == "completed"
    assert match.completed_at is not None
    assert s.state.active == []
    assert all(not p.is_playing for p in s.roster)
    assert len(s.roster.eligible()) == 4
    s.generate_round()


def test_complete_unknown_match_is_noop(make_scheduler):
    s = make_scheduler(count=4)
    before = s.export_state()

    outcome = s.complete_match("missing")

    assert outcome.level == "info"
    assert not outcome.changed
    assert s.export_state() == before


def test_complete_all(make_scheduler):
    s = make_scheduler(count=8, court_count=2)
    assert s.complete_all().level == "info"
    s.generate_round()
    s.start_next()

    s.complete_all()

    assert s.state.active == []
    assert all(m.status == "completed" for m in s.state.matches.values())
    assert all(not p.is_playing for p in s.roster)


def test_record_score_updates_wins_and_losses(make_scheduler):
    s = make_scheduler(count=4, court_count=1)
    s.generate_round()
    s.start_next()
    match = s.state.active_matches()[0]

    s.record_score(match.id, [21, 18, 21], [19, 21, 15])

    assert match.winner == "team1"
    assert match.scores == [[21, 19], [18, 21], [21, 15]]
    assert match.status == "completed"
    for pid in match.team1:
        assert s.roster.find_player(pid).wins == 1
        assert s.roster.find_player(pid).losses == 0
    for pid in match.team2:
        assert s.roster.find_player(pid).wins == 0
        assert s.roster.find_player(pid).losses == 1
    assert all(not p.is_playing for p in s.roster)


def test_record_score_draw_leaves_stats(make_scheduler):
    s = make_scheduler(count=2, court_count=1, match_type="singles")
    s.generate_round()
    s.start_next()
    match = s.state.active_matches()[0]

    s.record_score(match.id, [21, 10], [10, 21])

    assert match.winner == "draw"
    assert all(p.wins == 0 and p.losses == 0 for p in s.roster)


def test_record_score_skips_missing_player(make_scheduler):
    s = make_scheduler(count=2, court_count=1, match_type="singles")
    s.generate_round()
    s.start_next()
    match = s.state.active_matches()[0]
    gone = match.team1[0]
    s.state.roster = Roster([p for p in s.roster if p.id != gone])

    s.record_score(match.id, [21], [10])

    assert match.winner == "team1"
    assert s.roster.find_player(match.team2[0]).losses == 1


def test_record_score_rejects_bad_sets(make_scheduler):
    s = make_scheduler(count=4, court_count=1)
    s.generate_round()
    s.start_next()
    match_id = s.state.active[0]

    with pytest.raises(ValidationError):
        s.record_score(match_id, [21, 21, 21, 21], [0])
    with pytest.raises(ValidationError):
        s.record_score(match_id, [-1], [21])
    assert s.state.matches[match_id].status == "playing"


def test_remove_playing_player_is_rejected(make_scheduler):
    s = make_scheduler(count=4, court_count=1)
    s.generate_round()
    s.start_next()

    with pytest.raises(ValidationError):
        s.remove_player("p1")
    with pytest.raises(ValidationError):
        s.toggle_rest("p1")

    assert len(s.roster) == 4


def test_shuffle_queue(make_scheduler):
    s = make_scheduler(count=4, court_count=1)
    s.generate_round()
    assert not s.shuffle_queue().changed

    for _ in range(5):
        s.generate_round()
    before = list(s.state.queue)
    s.shuffle_queue()

    assert sorted(s.state.queue) == sorted(before)


def test_settings_validation(make_scheduler):
    s = make_scheduler()

    with pytest.raises(ValidationError):
        s.update_settings(court_count=11)
    with pytest.raises(ValidationError):
        s.update_settings(pairing_mode="ladder")
    s.update_settings(match_type="singles", multi_court=True)

    assert s.settings.match_type == "singles"
    assert s.settings.multi_court
    assert s.settings.court_count == 2
    s.adjust_courts(20)
    assert s.settings.court_count == 10
    s.adjust_courts(-20)
    assert s.settings.court_count == 1


def test_import_rejects_bad_snapshot(make_scheduler):
    s = make_scheduler(count=4)
    before = s.export_state()

    with pytest.raises(ImportFormatError):
        s.import_state({"matches": []})
    with pytest.raises(ImportFormatError):
        s.import_state({"players": "nope"})
    with pytest.raises(ImportFormatError):
        s.import_state({"players": [{"id": "x", "name": "X", "level": "legend"}]})

    assert s.export_state() == before


def _snapshot_with_rounds():
    source = CourtScheduler(
        SessionState(id="src", roster=Roster(make_players(["beginner"] * 8)), settings=Settings(court_count=2)),
        rng=random.Random(3),
    )
    source.generate_round()
    source.generate_round()
    return source.export_state()


@pytest.mark.parametrize("player_field, value", [
    ("match_count", "3"),
    ("wins", -1),
    ("losses", 1.5),
    ("name", 5),
    ("id", None),
    ("is_playing", "yes"),
    ("is_resting", 0),
])
def test_import_rejects_mistyped_player_fields(make_scheduler, player_field, value):
    s = make_scheduler(count=4)
    before = s.export_state()
    snapshot = _snapshot_with_rounds()
    snapshot["players"][0][player_field] = value

    with pytest.raises(ImportFormatError):
        s.import_state(snapshot)

    assert s.export_state() == before


def test_import_rejects_inconsistent_references(make_scheduler):
    s = make_scheduler(count=4)
    before = s.export_state()

    behind = _snapshot_with_rounds()
    behind["current_round"] = 0
    twice_queued = _snapshot_with_rounds()
    twice_queued["queue"].append(twice_queued["queue"][0])
    same_round_id = _snapshot_with_rounds()
    same_round_id["rounds"][1]["id"] = same_round_id["rounds"][0]["id"]
    same_match_id = _snapshot_with_rounds()
    same_match_id["matches"].append(dict(same_match_id["matches"][0]))
    same_name = _snapshot_with_rounds()
    same_name["players"][1]["name"] = same_name["players"][0]["name"].upper()
    bool_round = _snapshot_with_rounds()
    bool_round["current_round"] = True

    for snapshot in (behind, twice_queued, same_round_id, same_match_id, same_name, bool_round):
        with pytest.raises(ImportFormatError):
            s.import_state(snapshot)

    assert s.export_state() == before
    s.import_state(_snapshot_with_rounds())
    assert s.state.current_round == 2


def test_import_replaces_state(make_scheduler):
    source = make_scheduler(count=8, court_count=2)
    source.generate_round()
    source.start_next()
    snapshot = source.export_state()

    target = make_scheduler(count=2)
    target.import_state(snapshot)

    assert target.state.id == "test"
    assert len(target.roster) == 8
    assert target.state.active == source.state.active
    assert target.state.current_round == 1
    assert target.free_courts() == []
    with pytest.raises(QueueEmptyError):
        target.start_next()


def test_reset_clears_everything(make_scheduler):
    s = make_scheduler(count=8, court_count=4)
    s.generate_round()

    s.reset()

    assert len(s.roster) == 0
    assert s.state.matches == {}
    assert s.state.queue == []
    assert s.state.current_round == 0
    assert s.settings.court_count == 2


def test_player_history_and_summary(make_scheduler):
    s = make_scheduler(count=4, court_count=1)
    s.generate_round()
    s.start_next()
    match = s.state.active_matches()[0]
    s.record_score(match.id, [21, 21], [10, 12])
    winner = match.team1[0]

    history = s.player_history(winner)

    assert len(history) == 1
    assert history[0]["result"] == "win"
    assert len(history[0]["teammates"]) == 1
    assert len(history[0]["opponents"]) == 2
    assert s.player_history("missing") is None

    summary = s.summary()
    assert summary["completed_matches"] == 1
    assert summary["pending_matches"] == 0
    assert summary["average_matches"] == 1.0
