import logging
import random
from typing import List, Optional, Sequence

from badminton.errors import (
    CourtsFullError, ImportFormatError, NoEligibleMatchError, QueueEmptyError, ValidationError,
)
from badminton.functions import (
    calculate_standings, determine_winner, generate_matches, player_history, shuffle_list,
)
from badminton.models import MAX_COURTS, MIN_COURTS, Match, Outcome, Round, Settings, generate_id, now_iso
from badminton.state import SessionState, check_settings

logger = logging.getLogger(__name__)

MAX_SETS = 3


def _pad_sets(scores: Optional[Sequence[int]]) -> List[int]:
    scores = list(scores or [])
    if len(scores) > MAX_SETS:
        raise ValidationError(f"At most {MAX_SETS} sets can be recorded")
    for s in scores:
        if isinstance(s, bool) or not isinstance(s, int) or s < 0:
            raise ValidationError("Set scores must be non-negative integers")
    return scores + [0] * (MAX_SETS - len(scores))


class CourtScheduler:
    """Runs every operation of one session against its SessionState.

    Each public method either raises a SchedulerError before touching the
    state, or applies its change completely and returns an Outcome.
    """

    def __init__(self, state: SessionState, rng: Optional[random.Random] = None):
        self.state = state
        self.rng = rng or random.Random()

    @property
    def roster(self):
        return self.state.roster

    @property
    def settings(self) -> Settings:
        return self.state.settings

    # -- Settings --------------------------------------------------------------

    def update_settings(self, **changes) -> Outcome:
        current = self.settings
        updated = Settings(
            match_type=changes.get("match_type") or current.match_type,
            pairing_mode=changes.get("pairing_mode") or current.pairing_mode,
            court_count=current.court_count if changes.get("court_count") is None else changes["court_count"],
            multi_court=current.multi_court if changes.get("multi_court") is None else changes["multi_court"],
        )
        self.state.settings = check_settings(updated)
        return Outcome("Settings saved")

    def adjust_courts(self, delta: int) -> Outcome:
        count = max(MIN_COURTS, min(MAX_COURTS, self.settings.court_count + delta))
        self.settings.court_count = count
        return Outcome(f"Courts: {count}")

    # -- Roster ----------------------------------------------------------------

    def add_player(self, name: str, level: str = "beginner") -> Outcome:
        player = self.roster.add_player(name, level)
        return Outcome(f"Added {player.name}")

    def add_players(self, names: Sequence[str], level: str = "beginner") -> Outcome:
        added, skipped = self.roster.add_players(names, level)
        if skipped:
            return Outcome(f"Added {len(added)} players, skipped {skipped} duplicate names", "info")
        return Outcome(f"Added {len(added)} players")

    def edit_player(self, player_id: str, name: str, level: str) -> Outcome:
        player = self.roster.edit_player(player_id, name, level)
        if player is None:
            return Outcome("Player not found", "info", changed=False)
        return Outcome(f"Updated {player.name}")

    def change_level(self, player_id: str, level: str) -> Outcome:
        player = self.roster.change_level(player_id, level)
        if player is None:
            return Outcome("Player not found", "info", changed=False)
        return Outcome(f"{player.name} is now {player.level}")

    def toggle_rest(self, player_id: str) -> Outcome:
        player = self.roster.toggle_rest(player_id)
        if player is None:
            return Outcome("Player not found", "info", changed=False)
        if player.is_resting:
            return Outcome(f"{player.name} is resting", "info")
        return Outcome(f"{player.name} is ready to play")

    def remove_player(self, player_id: str) -> Outcome:
        referenced = any(player_id in m.player_ids for m in self.state.active_matches())
        player = self.roster.remove_player(player_id, referenced=referenced)
        if player is None:
            return Outcome("Player not found", "info", changed=False)
        return Outcome(f"Removed {player.name}", "info")

    # -- Round generation ------------------------------------------------------

    def generate_round(self) -> Outcome:
        needed = self.settings.players_per_match
        eligible = self.roster.eligible()
        if len(eligible) < needed:
            logger.warning("Round rejected: %d eligible players, %d needed", len(eligible), needed)
            raise ValidationError(f"At least {needed} available players are needed")

        matches = generate_matches(eligible, self.settings, self.rng)

        self.state.current_round += 1
        rnd = Round(id=generate_id(), round_number=self.state.current_round)
        for match in matches:
            match.round_id = rnd.id
            match.round_number = rnd.round_number
            self.state.matches[match.id] = match
            self.state.queue.append(match.id)
            rnd.match_ids.append(match.id)
        self.state.rounds.append(rnd)

        logger.info("Round %d generated with %d matches", rnd.round_number, len(matches))
        return Outcome(f"Round {rnd.round_number} created ({len(matches)} matches)")

    # -- Dispatch --------------------------------------------------------------

    def free_courts(self) -> List[int]:
        used = {m.court for m in self.state.active_matches()}
        return [c for c in range(1, self.settings.court_count + 1) if c not in used]

    def _can_start(self, match: Match) -> bool:
        for pid in match.player_ids:
            player = self.roster.find_player(pid)
            if player is None:
                return False
            if player.is_playing and not self.settings.multi_court:
                return False
        return True

    def start_next(self) -> Outcome:
        if not self.state.queue:
            raise QueueEmptyError("No matches in the queue")
        courts = self.free_courts()
        if not courts:
            raise CourtsFullError("All courts are in use")

        started = 0
        for court in courts:
            match = next((m for m in self.state.queued_matches() if self._can_start(m)), None)
            if match is None:
                break

            self.state.queue.remove(match.id)
            match.status = "playing"
            match.court = court
            match.started_at = now_iso()
            self.state.active.append(match.id)
            for pid in match.player_ids:
                self.roster.mark_busy(pid, True)
                self.roster.increment_stats(pid, played=1)
            started += 1
            logger.info("Match %s started on court %d", match.id, court)

        if not started:
            raise NoEligibleMatchError("No queued match can start, its players are still on court")
        return Outcome(f"Started {started} matches")

    def shuffle_queue(self) -> Outcome:
        if len(self.state.queue) < 2:
            return Outcome("At least 2 queued matches are needed to shuffle", "info", changed=False)
        self.state.queue = shuffle_list(self.state.queue, self.rng)
        return Outcome("Queue shuffled")

    # -- Lifecycle -------------------------------------------------------------

    def _finish(self, match: Match) -> None:
        self.state.active.remove(match.id)
        match.status = "completed"
        match.completed_at = now_iso()
        for pid in match.player_ids:
            self.roster.mark_busy(pid, False)

    def _active_match(self, match_id: str) -> Optional[Match]:
        if match_id not in self.state.active:
            return None
        return self.state.matches.get(match_id)

    def complete_match(self, match_id: str) -> Outcome:
        match = self._active_match(match_id)
        if match is None:
            return Outcome("Match not found", "info", changed=False)
        self._finish(match)
        logger.info("Match %s completed on court %s", match.id, match.court)
        return Outcome("Match completed")

    def complete_all(self) -> Outcome:
        active = self.state.active_matches()
        if not active:
            return Outcome("No matches in progress", "info", changed=False)
        for match in active:
            self._finish(match)
        logger.info("Completed %d matches", len(active))
        return Outcome("Matches completed")

    def record_score(self, match_id: str, team1: Sequence[int], team2: Sequence[int]) -> Outcome:
        team1_sets, team2_sets = _pad_sets(team1), _pad_sets(team2)
        match = self._active_match(match_id)
        if match is None:
            return Outcome("Match not found", "info", changed=False)

        match.scores = [[a, b] for a, b in zip(team1_sets, team2_sets)]
        match.winner = determine_winner(match.scores)
        self._finish(match)

        if match.winner != "draw":
            for pid in match.player_ids:
                won = match.side_of(pid) == match.winner
                # Players deleted meanwhile are skipped
                self.roster.increment_stats(pid, win=int(won), loss=int(not won))

        logger.info("Match %s scored %s, winner %s", match.id, match.scores, match.winner)
        return Outcome("Score saved")

    # -- Session ---------------------------------------------------------------

    def reset(self) -> Outcome:
        self.state = SessionState(id=self.state.id)
        logger.info("Session %s reset", self.state.id)
        return Outcome("All data cleared", "info")

    def import_state(self, snapshot: dict) -> Outcome:
        try:
            self.state = SessionState.from_dict(snapshot, session_id=self.state.id)
        except ImportFormatError:
            logger.warning("Import into session %s rejected", self.state.id)
            raise
        logger.info("Session %s imported %d players", self.state.id, len(self.state.roster))
        return Outcome("Data imported")

    def export_state(self) -> dict:
        return self.state.to_dict()

    # -- Reporting -------------------------------------------------------------

    def summary(self) -> dict:
        players = self.roster.list_players()
        matches = list(self.state.matches.values())
        return {
            "current_round": self.state.current_round,
            "total_rounds": len(self.state.rounds),
            "total_matches": len(matches),
            "completed_matches": sum(1 for m in matches if m.status == "completed"),
            "pending_matches": len(self.state.queue) + len(self.state.active),
            "resting_players": len(self.roster.resting()),
            "average_matches": round(sum(p.match_count for p in players) / len(players), 1) if players else 0,
            "free_courts": self.free_courts(),
        }

    def standings(self) -> List[dict]:
        return calculate_standings(self.roster.list_players())

    def player_history(self, player_id: str) -> Optional[List[dict]]:
        if self.roster.find_player(player_id) is None:
            return None
        names = {p.id: p.name for p in self.roster}
        return player_history(player_id, list(self.state.matches.values()), names)
