from dataclasses import asdict, dataclass, field, fields
from typing import Dict, List

from badminton.errors import ImportFormatError, ValidationError
from badminton.models import (
    LEVEL_WEIGHTS, MATCH_TYPES, MAX_COURTS, MIN_COURTS, PAIRING_MODES, PLAYERS_PER_TEAM,
    Match, Player, Round, Settings,
)
from badminton.roster import Roster

MATCH_STATUSES = ("pending", "playing", "completed")


def check_settings(settings: Settings) -> Settings:
    if settings.match_type not in MATCH_TYPES:
        raise ValidationError(f"Unknown match type: {settings.match_type}")
    if settings.pairing_mode not in PAIRING_MODES:
        raise ValidationError(f"Unknown pairing mode: {settings.pairing_mode}")
    if isinstance(settings.court_count, bool) or not isinstance(settings.court_count, int):
        raise ValidationError("Court count must be an integer")
    if not MIN_COURTS <= settings.court_count <= MAX_COURTS:
        raise ValidationError(f"Court count must be between {MIN_COURTS} and {MAX_COURTS}")
    if not isinstance(settings.multi_court, bool):
        raise ValidationError("Multi-court must be true or false")
    return settings


def _require(obj, kind, *names):
    for name in names:
        value = getattr(obj, name)
        if kind is int and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
        if kind is not int and not isinstance(value, kind):
            raise ValueError(f"{name} must be {kind.__name__}, got {value!r}")


def _unique(ids, what):
    ids = list(ids)
    if len(set(ids)) != len(ids):
        raise ValueError(f"duplicate {what} ids")


def _build(cls, data: dict):
    if not isinstance(data, dict):
        raise TypeError(f"{cls.__name__} entry must be an object")
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class SessionState:
    """Everything one badminton session owns.

    `matches` is the single owner of Match entities; `queue`, `active` and
    each round's `match_ids` reference them by id.
    """
    id: str
    roster: Roster = field(default_factory=Roster)
    matches: Dict[str, Match] = field(default_factory=dict)
    queue: List[str] = field(default_factory=list)
    active: List[str] = field(default_factory=list)
    rounds: List[Round] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)
    current_round: int = 0

    def queued_matches(self) -> List[Match]:
        return [self.matches[mid] for mid in self.queue]

    def active_matches(self) -> List[Match]:
        return [self.matches[mid] for mid in self.active]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "players": [asdict(p) for p in self.roster],
            "matches": [asdict(m) for m in self.matches.values()],
            "queue": list(self.queue),
            "current_matches": list(self.active),
            "rounds": [asdict(r) for r in self.rounds],
            "settings": asdict(self.settings),
            "current_round": self.current_round,
        }

    @classmethod
    def from_dict(cls, data: dict, session_id: str = None) -> "SessionState":
        """Rebuild a state from a snapshot; raises ImportFormatError on any defect."""
        if not isinstance(data, dict) or not isinstance(data.get("players"), list):
            raise ImportFormatError("Invalid data format: a players list is required")

        try:
            players = [_build(Player, p) for p in data["players"]]
            for p in players:
                _require(p, str, "id", "name", "level")
                _require(p, int, "match_count", "wins", "losses")
                _require(p, bool, "is_playing", "is_resting")
                if p.level not in LEVEL_WEIGHTS:
                    raise ValueError(f"unknown level {p.level!r}")
            _unique((p.id for p in players), "player")
            _unique((p.name.lower() for p in players), "player name")

            matches: Dict[str, Match] = {}
            for raw in data.get("matches", []):
                m = _build(Match, raw)
                _require(m, str, "id")
                _require(m, list, "team1", "team2")
                if m.id in matches:
                    raise ValueError(f"duplicate match id {m.id!r}")
                if m.status not in MATCH_STATUSES:
                    raise ValueError(f"unknown match status {m.status!r}")
                size = PLAYERS_PER_TEAM[m.type]
                if len(m.team1) != size or len(m.team2) != size or set(m.team1) & set(m.team2):
                    raise ValueError(f"match {m.id} has malformed teams")
                m.team1, m.team2 = list(m.team1), list(m.team2)
                matches[m.id] = m

            queue = data.get("queue")
            if queue is None:
                queue = [mid for mid, m in matches.items() if m.status == "pending"]
            active = data.get("current_matches")
            if active is None:
                active = [mid for mid, m in matches.items() if m.status == "playing"]
            if not isinstance(queue, list) or not isinstance(active, list):
                raise ValueError("queue and current_matches must be lists")
            _unique(queue, "queued match")
            _unique(active, "active match")
            for mid in queue:
                if matches[mid].status != "pending":
                    raise ValueError(f"queued match {mid} is not pending")
            for mid in active:
                if matches[mid].status != "playing":
                    raise ValueError(f"active match {mid} is not playing")

            rounds = [_build(Round, r) for r in data.get("rounds", [])]
            for r in rounds:
                _require(r, str, "id")
                _require(r, int, "round_number")
            _unique((r.id for r in rounds), "round")
            settings = check_settings(_build(Settings, data.get("settings", {})))
            last_round = max((r.round_number for r in rounds), default=0)
            current_round = data.get("current_round", last_round)
            if isinstance(current_round, bool) or not isinstance(current_round, int):
                raise ValueError(f"current_round must be an integer, got {current_round!r}")
            if current_round < last_round:
                raise ValueError("current_round is behind the last round number")
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            raise ImportFormatError(f"Invalid data format: {exc}") from exc

        return cls(
            id=session_id or data.get("id"),
            roster=Roster(players),
            matches=matches,
            queue=list(queue),
            active=list(active),
            rounds=rounds,
            settings=settings,
            current_round=current_round,
        )
