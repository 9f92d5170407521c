from dataclasses import asdict

from database import MatchORM, PlayerORM, RoundORM, SessionORM
from badminton.models import Match, Player, Round, Settings
from badminton.roster import Roster
from badminton.state import SessionState

PLAYER_FIELDS = tuple(asdict(Player(id="", name="")).keys())
MATCH_FIELDS = tuple(asdict(Match(id="", type="doubles", team1=[], team2=[])).keys())


def load_state(row: SessionORM) -> SessionState:
    """Convert a SQLAlchemy session row into the scheduler's SessionState."""
    players = [Player(**{f: getattr(p, f) for f in PLAYER_FIELDS}) for p in row.players]

    matches = {}
    for m in row.matches:
        match = Match(**{f: getattr(m, f) for f in MATCH_FIELDS})
        match.team1, match.team2 = list(m.team1), list(m.team2)
        matches[match.id] = match

    rounds = [
        Round(id=r.id, round_number=r.round_number, match_ids=list(r.match_ids), created_at=r.created_at)
        for r in row.rounds
    ]

    return SessionState(
        id=row.id,
        roster=Roster(players),
        matches=matches,
        queue=list(row.queue or []),
        active=list(row.active or []),
        rounds=rounds,
        settings=Settings(
            match_type=row.match_type,
            pairing_mode=row.pairing_mode,
            court_count=row.court_count,
            multi_court=row.multi_court,
        ),
        current_round=row.current_round,
    )


def _sync(collection, items, factory, sid: str, fields):
    """Update rows in place, add new ones, drop the ones no longer in `items`."""
    existing = {r.id: r for r in collection}
    keep = set()
    for position, item in enumerate(items):
        values = {f: getattr(item, f) for f in fields}
        if hasattr(factory, "position"):
            values["position"] = position
        orm = existing.get(item.id)
        if orm is None:
            collection.append(factory(session_id=sid, **values))
        else:
            for k, v in values.items():
                setattr(orm, k, v)
        keep.add(item.id)

    for orm in [r for r in collection if r.id not in keep]:
        collection.remove(orm)


def save_state(row: SessionORM, state: SessionState) -> None:
    """Write a full snapshot of `state` onto its database row (last writer wins)."""
    row.match_type = state.settings.match_type
    row.pairing_mode = state.settings.pairing_mode
    row.court_count = state.settings.court_count
    row.multi_court = state.settings.multi_court
    row.current_round = state.current_round
    # New lists so the JSON columns register as changed
    row.queue = list(state.queue)
    row.active = list(state.active)

    _sync(row.players, state.roster.list_players(), PlayerORM, row.id, PLAYER_FIELDS)
    _sync(row.matches, list(state.matches.values()), MatchORM, row.id, MATCH_FIELDS)
    _sync(row.rounds, state.rounds, RoundORM, row.id, ("id", "round_number", "match_ids", "created_at"))
