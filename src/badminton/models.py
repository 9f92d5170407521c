import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

LEVEL_WEIGHTS = {
    "beginner": 1,
    "intermediate": 2,
    "advanced": 3,
    "pro": 4,
}
# Strongest first, the order "separate" mode concatenates groups in
LEVEL_ORDER = ("pro", "advanced", "intermediate", "beginner")

MATCH_TYPES = ("singles", "doubles")
PAIRING_MODES = ("random", "balanced", "separate")
PLAYERS_PER_TEAM = {"singles": 1, "doubles": 2}

MIN_COURTS = 1
MAX_COURTS = 10


def generate_id():
    return str(uuid.uuid4())[:8]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class Player:
    id: str
    name: str
    level: str = "beginner"
    match_count: int = 0
    wins: int = 0
    losses: int = 0
    is_playing: bool = False
    is_resting: bool = False
    created_at: str = field(default_factory=now_iso)

    @property
    def weight(self) -> int:
        return LEVEL_WEIGHTS[self.level]

    @property
    def is_eligible(self) -> bool:
        return not self.is_playing and not self.is_resting


@dataclass
class Match:
    id: str
    type: str
    team1: List[str]  # player ids
    team2: List[str]  # player ids
    status: str = "pending"  # pending, playing, completed
    court: Optional[int] = None
    scores: Optional[List[List[int]]] = None  # [[team1, team2], ...] per set
    winner: Optional[str] = None  # team1, team2, draw
    round_id: Optional[str] = None
    round_number: Optional[int] = None
    created_at: str = field(default_factory=now_iso)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def player_ids(self) -> List[str]:
        return self.team1 + self.team2

    def side_of(self, player_id: str) -> Optional[str]:
        if player_id in self.team1:
            return "team1"
        if player_id in self.team2:
            return "team2"
        return None


@dataclass
class Round:
    id: str
    round_number: int
    match_ids: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=now_iso)


@dataclass
class Settings:
    match_type: str = "doubles"
    pairing_mode: str = "random"
    court_count: int = 2
    multi_court: bool = False

    @property
    def players_per_team(self) -> int:
        return PLAYERS_PER_TEAM[self.match_type]

    @property
    def players_per_match(self) -> int:
        return 2 * self.players_per_team


@dataclass
class Outcome:
    """Human-readable result of an operation, classified for display."""
    text: str
    level: str = "success"  # success, error, info
    changed: bool = True
