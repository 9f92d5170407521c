import logging
from typing import Dict, Iterable, List, Optional, Tuple

from badminton.errors import ValidationError
from badminton.models import LEVEL_WEIGHTS, Player, generate_id

logger = logging.getLogger(__name__)


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Player name is required")
    return name


def _check_level(level: str) -> str:
    if level not in LEVEL_WEIGHTS:
        raise ValidationError(f"Unknown skill level: {level}")
    return level


class Roster:
    """Owner of every Player in a session, indexed by id.

    Matches only hold player ids; all lookups go through here.
    """

    def __init__(self, players: Iterable[Player] = ()):
        self._players: Dict[str, Player] = {}
        for p in players:
            self._players[p.id] = p

    def __len__(self) -> int:
        return len(self._players)

    def __iter__(self):
        return iter(self._players.values())

    def __contains__(self, player_id: str) -> bool:
        return player_id in self._players

    # -- Queries ---------------------------------------------------------------

    def list_players(self) -> List[Player]:
        return list(self._players.values())

    def find_player(self, player_id: str) -> Optional[Player]:
        return self._players.get(player_id)

    def find_by_name(self, name: str) -> Optional[Player]:
        key = name.strip().lower()
        return next((p for p in self._players.values() if p.name.lower() == key), None)

    def eligible(self) -> List[Player]:
        """Players who are neither busy nor resting, in roster order."""
        return [p for p in self._players.values() if p.is_eligible]

    def resting(self) -> List[Player]:
        return [p for p in self._players.values() if p.is_resting]

    # -- State updates used by dispatch / lifecycle ----------------------------

    def mark_busy(self, player_id: str, busy: bool) -> bool:
        player = self._players.get(player_id)
        if player is None:
            return False
        player.is_playing = busy
        return True

    def increment_stats(self, player_id: str, played: int = 0, win: int = 0, loss: int = 0) -> bool:
        player = self._players.get(player_id)
        if player is None:
            return False
        player.match_count += played
        player.wins += win
        player.losses += loss
        return True

    # -- Roster management -----------------------------------------------------

    def add_player(self, name: str, level: str = "beginner") -> Player:
        name = _clean_name(name)
        _check_level(level)
        if self.find_by_name(name):
            raise ValidationError(f"A player named {name} already exists")

        player = Player(id=generate_id(), name=name, level=level)
        self._players[player.id] = player
        logger.info("Added player %s (%s)", player.name, player.level)
        return player

    def add_players(self, names: Iterable[str], level: str = "beginner") -> Tuple[List[Player], int]:
        """Bulk add. Returns the added players and how many names were skipped as duplicates."""
        _check_level(level)
        cleaned = [n.strip() for n in names if n and n.strip()]
        if not cleaned:
            raise ValidationError("Player names are required")

        added, skipped, seen = [], 0, set()
        for name in cleaned:
            if name.lower() in seen or self.find_by_name(name):
                skipped += 1
                continue
            seen.add(name.lower())
            added.append(Player(id=generate_id(), name=name, level=level))

        if not added:
            raise ValidationError("No players added, every name is already taken")
        for p in added:
            self._players[p.id] = p
        logger.info("Bulk added %d players, skipped %d duplicates", len(added), skipped)
        return added, skipped

    def edit_player(self, player_id: str, name: str, level: str) -> Optional[Player]:
        player = self._players.get(player_id)
        if player is None:
            return None
        name = _clean_name(name)
        _check_level(level)
        clash = self.find_by_name(name)
        if clash is not None and clash.id != player_id:
            raise ValidationError(f"A player named {name} already exists")

        player.name = name
        player.level = level
        return player

    def change_level(self, player_id: str, level: str) -> Optional[Player]:
        player = self._players.get(player_id)
        if player is None:
            return None
        player.level = _check_level(level)
        return player

    def toggle_rest(self, player_id: str) -> Optional[Player]:
        player = self._players.get(player_id)
        if player is None:
            return None
        if player.is_playing:
            raise ValidationError(f"{player.name} is playing and cannot rest")
        player.is_resting = not player.is_resting
        return player

    def remove_player(self, player_id: str, referenced: bool = False) -> Optional[Player]:
        """Delete a player; `referenced` means an active match still points at them."""
        player = self._players.get(player_id)
        if player is None:
            return None
        if player.is_playing or referenced:
            raise ValidationError(f"{player.name} is playing and cannot be removed")
        del self._players[player_id]
        logger.info("Removed player %s", player.name)
        return player
