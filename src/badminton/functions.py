import random
from collections import deque
from typing import Dict, List, Optional, Sequence

from badminton.models import LEVEL_ORDER, Match, Player, Settings, generate_id


def shuffle_list(items: Sequence, rng: random.Random) -> list:
    """Uniform in-place Fisher-Yates shuffle of a copy."""
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def balance_players(players: Sequence[Player], match_type: str) -> List[Player]:
    if match_type == "singles":
        # Adjacent players end up facing each other, so keep similar levels together
        return sorted(players, key=lambda p: p.weight)

    remaining = deque(sorted(players, key=lambda p: -p.weight))
    result = []
    while len(remaining) >= 4:
        strongest = remaining.popleft()
        weakest = remaining.pop()
        second_strongest = remaining.popleft()
        second_weakest = remaining.pop()
        # strongest + weakest vs the middle pair
        result.extend([strongest, weakest, second_strongest, second_weakest])

    result.extend(remaining)
    return result


def separate_by_level(players: Sequence[Player], rng: random.Random) -> List[Player]:
    groups: Dict[str, List[Player]] = {level: [] for level in LEVEL_ORDER}
    for p in players:
        groups[p.level].append(p)

    result = []
    for level in LEVEL_ORDER:
        result.extend(shuffle_list(groups[level], rng))
    return result


def order_pool(players: Sequence[Player], settings: Settings, rng: random.Random) -> List[Player]:
    """Pairing-mode ordering followed by the fairness pass.

    The fairness sort is stable, so players with equal match counts keep the
    adjacency the pairing mode gave them.
    """
    if settings.pairing_mode == "balanced":
        ordered = balance_players(players, settings.match_type)
    elif settings.pairing_mode == "separate":
        ordered = separate_by_level(players, rng)
    else:
        ordered = shuffle_list(players, rng)

    return sorted(ordered, key=lambda p: p.match_count)


def generate_matches(players: Sequence[Player], settings: Settings, rng: random.Random) -> List[Match]:
    """Chunk the ordered pool into at most one pending match per court."""
    per_team = settings.players_per_team
    per_match = settings.players_per_match
    ordered = order_pool(players, settings, rng)

    matches = []
    i = 0
    while i + per_match <= len(ordered) and len(matches) < settings.court_count:
        selected = ordered[i:i + per_match]
        matches.append(Match(
            id=generate_id(),
            type=settings.match_type,
            team1=[p.id for p in selected[:per_team]],
            team2=[p.id for p in selected[per_team:]],
        ))
        i += per_match

    return matches


def determine_winner(scores: Sequence[Sequence[int]]) -> str:
    """Set-count winner of up to three [team1, team2] set scores."""
    team1_wins = team2_wins = 0
    for score1, score2 in scores[:3]:
        if score1 > score2:
            team1_wins += 1
        elif score2 > score1:
            team2_wins += 1

    if team1_wins > team2_wins:
        return "team1"
    if team2_wins > team1_wins:
        return "team2"
    return "draw"


def calculate_standings(players: Sequence[Player]) -> List[dict]:
    standings = []
    for player in players:
        decided = player.wins + player.losses
        standings.append({
            "id": player.id,
            "name": player.name,
            "level": player.level,
            "match_count": player.match_count,
            "wins": player.wins,
            "losses": player.losses,
            "win_rate": round(player.wins / decided * 100) if decided else 0,
        })
    standings.sort(key=lambda x: (-x["wins"], -x["match_count"]))
    for i, s in enumerate(standings):
        s["rank"] = i + 1
    return standings


def player_history(player_id: str, matches: Sequence[Match], names: Dict[str, str]) -> List[dict]:
    history = []
    for match in matches:
        side = match.side_of(player_id)
        if match.status != "completed" or side is None:
            continue
        own, other = (match.team1, match.team2) if side == "team1" else (match.team2, match.team1)
        if match.winner is None:
            result: Optional[str] = None  # completed without a score
        elif match.winner == "draw":
            result = "draw"
        else:
            result = "win" if match.winner == side else "loss"
        history.append({
            "match_id": match.id,
            "round_number": match.round_number,
            "teammates": [names.get(pid, "?") for pid in own if pid != player_id],
            "opponents": [names.get(pid, "?") for pid in other],
            "scores": match.scores,
            "result": result,
            "completed_at": match.completed_at,
        })
    return history
