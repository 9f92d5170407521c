import os
import logging
import random
from pathlib import Path
from typing import Any, Callable, Optional

from fastapi import APIRouter, Body, Depends, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_session, SessionORM
from badminton.errors import SchedulerError
from badminton.models import Outcome, Settings, generate_id
from badminton.scheduler import CourtScheduler
from badminton.state import SessionState, check_settings
from badminton.storage import load_state, save_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/sessions', tags=['Sessions'])
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

SCHEDULER_SEED = os.getenv("SCHEDULER_SEED")

# -- Helpers -------------------------------------------------------------------

def _rng() -> random.Random:
    if SCHEDULER_SEED:
        return random.Random(int(SCHEDULER_SEED))
    return random.Random()


async def _get_session_orm(sid: str, session: AsyncSession) -> SessionORM:
    result = await session.get(SessionORM, sid)
    if not result:
        raise HTTPException(status_code=404, detail="Session not found")
    return result


def _respond(scheduler: CourtScheduler, outcome: Optional[Outcome] = None) -> dict:
    return {
        "message": {"text": outcome.text, "level": outcome.level} if outcome else None,
        "state": scheduler.export_state(),
        "summary": scheduler.summary(),
    }


async def _apply(sid: str, session: AsyncSession, operation: Callable[[CourtScheduler], Outcome]) -> dict:
    """Load the session, run one scheduler operation, save the snapshot."""
    row = await _get_session_orm(sid, session)
    scheduler = CourtScheduler(load_state(row), rng=_rng())
    try:
        outcome = operation(scheduler)
    except SchedulerError as exc:
        logger.warning("Session %s rejected %s: %s", sid, type(exc).__name__, exc)
        raise HTTPException(status_code=exc.status_code, detail={"text": str(exc), "level": exc.level})

    if outcome.changed:
        save_state(row, scheduler.state)
        await session.commit()
    return _respond(scheduler, outcome)


async def _load(sid: str, session: AsyncSession) -> CourtScheduler:
    row = await _get_session_orm(sid, session)
    return CourtScheduler(load_state(row))

# Routes

@router.get("/")
async def list_sessions(session: AsyncSession = Depends(get_session)):
    rows = (await session.scalars(select(SessionORM).order_by(SessionORM.created_at))).all()
    return [
        {"id": r.id, "players": len(r.players), "rounds": r.current_round, "created_at": r.created_at}
        for r in rows
    ]


@router.post("/create")
async def create_session(
    match_type: str = Form("doubles"),
    pairing_mode: str = Form("random"),
    court_count: int = Form(2),
    multi_court: bool = Form(False),
    session: AsyncSession = Depends(get_session),
):
    try:
        settings = check_settings(Settings(match_type, pairing_mode, court_count, multi_court))
    except SchedulerError as exc:
        raise HTTPException(status_code=exc.status_code, detail={"text": str(exc), "level": exc.level})

    sid = generate_id()
    row = SessionORM(id=sid, queue=[], active=[])
    save_state(row, SessionState(id=sid, settings=settings))
    session.add(row)
    await session.commit()
    logger.info("Session %s created", sid)

    return RedirectResponse(f"/sessions/{sid}", status_code=303)


@router.get("/{sid}")
async def session_view(sid: str, session: AsyncSession = Depends(get_session)):
    return _respond(await _load(sid, session))


@router.post("/{sid}/settings")
async def update_settings(
    sid: str,
    match_type: Optional[str] = Form(None),
    pairing_mode: Optional[str] = Form(None),
    court_count: Optional[int] = Form(None),
    multi_court: Optional[bool] = Form(None),
    session: AsyncSession = Depends(get_session),
):
    return await _apply(sid, session, lambda s: s.update_settings(
        match_type=match_type, pairing_mode=pairing_mode,
        court_count=court_count, multi_court=multi_court,
    ))


@router.post("/{sid}/courts/adjust")
async def adjust_courts(sid: str, delta: int = Form(...), session: AsyncSession = Depends(get_session)):
    return await _apply(sid, session, lambda s: s.adjust_courts(delta))

# -- Players -------------------------------------------------------------------

@router.post("/{sid}/players")
async def add_player(
    sid: str,
    name: str = Form(...),
    level: str = Form("beginner"),
    session: AsyncSession = Depends(get_session),
):
    return await _apply(sid, session, lambda s: s.add_player(name, level))


@router.post("/{sid}/players/bulk")
async def add_players(
    sid: str,
    player_names: str = Form(...),
    level: str = Form("beginner"),
    session: AsyncSession = Depends(get_session),
):
    names = [n.strip() for n in player_names.split("\n") if n.strip()]
    return await _apply(sid, session, lambda s: s.add_players(names, level))


@router.post("/{sid}/players/{pid}/edit")
async def edit_player(
    sid: str,
    pid: str,
    name: str = Form(...),
    level: str = Form(...),
    session: AsyncSession = Depends(get_session),
):
    return await _apply(sid, session, lambda s: s.edit_player(pid, name, level))


@router.post("/{sid}/players/{pid}/level")
async def change_level(sid: str, pid: str, level: str = Form(...), session: AsyncSession = Depends(get_session)):
    return await _apply(sid, session, lambda s: s.change_level(pid, level))


@router.post("/{sid}/players/{pid}/rest")
async def toggle_rest(sid: str, pid: str, session: AsyncSession = Depends(get_session)):
    return await _apply(sid, session, lambda s: s.toggle_rest(pid))


@router.post("/{sid}/players/{pid}/delete")
async def remove_player(sid: str, pid: str, session: AsyncSession = Depends(get_session)):
    return await _apply(sid, session, lambda s: s.remove_player(pid))


@router.get("/{sid}/players/{pid}/history")
async def player_history(sid: str, pid: str, session: AsyncSession = Depends(get_session)):
    scheduler = await _load(sid, session)
    history = scheduler.player_history(pid)
    if history is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return {"player": pid, "matches": history}


@router.get("/{sid}/standings")
async def standings(sid: str, session: AsyncSession = Depends(get_session)):
    scheduler = await _load(sid, session)
    return scheduler.standings()

# -- Rounds, queue and courts ----------------------------------------------------

@router.post("/{sid}/rounds")
async def generate_round(sid: str, session: AsyncSession = Depends(get_session)):
    return await _apply(sid, session, lambda s: s.generate_round())


@router.post("/{sid}/start-next")
async def start_next(sid: str, session: AsyncSession = Depends(get_session)):
    return await _apply(sid, session, lambda s: s.start_next())


@router.post("/{sid}/queue/shuffle")
async def shuffle_queue(sid: str, session: AsyncSession = Depends(get_session)):
    return await _apply(sid, session, lambda s: s.shuffle_queue())


@router.post("/{sid}/matches/complete-all")
async def complete_all(sid: str, session: AsyncSession = Depends(get_session)):
    return await _apply(sid, session, lambda s: s.complete_all())


@router.post("/{sid}/matches/{match_id}/complete")
async def complete_match(sid: str, match_id: str, session: AsyncSession = Depends(get_session)):
    return await _apply(sid, session, lambda s: s.complete_match(match_id))


@router.post("/{sid}/matches/{match_id}/score")
async def record_score(
    sid: str,
    match_id: str,
    team1_set1: int = Form(0),
    team1_set2: int = Form(0),
    team1_set3: int = Form(0),
    team2_set1: int = Form(0),
    team2_set2: int = Form(0),
    team2_set3: int = Form(0),
    session: AsyncSession = Depends(get_session),
):
    team1 = [team1_set1, team1_set2, team1_set3]
    team2 = [team2_set1, team2_set2, team2_set3]
    return await _apply(sid, session, lambda s: s.record_score(match_id, team1, team2))

# -- Data management -------------------------------------------------------------

@router.get("/{sid}/export")
async def export_session(sid: str, session: AsyncSession = Depends(get_session)):
    scheduler = await _load(sid, session)
    return scheduler.export_state()


@router.post("/{sid}/import")
async def import_session(sid: str, snapshot: Any = Body(...), session: AsyncSession = Depends(get_session)):
    return await _apply(sid, session, lambda s: s.import_state(snapshot))


@router.post("/{sid}/reset")
async def reset_session(sid: str, session: AsyncSession = Depends(get_session)):
    return await _apply(sid, session, lambda s: s.reset())


@router.post("/{sid}/delete")
async def delete_session(sid: str, session: AsyncSession = Depends(get_session)):
    row = await session.get(SessionORM, sid)
    if row:
        await session.delete(row)
        await session.commit()
        logger.info("Session %s deleted", sid)
    return {"message": {"text": "Session deleted", "level": "info"}}


@router.get("/{sid}/print", response_class=HTMLResponse)
async def print_schedule(request: Request, sid: str, session: AsyncSession = Depends(get_session)):
    scheduler = await _load(sid, session)
    state = scheduler.state
    names = {p.id: p.name for p in state.roster}
    rounds = [
        {
            "round_number": rnd.round_number,
            "matches": [state.matches[mid] for mid in rnd.match_ids if mid in state.matches],
        }
        for rnd in state.rounds
    ]
    return templates.TemplateResponse(request, "schedule.html", {
        "session_id": sid,
        "settings": state.settings,
        "rounds": rounds,
        "names": names,
        "summary": scheduler.summary(),
    })
