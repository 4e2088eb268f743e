"""
FastAPI backend for Papal Conquest.
Provides REST API endpoints for game session management and actions.

Each game is stored as a JSON GameState row. Actions on the same game are
serialized with a per-game lock so load -> apply -> save never interleaves.
"""

import json
import logging
import threading
import uuid
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .database import get_db, init_db
from .models import Game as GameModel

from conquest.config import CORS_ORIGINS
from conquest.engine.state import GameState
from conquest.engine.actions import (
    Action,
    initialize_game,
    elect_pope,
    advance_day,
    claim_province,
    declare_war,
    resolve_war,
    form_alliance,
    break_alliance,
    create_trade_deal,
    use_papal_action,
    recruit_troops,
)
from conquest.engine.definitions import list_maps
from conquest.engine.errors import NotFoundError
from conquest.engine.events import is_rejected
from conquest.engine.reducer import apply_action
from conquest.engine.queries import (
    validate_action,
    check_invariants,
    get_player_stats,
    get_game_summary,
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Papal Conquest API",
    description="Backend API for Papal Conquest - a turn-based territory conquest game",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request, call_next):
    """Log method and path so 500s can be traced to the failing endpoint."""
    try:
        response = await call_next(request)
        if response.status_code >= 500:
            logger.error("[500] %s %s", request.method, request.url.path)
        return response
    except Exception:
        logger.exception("[500] %s %s (exception)", request.method, request.url.path)
        raise


@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    """Return 500 with CORS headers so the frontend can read the error."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    origin = request.headers.get("origin")
    allow_origin = origin if origin in CORS_ORIGINS else CORS_ORIGINS[0]
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc)},
        headers={
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Credentials": "true",
        },
    )


# Per-game dispatch locks
_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _game_lock(game_id: str) -> threading.Lock:
    with _locks_guard:
        if game_id not in _locks:
            _locks[game_id] = threading.Lock()
        return _locks[game_id]


# ===== Pydantic Models =====

class CreateGameRequest(BaseModel):
    name: str
    player_names: list[str]
    """Map id from GET /maps. Omitted = default from conquest.config.DEFAULT_MAP_ID."""
    map_id: str | None = None


class ClaimRequest(BaseModel):
    player_id: str
    province_id: str


class DeclareWarRequest(BaseModel):
    attacker_id: str
    defender_id: str
    target_province_id: str
    troops: int


class FormAllianceRequest(BaseModel):
    player_id: str
    target_player_id: str
    alliance_name: str


class BreakAllianceRequest(BaseModel):
    player_id: str


class TradeRequest(BaseModel):
    from_player_id: str
    to_player_id: str
    resources: dict[str, int]  # resource -> amount, e.g. {"gold": 30}
    duration: int = 1


class PapalActionRequest(BaseModel):
    type: str
    target_player_ids: list[str] = Field(default_factory=list)
    target_province_id: str | None = None
    description: str = ""
    player_id: str | None = None


class RecruitRequest(BaseModel):
    player_id: str
    province_id: str
    amount: int


# ===== Persistence helpers =====

def get_game(game_id: str, db: Session) -> GameState:
    """Load game state from DB; raise 404 if not found."""
    row = db.query(GameModel).filter(GameModel.id == game_id).first()
    if not row:
        raise HTTPException(status_code=404, detail=f"Game {game_id} not found")
    try:
        raw = json.loads(row.game_state)
    except (TypeError, json.JSONDecodeError):
        logger.warning("Game %s has unreadable state", game_id)
        raise HTTPException(status_code=404, detail=f"Game {game_id} not found")
    return GameState.from_dict(raw if isinstance(raw, dict) else {})


def save_game(game_id: str, state: GameState, db: Session) -> None:
    """Persist game state to DB."""
    row = db.query(GameModel).filter(GameModel.id == game_id).first()
    if row:
        row.game_state = json.dumps(state.to_dict())
        db.commit()


def state_for_response(state: GameState) -> dict[str, Any]:
    """State dict including computed player_stats for the UI."""
    out = state.to_dict()
    out["player_stats"] = get_player_stats(state)
    return out


def _dispatch(game_id: str, action: Action, db: Session) -> dict[str, Any]:
    """Validate, apply and persist one action on a stored game."""
    with _game_lock(game_id):
        state = get_game(game_id, db)
        validation = validate_action(state, action)
        if not validation.valid:
            raise HTTPException(status_code=400, detail=validation.error)
        new_state, events = apply_action(state, action)
        accepted = not is_rejected(events)
        if accepted:
            save_game(game_id, new_state, db)
    return {
        "state": state_for_response(new_state),
        "events": [e.to_dict() for e in events],
        "accepted": accepted,
    }


@app.on_event("startup")
def on_startup():
    init_db()


# ===== API Endpoints =====

@app.get("/")
def root():
    return {"message": "Papal Conquest API", "version": "1.0.0"}


@app.get("/maps")
def get_maps():
    """List available maps (id, display_name). Use map_id in POST /games."""
    return {"maps": list_maps()}


# ----- Games (create, list, fetch, delete) -----

@app.post("/games")
def create_game(request: CreateGameRequest, db: Session = Depends(get_db)):
    """Create and initialize a new game. Returns game_id and the initial state."""
    state = GameState()
    action = initialize_game(request.player_names, request.map_id)
    validation = validate_action(state, action)
    if not validation.valid:
        raise HTTPException(status_code=400, detail=validation.error)
    state, events = apply_action(state, action)

    game_id = str(uuid.uuid4())
    row = GameModel(
        id=game_id,
        name=request.name,
        map_id=state.map_id,
        game_state=json.dumps(state.to_dict()),
    )
    db.add(row)
    db.commit()
    logger.info("Created game %s (%s) with %d players", game_id, request.name, len(state.players))
    return {
        "game_id": game_id,
        "name": request.name,
        "state": state_for_response(state),
        "events": [e.to_dict() for e in events],
    }


@app.get("/games")
def list_games(db: Session = Depends(get_db)):
    """List stored games, most recently updated first."""
    out = []
    for row in db.query(GameModel).order_by(GameModel.updated_at.desc()).all():
        try:
            summary = get_game_summary(GameState.from_dict(json.loads(row.game_state)))
        except (TypeError, json.JSONDecodeError):
            summary = None
        out.append({
            "id": row.id,
            "name": row.name,
            "map_id": row.map_id,
            "created_at": row.created_at.isoformat() if row.created_at else None,
            "updated_at": row.updated_at.isoformat() if row.updated_at else None,
            "summary": summary,
        })
    return {"games": out}


@app.get("/games/{game_id}")
def get_game_state(game_id: str, db: Session = Depends(get_db)):
    """Get current game state."""
    state = get_game(game_id, db)
    return {"game_id": game_id, "state": state_for_response(state)}


@app.get("/games/{game_id}/invariants")
def get_game_invariants(game_id: str, db: Session = Depends(get_db)):
    """Report any broken cross-reference invariants (empty list = consistent)."""
    problems = check_invariants(get_game(game_id, db))
    return {"game_id": game_id, "consistent": not problems, "problems": problems}


@app.delete("/games/{game_id}")
def delete_game(game_id: str, db: Session = Depends(get_db)):
    """Delete a game."""
    row = db.query(GameModel).filter(GameModel.id == game_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Game not found")
    db.delete(row)
    db.commit()
    with _locks_guard:
        _locks.pop(game_id, None)
    return {"message": f"Game {game_id} deleted"}


# ----- Actions -----

@app.post("/games/{game_id}/elect-pope")
def do_elect_pope(game_id: str, db: Session = Depends(get_db)):
    return _dispatch(game_id, elect_pope(), db)


@app.post("/games/{game_id}/advance-day")
def do_advance_day(game_id: str, db: Session = Depends(get_db)):
    """Collect income, resolve ongoing wars, start the next day and re-elect the Pope."""
    return _dispatch(game_id, advance_day(), db)


@app.post("/games/{game_id}/claim")
def do_claim(game_id: str, request: ClaimRequest, db: Session = Depends(get_db)):
    return _dispatch(game_id, claim_province(request.player_id, request.province_id), db)


@app.post("/games/{game_id}/declare-war")
def do_declare_war(game_id: str, request: DeclareWarRequest, db: Session = Depends(get_db)):
    action = declare_war(
        request.attacker_id,
        request.defender_id,
        request.target_province_id,
        request.troops,
    )
    return _dispatch(game_id, action, db)


@app.post("/games/{game_id}/wars/{war_id}/resolve")
def do_resolve_war(game_id: str, war_id: str, db: Session = Depends(get_db)):
    return _dispatch(game_id, resolve_war(war_id), db)


@app.post("/games/{game_id}/alliances")
def do_form_alliance(game_id: str, request: FormAllianceRequest, db: Session = Depends(get_db)):
    action = form_alliance(request.player_id, request.target_player_id, request.alliance_name)
    return _dispatch(game_id, action, db)


@app.post("/games/{game_id}/alliances/{alliance_id}/break")
def do_break_alliance(
    game_id: str,
    alliance_id: str,
    request: BreakAllianceRequest,
    db: Session = Depends(get_db),
):
    return _dispatch(game_id, break_alliance(request.player_id, alliance_id), db)


@app.post("/games/{game_id}/trades")
def do_trade(game_id: str, request: TradeRequest, db: Session = Depends(get_db)):
    action = create_trade_deal(
        request.from_player_id,
        request.to_player_id,
        request.resources,
        request.duration,
    )
    return _dispatch(game_id, action, db)


@app.post("/games/{game_id}/papal-action")
def do_papal_action(game_id: str, request: PapalActionRequest, db: Session = Depends(get_db)):
    action = use_papal_action(
        request.type,
        target_player_ids=request.target_player_ids,
        target_province_id=request.target_province_id,
        description=request.description,
        player_id=request.player_id,
    )
    return _dispatch(game_id, action, db)


@app.post("/games/{game_id}/recruit")
def do_recruit(game_id: str, request: RecruitRequest, db: Session = Depends(get_db)):
    return _dispatch(game_id, recruit_troops(request.player_id, request.province_id, request.amount), db)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
