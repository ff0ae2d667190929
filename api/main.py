"""FastAPI app: host console and player screens for a Traitors game."""

import logging

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import host_actions, player_actions
from api.config import ACTOR_HEADER, get_cors_origins
from api.game_store import GameStore, get_store
from api.models import (
    AlreadyDoneResponse,
    CursorBody,
    EndgameTallyPublic,
    GameCreateRequest,
    GamePublic,
    JoinRequest,
    MinigameScreenResponse,
    MinigameStartRequest,
    MinigameStartResponse,
    NudgeResponse,
    OutcomePublic,
    PlayerPrivate,
    PlayerPublic,
    PlayerTargetRequest,
    RevealScreenResponse,
    RolesAssignedResponse,
    RoundClosedResponse,
    RoundPublic,
    RoundResultsResponse,
    RoundStartRequest,
    RoundTallyPublic,
    SignalResponse,
    SignalsResponse,
    VoteRecordedResponse,
    VoteRequest,
    VotingScreenResponse,
    WinCheckResponse,
    WinningGroupRequest,
)
from game.errors import (
    ConflictError,
    GameError,
    NotFoundError,
    NotHostError,
    StoreError,
    ValidationError,
)
from game.state import Ballot, EndgameTally

logger = logging.getLogger(__name__)

app = FastAPI(title="Traitors Host API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GameError)
def game_error_handler(request: Request, exc: GameError) -> JSONResponse:
    """Map game errors to HTTP. A conflict means the work was already done and is not a failure."""
    if isinstance(exc, ConflictError):
        return JSONResponse(status_code=200, content=AlreadyDoneResponse(message=exc.message).model_dump())
    if isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, NotHostError):
        status = 403
    elif isinstance(exc, NotFoundError):
        status = 404
    elif isinstance(exc, StoreError):
        status = 503
    else:
        logger.warning("Unmapped game error on %s: %s", request.url.path, exc)
        status = 500
    return JSONResponse(status_code=status, content={"detail": exc.message})


def get_actor_id(x_actor_id: str | None = Header(default=None, alias=ACTOR_HEADER)) -> str:
    """The signed-in user's id, set by the auth layer in front of the API."""
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(401, "Please sign in first.")
    return x_actor_id.strip()


def _closed(closure: host_actions.RoundClosure) -> RoundClosedResponse:
    return RoundClosedResponse(
        round=RoundPublic.from_round(closure.round),
        outcome=OutcomePublic.from_outcome(closure.outcome),
    )


# --- host: games -----------------------------------------------------------


@app.post("/games", response_model=GamePublic, tags=["Host"], summary="Create game")
def create_game(body: GameCreateRequest, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    """Create a game hosted by the caller. New games start pending."""
    return GamePublic.from_game(host_actions.create_game(store, actor, body.name))


@app.get("/games", response_model=list[GamePublic], tags=["Host"], summary="List games")
def list_games(actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    """All games, newest first."""
    return [GamePublic.from_game(g) for g in host_actions.list_games(store)]


@app.get("/games/{game_id}", response_model=GamePublic, tags=["Host"], summary="Get game")
def get_game(game_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    return GamePublic.from_game(host_actions.get_game(store, game_id))


@app.post("/games/{game_id}/activate", response_model=GamePublic, tags=["Host"], summary="Set active game")
def activate_game(game_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    """Make this the single active game; all other games are ended."""
    return GamePublic.from_game(host_actions.set_active(store, actor, game_id))


@app.post("/games/{game_id}/end", response_model=GamePublic, tags=["Host"], summary="End game")
def end_game(game_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    return GamePublic.from_game(host_actions.end_game(store, actor, game_id))


@app.post("/games/{game_id}/kitchen", response_model=SignalResponse, tags=["Host"], summary="Call players to the kitchen")
def call_to_kitchen(game_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    return SignalResponse(version=host_actions.call_to_kitchen(store, actor, game_id))


@app.post("/games/{game_id}/win-check", response_model=WinCheckResponse, tags=["Host"], summary="Check win condition")
def check_win(game_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    """End the game if only traitors or no traitors remain among the living."""
    return WinCheckResponse(outcome=OutcomePublic.from_outcome(host_actions.run_win_check(store, actor, game_id)))


# --- host: rounds ----------------------------------------------------------


@app.get("/games/{game_id}/rounds", response_model=list[RoundPublic], tags=["Rounds"], summary="List rounds")
def list_rounds(game_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    return [RoundPublic.from_round(r) for r in host_actions.list_rounds(store, actor, game_id)]


@app.post("/games/{game_id}/rounds", response_model=RoundPublic, tags=["Rounds"], summary="Start round")
def start_round(
    game_id: str,
    body: RoundStartRequest,
    actor: str = Depends(get_actor_id),
    store: GameStore = Depends(get_store),
):
    """Close the active round (if any) and open a new one of the given type."""
    return RoundPublic.from_round(host_actions.start_round(store, actor, game_id, body.type))


@app.post("/games/{game_id}/endgame-vote", response_model=RoundPublic, tags=["Rounds"], summary="Start end game vote")
def start_endgame_vote(game_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    return RoundPublic.from_round(host_actions.start_endgame_vote(store, actor, game_id))


@app.post(
    "/games/{game_id}/rounds/close-current",
    response_model=RoundClosedResponse,
    tags=["Rounds"],
    summary="Close the active round",
)
def close_current_round(game_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    return _closed(host_actions.close_current_round(store, actor, game_id))


@app.post("/rounds/{round_id}/close", response_model=RoundClosedResponse, tags=["Rounds"], summary="Close round")
def close_round(round_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    """Close a round. Killing votes clear all shields; endgame votes are resolved."""
    return _closed(host_actions.close_round(store, actor, round_id))


@app.post("/games/{game_id}/reveal-results", response_model=RoundPublic, tags=["Rounds"], summary="Reveal latest results")
def reveal_results(game_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    return RoundPublic.from_round(host_actions.reveal_latest_results(store, actor, game_id))


@app.get("/rounds/{round_id}/results", response_model=RoundResultsResponse, tags=["Rounds"], summary="Round results")
def round_results(round_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    result = host_actions.round_results(store, actor, round_id)
    rnd = store.get_round(round_id)
    if isinstance(result, EndgameTally):
        return RoundResultsResponse(round=RoundPublic.from_round(rnd), endgame=EndgameTallyPublic.from_tally(result))
    return RoundResultsResponse(round=RoundPublic.from_round(rnd), tally=RoundTallyPublic.from_tally(result))


@app.post("/games/{game_id}/minigame", response_model=MinigameStartResponse, tags=["Rounds"], summary="Start minigame")
def start_minigame(
    game_id: str,
    body: MinigameStartRequest,
    actor: str = Depends(get_actor_id),
    store: GameStore = Depends(get_store),
):
    """Open a minigame round and split the living players into groups."""
    started = host_actions.start_minigame(
        store, actor, game_id, body.group_count, balanced=body.balanced, sizes=body.sizes
    )
    return MinigameStartResponse(
        round=RoundPublic.from_round(started.round),
        groups=started.groups,
        signal_version=started.signal_version,
    )


@app.post(
    "/rounds/{round_id}/winning-group",
    response_model=RoundPublic,
    tags=["Rounds"],
    summary="Mark minigame winning group",
)
def mark_winning_group(
    round_id: str,
    body: WinningGroupRequest,
    actor: str = Depends(get_actor_id),
    store: GameStore = Depends(get_store),
):
    return RoundPublic.from_round(host_actions.mark_minigame_winning_group(store, actor, round_id, body.group_index))


# --- host: players ---------------------------------------------------------


@app.get("/games/{game_id}/players", response_model=list[PlayerPrivate], tags=["Players"], summary="List players with roles")
def list_players(game_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    return [PlayerPrivate.from_player(p) for p in host_actions.list_players(store, actor, game_id)]


@app.post("/games/{game_id}/roles/assign", response_model=RolesAssignedResponse, tags=["Players"], summary="Assign roles")
def assign_roles(game_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    """Randomly pick up to three traitors among the living players; everyone else is faithful."""
    return RolesAssignedResponse.from_roles(host_actions.assign_roles(store, actor, game_id))


@app.post("/games/{game_id}/roles/clear", response_model=dict, tags=["Players"], summary="Clear roles")
def clear_roles(game_id: str, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    host_actions.clear_roles(store, actor, game_id)
    return {"status": "ok"}


@app.post("/games/{game_id}/eliminate", response_model=WinCheckResponse, tags=["Players"], summary="Eliminate player")
def eliminate_player(
    game_id: str,
    body: PlayerTargetRequest,
    actor: str = Depends(get_actor_id),
    store: GameStore = Depends(get_store),
):
    """Eliminate a player, then run the win check."""
    outcome = host_actions.eliminate_player(store, actor, game_id, body.player_id)
    return WinCheckResponse(outcome=OutcomePublic.from_outcome(outcome))


@app.post("/games/{game_id}/shields", response_model=PlayerPrivate, tags=["Players"], summary="Grant shield")
def grant_shield(
    game_id: str,
    body: PlayerTargetRequest,
    actor: str = Depends(get_actor_id),
    store: GameStore = Depends(get_store),
):
    return PlayerPrivate.from_player(host_actions.grant_shield(store, actor, game_id, body.player_id))


@app.delete("/games/{game_id}/shields/{player_id}", response_model=PlayerPrivate, tags=["Players"], summary="Revoke shield")
def revoke_shield(
    game_id: str,
    player_id: str,
    actor: str = Depends(get_actor_id),
    store: GameStore = Depends(get_store),
):
    return PlayerPrivate.from_player(host_actions.revoke_shield(store, actor, game_id, player_id))


# --- players ---------------------------------------------------------------


@app.post("/players", response_model=PlayerPrivate, tags=["Play"], summary="Join the active game")
def join(body: JoinRequest, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    return PlayerPrivate.from_player(
        player_actions.join_active_game(store, actor, body.full_name, body.headshot_url)
    )


@app.get("/players/me", response_model=PlayerPrivate, tags=["Play"], summary="Own profile and role")
def profile(actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    return PlayerPrivate.from_player(player_actions.get_profile(store, actor))


@app.get("/play/voting", response_model=VotingScreenResponse, tags=["Play"], summary="Voting screen")
def voting_screen(actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    screen = player_actions.voting_screen(store, actor)
    return VotingScreenResponse(
        round=RoundPublic.from_round(screen.round) if screen.round else None,
        question=screen.round.question if screen.round else None,
        targets=[PlayerPublic.from_player(p) for p in screen.targets],
        shield_blocks_target=screen.shield_blocks_target,
        has_voted=screen.has_voted,
        last_endgame_round=RoundPublic.from_round(screen.last_endgame_round) if screen.last_endgame_round else None,
        last_endgame_tally=(
            EndgameTallyPublic.from_tally(screen.last_endgame_tally) if screen.last_endgame_tally else None
        ),
    )


@app.post("/play/votes", response_model=VoteRecordedResponse, tags=["Play"], summary="Cast vote")
def cast_vote(body: VoteRequest, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    """Cast a ballot. A repeated ballot returns status already_done."""
    ballot = player_actions.cast_vote(
        store, actor, body.round_id, target_id=body.target_id, all_traitors_found=body.all_traitors_found
    )
    return VoteRecordedResponse(kind=ballot.kind.value if isinstance(ballot, Ballot) else None)


@app.get("/play/reveal", response_model=RevealScreenResponse, tags=["Play"], summary="Revealed results")
def reveal_screen(actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    screen = player_actions.reveal_screen(store, actor)
    return RevealScreenResponse(
        round=RoundPublic.from_round(screen.round) if screen.round else None,
        question=screen.round.question if screen.round else None,
        tally=RoundTallyPublic.from_tally(screen.tally) if screen.tally else None,
    )


@app.get("/play/minigame", response_model=MinigameScreenResponse, tags=["Play"], summary="Own minigame group")
def minigame_screen(actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    screen = player_actions.minigame_screen(store, actor)
    return MinigameScreenResponse(
        round=RoundPublic.from_round(screen.round) if screen.round else None,
        group_index=screen.group_index,
    )


@app.get("/play/wall", response_model=list[PlayerPublic], tags=["Play"], summary="Player wall")
def player_wall(actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    return [PlayerPublic.from_player(p) for p in player_actions.player_wall(store, actor)]


@app.get("/play/signals", response_model=SignalsResponse, tags=["Play"], summary="Active game signals")
def get_signals(actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    return SignalsResponse.from_signals(player_actions.signals(store))


@app.post("/play/nudge", response_model=NudgeResponse, tags=["Play"], summary="Poll for phase changes")
def poll_nudge(body: CursorBody, actor: str = Depends(get_actor_id), store: GameStore = Depends(get_store)):
    """Post the cursor stored on the client; store the returned cursor and follow destination if set."""
    nudge, cursor = player_actions.nudge(store, body.to_cursor())
    return NudgeResponse.build(nudge, cursor)


@app.get("/health", tags=["System"], summary="Health check")
def health():
    return {"status": "ok"}
