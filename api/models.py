"""Pydantic request/response models for the API."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from game.phase_watcher import GameSignals, Nudge, PhaseCursor
from game.rules import MAX_MINIGAME_GROUPS, MIN_MINIGAME_GROUPS, Role, RoundType
from game.state import EndgameTally, Game, Outcome, Player, Round, RoundTally, TallyEntry

# Validation constants (no magic numbers in validation)
MAX_GAME_NAME_LENGTH = 200
MAX_PLAYER_NAME_LENGTH = 100
MAX_HEADSHOT_URL_LENGTH = 500


# --- requests --------------------------------------------------------------


class GameCreateRequest(BaseModel):
    """Body for POST /games."""

    name: str = Field(..., min_length=1, max_length=MAX_GAME_NAME_LENGTH)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()


class RoundStartRequest(BaseModel):
    """Body for POST /games/{id}/rounds. Minigames use POST /games/{id}/minigame."""

    type: RoundType

    @field_validator("type")
    @classmethod
    def not_minigame(cls, v: RoundType) -> RoundType:
        if v == RoundType.MINIGAME:
            raise ValueError("start minigames with POST /games/{id}/minigame")
        return v


class MinigameStartRequest(BaseModel):
    """Body for POST /games/{id}/minigame."""

    group_count: int = Field(..., ge=MIN_MINIGAME_GROUPS, le=MAX_MINIGAME_GROUPS)
    balanced: bool = Field(default=True, description="Round-robin groups; if false, sizes is required")
    sizes: list[int] | None = Field(default=None, description="Group sizes in group order when balanced is false")

    @model_validator(mode="after")
    def sizes_match_mode(self) -> "MinigameStartRequest":
        if not self.balanced:
            if self.sizes is None:
                raise ValueError("sizes is required when balanced is false")
            if len(self.sizes) != self.group_count:
                raise ValueError(f"sizes length ({len(self.sizes)}) must equal group_count ({self.group_count})")
        return self


class WinningGroupRequest(BaseModel):
    group_index: int = Field(..., ge=1, description="1-based group number")


class PlayerTargetRequest(BaseModel):
    """Body for shield and eliminate actions."""

    player_id: str = Field(..., min_length=1)


class JoinRequest(BaseModel):
    """Body for POST /players: onboarding into the active game."""

    full_name: str = Field(..., min_length=1, max_length=MAX_PLAYER_NAME_LENGTH)
    headshot_url: str | None = Field(default=None, max_length=MAX_HEADSHOT_URL_LENGTH)

    @field_validator("full_name")
    @classmethod
    def full_name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("full_name must not be blank")
        return v.strip()


class VoteRequest(BaseModel):
    """Body for POST /play/votes. Targeted rounds take target_id; endgame votes take all_traitors_found."""

    round_id: str = Field(..., min_length=1)
    target_id: str | None = None
    all_traitors_found: bool | None = None


class CursorBody(BaseModel):
    """A client's last seen signal values. Omitted fields mean never seen."""

    round_number: int | None = None
    revealed_round: int | None = None
    roles_revealed: bool = False
    kitchen_version: int | None = None
    minigame_version: int | None = None

    def to_cursor(self) -> PhaseCursor:
        return PhaseCursor(**self.model_dump())

    @classmethod
    def from_cursor(cls, cursor: PhaseCursor) -> "CursorBody":
        return cls(
            round_number=cursor.round_number,
            revealed_round=cursor.revealed_round,
            roles_revealed=cursor.roles_revealed,
            kitchen_version=cursor.kitchen_version,
            minigame_version=cursor.minigame_version,
        )


# --- responses -------------------------------------------------------------


class GamePublic(BaseModel):
    id: str
    name: str
    status: str
    host: str | None = None
    created_at: datetime | None = None
    cur_round_number: int | None = None
    last_revealed_round: int | None = None
    roles_revealed: bool = False
    kitchen_signal_version: int = 0
    minigame_signal_version: int = 0
    shield_points_threshold: int

    @classmethod
    def from_game(cls, game: Game) -> "GamePublic":
        return cls(
            id=game.id,
            name=game.name,
            status=game.status.value,
            host=game.host,
            created_at=game.created_at,
            cur_round_number=game.cur_round_number,
            last_revealed_round=game.last_revealed_round,
            roles_revealed=game.roles_revealed,
            kitchen_signal_version=game.kitchen_signal_version,
            minigame_signal_version=game.minigame_signal_version,
            shield_points_threshold=game.shield_points_threshold,
        )


class RoundPublic(BaseModel):
    id: str
    game_id: str
    round: int
    type: str
    status: str
    winning_group_index: int | None = None
    question: str | None = Field(default=None, description="Cover question shown to players during a killing vote")

    @classmethod
    def from_round(cls, rnd: Round) -> "RoundPublic":
        return cls(
            id=rnd.id,
            game_id=rnd.game_id,
            round=rnd.round,
            type=rnd.type.value,
            status=rnd.status.value,
            winning_group_index=rnd.winning_group_index,
            question=rnd.question,
        )


class PlayerPublic(BaseModel):
    """Player as shown to other players: no role."""

    id: str
    full_name: str
    headshot_url: str | None = None
    eliminated: bool
    has_shield: bool = False

    @classmethod
    def from_player(cls, player: Player) -> "PlayerPublic":
        return cls(
            id=player.id,
            full_name=player.full_name,
            headshot_url=player.headshot_url,
            eliminated=player.eliminated,
            has_shield=player.has_shield,
        )


class PlayerPrivate(PlayerPublic):
    """Player as shown to the host or to the player themself: includes the role."""

    game_id: str
    role: str | None = None

    @classmethod
    def from_player(cls, player: Player) -> "PlayerPrivate":
        return cls(
            id=player.id,
            game_id=player.game_id,
            full_name=player.full_name,
            headshot_url=player.headshot_url,
            eliminated=player.eliminated,
            has_shield=player.has_shield,
            role=player.role.value if player.role else None,
        )


class TallyEntryPublic(BaseModel):
    target_id: str
    votes: int
    full_name: str | None = None
    eliminated: bool = False

    @classmethod
    def from_entry(cls, entry: TallyEntry) -> "TallyEntryPublic":
        return cls(
            target_id=entry.target_id,
            votes=entry.votes,
            full_name=entry.full_name,
            eliminated=entry.eliminated,
        )


class RoundTallyPublic(BaseModel):
    """Targeted round results. kill is only set for killing votes and is never merged into standard."""

    round_type: str
    standard: list[TallyEntryPublic]
    kill: list[TallyEntryPublic] | None = None

    @classmethod
    def from_tally(cls, tally: RoundTally) -> "RoundTallyPublic":
        return cls(
            round_type=tally.round_type.value,
            standard=[TallyEntryPublic.from_entry(e) for e in tally.standard],
            kill=[TallyEntryPublic.from_entry(e) for e in tally.kill] if tally.kill is not None else None,
        )


class EndgameTallyPublic(BaseModel):
    yes: int
    no: int
    total: int

    @classmethod
    def from_tally(cls, tally: EndgameTally) -> "EndgameTallyPublic":
        return cls(yes=tally.yes, no=tally.no, total=tally.total)


class RoundResultsResponse(BaseModel):
    round: RoundPublic
    tally: RoundTallyPublic | None = None
    endgame: EndgameTallyPublic | None = None


class OutcomePublic(BaseModel):
    message: str
    winner: str | None = Field(default=None, description="faithful or traitors when the game is over")
    game_over: bool = False

    @classmethod
    def from_outcome(cls, outcome: Outcome | None) -> "OutcomePublic | None":
        if outcome is None:
            return None
        return cls(
            message=outcome.message,
            winner=outcome.winner.value if outcome.winner else None,
            game_over=outcome.game_over,
        )


class RoundClosedResponse(BaseModel):
    round: RoundPublic
    outcome: OutcomePublic | None = None


class WinCheckResponse(BaseModel):
    outcome: OutcomePublic | None = Field(default=None, description="Null while the game goes on")


class MinigameStartResponse(BaseModel):
    round: RoundPublic
    groups: list[list[str]] = Field(..., description="groups[i] holds the player ids of group i + 1")
    signal_version: int


class RolesAssignedResponse(BaseModel):
    traitors: int
    faithful: int

    @classmethod
    def from_roles(cls, roles: dict[str, Role]) -> "RolesAssignedResponse":
        traitors = sum(1 for r in roles.values() if r == Role.TRAITOR)
        return cls(traitors=traitors, faithful=len(roles) - traitors)


class SignalResponse(BaseModel):
    version: int


class AlreadyDoneResponse(BaseModel):
    """Returned with 200 when the operation had already happened."""

    status: str = "already_done"
    message: str


class VoteRecordedResponse(BaseModel):
    status: str = "recorded"
    kind: str | None = Field(default=None, description="standard or kill for targeted ballots")


class VotingScreenResponse(BaseModel):
    round: RoundPublic | None = None
    question: str | None = Field(default=None, description="Question to answer with the vote, killing votes only")
    targets: list[PlayerPublic] = Field(default_factory=list)
    shield_blocks_target: bool = Field(default=False, description="Shielded targets cannot be chosen")
    has_voted: bool = False
    last_endgame_round: RoundPublic | None = None
    last_endgame_tally: EndgameTallyPublic | None = None


class RevealScreenResponse(BaseModel):
    round: RoundPublic | None = None
    question: str | None = None
    tally: RoundTallyPublic | None = None


class MinigameScreenResponse(BaseModel):
    round: RoundPublic | None = None
    group_index: int | None = None


class SignalsResponse(BaseModel):
    game_id: str
    cur_round_number: int | None = None
    last_revealed_round: int | None = None
    roles_revealed: bool = False
    kitchen_signal_version: int = 0
    minigame_signal_version: int = 0

    @classmethod
    def from_signals(cls, signals: GameSignals) -> "SignalsResponse":
        return cls(
            game_id=signals.game_id,
            cur_round_number=signals.cur_round_number,
            last_revealed_round=signals.last_revealed_round,
            roles_revealed=signals.roles_revealed,
            kitchen_signal_version=signals.kitchen_signal_version,
            minigame_signal_version=signals.minigame_signal_version,
        )


class NudgeResponse(BaseModel):
    channel: str | None = None
    destination: str | None = Field(default=None, description="Client route to navigate to, once")
    cursor: CursorBody

    @classmethod
    def build(cls, nudge: Nudge | None, cursor: PhaseCursor) -> "NudgeResponse":
        return cls(
            channel=nudge.channel.value if nudge else None,
            destination=nudge.destination if nudge else None,
            cursor=CursorBody.from_cursor(cursor),
        )
