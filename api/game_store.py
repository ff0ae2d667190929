"""Relational game store on SQLAlchemy.

Rows never leave this module: every method returns the typed records of
``game.state``. Writes that must not race (ballot dedup, the shield cap,
round numbering, the single active game/round) are single conditional
statements or single transactions backed by the constraints in
``api.tables``.
"""

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional, Sequence

from sqlalchemy import and_, create_engine, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased, sessionmaker
from sqlalchemy.pool import StaticPool

from api.config import get_database_url, get_sql_echo
from api.tables import (
    Base,
    EndgameVoteRow,
    GameRow,
    MinigameGroupRow,
    PlayerRow,
    RoundRow,
    VoteRow,
)
from game.engine import next_round_number
from game.errors import AlreadyVotedError, ConflictError, StoreError
from game.rules import GameStatus, Role, RoundStatus, RoundType, VoteKind
from game.state import Ballot, EndgameBallot, Game, GroupAssignment, Player, Round

logger = logging.getLogger(__name__)

# Counter columns that may be bumped with bump_signal
SIGNAL_COLUMNS = ("kitchen_signal_version", "minigame_signal_version")


def _to_game(row: GameRow) -> Game:
    return Game(
        id=row.id,
        name=row.name,
        status=GameStatus(row.status),
        host=row.host,
        created_at=row.created_at,
        cur_round_number=row.cur_round_number,
        last_revealed_round=row.last_revealed_round,
        roles_revealed=bool(row.roles_revealed),
        kitchen_signal_version=row.kitchen_signal_version or 0,
        minigame_signal_version=row.minigame_signal_version or 0,
        shield_points_threshold=row.shield_points_threshold,
    )


def _to_round(row: RoundRow) -> Round:
    return Round(
        id=row.id,
        game_id=row.game_id,
        round=row.round,
        type=RoundType(row.type),
        status=RoundStatus(row.status),
        winning_group_index=row.winning_group_index,
        question=row.question,
    )


def _to_player(row: PlayerRow) -> Player:
    return Player(
        id=row.id,
        game_id=row.game_id,
        full_name=row.full_name,
        headshot_url=row.headshot_url,
        eliminated=bool(row.eliminated),
        role=Role(row.role.lower()) if row.role else None,
        has_shield=bool(row.has_shield),
    )


class GameStore:
    """Typed access to games, rounds, players, ballots and minigame groups."""

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        url = url or get_database_url()
        kwargs: dict = {}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees an empty database
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, echo=get_sql_echo() if echo is None else echo, **kwargs)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """One unit of work; commits on success, rolls back on any exception.

        IntegrityError is re-raised as is so callers can turn constraint hits
        into conflicts; other database failures become StoreError.
        """
        session = self._sessions()
        try:
            with session.begin():
                yield session
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.warning("Store call failed: %s", e)
            raise StoreError() from e
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()

    # --- games -------------------------------------------------------------

    def create_game(self, name: str, host: Optional[str]) -> Game:
        with self.transaction() as s:
            row = GameRow(name=name, host=host, status=GameStatus.PENDING.value)
            s.add(row)
            s.flush()
            return _to_game(row)

    def get_game(self, game_id: str) -> Optional[Game]:
        with self.transaction() as s:
            row = s.get(GameRow, game_id)
            return _to_game(row) if row else None

    def list_games(self) -> list[Game]:
        with self.transaction() as s:
            rows = s.scalars(select(GameRow).order_by(GameRow.created_at.desc())).all()
            return [_to_game(r) for r in rows]

    def get_active_game(self) -> Optional[Game]:
        with self.transaction() as s:
            row = s.scalars(
                select(GameRow).where(GameRow.status == GameStatus.ACTIVE.value).limit(1)
            ).first()
            return _to_game(row) if row else None

    def activate_game(self, game_id: str) -> Optional[Game]:
        """End every other game and activate this one, in a single transaction."""
        with self.transaction() as s:
            s.execute(
                update(GameRow)
                .where(GameRow.id != game_id)
                .values(status=GameStatus.ENDED.value)
            )
            # Flush the deactivation before the activation so the single-active index never sees two
            s.flush()
            result = s.execute(
                update(GameRow).where(GameRow.id == game_id).values(status=GameStatus.ACTIVE.value)
            )
            if result.rowcount == 0:
                return None
            return _to_game(s.get(GameRow, game_id, populate_existing=True))

    def set_game_status(self, game_id: str, status: GameStatus) -> None:
        with self.transaction() as s:
            s.execute(update(GameRow).where(GameRow.id == game_id).values(status=status.value))

    def update_game(self, game_id: str, **fields) -> None:
        """Set plain game columns (cur_round_number, last_revealed_round, roles_revealed)."""
        with self.transaction() as s:
            s.execute(update(GameRow).where(GameRow.id == game_id).values(**fields))

    def bump_signal(self, game_id: str, column: str) -> int:
        """Atomically increment a signal counter; returns the new value."""
        if column not in SIGNAL_COLUMNS:
            raise ValueError(f"not a signal column: {column}")
        col = getattr(GameRow, column)
        with self.transaction() as s:
            s.execute(
                update(GameRow)
                .where(GameRow.id == game_id)
                .values({column: func.coalesce(col, 0) + 1})
            )
            return s.scalar(select(col).where(GameRow.id == game_id)) or 0

    # --- rounds ------------------------------------------------------------

    def open_round(self, game_id: str, round_type: RoundType, question: Optional[str] = None) -> Round:
        """
        End the game's active rounds and insert a new active round numbered max + 1,
        in one transaction. A concurrent open that wins the race makes this one fail
        with ConflictError instead of producing a duplicate number or a second active round.
        """
        try:
            with self.transaction() as s:
                s.execute(
                    update(RoundRow)
                    .where(RoundRow.game_id == game_id, RoundRow.status == RoundStatus.ACTIVE.value)
                    .values(status=RoundStatus.ENDED.value)
                )
                numbers = s.scalars(select(RoundRow.round).where(RoundRow.game_id == game_id)).all()
                row = RoundRow(
                    game_id=game_id,
                    round=next_round_number(numbers),
                    type=RoundType(round_type).value,
                    status=RoundStatus.ACTIVE.value,
                    question=question,
                )
                s.add(row)
                s.flush()
                return _to_round(row)
        except IntegrityError as e:
            logger.warning("Round open for game %s lost a race: %s", game_id, e)
            raise ConflictError("Another round was started at the same time. Refresh and try again.") from e

    def end_round(self, round_id: str, winning_group_index: Optional[int] = None) -> Optional[Round]:
        values: dict = {"status": RoundStatus.ENDED.value}
        if winning_group_index is not None:
            values["winning_group_index"] = winning_group_index
        with self.transaction() as s:
            s.execute(update(RoundRow).where(RoundRow.id == round_id).values(**values))
            row = s.get(RoundRow, round_id, populate_existing=True)
            return _to_round(row) if row else None

    def get_round(self, round_id: str) -> Optional[Round]:
        with self.transaction() as s:
            row = s.get(RoundRow, round_id)
            return _to_round(row) if row else None

    def list_rounds(self, game_id: str) -> list[Round]:
        with self.transaction() as s:
            rows = s.scalars(
                select(RoundRow).where(RoundRow.game_id == game_id).order_by(RoundRow.round)
            ).all()
            return [_to_round(r) for r in rows]

    def find_round(
        self,
        game_id: str,
        types: Optional[Iterable[RoundType]] = None,
        status: Optional[RoundStatus] = None,
        number: Optional[int] = None,
    ) -> Optional[Round]:
        """Highest-numbered round of the game matching every given filter."""
        query = select(RoundRow).where(RoundRow.game_id == game_id)
        if types is not None:
            query = query.where(RoundRow.type.in_([RoundType(t).value for t in types]))
        if status is not None:
            query = query.where(RoundRow.status == status.value)
        if number is not None:
            query = query.where(RoundRow.round == number)
        with self.transaction() as s:
            row = s.scalars(query.order_by(RoundRow.round.desc()).limit(1)).first()
            return _to_round(row) if row else None

    # --- players -----------------------------------------------------------

    def upsert_player(
        self,
        player_id: str,
        game_id: str,
        full_name: str,
        headshot_url: Optional[str] = None,
    ) -> Player:
        """
        Create the player in game_id, or update an existing one.
        Moving to another game starts the player fresh; rejoining the same game
        only updates name and portrait, so a host's elimination stands.
        """
        with self.transaction() as s:
            row = s.get(PlayerRow, player_id)
            if row is None:
                row = PlayerRow(id=player_id, game_id=game_id, eliminated=False, has_shield=False)
                s.add(row)
            elif row.game_id != game_id:
                row.game_id = game_id
                row.role = None
                row.has_shield = False
                row.eliminated = False
            row.full_name = full_name
            row.headshot_url = headshot_url
            s.flush()
            return _to_player(row)

    def get_player(self, player_id: str) -> Optional[Player]:
        with self.transaction() as s:
            row = s.get(PlayerRow, player_id)
            return _to_player(row) if row else None

    def list_players(self, game_id: str, eliminated: Optional[bool] = None) -> list[Player]:
        query = select(PlayerRow).where(PlayerRow.game_id == game_id)
        if eliminated is not None:
            query = query.where(PlayerRow.eliminated == eliminated)
        with self.transaction() as s:
            rows = s.scalars(query.order_by(PlayerRow.full_name, PlayerRow.id)).all()
            return [_to_player(r) for r in rows]

    def set_roles(self, game_id: str, roles: dict[str, Role]) -> None:
        with self.transaction() as s:
            for role in Role:
                ids = [pid for pid, r in roles.items() if r == role]
                if ids:
                    s.execute(
                        update(PlayerRow)
                        .where(PlayerRow.game_id == game_id, PlayerRow.id.in_(ids))
                        .values(role=role.value)
                    )

    def clear_roles(self, game_id: str) -> None:
        with self.transaction() as s:
            s.execute(update(PlayerRow).where(PlayerRow.game_id == game_id).values(role=None))

    def set_eliminated(self, game_id: str, player_id: str, eliminated: bool = True) -> bool:
        with self.transaction() as s:
            result = s.execute(
                update(PlayerRow)
                .where(PlayerRow.id == player_id, PlayerRow.game_id == game_id)
                .values(eliminated=eliminated)
            )
            return result.rowcount > 0

    def grant_shield(self, game_id: str, player_id: str, threshold: int) -> bool:
        """
        Give the player a shield only while fewer than threshold players hold one.
        Count and update are one statement, so concurrent grants cannot exceed the cap.
        Returns False when the cap is reached (or the player already holds a shield).
        """
        holder = aliased(PlayerRow)
        holders = (
            select(func.count(holder.id))
            .where(holder.game_id == game_id, holder.has_shield.is_(True))
            .scalar_subquery()
        )
        with self.transaction() as s:
            result = s.execute(
                update(PlayerRow)
                .where(
                    and_(
                        PlayerRow.id == player_id,
                        PlayerRow.game_id == game_id,
                        PlayerRow.has_shield.is_(False),
                        holders < threshold,
                    )
                )
                .values(has_shield=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def revoke_shield(self, game_id: str, player_id: str) -> None:
        with self.transaction() as s:
            s.execute(
                update(PlayerRow)
                .where(PlayerRow.id == player_id, PlayerRow.game_id == game_id)
                .values(has_shield=False)
            )

    def clear_shields(self, game_id: str) -> int:
        with self.transaction() as s:
            result = s.execute(
                update(PlayerRow)
                .where(PlayerRow.game_id == game_id, PlayerRow.has_shield.is_(True))
                .values(has_shield=False)
            )
            return result.rowcount

    # --- ballots -----------------------------------------------------------

    def has_ballot(self, round_id: str, voter_id: str) -> bool:
        with self.transaction() as s:
            for table in (VoteRow, EndgameVoteRow):
                found = s.scalar(
                    select(table.id).where(table.round_id == round_id, table.voter_id == voter_id).limit(1)
                )
                if found is not None:
                    return True
            return False

    def insert_ballot(self, ballot: Ballot) -> None:
        """Insert a targeted ballot. A second ballot for the same voter and round raises AlreadyVotedError."""
        try:
            with self.transaction() as s:
                s.add(
                    VoteRow(
                        round_id=ballot.round_id,
                        voter_id=ballot.voter_id,
                        target_id=ballot.target_id,
                        type=VoteKind(ballot.kind).value,
                    )
                )
        except IntegrityError as e:
            raise AlreadyVotedError() from e

    def insert_endgame_ballot(self, game_id: str, ballot: EndgameBallot) -> None:
        try:
            with self.transaction() as s:
                s.add(
                    EndgameVoteRow(
                        game_id=game_id,
                        round_id=ballot.round_id,
                        voter_id=ballot.voter_id,
                        all_traitors_found=ballot.all_traitors_found,
                    )
                )
        except IntegrityError as e:
            raise AlreadyVotedError(
                "Your response for this end game vote has already been recorded."
            ) from e

    def list_ballots(self, round_id: str) -> list[Ballot]:
        with self.transaction() as s:
            rows = s.scalars(
                select(VoteRow).where(VoteRow.round_id == round_id).order_by(VoteRow.created_at, VoteRow.id)
            ).all()
            return [
                Ballot(round_id=r.round_id, voter_id=r.voter_id, target_id=r.target_id, kind=VoteKind(r.type))
                for r in rows
            ]

    def list_endgame_ballots(self, round_id: str) -> list[EndgameBallot]:
        with self.transaction() as s:
            rows = s.scalars(select(EndgameVoteRow).where(EndgameVoteRow.round_id == round_id)).all()
            return [
                EndgameBallot(round_id=r.round_id, voter_id=r.voter_id, all_traitors_found=bool(r.all_traitors_found))
                for r in rows
            ]

    # --- minigame groups ---------------------------------------------------

    def insert_group_assignments(self, assignments: Sequence[GroupAssignment]) -> None:
        with self.transaction() as s:
            s.add_all(
                MinigameGroupRow(
                    game_id=a.game_id,
                    round_id=a.round_id,
                    player_id=a.player_id,
                    group_index=a.group_index,
                )
                for a in assignments
            )

    def list_group_assignments(self, round_id: str) -> list[GroupAssignment]:
        with self.transaction() as s:
            rows = s.scalars(
                select(MinigameGroupRow)
                .where(MinigameGroupRow.round_id == round_id)
                .order_by(MinigameGroupRow.group_index, MinigameGroupRow.player_id)
            ).all()
            return [
                GroupAssignment(game_id=r.game_id, round_id=r.round_id, player_id=r.player_id, group_index=r.group_index)
                for r in rows
            ]

    def group_exists(self, round_id: str, group_index: int) -> bool:
        with self.transaction() as s:
            found = s.scalar(
                select(MinigameGroupRow.id)
                .where(MinigameGroupRow.round_id == round_id, MinigameGroupRow.group_index == group_index)
                .limit(1)
            )
            return found is not None

    def get_group_assignment(self, round_id: str, player_id: str) -> Optional[GroupAssignment]:
        with self.transaction() as s:
            r = s.scalars(
                select(MinigameGroupRow).where(
                    MinigameGroupRow.round_id == round_id, MinigameGroupRow.player_id == player_id
                )
            ).first()
            if r is None:
                return None
            return GroupAssignment(game_id=r.game_id, round_id=r.round_id, player_id=r.player_id, group_index=r.group_index)


_default_store: Optional[GameStore] = None


def get_store() -> GameStore:
    """Process-wide store built from the environment; FastAPI dependency."""
    global _default_store
    if _default_store is None:
        _default_store = GameStore()
    return _default_store
