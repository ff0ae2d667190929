"""SQLAlchemy tables backing the game store.

Enum-valued columns hold the enum's string value. Uniqueness the game rules
depend on lives here as constraints so concurrent writers cannot break it.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from game.rules import DEFAULT_SHIELD_THRESHOLD, GameStatus, RoundStatus, VoteKind


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


_ACTIVE = text("status = 'active'")


class Base(DeclarativeBase):
    pass


class GameRow(Base):
    __tablename__ = "games"
    __table_args__ = (
        # At most one active game system-wide
        Index("uq_games_single_active", "status", unique=True, sqlite_where=_ACTIVE, postgresql_where=_ACTIVE),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=GameStatus.PENDING.value)
    host: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    cur_round_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_revealed_round: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    roles_revealed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    kitchen_signal_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    minigame_signal_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shield_points_threshold: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_SHIELD_THRESHOLD
    )


class RoundRow(Base):
    __tablename__ = "game_rounds"
    __table_args__ = (
        UniqueConstraint("game_id", "round", name="uq_game_rounds_number"),
        # At most one active round per game
        Index("uq_game_rounds_one_active", "game_id", unique=True, sqlite_where=_ACTIVE, postgresql_where=_ACTIVE),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    game_id: Mapped[str] = mapped_column(String(36), ForeignKey("games.id"), nullable=False, index=True)
    round: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=RoundStatus.ACTIVE.value)
    winning_group_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    question: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)


class PlayerRow(Base):
    __tablename__ = "players"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    game_id: Mapped[str] = mapped_column(String(36), ForeignKey("games.id"), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    headshot_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    eliminated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    role: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    has_shield: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class VoteRow(Base):
    __tablename__ = "votes"
    __table_args__ = (UniqueConstraint("round_id", "voter_id", name="uq_votes_round_voter"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    round_id: Mapped[str] = mapped_column(String(36), ForeignKey("game_rounds.id"), nullable=False, index=True)
    voter_id: Mapped[str] = mapped_column(String(64), ForeignKey("players.id"), nullable=False)
    target_id: Mapped[str] = mapped_column(String(64), ForeignKey("players.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default=VoteKind.STANDARD.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class EndgameVoteRow(Base):
    __tablename__ = "endgame_votes"
    __table_args__ = (UniqueConstraint("round_id", "voter_id", name="uq_endgame_votes_round_voter"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    game_id: Mapped[str] = mapped_column(String(36), ForeignKey("games.id"), nullable=False)
    round_id: Mapped[str] = mapped_column(String(36), ForeignKey("game_rounds.id"), nullable=False, index=True)
    voter_id: Mapped[str] = mapped_column(String(64), ForeignKey("players.id"), nullable=False)
    all_traitors_found: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class MinigameGroupRow(Base):
    __tablename__ = "minigame_groups"
    __table_args__ = (UniqueConstraint("round_id", "player_id", name="uq_minigame_groups_round_player"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    game_id: Mapped[str] = mapped_column(String(36), ForeignKey("games.id"), nullable=False)
    round_id: Mapped[str] = mapped_column(String(36), ForeignKey("game_rounds.id"), nullable=False, index=True)
    player_id: Mapped[str] = mapped_column(String(64), ForeignKey("players.id"), nullable=False)
    group_index: Mapped[int] = mapped_column(Integer, nullable=False)
