"""Game rules and constants for the Traitors host."""

from enum import Enum


class Role(str, Enum):
    """Hidden player roles."""

    TRAITOR = "traitor"
    FAITHFUL = "faithful"


class GameStatus(str, Enum):
    """Lifecycle of a game."""

    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"


class RoundStatus(str, Enum):
    """Lifecycle of a round within a game."""

    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"


class RoundType(str, Enum):
    """Kind of phase a round represents."""

    ROUND_TABLE = "round_table"
    BANISHMENT_VOTE = "banishment_vote"
    BANISHMENT_RESULT = "banishment_result"
    KILLING_VOTE = "killing_vote"
    BREAKFAST = "breakfast"
    MINIGAME = "minigame"
    ENDGAME_VOTE = "endgame_vote"


class VoteKind(str, Enum):
    """Kind of a targeted ballot. Kill ballots are cast by traitors in killing rounds."""

    STANDARD = "standard"
    KILL = "kill"


class Winner(str, Enum):
    """Side that won a finished game."""

    FAITHFUL = "faithful"
    TRAITORS = "traitors"


# Rounds that bump cur_round_number and send players to the voting screen
VOTING_ROUND_TYPES = (RoundType.BANISHMENT_VOTE, RoundType.KILLING_VOTE, RoundType.ENDGAME_VOTE)

# Rounds whose results the host can reveal to players
REVEALABLE_ROUND_TYPES = (RoundType.BANISHMENT_VOTE, RoundType.KILLING_VOTE)

# Number of traitors assigned (capped by the number of active players)
TRAITOR_QUOTA = 3

# Default number of shields that may be held at once in one game
DEFAULT_SHIELD_THRESHOLD = 3

# Minigame group count bounds (inclusive)
MIN_MINIGAME_GROUPS = 2
MAX_MINIGAME_GROUPS = 6

# An endgame vote may only be started once this few players remain
ENDGAME_MAX_LIVING_PLAYERS = 4

# Shown to every player during a killing vote, one per round, so the traitors'
# kill ballots look like any other answer
KILLING_ROUND_QUESTIONS = (
    "Who do you trust the least in this group?",
    "Who would you be most nervous to be left alone with?",
    "Who do you think is hiding the biggest secret?",
    "Who would you least like to share a room with tonight?",
    "Who do you think is playing the most dangerously?",
    "Who would you choose to remove from the game right now?",
    "Who do you trust the most in this group?",
    "Who do you think is the most likely to be a Traitor?",
    "Who would you want on your team in a high-stakes situation?",
    "Who do you think has the best poker face?",
    "Who would you like to get to know better?",
    "Who would you like to see die next?",
)
