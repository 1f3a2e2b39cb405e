"""
Core data models for the Trivia Quiz Bot.
"""
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple


QUESTION_TYPES = ("multiple", "boolean")
DIFFICULTIES = ("easy", "medium", "hard")

MIN_QUESTION_COUNT = 1
MAX_QUESTION_COUNT = 50
DEFAULT_COUNTDOWN_DURATION = 60


class _Unanswered:
    """Marker stored in an answer slot that holds no answer yet."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNANSWERED"

    def __bool__(self) -> bool:
        return False


# Never equal to any answer string, including "".
UNANSWERED = _Unanswered()


class SessionPhase(Enum):
    """Lifecycle phases of a quiz session."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"
    SUBMITTED = "submitted"


class SubmissionTrigger(Enum):
    """What caused a session to be scored."""
    MANUAL = "manual"
    TIMEOUT = "timeout"


class SessionErrorKind(Enum):
    """Rejected or failed session operations."""
    CONFIG_INCOMPLETE = "config_incomplete"
    FETCH_FAILED = "fetch_failed"
    INVALID_INDEX = "invalid_index"


class SessionEvent(Enum):
    """Notifications delivered to session listeners."""
    PHASE_CHANGED = "phase_changed"
    ANSWER_SELECTED = "answer_selected"
    TICK = "tick"


@dataclass(frozen=True)
class Question:
    """A single trivia question as delivered by the remote source (text still HTML-encoded)."""
    category: str
    type: str
    difficulty: str
    question: str
    correct_answer: str
    incorrect_answers: Tuple[str, ...]

    def __post_init__(self):
        if not self.incorrect_answers:
            raise ValueError("A question needs at least one incorrect answer")
        # Accept lists from JSON but keep the value immutable
        object.__setattr__(self, 'incorrect_answers', tuple(self.incorrect_answers))

    @property
    def answers(self) -> List[str]:
        """Correct answer followed by the incorrect ones, unshuffled."""
        return [self.correct_answer, *self.incorrect_answers]


@dataclass(frozen=True)
class TriviaCategory:
    """A category entry from the remote category list."""
    id: int
    name: str


FALLBACK_CATEGORIES: Tuple[TriviaCategory, ...] = (
    TriviaCategory(id=9, name="General Knowledge"),
    TriviaCategory(id=18, name="Science: Computers"),
    TriviaCategory(id=22, name="Geography"),
)


@dataclass
class SessionConfig:
    """Parameters for a single quiz session."""
    question_count: int = 10
    category: Optional[int] = None
    difficulty: Optional[str] = None
    type: Optional[str] = None
    countdown_duration: int = DEFAULT_COUNTDOWN_DURATION

    def is_complete(self) -> bool:
        """True once category, difficulty and type have all been chosen."""
        return (
            self.category is not None
            and bool(self.difficulty)
            and bool(self.type)
        )


@dataclass(frozen=True)
class QuestionResult:
    """Outcome of one question after the session was submitted."""
    index: int
    question: Question
    given_answer: object
    is_correct: bool

    @property
    def was_answered(self) -> bool:
        return self.given_answer is not UNANSWERED

