"""
Quiz session engine.

A QuizSession owns one play-through: it loads questions from a provider,
records one answer per question, counts down remaining time and scores the
answers exactly once, either on manual submit or when the countdown runs out.

Phases: IDLE -> LOADING -> (READY | FAILED) -> SUBMITTED.
FAILED may be restarted by the caller. SUBMITTED is terminal.
"""
import asyncio
import inspect
import logging
import time
from typing import Any, Callable, List, Optional, Protocol, Sequence, Set

from .countdown import CountdownClock
from .models import (
    UNANSWERED,
    Question,
    QuestionResult,
    SessionConfig,
    SessionErrorKind,
    SessionEvent,
    SessionPhase,
    SubmissionTrigger,
)
from .question_provider import FetchError

logger = logging.getLogger(__name__)

Listener = Callable[["QuizSession", SessionEvent], Any]


class QuestionSource(Protocol):
    """Anything that can asynchronously produce questions for a config."""

    async def fetch(self, config: SessionConfig) -> List[Question]:
        ...


class QuizSession:
    """State machine for a single timed quiz."""

    def __init__(
        self,
        provider: QuestionSource,
        clock: Optional[CountdownClock] = None,
        session_id: str = "session",
    ):
        """
        Initialize an idle session.

        Args:
            provider: Source of questions
            clock: Optional countdown clock started on READY and stopped on SUBMITTED.
                Without one the caller drives tick() directly.
            session_id: Label used in log records
        """
        self.session_id = session_id
        self._provider = provider
        self._clock = clock

        self._phase = SessionPhase.IDLE
        self._config: Optional[SessionConfig] = None
        self._questions: List[Question] = []
        self._user_answers: Optional[list] = None
        self._remaining_time = 0
        self._score: Optional[int] = None
        self._error_message: Optional[str] = None
        self._last_error: Optional[SessionErrorKind] = None
        self._submission_trigger: Optional[SubmissionTrigger] = None

        self._load_token = 0
        self._disposed = False
        self._listeners: List[Listener] = []
        self._listener_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def config(self) -> Optional[SessionConfig]:
        return self._config

    @property
    def questions(self) -> Sequence[Question]:
        return tuple(self._questions)

    @property
    def user_answers(self) -> Optional[Sequence[object]]:
        """Answer slots, or None when no questions were ever loaded."""
        if self._user_answers is None:
            return None
        return tuple(self._user_answers)

    @property
    def remaining_time(self) -> int:
        return self._remaining_time

    @property
    def score(self) -> Optional[int]:
        """Final score; None until the session has been submitted."""
        return self._score

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def last_error(self) -> Optional[SessionErrorKind]:
        """Kind of the most recent rejected or failed operation."""
        return self._last_error

    @property
    def submission_trigger(self) -> Optional[SubmissionTrigger]:
        return self._submission_trigger

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def answered_count(self) -> int:
        if self._user_answers is None:
            return 0
        return sum(1 for answer in self._user_answers if answer is not UNANSWERED)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for state-change notifications.

        The listener is called as listener(session, event). Coroutine results are
        scheduled on the running event loop.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(self, event)
                if inspect.iscoroutine(result):
                    self._schedule(result, event)
            except Exception as e:
                logger.error(
                    f"Session {self.session_id}: listener failed on {event.value}: {e}",
                    exc_info=True
                )

    def _schedule(self, coroutine, event: SessionEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coroutine.close()
            logger.warning(
                f"Session {self.session_id}: async listener for {event.value} dropped, no running event loop"
            )
            return
        task = loop.create_task(coroutine)
        self._listener_tasks.add(task)
        task.add_done_callback(lambda finished: self._on_listener_done(finished, event))

    def _on_listener_done(self, task: asyncio.Task, event: SessionEvent) -> None:
        self._listener_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Session {self.session_id}: async listener failed on {event.value}: {error}",
                exc_info=error
            )

    def _set_phase(self, new_phase: SessionPhase, reason: str) -> None:
        old_phase = self._phase
        self._phase = new_phase
        logger.info(
            f"Session {self.session_id}: {old_phase.value} -> {new_phase.value} ({reason})",
            extra={
                'event_type': 'session_phase_transition',
                'session_id': self.session_id,
                'from_phase': old_phase.value,
                'to_phase': new_phase.value,
                'reason': reason,
                'timestamp': time.time()
            }
        )
        self._notify(SessionEvent.PHASE_CHANGED)

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    async def start(self, config: SessionConfig) -> bool:
        """
        Load questions for config and enter READY.

        Ignored when the session is disposed, the config is incomplete, a load
        is already in flight, or the session already holds questions.

        Returns:
            True if the session reached READY
        """
        if self._disposed:
            logger.debug(f"Session {self.session_id}: start ignored, session disposed")
            return False

        if config is None or not config.is_complete():
            self._last_error = SessionErrorKind.CONFIG_INCOMPLETE
            logger.warning(
                f"Session {self.session_id}: start ignored, configuration incomplete",
                extra={
                    'event_type': 'session_start_rejected',
                    'session_id': self.session_id,
                    'reason': SessionErrorKind.CONFIG_INCOMPLETE.value,
                    'timestamp': time.time()
                }
            )
            return False

        if self._phase not in (SessionPhase.IDLE, SessionPhase.FAILED):
            logger.warning(
                f"Session {self.session_id}: start rejected in phase {self._phase.value}",
                extra={
                    'event_type': 'session_start_rejected',
                    'session_id': self.session_id,
                    'reason': f"phase_{self._phase.value}",
                    'timestamp': time.time()
                }
            )
            return False

        self._load_token += 1
        token = self._load_token
        self._config = config
        self._questions = []
        self._user_answers = None
        self._error_message = None
        self._last_error = None
        self._set_phase(SessionPhase.LOADING, "start requested")

        try:
            questions = await self._provider.fetch(config)
            error_message = None
        except FetchError as e:
            questions = []
            error_message = e.message
        except asyncio.CancelledError:
            if self._is_current_load(token):
                self._fail("Question loading was cancelled")
            raise

        if not self._is_current_load(token):
            logger.info(
                f"Session {self.session_id}: discarding stale fetch result",
                extra={
                    'event_type': 'session_fetch_discarded',
                    'session_id': self.session_id,
                    'disposed': self._disposed,
                    'timestamp': time.time()
                }
            )
            return False

        if error_message is not None:
            self._fail(error_message)
            return False
        if not questions:
            self._fail("No questions were returned")
            return False

        self._questions = list(questions)
        self._user_answers = [UNANSWERED] * len(self._questions)
        self._remaining_time = config.countdown_duration
        self._score = None
        self._submission_trigger = None

        if len(self._questions) < config.question_count:
            logger.info(
                f"Session {self.session_id}: provider returned {len(self._questions)} "
                f"of {config.question_count} requested questions"
            )

        self._set_phase(SessionPhase.READY, f"{len(self._questions)} questions loaded")
        self.start_clock()
        return True

    def select_answer(self, question_index: int, answer: str) -> bool:
        """
        Record answer for the question at question_index.

        Out-of-range indexes and calls outside READY change nothing.

        Returns:
            True if the recorded answer is the correct one
        """
        if self._disposed or self._phase != SessionPhase.READY:
            return False

        if not 0 <= question_index < len(self._questions):
            logger.debug(
                f"Session {self.session_id}: ignoring answer for out-of-range index {question_index}",
                extra={
                    'event_type': 'session_answer_rejected',
                    'session_id': self.session_id,
                    'reason': SessionErrorKind.INVALID_INDEX.value,
                    'question_index': question_index,
                    'timestamp': time.time()
                }
            )
            return False

        self._user_answers[question_index] = answer
        self._notify(SessionEvent.ANSWER_SELECTED)
        return self._questions[question_index].correct_answer == answer

    def tick(self) -> None:
        """Advance the countdown by one unit, submitting when it reaches zero."""
        if self._disposed or self._phase != SessionPhase.READY:
            return

        self._remaining_time = max(0, self._remaining_time - 1)
        self._notify(SessionEvent.TICK)

        if self._remaining_time == 0:
            self.submit(trigger=SubmissionTrigger.TIMEOUT)

    def submit(self, trigger: SubmissionTrigger = SubmissionTrigger.MANUAL) -> int:
        """
        Score the session and freeze it.

        A second call returns the existing score without re-scoring.

        Returns:
            Number of questions answered correctly
        """
        if self._phase == SessionPhase.SUBMITTED:
            return self._score
        if self._disposed or self._phase != SessionPhase.READY:
            return 0

        self.stop_clock(reason=f"submitted_{trigger.value}")

        self._score = sum(
            1 for question, answer in zip(self._questions, self._user_answers)
            if answer is not UNANSWERED and answer == question.correct_answer
        )
        self._user_answers = tuple(self._user_answers)
        self._submission_trigger = trigger

        logger.info(
            f"Session {self.session_id}: scored {self._score}/{len(self._questions)} ({trigger.value})",
            extra={
                'event_type': 'session_submitted',
                'session_id': self.session_id,
                'score': self._score,
                'total_questions': len(self._questions),
                'trigger': trigger.value,
                'timestamp': time.time()
            }
        )
        self._set_phase(SessionPhase.SUBMITTED, f"{trigger.value} submit")
        return self._score

    def dispose(self) -> None:
        """Stop the clock and ignore any further intents or late fetch results."""
        if self._disposed:
            return
        self._disposed = True
        self.stop_clock(reason="disposed")
        self._listeners.clear()
        for task in list(self._listener_tasks):
            task.cancel()
        logger.debug(f"Session {self.session_id}: disposed in phase {self._phase.value}")

    # ------------------------------------------------------------------
    # Clock hooks
    # ------------------------------------------------------------------

    def start_clock(self) -> bool:
        """Start the attached clock if the session is playable."""
        if self._clock is None or self._disposed or self._phase != SessionPhase.READY:
            return False
        self._clock.start(self.tick)
        return True

    def stop_clock(self, reason: str = "stopped") -> None:
        if self._clock is not None:
            self._clock.stop(reason=reason)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def results(self) -> List[QuestionResult]:
        """Per-question outcomes; empty until the session has been submitted."""
        if self._phase != SessionPhase.SUBMITTED:
            return []
        return [
            QuestionResult(
                index=index,
                question=question,
                given_answer=answer,
                is_correct=answer is not UNANSWERED and answer == question.correct_answer,
            )
            for index, (question, answer) in enumerate(zip(self._questions, self._user_answers))
        ]

    def _is_current_load(self, token: int) -> bool:
        return not self._disposed and token == self._load_token and self._phase == SessionPhase.LOADING

    def _fail(self, message: str) -> None:
        self._questions = []
        self._user_answers = None
        self._error_message = message
        self._last_error = SessionErrorKind.FETCH_FAILED
        self._set_phase(SessionPhase.FAILED, message)
