"""
Quiz session controller for the Trivia Quiz Bot.
Manages per-channel quiz configuration and quiz sessions.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .category_manager import CategoryManager
from .config_manager import ConfigManager
from .countdown import CountdownClock
from .models import SessionEvent, SessionPhase
from .question_provider import QuestionProvider
from .quiz_session import QuizSession


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class SessionConflictError(QuizControllerError):
    """Raised when attempting to start a quiz while another one is running in the channel."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when attempting to operate on a non-existent session."""
    pass


class InvalidSessionStateError(QuizControllerError):
    """Raised when session is in an invalid state for the requested operation."""
    pass


class ConfigurationIncompleteError(QuizControllerError):
    """Raised when a quiz is started before category, difficulty and type are chosen."""

    def __init__(self, missing_fields: List[str]):
        super().__init__(f"Quiz configuration incomplete, missing: {', '.join(missing_fields)}")
        self.missing_fields = missing_fields


class QuizController:
    """
    Orchestrates quiz sessions across Discord channels.

    Each channel has its own configuration form and at most one quiz session.
    A session that is loading or in play blocks new starts; a failed or
    finished session is replaced (or, when failed, restarted) by the next start.
    """

    ACTIVE_PHASES = (SessionPhase.LOADING, SessionPhase.READY)

    def __init__(
        self,
        provider: QuestionProvider,
        category_manager: CategoryManager,
        quiz_defaults: Optional[Dict[str, Any]] = None,
        tick_interval: float = 1.0,
    ):
        """
        Initialize the quiz controller.

        Args:
            provider: Source of trivia questions
            category_manager: Shared category list
            quiz_defaults: 'quiz' section of config.json applied to every new channel form
            tick_interval: Seconds per countdown unit
        """
        self.logger = logging.getLogger(__name__)
        self.provider = provider
        self.category_manager = category_manager
        self.quiz_defaults = quiz_defaults or {}
        self.tick_interval = tick_interval

        self._sessions: Dict[int, QuizSession] = {}
        self._config_managers: Dict[int, ConfigManager] = {}
        self._session_errors: Dict[int, List[str]] = {}

        self.logger.info("QuizController initialized")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config_manager(self, channel_id: int) -> ConfigManager:
        """Get the channel's configuration form, creating it on first use."""
        config_manager = self._config_managers.get(channel_id)
        if config_manager is None:
            config_manager = ConfigManager(self.quiz_defaults)
            self._config_managers[channel_id] = config_manager
        config_manager.set_available_categories(self.category_manager.get_categories())
        return config_manager

    def refresh_categories(self) -> None:
        """Push the current category list into every channel form."""
        categories = self.category_manager.get_categories()
        for config_manager in self._config_managers.values():
            config_manager.set_available_categories(categories)

    # ------------------------------------------------------------------
    # Session lookup
    # ------------------------------------------------------------------

    def get_session(self, channel_id: int) -> Optional[QuizSession]:
        return self._sessions.get(channel_id)

    def has_active_session(self, channel_id: int) -> bool:
        """
        Check if a channel has a quiz that is loading or in play.

        Args:
            channel_id: Discord channel identifier

        Returns:
            True if channel has active session, False otherwise
        """
        session = self._sessions.get(channel_id)
        return session is not None and session.phase in self.ACTIVE_PHASES

    def get_session_progress(self, channel_id: int) -> Optional[Dict[str, Any]]:
        """
        Get a plain summary of the channel's session.

        Returns:
            Dictionary with session state, or None when the channel has no session
        """
        session = self._sessions.get(channel_id)
        if session is None:
            return None

        return {
            'phase': session.phase.value,
            'total_questions': len(session.questions),
            'answered': session.answered_count,
            'remaining_time': session.remaining_time,
            'score': session.score,
            'error_message': session.error_message,
            'submission_trigger': session.submission_trigger.value if session.submission_trigger else None,
        }

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def start_quiz(
        self,
        channel_id: int,
        listener: Optional[Callable[[QuizSession, SessionEvent], Any]] = None,
    ) -> Dict[str, Any]:
        """
        Start a quiz in a channel using the channel's configuration.

        Args:
            channel_id: Discord channel identifier
            listener: Optional session listener, subscribed when a new session is created

        Returns:
            Dictionary with operation results and error information
        """
        try:
            if self.has_active_session(channel_id):
                raise SessionConflictError(f"Quiz already running in channel {channel_id}")

            config_manager = self.get_config_manager(channel_id)
            config = config_manager.get_session_config()
            if config is None:
                raise ConfigurationIncompleteError(config_manager.get_missing_fields())

            session = self._sessions.get(channel_id)
            if session is None or session.phase != SessionPhase.FAILED:
                session = self._create_session(channel_id, listener)
            else:
                self.logger.info(f"Retrying failed session for channel {channel_id}")

            ready = await session.start(config)

            if session.is_disposed or self._sessions.get(channel_id) is not session:
                raise InvalidSessionStateError("Quiz was stopped while questions were loading")

            if not ready:
                self._record_error(channel_id, f"start_quiz: {session.error_message}")
                return {
                    'success': False,
                    'error': session.error_message,
                    'operation': 'start_quiz',
                    'user_message': f"❌ Could not load questions: {session.error_message}",
                    'session_info': self.get_session_progress(channel_id)
                }

            self._cleanup_session_errors(channel_id)
            self.logger.info(
                f"Started quiz for channel {channel_id}: {len(session.questions)} questions",
                extra={
                    'event_type': 'quiz_started',
                    'channel_id': channel_id,
                    'question_count': len(session.questions),
                    'category': config.category,
                    'difficulty': config.difficulty,
                    'timestamp': time.time()
                }
            )
            return {
                'success': True,
                'message': f"Quiz started with {len(session.questions)} questions",
                'session_info': self.get_session_progress(channel_id)
            }

        except Exception as e:
            return self._handle_session_error(channel_id, e, "start_quiz")

    def select_answer(self, channel_id: int, question_index: int, answer: str) -> Dict[str, Any]:
        """
        Record an answer in the channel's session.

        Returns:
            Dictionary with success flag and whether the answer is correct
        """
        session = self._sessions.get(channel_id)
        if session is None or session.phase != SessionPhase.READY:
            return {
                'success': False,
                'error': f"No quiz in play in channel {channel_id}",
                'user_message': "❌ There is no quiz in play. Start one with `/start`."
            }

        if not 0 <= question_index < len(session.questions):
            session.select_answer(question_index, answer)
            return {
                'success': False,
                'error': f"Question index {question_index} out of range",
                'user_message': "❌ That question does not exist."
            }

        is_correct = session.select_answer(question_index, answer)
        return {
            'success': True,
            'is_correct': is_correct,
            'answered': session.answered_count,
            'total_questions': len(session.questions)
        }

    def submit_quiz(self, channel_id: int, allow_partial: bool = False) -> Dict[str, Any]:
        """
        Submit the channel's quiz for scoring.

        Args:
            channel_id: Discord channel identifier
            allow_partial: Score even if some questions are unanswered

        Returns:
            Dictionary with the score or error information
        """
        try:
            session = self._sessions.get(channel_id)
            if session is None:
                raise SessionNotFoundError(f"No quiz session in channel {channel_id}")

            if session.phase == SessionPhase.SUBMITTED:
                return {
                    'success': True,
                    'already_submitted': True,
                    'score': session.submit(),
                    'total_questions': len(session.questions)
                }

            if session.phase != SessionPhase.READY:
                raise InvalidSessionStateError(f"Cannot submit a quiz in phase {session.phase.value}")

            unanswered = len(session.questions) - session.answered_count
            if unanswered and not allow_partial:
                return {
                    'success': False,
                    'error': f"{unanswered} questions unanswered",
                    'unanswered': unanswered,
                    'user_message': (
                        f"⚠️ {unanswered} question{'s are' if unanswered != 1 else ' is'} still unanswered. "
                        "Answer them or use `/submit force:True`."
                    )
                }

            score = session.submit()
            return {
                'success': True,
                'already_submitted': False,
                'score': score,
                'total_questions': len(session.questions)
            }

        except Exception as e:
            return self._handle_session_error(channel_id, e, "submit_quiz")

    def stop_session(self, channel_id: int) -> bool:
        """
        Dispose and forget the channel's session.

        Args:
            channel_id: Discord channel identifier

        Returns:
            True if a session was stopped, False if none existed
        """
        session = self._sessions.pop(channel_id, None)
        if session is None:
            self.logger.warning(
                f"Cannot stop session for channel {channel_id}: no session exists",
                extra={
                    'event_type': 'session_stop_no_session',
                    'channel_id': channel_id,
                    'timestamp': time.time()
                }
            )
            return False

        phase = session.phase
        session.dispose()
        self.logger.info(
            f"Stopped session for channel {channel_id} in phase {phase.value}",
            extra={
                'event_type': 'session_stopped',
                'channel_id': channel_id,
                'phase': phase.value,
                'timestamp': time.time()
            }
        )
        return True

    def stop_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Stop a quiz with error handling.

        Returns:
            Dictionary with operation results and error information
        """
        session_info = self.get_session_progress(channel_id)
        if not self.has_active_session(channel_id):
            return {
                'success': False,
                'message': "No active quiz to stop in this channel",
                'user_message': "ℹ️ No active quiz found in this channel"
            }

        self.stop_session(channel_id)
        self._cleanup_session_errors(channel_id)
        return {
            'success': True,
            'message': "Quiz stopped successfully",
            'session_info': session_info
        }

    def shutdown(self) -> None:
        """Dispose every session; used when the bot is closing."""
        for channel_id in list(self._sessions.keys()):
            self.stop_session(channel_id)

    def get_error_summary(self, channel_id: int) -> Dict[str, Any]:
        errors = self._session_errors.get(channel_id, [])
        return {
            'error_count': len(errors),
            'recent_errors': errors[-5:]
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _create_session(
        self,
        channel_id: int,
        listener: Optional[Callable[[QuizSession, SessionEvent], Any]],
    ) -> QuizSession:
        previous = self._sessions.pop(channel_id, None)
        if previous is not None:
            previous.dispose()

        clock = CountdownClock(interval=self.tick_interval, owner=str(channel_id))
        session = QuizSession(self.provider, clock=clock, session_id=str(channel_id))
        if listener is not None:
            session.subscribe(listener)
        self._sessions[channel_id] = session
        return session

    def _record_error(self, channel_id: int, message: str) -> None:
        errors = self._session_errors.setdefault(channel_id, [])
        errors.append(message)
        # Keep only last 10 errors
        del errors[:-10]

    def _handle_session_error(self, channel_id: int, error: Exception, operation: str) -> Dict[str, Any]:
        """
        Log a failed operation and build the error result.

        Args:
            channel_id: Discord channel identifier
            error: The exception that occurred
            operation: Description of the operation that failed

        Returns:
            Dictionary with error handling results
        """
        if isinstance(error, QuizControllerError):
            self.logger.warning(f"{operation} rejected for channel {channel_id}: {error}")
        else:
            self.logger.error(f"Error in {operation} for channel {channel_id}: {error}", exc_info=True)

        self._record_error(channel_id, f"{operation}: {error}")

        return {
            'success': False,
            'error': str(error),
            'operation': operation,
            'user_message': self._get_user_friendly_error_message(error, operation)
        }

    def _get_user_friendly_error_message(self, error: Exception, operation: str) -> str:
        if isinstance(error, SessionConflictError):
            return "❌ A quiz is already running in this channel. Finish it with `/submit` or end it with `/stop`."

        elif isinstance(error, ConfigurationIncompleteError):
            return (
                f"❌ Please choose {', '.join(error.missing_fields)} first "
                "(`/set_category`, `/set_difficulty`, `/set_type`)."
            )

        elif isinstance(error, SessionNotFoundError):
            return "❌ No quiz found in this channel. Start a quiz with `/start`."

        elif isinstance(error, InvalidSessionStateError):
            return f"❌ {error}"

        else:
            return f"❌ An unexpected error occurred during {operation}. Please try again."

    def _cleanup_session_errors(self, channel_id: int) -> None:
        self._session_errors.pop(channel_id, None)
