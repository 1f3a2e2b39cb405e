"""
Configuration manager for trivia quiz settings.
Validates the quiz form (count, category, difficulty, type, countdown) and
builds a SessionConfig once every field is set.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from .models import (
    DEFAULT_COUNTDOWN_DURATION,
    DIFFICULTIES,
    MAX_QUESTION_COUNT,
    MIN_QUESTION_COUNT,
    QUESTION_TYPES,
    SessionConfig,
    TriviaCategory,
)


TYPE_LABELS = {
    "multiple": "Multiple Choice",
    "boolean": "True / False",
}


class ConfigManager:
    """Manages the quiz configuration form for one channel."""

    # Default configuration values
    DEFAULT_QUESTION_COUNT = 10
    DEFAULT_COUNTDOWN = DEFAULT_COUNTDOWN_DURATION

    # Validation limits
    MIN_QUESTION_COUNT = MIN_QUESTION_COUNT
    MAX_QUESTION_COUNT = MAX_QUESTION_COUNT
    MIN_COUNTDOWN = 5
    MAX_COUNTDOWN = 600  # 10 minutes

    def __init__(self, defaults: Optional[Dict[str, Any]] = None):
        """
        Initialize ConfigManager with default settings.

        Args:
            defaults: Optional 'quiz' section of config.json supplying initial values
        """
        self.logger = logging.getLogger(__name__)
        self._defaults = defaults or {}
        self._available_categories: Dict[int, str] = {}
        self._config = SessionConfig()
        self.reset_to_defaults()

    def set_available_categories(self, categories: Iterable[TriviaCategory]) -> None:
        """Restrict category selection to the given list."""
        self._available_categories = {category.id: category.name for category in categories}
        if self._config.category is not None and self._config.category not in self._available_categories:
            self.logger.info(f"Clearing category {self._config.category}: no longer available")
            self._config.category = None

    def get_session_config(self) -> Optional[SessionConfig]:
        """
        Get a copy of the current configuration.

        Returns:
            SessionConfig if the form is complete, None otherwise
        """
        if not self.is_form_valid():
            return None
        return SessionConfig(
            question_count=self._config.question_count,
            category=self._config.category,
            difficulty=self._config.difficulty,
            type=self._config.type,
            countdown_duration=self._config.countdown_duration
        )

    def is_form_valid(self) -> bool:
        """True once category, difficulty and type are selected and all values are in range."""
        return self._config.is_complete() and self.validate_settings()['valid']

    def get_missing_fields(self) -> List[str]:
        missing = []
        if self._config.category is None:
            missing.append("category")
        if not self._config.difficulty:
            missing.append("difficulty")
        if not self._config.type:
            missing.append("type")
        return missing

    def set_question_count(self, count: int) -> Dict[str, Any]:
        """
        Set the number of questions to request.

        Args:
            count: Number of questions (1-50)

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(count, bool) or not isinstance(count, int):
            return self._failure(
                f"Question count must be an integer, got {type(count).__name__}",
                f"❌ Invalid input: Expected a number, got {type(count).__name__}"
            )

        if count < self.MIN_QUESTION_COUNT:
            return self._failure(
                f"Question count must be at least {self.MIN_QUESTION_COUNT}",
                f"❌ Too few questions: Minimum is {self.MIN_QUESTION_COUNT}"
            )

        if count > self.MAX_QUESTION_COUNT:
            return self._failure(
                f"Question count cannot exceed {self.MAX_QUESTION_COUNT}",
                f"❌ Too many questions: Maximum is {self.MAX_QUESTION_COUNT}"
            )

        self._config.question_count = count
        return self._success(f"Question count set to {count}", f"✅ Question count set to {count}")

    def get_question_count(self) -> int:
        return self._config.question_count

    def set_category(self, category_id: Optional[int]) -> Dict[str, Any]:
        """
        Select a category by id, or clear the selection with None.

        When a category list has been loaded the id must be part of it.
        """
        if category_id is None:
            self._config.category = None
            return self._success("Category cleared", "✅ Category selection cleared")

        if isinstance(category_id, bool) or not isinstance(category_id, int):
            return self._failure(
                f"Category must be an integer id, got {type(category_id).__name__}",
                "❌ Invalid category: use `/categories` to see valid ids"
            )

        if self._available_categories and category_id not in self._available_categories:
            return self._failure(
                f"Unknown category id {category_id}",
                f"❌ Unknown category `{category_id}`: use `/categories` to see valid ids"
            )

        self._config.category = category_id
        name = self.get_category_name(category_id)
        return self._success(f"Category set to {category_id} ({name})", f"✅ Category set to **{name}**")

    def get_category(self) -> Optional[int]:
        return self._config.category

    def get_category_name(self, category_id: Optional[int] = None) -> str:
        if category_id is None:
            category_id = self._config.category
        if category_id is None:
            return "not set"
        return self._available_categories.get(category_id, f"Category {category_id}")

    def set_difficulty(self, difficulty: Optional[str]) -> Dict[str, Any]:
        """Select easy, medium or hard (None clears the selection)."""
        if difficulty is None:
            self._config.difficulty = None
            return self._success("Difficulty cleared", "✅ Difficulty selection cleared")

        normalized = str(difficulty).strip().lower()
        if normalized not in DIFFICULTIES:
            return self._failure(
                f"Invalid difficulty: {difficulty}",
                f"❌ Invalid difficulty: choose one of {', '.join(DIFFICULTIES)}"
            )

        self._config.difficulty = normalized
        return self._success(f"Difficulty set to {normalized}", f"✅ Difficulty set to **{normalized.capitalize()}**")

    def get_difficulty(self) -> Optional[str]:
        return self._config.difficulty

    def set_question_type(self, question_type: Optional[str]) -> Dict[str, Any]:
        """Select multiple or boolean questions (None clears the selection)."""
        if question_type is None:
            self._config.type = None
            return self._success("Question type cleared", "✅ Question type selection cleared")

        normalized = str(question_type).strip().lower()
        if normalized not in QUESTION_TYPES:
            return self._failure(
                f"Invalid question type: {question_type}",
                f"❌ Invalid question type: choose one of {', '.join(QUESTION_TYPES)}"
            )

        self._config.type = normalized
        return self._success(
            f"Question type set to {normalized}",
            f"✅ Question type set to **{TYPE_LABELS[normalized]}**"
        )

    def get_question_type(self) -> Optional[str]:
        return self._config.type

    def set_countdown_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the countdown for the whole quiz.

        Args:
            duration: Countdown in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(duration, bool) or not isinstance(duration, int):
            return self._failure(
                f"Countdown must be an integer, got {type(duration).__name__}",
                f"❌ Invalid input: Expected a number, got {type(duration).__name__}"
            )

        if duration < self.MIN_COUNTDOWN:
            return self._failure(
                f"Countdown must be at least {self.MIN_COUNTDOWN} seconds",
                f"❌ Timer too short: Minimum is {self.MIN_COUNTDOWN} seconds"
            )

        if duration > self.MAX_COUNTDOWN:
            return self._failure(
                f"Countdown cannot exceed {self.MAX_COUNTDOWN} seconds",
                f"❌ Timer too long: Maximum is {self.MAX_COUNTDOWN} seconds ({self.MAX_COUNTDOWN // 60} minutes)"
            )

        self._config.countdown_duration = duration
        return self._success(f"Countdown set to {duration} seconds", f"✅ Timer set to {duration} seconds")

    def get_countdown_duration(self) -> int:
        return self._config.countdown_duration

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values (config.json values take precedence)."""
        self._config = SessionConfig(
            question_count=self.DEFAULT_QUESTION_COUNT,
            countdown_duration=self.DEFAULT_COUNTDOWN
        )

        # Apply each default through its setter so invalid config.json values are rejected
        appliers = (
            ('default_question_count', self.set_question_count),
            ('default_category', self.set_category),
            ('default_difficulty', self.set_difficulty),
            ('default_type', self.set_question_type),
            ('default_countdown', self.set_countdown_duration),
        )
        for key, setter in appliers:
            value = self._defaults.get(key)
            if value is None:
                continue
            result = setter(value)
            if not result['success']:
                self.logger.warning(f"Ignoring invalid default {key}={value!r}: {result['error']}")

        self.logger.info("Quiz settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        count = self._config.question_count
        if not isinstance(count, int) or not (self.MIN_QUESTION_COUNT <= count <= self.MAX_QUESTION_COUNT):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question count: {count}")

        if self._config.difficulty is not None and self._config.difficulty not in DIFFICULTIES:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid difficulty: {self._config.difficulty}")

        if self._config.type is not None and self._config.type not in QUESTION_TYPES:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question type: {self._config.type}")

        countdown = self._config.countdown_duration
        if not isinstance(countdown, int) or not (self.MIN_COUNTDOWN <= countdown <= self.MAX_COUNTDOWN):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid countdown: {countdown}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        difficulty = self._config.difficulty.capitalize() if self._config.difficulty else "not set"
        question_type = TYPE_LABELS.get(self._config.type, "not set")

        return (
            f"Quiz Settings:\n"
            f"• Questions: {self._config.question_count}\n"
            f"• Category: {self.get_category_name()}\n"
            f"• Difficulty: {difficulty}\n"
            f"• Type: {question_type}\n"
            f"• Timer: {self._config.countdown_duration} seconds"
        )

    def _success(self, message: str, user_message: str) -> Dict[str, Any]:
        self.logger.info(message)
        return {
            'success': True,
            'message': message,
            'user_message': user_message
        }

    def _failure(self, error_msg: str, user_message: str) -> Dict[str, Any]:
        self.logger.error(error_msg)
        return {
            'success': False,
            'error': error_msg,
            'user_message': user_message
        }
