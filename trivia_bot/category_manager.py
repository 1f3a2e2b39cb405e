"""
Category manager for the trivia category list.
Fetches categories from the remote source and falls back to a built-in list.
"""
import logging
from typing import Any, Dict, List, Optional

from .models import FALLBACK_CATEGORIES, TriviaCategory
from .question_provider import FetchError, QuestionProvider


class CategoryManager:
    """Loads and serves the list of selectable trivia categories."""

    def __init__(self):
        """Initialize CategoryManager with an empty category list."""
        self.logger = logging.getLogger(__name__)
        self.categories: List[TriviaCategory] = []
        self.load_errors: List[str] = []  # Track loading errors for user feedback
        self.fallback_active = False  # Track if the built-in list replaced the remote one
        self.last_fetch_error: Optional[FetchError] = None

    async def load_categories(self, provider: QuestionProvider) -> List[TriviaCategory]:
        """
        Fetch categories, substituting the fallback list on failure.

        Args:
            provider: Provider used for the remote fetch

        Returns:
            The categories now available for selection
        """
        self.load_errors.clear()
        self.fallback_active = False
        self.last_fetch_error = None

        try:
            fetched = await provider.fetch_categories()
        except FetchError as e:
            self.last_fetch_error = e
            self.load_errors.append(f"Failed to fetch categories ({e.reason.value}): {e.message}")
            self.logger.warning(f"Error fetching categories: {e.message}. Using fallback categories.")
            return self._use_fallback_categories()

        self.categories = sorted(fetched, key=lambda category: category.name)
        self.logger.info(f"Loaded {len(self.categories)} trivia categories")
        return self.categories

    def _use_fallback_categories(self) -> List[TriviaCategory]:
        self.categories = list(FALLBACK_CATEGORIES)
        self.fallback_active = True
        return self.categories

    def get_categories(self) -> List[TriviaCategory]:
        return list(self.categories)

    def category_exists(self, category_id: int) -> bool:
        return any(category.id == category_id for category in self.categories)

    def get_category_name(self, category_id: int) -> Optional[str]:
        for category in self.categories:
            if category.id == category_id:
                return category.name
        return None

    def get_load_errors(self) -> List[str]:
        """
        Get list of errors encountered during the last load operation.

        Returns:
            List of error messages
        """
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def is_fallback_active(self) -> bool:
        return self.fallback_active

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the last category load.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_categories': len(self.categories),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'fallback_active': self.is_fallback_active(),
            'retryable': self.last_fetch_error.retryable if self.last_fetch_error else False,
            'available_categories': [(category.id, category.name) for category in self.categories]
        }
