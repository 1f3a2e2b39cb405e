"""
Question provider for the Open Trivia Database.
Fetches questions and categories over HTTP and reports typed failures.
"""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from .models import (
    MAX_QUESTION_COUNT,
    MIN_QUESTION_COUNT,
    Question,
    SessionConfig,
    TriviaCategory,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://opentdb.com"
DEFAULT_TIMEOUT = 10.0

# response_code values documented by the Open Trivia Database
API_RESPONSE_MESSAGES = {
    1: "No results: not enough questions for the requested settings",
    2: "Invalid parameter passed to the trivia API",
    3: "Session token not found",
    4: "Session token has returned all possible questions",
    5: "Rate limit exceeded, too many requests",
}

QUESTION_FIELDS = ("category", "type", "difficulty", "question", "correct_answer", "incorrect_answers")


class FetchFailureReason(Enum):
    """Why a fetch did not produce usable data."""
    INVALID_REQUEST = "invalid_request"
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    MALFORMED = "malformed"
    API_ERROR = "api_error"
    EMPTY = "empty"


class FetchError(Exception):
    """Raised when questions or categories cannot be retrieved."""

    def __init__(
        self,
        message: str,
        reason: FetchFailureReason,
        status_code: Optional[int] = None,
        response_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.status_code = status_code
        self.response_code = response_code

    @property
    def retryable(self) -> bool:
        """Whether repeating the same request later may succeed."""
        if self.reason == FetchFailureReason.NETWORK:
            return True
        if self.reason == FetchFailureReason.HTTP_STATUS:
            return self.status_code is not None and (self.status_code >= 500 or self.status_code == 429)
        if self.reason == FetchFailureReason.API_ERROR:
            return self.response_code == 5
        return False


class QuestionProvider:
    """Stateless client for the remote trivia source."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the provider.

        Args:
            base_url: Root URL of the trivia API
            timeout: Request timeout in seconds when no client is supplied
            client: Optional shared httpx client (caller owns its lifetime)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._client = client

    async def fetch(self, config: SessionConfig) -> List[Question]:
        """
        Fetch questions matching a session configuration.

        Args:
            config: Fully populated session configuration

        Returns:
            Questions in the order received, text fields still HTML-encoded

        Raises:
            FetchError: On invalid input, transport failure, bad payload or empty result
        """
        self._validate_config(config)

        params = {
            'amount': config.question_count,
            'category': config.category,
            'difficulty': config.difficulty,
            'type': config.type,
        }
        payload = await self._get_json("/api.php", params)

        response_code = payload.get('response_code')
        if not isinstance(response_code, int):
            raise FetchError("Trivia API response is missing 'response_code'", FetchFailureReason.MALFORMED)
        if response_code != 0:
            message = API_RESPONSE_MESSAGES.get(response_code, f"Trivia API returned response code {response_code}")
            logger.warning(f"Trivia API error {response_code}: {message}")
            raise FetchError(message, FetchFailureReason.API_ERROR, response_code=response_code)

        results = payload.get('results')
        if not isinstance(results, list):
            raise FetchError("Trivia API response is missing 'results'", FetchFailureReason.MALFORMED)
        if not results:
            raise FetchError("Trivia API returned no questions", FetchFailureReason.EMPTY)

        questions = [self._parse_question(item, position) for position, item in enumerate(results)]
        logger.info(
            f"Fetched {len(questions)} questions (requested {config.question_count})",
            extra={
                'event_type': 'questions_fetched',
                'requested': config.question_count,
                'received': len(questions),
                'category': config.category,
            }
        )
        return questions

    async def fetch_categories(self) -> List[TriviaCategory]:
        """
        Fetch the list of available categories.

        Raises:
            FetchError: On transport failure, bad payload or empty list
        """
        payload = await self._get_json("/api_category.php")

        raw_categories = payload.get('trivia_categories')
        if not isinstance(raw_categories, list):
            raise FetchError("Category response is missing 'trivia_categories'", FetchFailureReason.MALFORMED)
        if not raw_categories:
            raise FetchError("Category list is empty", FetchFailureReason.EMPTY)

        categories = []
        for item in raw_categories:
            try:
                categories.append(TriviaCategory(id=int(item['id']), name=str(item['name'])))
            except (KeyError, TypeError, ValueError) as e:
                raise FetchError(f"Invalid category entry {item!r}: {e}", FetchFailureReason.MALFORMED) from e

        logger.info(f"Fetched {len(categories)} trivia categories")
        return categories

    def _validate_config(self, config: SessionConfig) -> None:
        """Reject requests the remote source cannot satisfy before any I/O."""
        if not isinstance(config.question_count, int) or not (
            MIN_QUESTION_COUNT <= config.question_count <= MAX_QUESTION_COUNT
        ):
            raise FetchError(
                f"Question count must be between {MIN_QUESTION_COUNT} and {MAX_QUESTION_COUNT}, "
                f"got {config.question_count}",
                FetchFailureReason.INVALID_REQUEST,
            )
        if not config.is_complete():
            raise FetchError(
                "Category, difficulty and type must all be set",
                FetchFailureReason.INVALID_REQUEST,
            )

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Perform a GET request and return the decoded JSON object."""
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(f"Trivia API HTTP error {status_code} for {url}")
            raise FetchError(
                f"Trivia API returned HTTP {status_code}",
                FetchFailureReason.HTTP_STATUS,
                status_code=status_code,
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Trivia API request error for {url}: {e}")
            raise FetchError(f"Network error contacting trivia API: {e}", FetchFailureReason.NETWORK) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise FetchError(f"Trivia API returned invalid JSON: {e}", FetchFailureReason.MALFORMED) from e

        if not isinstance(payload, dict):
            raise FetchError("Trivia API returned a non-object JSON payload", FetchFailureReason.MALFORMED)
        return payload

    @staticmethod
    def _parse_question(item: Any, position: int) -> Question:
        """Build a Question from one entry of the 'results' array."""
        if not isinstance(item, dict):
            raise FetchError(f"Question {position} is not an object", FetchFailureReason.MALFORMED)

        missing = [name for name in QUESTION_FIELDS if name not in item]
        if missing:
            raise FetchError(
                f"Question {position} is missing fields: {', '.join(missing)}",
                FetchFailureReason.MALFORMED,
            )

        incorrect = item['incorrect_answers']
        if not isinstance(incorrect, list) or not incorrect or not all(isinstance(a, str) for a in incorrect):
            raise FetchError(
                f"Question {position} needs a non-empty list of incorrect answers",
                FetchFailureReason.MALFORMED,
            )

        return Question(
            category=str(item['category']),
            type=str(item['type']),
            difficulty=str(item['difficulty']),
            question=str(item['question']),
            correct_answer=str(item['correct_answer']),
            incorrect_answers=tuple(incorrect),
        )
