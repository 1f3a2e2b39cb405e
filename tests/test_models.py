"""
Unit tests for the core data models.
"""
import unittest

from trivia_bot.models import (
    UNANSWERED,
    FALLBACK_CATEGORIES,
    Question,
    QuestionResult,
    SessionConfig,
)
from tests.test_fixtures import TestFixtures


class TestQuestion(unittest.TestCase):
    """Test cases for Question."""

    def test_answers_puts_correct_first(self):
        question = TestFixtures.create_sample_questions()[0]
        self.assertEqual(question.answers, ["Paris", "London", "Berlin", "Madrid"])

    def test_incorrect_answers_list_becomes_tuple(self):
        """Test that list input is stored immutably."""
        question = Question(
            category="Geography",
            type="boolean",
            difficulty="easy",
            question="Is water wet?",
            correct_answer="True",
            incorrect_answers=["False"]
        )
        self.assertEqual(question.incorrect_answers, ("False",))

    def test_question_requires_incorrect_answers(self):
        with self.assertRaises(ValueError):
            Question(
                category="Geography",
                type="multiple",
                difficulty="easy",
                question="?",
                correct_answer="A",
                incorrect_answers=()
            )


class TestUnanswered(unittest.TestCase):
    """Test cases for the unanswered marker."""

    def test_distinct_from_empty_string(self):
        self.assertNotEqual(UNANSWERED, "")
        self.assertIsNot(UNANSWERED, None)

    def test_is_falsy_singleton(self):
        self.assertFalse(UNANSWERED)
        self.assertIs(type(UNANSWERED)(), UNANSWERED)
        self.assertEqual(repr(UNANSWERED), "UNANSWERED")


class TestSessionConfig(unittest.TestCase):
    """Test cases for SessionConfig."""

    def test_defaults_are_incomplete(self):
        config = SessionConfig()
        self.assertEqual(config.question_count, 10)
        self.assertEqual(config.countdown_duration, 60)
        self.assertFalse(config.is_complete())

    def test_complete_config(self):
        self.assertTrue(TestFixtures.create_sample_config().is_complete())

    def test_missing_each_field(self):
        """Test that each of category, difficulty and type is required."""
        for field_name in ("category", "difficulty", "type"):
            with self.subTest(field=field_name):
                config = TestFixtures.create_sample_config(**{field_name: None})
                self.assertFalse(config.is_complete())

    def test_empty_strings_are_incomplete(self):
        self.assertFalse(TestFixtures.create_sample_config(difficulty="").is_complete())


class TestQuestionResult(unittest.TestCase):

    def test_was_answered(self):
        question = TestFixtures.create_sample_questions()[0]
        self.assertFalse(QuestionResult(0, question, UNANSWERED, False).was_answered)
        self.assertTrue(QuestionResult(0, question, "", False).was_answered)


class TestFallbackCategories(unittest.TestCase):

    def test_fallback_ids(self):
        self.assertEqual([c.id for c in FALLBACK_CATEGORIES], [9, 18, 22])


if __name__ == '__main__':
    unittest.main()
