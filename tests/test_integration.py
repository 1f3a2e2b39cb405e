"""
Integration tests: real QuestionProvider (over httpx.MockTransport), CategoryManager,
QuizController, QuizSession and CountdownClock working together.
"""
import asyncio
import logging
import unittest

import httpx

from trivia_bot.category_manager import CategoryManager
from trivia_bot.models import SessionPhase, SubmissionTrigger
from trivia_bot.question_provider import QuestionProvider
from trivia_bot.quiz_controller import QuizController
from tests.test_fixtures import TestFixtures, MockTransportFactory


class TestQuizFlowIntegration(unittest.IsolatedAsyncioTestCase):
    """End-to-end quiz flows without Discord."""

    async def asyncSetUp(self):
        logging.disable(logging.CRITICAL)
        self.api_down = False
        self.question_requests = 0

        def handler(request: httpx.Request) -> httpx.Response:
            if self.api_down:
                return httpx.Response(503)
            if request.url.path == "/api_category.php":
                return httpx.Response(200, json=TestFixtures.create_category_payload())
            self.question_requests += 1
            return httpx.Response(200, json=TestFixtures.create_question_payload())

        self.client = MockTransportFactory.create_client(handler)
        self.provider = QuestionProvider(base_url="https://trivia.test", client=self.client)
        self.category_manager = CategoryManager()
        await self.category_manager.load_categories(self.provider)

    async def asyncTearDown(self):
        await self.client.aclose()
        logging.disable(logging.NOTSET)

    def make_controller(self, tick_interval=60.0):
        controller = QuizController(self.provider, self.category_manager, tick_interval=tick_interval)
        self.addCleanup(controller.shutdown)
        return controller

    @staticmethod
    def configure(controller, channel_id, countdown=60):
        config_manager = controller.get_config_manager(channel_id)
        config_manager.set_category(18)
        config_manager.set_difficulty("medium")
        config_manager.set_question_type("multiple")
        config_manager.set_question_count(3)
        config_manager.set_countdown_duration(countdown)

    async def test_complete_manual_flow(self):
        """Test configure, start, answer every question and submit."""
        controller = self.make_controller()
        self.configure(controller, 1)

        start = await controller.start_quiz(1)
        self.assertTrue(start['success'])

        session = controller.get_session(1)
        for index, answer in enumerate(["Paris", "Central Processing Unit", "False"]):
            controller.select_answer(1, index, answer)

        result = controller.submit_quiz(1)

        self.assertTrue(result['success'])
        self.assertEqual(result['score'], 2)
        self.assertEqual(session.submission_trigger, SubmissionTrigger.MANUAL)
        self.assertEqual(self.question_requests, 1)

    async def test_timeout_flow(self):
        """Test that the countdown alone finishes the quiz."""
        controller = self.make_controller(tick_interval=0.01)
        self.configure(controller, 1, countdown=5)

        await controller.start_quiz(1)
        session = controller.get_session(1)
        controller.select_answer(1, 0, "Paris")

        for _ in range(100):
            if session.phase == SessionPhase.SUBMITTED:
                break
            await asyncio.sleep(0.01)

        self.assertEqual(session.phase, SessionPhase.SUBMITTED)
        self.assertEqual(session.submission_trigger, SubmissionTrigger.TIMEOUT)
        self.assertEqual(session.score, 1)
        self.assertEqual(controller.submit_quiz(1)['score'], 1)

    async def test_failure_then_retry(self):
        """Test that an outage fails the session and a later start recovers."""
        controller = self.make_controller()
        self.configure(controller, 1)

        self.api_down = True
        failed = await controller.start_quiz(1)
        self.assertFalse(failed['success'])
        self.assertIn("HTTP 503", failed['user_message'])

        self.api_down = False
        retried = await controller.start_quiz(1)

        self.assertTrue(retried['success'])
        self.assertEqual(controller.get_session(1).phase, SessionPhase.READY)

    async def test_category_outage_uses_fallback(self):
        """Test that an unreachable category list still allows configuration."""
        self.api_down = True
        manager = CategoryManager()
        await manager.load_categories(self.provider)
        self.api_down = False

        controller = QuizController(self.provider, manager, tick_interval=60.0)
        self.addCleanup(controller.shutdown)
        config_manager = controller.get_config_manager(1)

        self.assertTrue(manager.is_fallback_active())
        self.assertTrue(config_manager.set_category(22)['success'])
        self.assertFalse(config_manager.set_category(10)['success'])


if __name__ == '__main__':
    unittest.main()
