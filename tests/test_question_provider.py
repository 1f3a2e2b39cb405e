"""
Unit tests for QuestionProvider.
HTTP traffic is served by httpx.MockTransport so no network access is needed.
"""
import json
import logging
import unittest

import httpx

from trivia_bot.models import SessionConfig
from trivia_bot.question_provider import FetchError, FetchFailureReason, QuestionProvider
from tests.test_fixtures import TestFixtures, MockTransportFactory


class ProviderTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.config = TestFixtures.create_sample_config()
        self.requests = []

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def make_provider(self, payload=None, status_code=200, handler=None):
        if handler is None:
            respond = MockTransportFactory.json_response(payload, status_code)

            def handler(request):
                self.requests.append(request)
                return respond(request)

        self.client = MockTransportFactory.create_client(handler)
        self.addAsyncCleanup(self.client.aclose)
        return QuestionProvider(base_url="https://trivia.test/", client=self.client)


class TestFetchQuestions(ProviderTestCase):
    """Test cases for fetching questions."""

    async def test_fetch_returns_questions_in_order(self):
        """Test that a successful response is parsed in the order received."""
        provider = self.make_provider(TestFixtures.create_question_payload())

        questions = await provider.fetch(self.config)

        self.assertEqual(len(questions), 3)
        self.assertEqual(questions[0].correct_answer, "Paris")
        self.assertEqual(questions[2].incorrect_answers, ("False",))
        # Text is returned undecoded
        self.assertIn("&quot;", questions[1].question)

    async def test_fetch_sends_query_parameters(self):
        """Test the request path and query string."""
        provider = self.make_provider(TestFixtures.create_question_payload())

        await provider.fetch(self.config)

        request = self.requests[0]
        self.assertEqual(request.url.path, "/api.php")
        self.assertEqual(request.url.host, "trivia.test")
        self.assertEqual(request.url.params['amount'], "3")
        self.assertEqual(request.url.params['category'], "9")
        self.assertEqual(request.url.params['difficulty'], "easy")
        self.assertEqual(request.url.params['type'], "multiple")

    async def test_fetch_accepts_fewer_questions(self):
        """Test that fewer results than requested is not an error."""
        questions = TestFixtures.create_sample_questions()[:1]
        provider = self.make_provider(TestFixtures.create_question_payload(questions))

        result = await provider.fetch(TestFixtures.create_sample_config(question_count=10))

        self.assertEqual(len(result), 1)

    async def test_nonzero_response_code(self):
        """Test that an API-level error code raises API_ERROR."""
        provider = self.make_provider({"response_code": 1, "results": []})

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch(self.config)

        self.assertEqual(ctx.exception.reason, FetchFailureReason.API_ERROR)
        self.assertEqual(ctx.exception.response_code, 1)
        self.assertIn("No results", ctx.exception.message)
        self.assertFalse(ctx.exception.retryable)

    async def test_rate_limit_response_code_is_retryable(self):
        provider = self.make_provider({"response_code": 5, "results": []})

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch(self.config)

        self.assertTrue(ctx.exception.retryable)

    async def test_http_error_status(self):
        """Test that a 5xx response raises HTTP_STATUS."""
        provider = self.make_provider({"error": "down"}, status_code=503)

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch(self.config)

        self.assertEqual(ctx.exception.reason, FetchFailureReason.HTTP_STATUS)
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertTrue(ctx.exception.retryable)

    async def test_client_error_status_not_retryable(self):
        provider = self.make_provider({}, status_code=404)

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch(self.config)

        self.assertFalse(ctx.exception.retryable)

    async def test_network_error(self):
        """Test that a transport failure raises NETWORK."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = self.make_provider(handler=handler)

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch(self.config)

        self.assertEqual(ctx.exception.reason, FetchFailureReason.NETWORK)
        self.assertTrue(ctx.exception.retryable)

    async def test_invalid_json(self):
        """Test that a non-JSON body raises MALFORMED."""
        provider = self.make_provider(handler=lambda request: httpx.Response(200, content=b"<html>"))

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch(self.config)

        self.assertEqual(ctx.exception.reason, FetchFailureReason.MALFORMED)

    async def test_missing_response_code(self):
        provider = self.make_provider({"results": []})

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch(self.config)

        self.assertEqual(ctx.exception.reason, FetchFailureReason.MALFORMED)

    async def test_missing_results(self):
        provider = self.make_provider({"response_code": 0})

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch(self.config)

        self.assertEqual(ctx.exception.reason, FetchFailureReason.MALFORMED)

    async def test_empty_results(self):
        """Test that a successful but empty result raises EMPTY."""
        provider = self.make_provider({"response_code": 0, "results": []})

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch(self.config)

        self.assertEqual(ctx.exception.reason, FetchFailureReason.EMPTY)

    async def test_question_missing_field(self):
        """Test that an entry without required fields raises MALFORMED."""
        payload = TestFixtures.create_question_payload()
        del payload["results"][1]["correct_answer"]
        provider = self.make_provider(payload)

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch(self.config)

        self.assertEqual(ctx.exception.reason, FetchFailureReason.MALFORMED)
        self.assertIn("correct_answer", ctx.exception.message)

    async def test_question_without_incorrect_answers(self):
        payload = TestFixtures.create_question_payload()
        payload["results"][0]["incorrect_answers"] = []
        provider = self.make_provider(payload)

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch(self.config)

        self.assertEqual(ctx.exception.reason, FetchFailureReason.MALFORMED)


class TestRequestValidation(ProviderTestCase):
    """Test cases for rejecting requests before any I/O."""

    async def test_incomplete_config_rejected(self):
        """Test that a missing category is rejected without a request."""
        provider = self.make_provider(TestFixtures.create_question_payload())
        config = SessionConfig(question_count=5, category=None, difficulty="easy", type="multiple")

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch(config)

        self.assertEqual(ctx.exception.reason, FetchFailureReason.INVALID_REQUEST)
        self.assertEqual(self.requests, [])

    async def test_question_count_bounds(self):
        """Test that counts outside 1..50 are rejected."""
        provider = self.make_provider(TestFixtures.create_question_payload())

        for count in (0, 51, -3):
            with self.subTest(count=count):
                with self.assertRaises(FetchError) as ctx:
                    await provider.fetch(TestFixtures.create_sample_config(question_count=count))
                self.assertEqual(ctx.exception.reason, FetchFailureReason.INVALID_REQUEST)

        self.assertEqual(self.requests, [])


class TestFetchCategories(ProviderTestCase):
    """Test cases for the category list."""

    async def test_fetch_categories(self):
        provider = self.make_provider(TestFixtures.create_category_payload())

        categories = await provider.fetch_categories()

        self.assertEqual(len(categories), 4)
        self.assertEqual(categories[0].id, 9)
        self.assertEqual(categories[0].name, "General Knowledge")
        self.assertEqual(self.requests[0].url.path, "/api_category.php")

    async def test_empty_category_list(self):
        provider = self.make_provider({"trivia_categories": []})

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch_categories()

        self.assertEqual(ctx.exception.reason, FetchFailureReason.EMPTY)

    async def test_invalid_category_entry(self):
        provider = self.make_provider({"trivia_categories": [{"id": "abc", "name": "Broken"}]})

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch_categories()

        self.assertEqual(ctx.exception.reason, FetchFailureReason.MALFORMED)

    async def test_non_object_payload(self):
        provider = self.make_provider(handler=lambda request: httpx.Response(200, content=json.dumps([1, 2]).encode()))

        with self.assertRaises(FetchError) as ctx:
            await provider.fetch_categories()

        self.assertEqual(ctx.exception.reason, FetchFailureReason.MALFORMED)


if __name__ == '__main__':
    unittest.main()
