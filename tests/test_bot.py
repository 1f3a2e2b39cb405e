"""
Unit tests for QuizBot command handlers with mocked Discord interactions.
"""
import asyncio
import logging
import unittest

import discord

from trivia_bot.bot import QuizBot
from trivia_bot.category_manager import CategoryManager
from trivia_bot.models import SessionPhase
from trivia_bot.presentation import AnswerView
from trivia_bot.quiz_controller import QuizController
from tests.test_fixtures import FakeQuestionProvider, ErrorScenarios, MockDiscordObjects


class TestQuizBotHandlers(unittest.IsolatedAsyncioTestCase):
    """Test bot command handlers against real controller components."""

    async def asyncSetUp(self):
        logging.disable(logging.CRITICAL)
        self.bot = QuizBot({'bot': {'command_prefix': '!'}})
        self.provider = FakeQuestionProvider()
        self.bot.provider = self.provider
        self.bot.category_manager = CategoryManager()
        self.bot.quiz_controller = QuizController(self.provider, self.bot.category_manager, tick_interval=60.0)
        await self.bot.load_categories()
        self.channel_id = 12345

    async def asyncTearDown(self):
        self.bot.quiz_controller.shutdown()
        logging.disable(logging.NOTSET)

    def configure(self):
        config_manager = self.bot.quiz_controller.get_config_manager(self.channel_id)
        config_manager.set_category(9)
        config_manager.set_difficulty("easy")
        config_manager.set_question_type("multiple")
        return config_manager

    async def start_quiz(self):
        self.configure()
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)
        await self.bot.handle_start(interaction)
        return interaction

    @staticmethod
    def sent_embed(mock_call):
        return mock_call.call_args.kwargs['embed']

    async def test_help_command(self):
        """Test that /help lists commands and current settings."""
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_help(interaction)

        embed = self.sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "🎯 Trivia Quiz Bot Commands")
        self.assertIn("Quiz Settings:", embed.fields[-1].value)

    async def test_config_update_success(self):
        """Test a successful setting change reports what is still missing."""
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_config_update(
            interaction, lambda config: config.set_difficulty("hard"), "Difficulty Updated"
        )

        embed = self.sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "✅ Difficulty Updated")
        self.assertIn("category", embed.footer.text)
        self.assertIn("type", embed.footer.text)

    async def test_config_update_ready_footer(self):
        self.configure()
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_config_update(
            interaction, lambda config: config.set_question_count(5), "Question Count Updated"
        )

        embed = self.sent_embed(interaction.response.send_message)
        self.assertIn("/start", embed.footer.text)

    async def test_config_update_failure_is_ephemeral(self):
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_config_update(
            interaction, lambda config: config.set_question_count(500), "Question Count Updated"
        )

        args, kwargs = interaction.response.send_message.call_args
        self.assertTrue(args[0].startswith("❌"))
        self.assertTrue(kwargs['ephemeral'])

    async def test_start_requires_configuration(self):
        """Test that /start without selections warns and does not fetch."""
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_start(interaction)

        embed = self.sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "⚠️ Quiz Not Configured")
        self.assertEqual(self.provider.fetch_calls, [])

    async def test_start_renders_first_question(self):
        """Test that /start shows a loading embed then the first question with buttons."""
        interaction = await self.start_quiz()

        loading = self.sent_embed(interaction.response.send_message)
        self.assertEqual(loading.title, "⏳ Loading Questions...")

        message = await interaction.original_response()
        edit_kwargs = message.edit.call_args.kwargs
        self.assertEqual(edit_kwargs['embed'].title, "🎯 Question 1/3")
        self.assertIsInstance(edit_kwargs['view'], AnswerView)
        self.assertEqual(
            self.bot.quiz_controller.get_session(self.channel_id).phase, SessionPhase.READY
        )

    async def test_start_failure_shows_error(self):
        """Test that a failed fetch replaces the loading embed with the error."""
        self.provider.error = ErrorScenarios.network_error()

        interaction = await self.start_quiz()

        message = await interaction.original_response()
        embed = message.edit.call_args.kwargs['embed']
        self.assertEqual(embed.title, "❌ Could Not Load Questions")
        self.assertIn("Network error", embed.description)

    async def test_answer_button_updates_board(self):
        """Test that answering records the choice and re-renders the question."""
        await self.start_quiz()
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_answer(interaction, self.channel_id, 0, "Paris")

        session = self.bot.quiz_controller.get_session(self.channel_id)
        self.assertEqual(session.user_answers[0], "Paris")
        embed = interaction.response.edit_message.call_args.kwargs['embed']
        self.assertIn("Your answer: Paris", embed.footer.text)

    async def test_navigate_out_of_range(self):
        await self.start_quiz()
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_navigate(interaction, self.channel_id, 9)

        interaction.response.edit_message.assert_not_called()
        interaction.response.send_message.assert_awaited_once()

    async def test_submit_with_unanswered_questions(self):
        await self.start_quiz()
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_submit(interaction)

        args, kwargs = interaction.response.send_message.call_args
        self.assertIn("unanswered", args[0])
        self.assertTrue(kwargs['ephemeral'])

    async def test_forced_submit_posts_results(self):
        """Test that a forced submit posts the results embed to the channel."""
        start_interaction = await self.start_quiz()
        board_message = await start_interaction.original_response()
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_submit(interaction, force=True)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        results = board_message.channel.send.call_args.kwargs['embed']
        self.assertEqual(results.title, "🏁 Trivia Results")
        self.assertEqual(results.description, "Your score: **0** out of **3**")

    async def test_stop_clears_board(self):
        """Test that /stop disposes the session and removes the buttons."""
        start_interaction = await self.start_quiz()
        board_message = await start_interaction.original_response()
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_stop(interaction)

        board_message.edit.assert_awaited_with(view=None)
        embed = self.sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "🛑 Quiz Stopped")
        self.assertIsNone(self.bot.quiz_controller.get_session(self.channel_id))

    async def test_stop_without_quiz(self):
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_stop(interaction)

        embed = self.sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "ℹ️ Nothing To Stop")

    async def test_status(self):
        await self.start_quiz()
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_status(interaction)

        embed = self.sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "▶️ Quiz In Progress")
        self.assertNotIn("⚠️ Recent Errors", [field.name for field in embed.fields])

    async def test_status_lists_recent_errors(self):
        """Test that /status shows why the last start in this channel failed."""
        self.provider.error = ErrorScenarios.network_error()
        await self.start_quiz()
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)

        await self.bot.handle_status(interaction)

        embed = self.sent_embed(interaction.response.send_message)
        errors = [field for field in embed.fields if field.name == "⚠️ Recent Errors"]
        self.assertEqual(len(errors), 1)
        self.assertIn("Network error contacting trivia API", errors[0].value)

    async def test_categories_retries_after_fallback(self):
        """Test that /categories refetches when the built-in list is in use."""
        self.provider.category_error = ErrorScenarios.network_error()
        await self.bot.load_categories()
        self.assertTrue(self.bot.category_manager.is_fallback_active())

        self.provider.category_error = None
        interaction = MockDiscordObjects.create_mock_interaction(self.channel_id)
        await self.bot.handle_categories(interaction)

        interaction.response.defer.assert_awaited_once()
        embed = self.sent_embed(interaction.followup.send)
        self.assertIsInstance(embed, discord.Embed)
        self.assertFalse(self.bot.category_manager.is_fallback_active())


if __name__ == '__main__':
    unittest.main()
