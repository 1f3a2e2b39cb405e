import discord
from discord import app_commands
from discord.ext import commands
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from .category_manager import CategoryManager
from .config_manager import ConfigManager
from .models import DIFFICULTIES, SessionEvent, SessionPhase
from .presentation import (
    COLOR_ERROR,
    COLOR_INFO,
    COLOR_OK,
    COLOR_WARNING,
    LOW_TIME_THRESHOLD,
    AnswerView,
    build_categories_embed,
    build_failure_embed,
    build_loading_embed,
    build_question_embed,
    build_results_embed,
    build_status_embed,
)
from .question_provider import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, QuestionProvider
from .quiz_controller import QuizController
from .quiz_session import QuizSession

logger = logging.getLogger(__name__)

# Edit the board every N ticks, and on every tick once time is low
BOARD_REFRESH_TICKS = 5


def setup_logging(log_directory: str = "logs", level: int = logging.INFO):
    """Set up logging for debugging and monitoring."""
    logs_dir = Path(log_directory)
    logs_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),  # Console output
            logging.FileHandler(logs_dir / "bot.log", encoding='utf-8'),  # File output
        ]
    )

    # Set up error-specific logging
    error_handler = logging.FileHandler(logs_dir / "errors.log", encoding='utf-8')
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logging.getLogger().addHandler(error_handler)

    # Reduce library noise
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('discord.http').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)

    return logging.getLogger(__name__)


@dataclass
class QuizBoard:
    """The message a channel's quiz is rendered into and the question it shows."""
    message: discord.Message
    question_index: int = 0


class QuizBot(commands.Bot):
    """Discord bot for single-player trivia quizzes"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.http_client: Optional[httpx.AsyncClient] = None
        self.provider: Optional[QuestionProvider] = None
        self.category_manager: Optional[CategoryManager] = None
        self.quiz_controller: Optional[QuizController] = None
        self._boards: Dict[int, QuizBoard] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            api_config = self.app_config.get('trivia_api', {})
            timeout = api_config.get('timeout', DEFAULT_TIMEOUT)
            self.http_client = httpx.AsyncClient(timeout=timeout)
            self.provider = QuestionProvider(
                base_url=api_config.get('base_url', DEFAULT_BASE_URL),
                timeout=timeout,
                client=self.http_client
            )

            self.category_manager = CategoryManager()
            self.quiz_controller = QuizController(
                self.provider,
                self.category_manager,
                quiz_defaults=self.app_config.get('quiz', {}),
                tick_interval=self.app_config.get('quiz', {}).get('tick_interval', 1.0)
            )

            await self.load_categories()
            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def load_categories(self):
        """Fetch the category list (falls back to built-in categories on failure)"""
        categories = await self.category_manager.load_categories(self.provider)
        self.quiz_controller.refresh_categories()
        if self.category_manager.is_fallback_active():
            logger.warning(f"Using {len(categories)} fallback categories")
        else:
            logger.info(f"Loaded {len(categories)} categories")

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="categories", description="List the trivia categories")
        async def categories_command(interaction: discord.Interaction):
            await self.handle_categories(interaction)

        @self.tree.command(name="set_questions", description="Set the number of questions (1-50)")
        async def set_questions_command(interaction: discord.Interaction, number: int):
            await self.handle_config_update(
                interaction, lambda config: config.set_question_count(number), "Question Count Updated"
            )

        @self.tree.command(name="set_category", description="Choose a category by id (see /categories)")
        async def set_category_command(interaction: discord.Interaction, category_id: int):
            await self.handle_config_update(
                interaction, lambda config: config.set_category(category_id), "Category Updated"
            )

        @self.tree.command(name="set_difficulty", description="Choose the question difficulty")
        @app_commands.choices(difficulty=[
            app_commands.Choice(name=difficulty.capitalize(), value=difficulty) for difficulty in DIFFICULTIES
        ])
        async def set_difficulty_command(interaction: discord.Interaction, difficulty: app_commands.Choice[str]):
            await self.handle_config_update(
                interaction, lambda config: config.set_difficulty(difficulty.value), "Difficulty Updated"
            )

        @self.tree.command(name="set_type", description="Choose multiple choice or true/false questions")
        @app_commands.choices(question_type=[
            app_commands.Choice(name="Multiple Choice", value="multiple"),
            app_commands.Choice(name="True / False", value="boolean"),
        ])
        async def set_type_command(interaction: discord.Interaction, question_type: app_commands.Choice[str]):
            await self.handle_config_update(
                interaction, lambda config: config.set_question_type(question_type.value), "Question Type Updated"
            )

        @self.tree.command(name="set_timer", description="Set the quiz countdown in seconds (5-600)")
        async def set_timer_command(interaction: discord.Interaction, seconds: int):
            await self.handle_config_update(
                interaction, lambda config: config.set_countdown_duration(seconds), "Timer Updated"
            )

        @self.tree.command(name="start", description="Start a trivia quiz with the current settings")
        async def start_command(interaction: discord.Interaction):
            await self.handle_start(interaction)

        @self.tree.command(name="submit", description="Submit your answers for scoring")
        async def submit_command(interaction: discord.Interaction, force: bool = False):
            await self.handle_submit(interaction, force)

        @self.tree.command(name="stop", description="Abandon the current quiz")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="status", description="Show the quiz status and current settings")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        """Dispose every session and release the HTTP client before disconnecting"""
        if self.quiz_controller is not None:
            self.quiz_controller.shutdown()
        self._boards.clear()
        if self.http_client is not None:
            await self.http_client.aclose()
        await super().close()

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🎯 Trivia Quiz Bot Commands",
                description="Configure a quiz, start it, and answer with the buttons before time runs out",
                color=COLOR_OK
            )
            help_embed.add_field(
                name="📋 Configuration",
                value=(
                    "`/categories` - List trivia categories\n"
                    "`/set_questions <number>` - Number of questions (1-50)\n"
                    "`/set_category <id>` - Category to draw questions from\n"
                    "`/set_difficulty` - Easy, medium or hard\n"
                    "`/set_type` - Multiple choice or true/false\n"
                    "`/set_timer <seconds>` - Countdown for the whole quiz"
                ),
                inline=False
            )
            help_embed.add_field(
                name="🎮 Quiz Control",
                value=(
                    "`/start` - Fetch questions and start the countdown\n"
                    "`/submit [force]` - Score your answers (force scores unanswered questions as wrong)\n"
                    "`/stop` - Abandon the current quiz\n"
                    "`/status` - Show progress and settings"
                ),
                inline=False
            )

            config_manager = self.quiz_controller.get_config_manager(interaction.channel_id)
            help_embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{config_manager.get_settings_summary()}\n```",
                inline=False
            )
            help_embed.set_footer(text="Use slash commands to interact with the bot")

            await interaction.response.send_message(embed=help_embed)

        except discord.HTTPException as e:
            logger.error(f"Discord error in help command: {e}")
        except Exception as e:
            logger.error(f"Error in help command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to display help information", "❌ Help Error")

    async def handle_categories(self, interaction: discord.Interaction):
        """Handle /categories command"""
        try:
            if self.category_manager.is_fallback_active():
                # Previous fetch failed, try again before answering
                await interaction.response.defer()
                await self.load_categories()
                embed = build_categories_embed(
                    self.category_manager.get_categories(), self.category_manager.is_fallback_active()
                )
                await interaction.followup.send(embed=embed)
                return

            embed = build_categories_embed(self.category_manager.get_categories(), False)
            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            logger.error(f"Discord error in categories command: {e}")
        except Exception as e:
            logger.error(f"Error in categories command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to list categories", "❌ Category Error")

    async def handle_config_update(self, interaction: discord.Interaction, update, title: str):
        """Apply one configuration change and report the result"""
        try:
            config_manager: ConfigManager = self.quiz_controller.get_config_manager(interaction.channel_id)
            result: Dict[str, Any] = update(config_manager)

            if not result['success']:
                await interaction.response.send_message(
                    result.get('user_message', f"❌ {result.get('error', 'Unknown error')}"),
                    ephemeral=True
                )
                return

            ready = config_manager.is_form_valid()
            embed = discord.Embed(
                title=f"✅ {title}",
                description=result['user_message'],
                color=COLOR_OK if ready else COLOR_WARNING
            )
            embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{config_manager.get_settings_summary()}\n```",
                inline=False
            )
            if ready:
                embed.set_footer(text="Ready! Use /start to begin")
            else:
                embed.set_footer(text=f"Still needed: {', '.join(config_manager.get_missing_fields())}")

            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            logger.error(f"Discord error updating configuration ({title}): {e}")
        except Exception as e:
            logger.error(f"Error updating configuration ({title}): {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to update settings", "❌ Configuration Error")

    async def handle_start(self, interaction: discord.Interaction):
        """Handle /start command"""
        channel_id = interaction.channel_id
        try:
            config_manager = self.quiz_controller.get_config_manager(channel_id)
            if not config_manager.is_form_valid():
                missing = ", ".join(config_manager.get_missing_fields()) or "valid settings"
                await self.send_warning_response(
                    interaction,
                    f"Please choose {missing} before starting.\n"
                    "Use `/set_category`, `/set_difficulty` and `/set_type`.",
                    "⚠️ Quiz Not Configured"
                )
                return

            await interaction.response.send_message(
                embed=build_loading_embed(config_manager.get_question_count(), config_manager.get_category_name())
            )

            result = await self.quiz_controller.start_quiz(channel_id, listener=self._make_session_listener(channel_id))
            message = await interaction.original_response()

            if not result['success']:
                error = result.get('error') or result.get('user_message', 'Unknown error')
                session = self.quiz_controller.get_session(channel_id)
                if session is not None and session.phase == SessionPhase.FAILED:
                    await message.edit(embed=build_failure_embed(error))
                else:
                    await message.edit(embed=discord.Embed(
                        title="❌ Quiz Start Failed",
                        description=result.get('user_message', error),
                        color=COLOR_ERROR
                    ))
                return

            session = self.quiz_controller.get_session(channel_id)
            board = QuizBoard(message=message)
            self._boards[channel_id] = board
            await message.edit(embed=build_question_embed(session, 0), view=self._build_view(channel_id, session, 0))

        except discord.HTTPException as e:
            logger.error(f"Discord error in start command for channel {channel_id}: {e}")
        except Exception as e:
            logger.error(f"Error in start command for channel {channel_id}: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to start quiz", "❌ Quiz Start Error")

    async def handle_submit(self, interaction: discord.Interaction, force: bool = False):
        """Handle /submit command and the Submit button"""
        try:
            result = self.quiz_controller.submit_quiz(interaction.channel_id, allow_partial=force)

            if not result['success']:
                await interaction.response.send_message(result['user_message'], ephemeral=True)
                return

            if result['already_submitted']:
                await interaction.response.send_message(
                    f"ℹ️ Already submitted. Score: **{result['score']}** out of **{result['total_questions']}**",
                    ephemeral=True
                )
                return

            # Results are posted by the session listener
            await interaction.response.send_message("📨 Answers submitted!", ephemeral=True)

        except discord.HTTPException as e:
            logger.error(f"Discord error in submit command: {e}")
        except Exception as e:
            logger.error(f"Error in submit command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to submit answers", "❌ Submit Error")

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        channel_id = interaction.channel_id
        try:
            result = self.quiz_controller.stop_quiz(channel_id)
            board = self._boards.pop(channel_id, None)

            if not result['success']:
                await self.send_info_response(interaction, result['user_message'], "ℹ️ Nothing To Stop")
                return

            if board is not None:
                try:
                    await board.message.edit(view=None)
                except discord.HTTPException as e:
                    logger.warning(f"Could not clear quiz buttons for channel {channel_id}: {e}")

            embed = discord.Embed(
                title="🛑 Quiz Stopped",
                description="The quiz was abandoned and will not be scored.",
                color=COLOR_WARNING
            )
            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            logger.error(f"Discord error in stop command for channel {channel_id}: {e}")
        except Exception as e:
            logger.error(f"Error in stop command for channel {channel_id}: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to stop quiz", "❌ Stop Error")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            channel_id = interaction.channel_id
            session = self.quiz_controller.get_session(channel_id)
            config_manager = self.quiz_controller.get_config_manager(channel_id)

            embed = build_status_embed(session, config_manager.get_settings_summary())

            error_summary = self.quiz_controller.get_error_summary(channel_id)
            if error_summary['error_count'] > 0:
                embed.add_field(
                    name="⚠️ Recent Errors",
                    value="\n".join(f"• {error}" for error in error_summary['recent_errors'])[:1024],
                    inline=False
                )

            if self.category_manager.is_fallback_active():
                embed.set_footer(text="⚠️ Using built-in categories, the category list could not be fetched")

            await interaction.response.send_message(embed=embed, ephemeral=True)

        except discord.HTTPException as e:
            logger.error(f"Discord error in status command: {e}")
        except Exception as e:
            logger.error(f"Error in status command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to get quiz status", "❌ Status Error")

    # ------------------------------------------------------------------
    # Quiz board
    # ------------------------------------------------------------------

    def _build_view(self, channel_id: int, session: QuizSession, question_index: int) -> AnswerView:
        remaining = session.remaining_time * self.quiz_controller.tick_interval
        return AnswerView(
            session,
            question_index,
            on_answer=lambda interaction, index, answer: self.handle_answer(interaction, channel_id, index, answer),
            on_navigate=lambda interaction, index: self.handle_navigate(interaction, channel_id, index),
            on_submit=lambda interaction: self.handle_submit(interaction, force=False),
            timeout=remaining + 60 if session.phase == SessionPhase.READY else None
        )

    async def handle_answer(self, interaction: discord.Interaction, channel_id: int, question_index: int, answer: str):
        result = self.quiz_controller.select_answer(channel_id, question_index, answer)
        if not result['success']:
            await interaction.response.send_message(result['user_message'], ephemeral=True)
            return
        await self._render_board(interaction, channel_id, question_index)

    async def handle_navigate(self, interaction: discord.Interaction, channel_id: int, question_index: int):
        session = self.quiz_controller.get_session(channel_id)
        if session is None or not 0 <= question_index < len(session.questions):
            await interaction.response.send_message("❌ That question does not exist.", ephemeral=True)
            return
        await self._render_board(interaction, channel_id, question_index)

    async def _render_board(self, interaction: discord.Interaction, channel_id: int, question_index: int):
        session = self.quiz_controller.get_session(channel_id)
        board = self._boards.get(channel_id)
        if board is not None:
            board.question_index = question_index
        await interaction.response.edit_message(
            embed=build_question_embed(session, question_index),
            view=self._build_view(channel_id, session, question_index)
        )

    def _make_session_listener(self, channel_id: int):
        """Build the listener that keeps the channel's board in sync with its session"""
        def listener(session: QuizSession, event: SessionEvent):
            if event == SessionEvent.TICK:
                remaining = session.remaining_time
                if remaining > 0 and (remaining % BOARD_REFRESH_TICKS == 0 or remaining <= LOW_TIME_THRESHOLD):
                    return self._refresh_board_timer(channel_id, session)
            elif event == SessionEvent.PHASE_CHANGED and session.phase == SessionPhase.SUBMITTED:
                return self._post_results(channel_id, session)
            return None
        return listener

    async def _refresh_board_timer(self, channel_id: int, session: QuizSession):
        board = self._boards.get(channel_id)
        if board is None or session.phase != SessionPhase.READY:
            return
        try:
            await board.message.edit(embed=build_question_embed(session, board.question_index))
        except discord.HTTPException as e:
            logger.warning(f"Failed to update timer for channel {channel_id}: {e}")

    async def _post_results(self, channel_id: int, session: QuizSession):
        board = self._boards.pop(channel_id, None)
        if board is None:
            logger.warning(f"No quiz board for channel {channel_id}, results not posted")
            return
        try:
            await board.message.edit(
                embed=build_question_embed(session, board.question_index),
                view=self._build_view(channel_id, session, board.question_index)
            )
            await board.message.channel.send(embed=build_results_embed(session))
        except discord.HTTPException as e:
            logger.error(f"Failed to post results for channel {channel_id}: {e}")

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=COLOR_ERROR
            )
            embed.set_footer(text="If this error persists, try using /help for available commands")

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=COLOR_INFO
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=COLOR_WARNING
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send warning response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Trivia Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
