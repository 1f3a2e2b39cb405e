"""
Presentation helpers for the Trivia Quiz Bot.
Decodes question text, shuffles answers per render and builds Discord embeds and views.
"""
import html
import logging
import random
from typing import Awaitable, Callable, List, Optional, Sequence

import discord

from .models import UNANSWERED, Question, SessionPhase, SubmissionTrigger, TriviaCategory
from .quiz_session import QuizSession

logger = logging.getLogger(__name__)

LOW_TIME_THRESHOLD = 10
MAX_BUTTON_LABEL = 80
MAX_FIELD_VALUE = 1024
MAX_FIELDS = 25

COLOR_OK = 0x00ff00
COLOR_WARNING = 0xffaa00
COLOR_ERROR = 0xff0000
COLOR_INFO = 0x6699ff

AnswerHandler = Callable[[discord.Interaction, int, str], Awaitable[None]]
NavigateHandler = Callable[[discord.Interaction, int], Awaitable[None]]
SubmitHandler = Callable[[discord.Interaction], Awaitable[None]]


def decode_html(text: str) -> str:
    """Decode HTML entities (&quot; &amp; &#039; ...) found in trivia API text."""
    return html.unescape(text)


def shuffled_answers(question: Question, rng: Optional[random.Random] = None) -> List[str]:
    """Return the question's answers in a fresh random order. Nothing is cached between calls."""
    answers = question.answers
    (rng or random).shuffle(answers)
    return answers


def format_remaining_time(seconds: int) -> str:
    return f"{seconds} second{'s' if seconds != 1 else ''}"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 1] + "…"


def _timer_color(remaining: int) -> int:
    return COLOR_OK if remaining >= LOW_TIME_THRESHOLD else COLOR_ERROR


def build_question_embed(session: QuizSession, question_index: int) -> discord.Embed:
    """Render one question with the player's current selection and the countdown."""
    question = session.questions[question_index]
    total = len(session.questions)
    answers = session.user_answers or ()
    selected = answers[question_index] if question_index < len(answers) else UNANSWERED

    embed = discord.Embed(
        title=f"🎯 Question {question_index + 1}/{total}",
        description=decode_html(question.question),
        color=_timer_color(session.remaining_time)
    )
    embed.add_field(name="📚 Category", value=decode_html(question.category), inline=True)
    embed.add_field(name="📶 Difficulty", value=question.difficulty.capitalize(), inline=True)

    timer_emoji = "⏱️" if session.remaining_time >= LOW_TIME_THRESHOLD else "⚠️"
    embed.add_field(
        name=f"{timer_emoji} Time Remaining",
        value=format_remaining_time(session.remaining_time),
        inline=True
    )

    if selected is UNANSWERED:
        embed.set_footer(text=f"Not answered yet • {session.answered_count}/{total} answered")
    else:
        embed.set_footer(text=f"Your answer: {decode_html(selected)} • {session.answered_count}/{total} answered")
    return embed


def build_results_embed(session: QuizSession) -> discord.Embed:
    """Render the final score with a per-question breakdown."""
    total = len(session.questions)
    score = session.score or 0

    if session.submission_trigger == SubmissionTrigger.TIMEOUT:
        description = f"⏰ Time's up!\nYour score: **{score}** out of **{total}**"
    else:
        description = f"Your score: **{score}** out of **{total}**"

    embed = discord.Embed(
        title="🏁 Trivia Results",
        description=description,
        color=COLOR_OK if total and score * 2 >= total else COLOR_WARNING
    )

    lines = []
    for result in session.results():
        marker = "✅" if result.is_correct else "❌"
        line = f"{marker} **Q{result.index + 1}** {decode_html(result.question.correct_answer)}"
        if not result.is_correct:
            given = decode_html(result.given_answer) if result.was_answered else "no answer"
            line += f" (you: {given})"
        lines.append(line)

    for chunk_number, chunk in enumerate(_chunk_lines(lines, MAX_FIELD_VALUE)):
        if chunk_number >= MAX_FIELDS:
            break
        embed.add_field(
            name="Answers" if chunk_number == 0 else "Answers (cont.)",
            value=chunk,
            inline=False
        )
    return embed


def build_loading_embed(question_count: int, category_name: str) -> discord.Embed:
    return discord.Embed(
        title="⏳ Loading Questions...",
        description=f"Fetching **{question_count}** questions from **{category_name}**",
        color=COLOR_INFO
    )


def build_failure_embed(message: str) -> discord.Embed:
    embed = discord.Embed(
        title="❌ Could Not Load Questions",
        description=message,
        color=COLOR_ERROR
    )
    embed.set_footer(text="Adjust the settings or try /start again")
    return embed


def build_status_embed(session: Optional[QuizSession], settings_summary: str) -> discord.Embed:
    """Describe the channel's session phase together with the current settings."""
    if session is None:
        embed = discord.Embed(
            title="ℹ️ No Active Quiz",
            description="There is no quiz session in this channel.",
            color=COLOR_INFO
        )
    else:
        titles = {
            SessionPhase.IDLE: ("ℹ️ Quiz Not Started", COLOR_INFO),
            SessionPhase.LOADING: ("⏳ Loading Questions", COLOR_INFO),
            SessionPhase.READY: ("▶️ Quiz In Progress", COLOR_OK),
            SessionPhase.FAILED: ("❌ Quiz Failed To Load", COLOR_ERROR),
            SessionPhase.SUBMITTED: ("✅ Quiz Completed", COLOR_INFO),
        }
        title, color = titles[session.phase]
        embed = discord.Embed(title=title, color=color)

        if session.phase == SessionPhase.READY:
            embed.add_field(
                name="📊 Progress",
                value=f"{session.answered_count}/{len(session.questions)} answered",
                inline=True
            )
            embed.add_field(
                name="⏱️ Time Remaining",
                value=format_remaining_time(session.remaining_time),
                inline=True
            )
        elif session.phase == SessionPhase.SUBMITTED:
            embed.add_field(
                name="🏆 Score",
                value=f"{session.score}/{len(session.questions)}",
                inline=True
            )
        elif session.phase == SessionPhase.FAILED and session.error_message:
            embed.add_field(name="Error", value=_truncate(session.error_message, MAX_FIELD_VALUE), inline=False)

    embed.add_field(name="⚙️ Current Settings", value=f"```\n{settings_summary}\n```", inline=False)
    return embed


def build_categories_embed(categories: Sequence[TriviaCategory], fallback_active: bool) -> discord.Embed:
    embed = discord.Embed(
        title="📚 Trivia Categories",
        description="Use `/set_category <id>` to choose one",
        color=COLOR_WARNING if fallback_active else COLOR_INFO
    )
    lines = [f"`{category.id:>3}` {category.name}" for category in categories]
    for chunk_number, chunk in enumerate(_chunk_lines(lines, MAX_FIELD_VALUE)):
        if chunk_number >= MAX_FIELDS:
            break
        embed.add_field(name="Categories" if chunk_number == 0 else "Categories (cont.)", value=chunk, inline=False)

    if fallback_active:
        embed.set_footer(text="⚠️ Category list could not be fetched, showing built-in categories")
    return embed


def _chunk_lines(lines: Sequence[str], limit: int) -> List[str]:
    chunks = []
    current = ""
    for line in lines:
        line = _truncate(line, limit)
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


class AnswerView(discord.ui.View):
    """Buttons for one question: its answers in fresh random order, navigation and submit."""

    def __init__(
        self,
        session: QuizSession,
        question_index: int,
        on_answer: AnswerHandler,
        on_navigate: NavigateHandler,
        on_submit: SubmitHandler,
        timeout: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(timeout=timeout)
        self.session = session
        self.question_index = question_index
        self._on_answer = on_answer
        self._on_navigate = on_navigate
        self._on_submit = on_submit

        question = session.questions[question_index]
        answers = session.user_answers or ()
        selected = answers[question_index] if question_index < len(answers) else UNANSWERED
        playable = session.phase == SessionPhase.READY

        for position, answer in enumerate(shuffled_answers(question, rng)):
            button = discord.ui.Button(
                label=_truncate(decode_html(answer), MAX_BUTTON_LABEL),
                style=discord.ButtonStyle.primary if answer == selected else discord.ButtonStyle.secondary,
                row=position // 5,
                disabled=not playable
            )
            button.callback = self._answer_callback(answer)
            self.add_item(button)

        total = len(session.questions)
        previous_button = discord.ui.Button(
            label="◀ Prev", style=discord.ButtonStyle.secondary, row=2,
            disabled=not playable or question_index == 0
        )
        previous_button.callback = self._navigate_callback(question_index - 1)
        self.add_item(previous_button)

        next_button = discord.ui.Button(
            label="Next ▶", style=discord.ButtonStyle.secondary, row=2,
            disabled=not playable or question_index >= total - 1
        )
        next_button.callback = self._navigate_callback(question_index + 1)
        self.add_item(next_button)

        submit_button = discord.ui.Button(
            label="Submit Answers", style=discord.ButtonStyle.success, row=2,
            disabled=not playable
        )
        submit_button.callback = self._submit_callback
        self.add_item(submit_button)

    def _answer_callback(self, answer: str):
        async def callback(interaction: discord.Interaction) -> None:
            await self._on_answer(interaction, self.question_index, answer)
        return callback

    def _navigate_callback(self, target_index: int):
        async def callback(interaction: discord.Interaction) -> None:
            await self._on_navigate(interaction, target_index)
        return callback

    async def _submit_callback(self, interaction: discord.Interaction) -> None:
        await self._on_submit(interaction)

    async def on_error(self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item) -> None:
        logger.error(f"Error handling quiz button for question {self.question_index + 1}: {error}", exc_info=error)
        try:
            if interaction.response.is_done():
                await interaction.followup.send("❌ Something went wrong handling that button.", ephemeral=True)
            else:
                await interaction.response.send_message("❌ Something went wrong handling that button.", ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send button error response to user")
