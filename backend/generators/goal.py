import logging
import re
from typing import List, Optional, Sequence

from core.errors import ParseError
from generators.base import BaseGenerator, GenerationState
from models import WritingGoals, WritingProgress

logger = logging.getLogger("storyloom.generators")

# (low, high, default) per goal
DAILY_RANGE = (500, 10000, 2000)
WEEKLY_RANGE = (3000, 70000, 15000)
MONTHLY_RANGE = (15000, 300000, 80000)

_NUMBER_RE = re.compile(r"\d+")

GOAL_SYSTEM_PROMPT = """\
You are a writing coach who sets realistic word-count goals for novelists. \
Answer with three numbers only."""


def default_goals() -> WritingGoals:
    return WritingGoals(
        daily_words=DAILY_RANGE[2],
        weekly_words=WEEKLY_RANGE[2],
        monthly_words=MONTHLY_RANGE[2],
    )


def _within(name: str, value: int, bounds) -> int:
    low, high, default = bounds
    if low <= value <= high:
        return value
    logger.warning(
        "goal out of range, using default goal=%s value=%d low=%d high=%d default=%d",
        name,
        value,
        low,
        high,
        default,
    )
    return default


def parse_goals(text: str) -> WritingGoals:
    """Read the first three decimal runs as daily, weekly and monthly goals."""
    numbers = [int(match) for match in _NUMBER_RE.findall(text)]
    if len(numbers) < 3:
        raise ParseError(f"expected three numbers in goal response, found {len(numbers)}", raw=text)
    return WritingGoals(
        daily_words=_within("daily", numbers[0], DAILY_RANGE),
        weekly_words=_within("weekly", numbers[1], WEEKLY_RANGE),
        monthly_words=_within("monthly", numbers[2], MONTHLY_RANGE),
    )


class GoalGenerator(BaseGenerator):
    name = "goal"
    system_prompt = GOAL_SYSTEM_PROMPT

    def build_prompt(self, history: Sequence[WritingProgress]) -> str:
        if not history:
            return """This is a new writer with no writing history yet.

Suggest reasonable writing goals:
1. A daily word goal (between 1000 and 3000 is typical)
2. A weekly word goal
3. A monthly word goal

Answer in exactly this format, numbers only:
Daily: [number]
Weekly: [number]
Monthly: [number]"""

        lines: List[str] = ["Based on this writing history, suggest reasonable writing goals.", ""]
        lines.append("Recent writing history:")
        total_words = 0
        total_chapters = 0
        for progress in history:
            lines.append(
                f"- {progress.date}: {progress.word_count} words, {progress.chapter_count} chapters"
            )
            total_words += progress.word_count
            total_chapters += progress.chapter_count
        average = total_words // len(history)
        lines.extend(
            [
                "",
                "Totals:",
                f"- Words: {total_words}",
                f"- Chapters: {total_chapters}",
                f"- Average per day: {average} words",
                "",
                "Suggest goals that are challenging but achievable:",
                "1. A daily word goal",
                "2. A weekly word goal",
                "3. A monthly word goal",
                "",
                "Answer in exactly this format, numbers only:",
                "Daily: [number]",
                "Weekly: [number]",
                "Monthly: [number]",
            ]
        )
        return "\n".join(lines)

    def generate(self, history: Optional[Sequence[WritingProgress]] = None) -> WritingGoals:
        history = list(history or [])
        with self._call("generate") as call:
            raw = self._request(call, self.build_prompt(history), self._options(0.3, 100))
            call.advance(GenerationState.PARSING)
            goals = parse_goals(raw)
            call.advance(GenerationState.VALIDATING)
            call.advance(GenerationState.DONE)
            return goals
