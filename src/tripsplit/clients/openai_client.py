"""OpenAI client for narrative trip summaries."""

import logging
from collections.abc import Callable

from openai import OpenAI, OpenAIError

from ..exceptions import SummaryGenerationError
from ..models import MemberId, Settlement, Trip
from ..trips.share import format_money

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "API key is not set. Please configure your environment."
FAILURE_MESSAGE = (
    "Sorry, I couldn't generate a summary at this time. Please try again later."
)
FALLBACK_MESSAGES = frozenset({MISSING_KEY_MESSAGE, FAILURE_MESSAGE})

SYSTEM_PROMPT = """You write short, warm recaps of group trips based on their shared expenses.
Respond in plain text only, without markdown."""


def build_prompt(
    trip: Trip,
    name_lookup: Callable[[MemberId], str],
    settlements: list[Settlement],
    currency_symbol: str = "₹",
) -> str:
    """
    Build the user prompt describing a trip.

    Args:
        trip: The trip to summarize
        name_lookup: Maps a member id to a display name
        settlements: Settlements computed for the trip
        currency_symbol: Prefix for every amount

    Returns:
        Prompt text
    """
    member_lines = "\n".join(f"- {name_lookup(member_id)}" for member_id in trip.members)
    expense_lines = "\n".join(
        f"- {expense.description or 'An expense'} for "
        f"{format_money(expense.amount, currency_symbol)}, "
        f"paid by {name_lookup(expense.payer)}."
        for expense in trip.expenses
    )
    settlement_lines = "\n".join(
        f"- {name_lookup(s.from_member)} pays {name_lookup(s.to_member)} "
        f"{format_money(s.amount, currency_symbol)}"
        for s in settlements
    )

    return f"""Generate a fun, friendly, and narrative-style summary for a trip. Be creative and engaging.

Here are the details:
- Trip Name: "{trip.name}"
- Trip Date: {trip.date.isoformat()}

Members on the trip:
{member_lines or "- (nobody yet)"}

Here's a list of expenses:
{expense_lines or "- No expenses recorded."}

And here is the final breakdown of who needs to pay whom:
{settlement_lines or "- Everyone is already settled up."}

Based on all this data, write a short, engaging summary.
- Start with a catchy headline.
- Mention the total spending.
- Highlight who paid for major items or who was the biggest spender in a fun way.
- Briefly mention the final settlements in a light-hearted manner, like "time to settle up!".
- Give it a positive and memorable tone, like a fond memory.
- Keep it concise, around 3-4 paragraphs.
- The output should be plain text."""


class TripSummaryGenerator:
    """GPT-based narrative summaries for trips."""

    def __init__(self, api_key: str | None, model: str = "gpt-4o-mini"):
        """Initialize the generator. The client is only created with a key."""
        self.model = model
        self.client = OpenAI(api_key=api_key) if api_key else None

    def complete(self, prompt: str) -> str:
        """
        Send a prompt to the chat completions API.

        Raises:
            SummaryGenerationError: If the request fails or returns no text
        """
        if self.client is None:
            raise SummaryGenerationError(MISSING_KEY_MESSAGE)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.8,
            )
        except OpenAIError as e:
            raise SummaryGenerationError(f"OpenAI request failed: {e}") from e

        if not response.choices:
            raise SummaryGenerationError("OpenAI returned no choices")

        text = (response.choices[0].message.content or "").strip()
        if not text:
            raise SummaryGenerationError("OpenAI returned an empty summary")
        return text

    def generate_summary(
        self,
        trip: Trip,
        name_lookup: Callable[[MemberId], str],
        settlements: list[Settlement],
        currency_symbol: str = "₹",
    ) -> str:
        """
        Generate a narrative summary of a trip.

        Never raises: without an API key, or when the request fails, a fixed
        fallback message is returned instead.

        Returns:
            Generated text, or one of FALLBACK_MESSAGES
        """
        if self.client is None:
            logger.info("No OpenAI API key configured, skipping summary")
            return MISSING_KEY_MESSAGE

        prompt = build_prompt(trip, name_lookup, settlements, currency_symbol)

        try:
            summary = self.complete(prompt)
        except SummaryGenerationError as e:
            logger.error(f"Error generating summary for trip {trip.id}: {e}")
            return FAILURE_MESSAGE

        logger.info(f"Generated summary for trip '{trip.name}' ({len(summary)} chars)")
        return summary
