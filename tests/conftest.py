"""
conftest.py - Pytest configuration for inquiry engine tests

Sets up Python path and shared fakes for the external providers.
"""
import sys
from pathlib import Path

import pytest

# Add inquiry-service to path for imports
INQUIRY_SERVICE_DIR = Path(__file__).parent.parent / "inquiry-service"

if str(INQUIRY_SERVICE_DIR) not in sys.path:
    sys.path.insert(0, str(INQUIRY_SERVICE_DIR))

from inquiry_engine.core.errors import ProviderUnavailable  # noqa: E402


# A reply that passes every validator check for "קו 408 שינוי מסלול"
GOOD_RESPONSE = (
    "שלום רב,\n"
    "פנייתך בנושא שינוי מסלול קו 408 התקבלה ונבחנה בקפידה על ידי הצוות המקצועי במחלקה.\n"
    "אנו ממשיכים לעקוב אחר התפעול השוטף ונעדכן בהתאם לממצאים.\n"
    "בברכה,\n"
    "תוכנית אב לתחבורה"
)

BAD_RESPONSE = "Sorry, no answer."


class FakeGenerator:
    """Returns queued replies (or raises queued exceptions) and records every call."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def generate(self, system_prompt, user_prompt, temperature=0.7):
        self.calls.append(
            {"system_prompt": system_prompt, "user_prompt": user_prompt, "temperature": temperature}
        )
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeEmbedder:
    available = True

    def __init__(self, vector=None, error=None):
        self.vector = vector
        self.error = error
        self.calls = 0

    def embed(self, text):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.vector


class DownEmbedder(FakeEmbedder):
    """Configured and reporting available, but every call fails."""

    def __init__(self):
        super().__init__(error=ProviderUnavailable("embedding backend down"))


@pytest.fixture
def fixture_records():
    from inquiry_engine.services.providers import FIXTURE_RECORDS
    return list(FIXTURE_RECORDS)
