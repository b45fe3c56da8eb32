"""
Keyword-based crisis screening for chat messages.

Messages are scanned against three tiers of risk phrases. The scan is a plain
substring search on the lower-cased text, so "sad" also matches inside
"saddened"; callers that need word boundaries must not rely on this module.
The result is a best-effort local judgement meant to run next to an AI
classifier, never a proof that a message is safe.
"""

from functools import lru_cache
from importlib import resources
from pathlib import Path
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, field_validator

from .models import CrisisVerdict, Severity

KEYWORDS_RESOURCE = "crisis_keywords.json"

SEVERITY_MULTIPLIER = MappingProxyType(
    {"none": 0.0, "low": 0.3, "medium": 0.6, "high": 1.0}
)

CRISIS_RESPONSES = MappingProxyType(
    {
        "high": (
            "I'm very concerned about your safety. It sounds like you're going "
            "through an extremely difficult time. Please know that you matter and "
            "there are people who want to help. Would you like me to connect you "
            "with crisis support resources right now?"
        ),
        "medium": (
            "I'm concerned about what you're sharing. It sounds like you're in a "
            "lot of pain right now. You don't have to go through this alone. Would "
            "it help to talk about what's happening, or would you prefer "
            "information about support resources?"
        ),
        "low": (
            "I hear that you're struggling right now. Those feelings can be really "
            "overwhelming. I'm here to listen and support you. Would you like to "
            "talk more about what you're experiencing?"
        ),
    }
)

DEFAULT_RESPONSE = (
    "I'm here to listen and support you. How are you feeling right now?"
)


class CrisisKeywords(BaseModel):
    """The severity-tiered phrase table, in scan order within each tier."""

    model_config = ConfigDict(frozen=True)

    version: int = 1
    high: tuple[str, ...]
    medium: tuple[str, ...]
    low: tuple[str, ...]

    @field_validator("high", "medium", "low")
    @classmethod
    def _normalize(cls, phrases: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(p.lower().strip() for p in phrases if p.strip())


def load_keywords(path: str | Path | None = None) -> CrisisKeywords:
    """
    Load a phrase table from JSON.

    Args:
        path: File to read. The table bundled with the package is used when
            omitted.

    Returns:
        The validated phrase table
    """
    if path is None:
        raw = resources.files(__package__).joinpath(KEYWORDS_RESOURCE).read_text(
            encoding="utf-8"
        )
    else:
        raw = Path(path).read_text(encoding="utf-8")
    return CrisisKeywords.model_validate_json(raw)


class CrisisClassifier:
    """Scores text against a fixed crisis vocabulary."""

    def __init__(self, keywords: CrisisKeywords | None = None) -> None:
        self.keywords = keywords if keywords is not None else load_keywords()

    def classify(self, text: str) -> CrisisVerdict:
        """
        Classify a message by the most severe tier of phrases it contains.

        High phrases are always scanned. Medium phrases are scanned only when
        no high phrase matched, and low phrases only when nothing matched yet.

        Args:
            text: Raw message text

        Returns:
            The verdict with matched phrases, confidence and intervention flag
        """
        normalized = text.lower().strip()
        found: list[str] = []
        severity: Severity = "none"

        for phrase in self.keywords.high:
            if phrase in normalized:
                found.append(phrase)
                severity = "high"

        if severity != "high":
            for phrase in self.keywords.medium:
                if phrase in normalized:
                    found.append(phrase)
                    severity = "medium"

        if severity == "none":
            for phrase in self.keywords.low:
                if phrase in normalized:
                    found.append(phrase)
                    severity = "low"

        confidence = 0.0
        if found:
            base = min(len(found) * 0.2, 0.8)
            confidence = base * SEVERITY_MULTIPLIER[severity]

        return CrisisVerdict(
            severity=severity,
            trigger_words=found,
            confidence=confidence,
            requires_intervention=severity == "high"
            or (severity == "medium" and confidence > 0.5),
        )


@lru_cache(maxsize=1)
def default_classifier() -> CrisisClassifier:
    """Classifier over the bundled phrase table, built once per process."""
    return CrisisClassifier()


def classify(text: str) -> CrisisVerdict:
    """Classify ``text`` with the bundled phrase table."""
    return default_classifier().classify(text)


def response_for(severity: str) -> str:
    """Canned supportive reply for a crisis severity."""
    return CRISIS_RESPONSES.get(severity, DEFAULT_RESPONSE)
