"""
System prompts for the AI explanation endpoints.

One builder per OperationKind; each takes the target language name
("English" / "Hindi") and returns the system message. The astrology data
itself is sent separately as the user message.
"""
from typing import Callable, Dict

from app.models.astrology import LANGUAGE_NAMES, OperationKind


# ─────────────────────────────────────────────
# Builders
# ─────────────────────────────────────────────

def chart_prompt(language_name: str) -> str:
    return (
        "You are an expert Vedic astrologer. "
        f"Explain the following kundli chart data clearly in {language_name}. "
        "Cover the ascendant, the Moon sign and the most significant planetary placements, "
        "and keep the tone practical and encouraging."
    )


def dasha_prompt(language_name: str) -> str:
    return (
        "You are an expert Vedic astrologer. "
        f"Explain the following Vimshottari Dasha periods in {language_name}. "
        "Describe the current Maha Dasha and Antar Dasha, what they emphasise, "
        "and when the next change of period falls."
    )


def yearly_prompt(language_name: str) -> str:
    return (
        "You are an expert Vedic astrologer. "
        "Based on the user's birth details and the forecast data below, "
        f"write a personalised yearly forecast in {language_name}, "
        "organised month by month."
    )


PROMPT_BUILDERS: Dict[OperationKind, Callable[[str], str]] = {
    OperationKind.CHART: chart_prompt,
    OperationKind.DASHA: dasha_prompt,
    OperationKind.YEARLY: yearly_prompt,
}

_unmapped = set(OperationKind) - set(PROMPT_BUILDERS)
if _unmapped:
    raise RuntimeError(f"No prompt template for: {sorted(k.value for k in _unmapped)}")


def get_system_prompt(kind: OperationKind, lang: str = "en") -> str:
    """Return the system prompt for an explanation in the given language.

    Args:
        kind: Which astrology payload is being explained
        lang: Language code — "en" (default) or "hi"
    """
    language_name = LANGUAGE_NAMES.get(lang, LANGUAGE_NAMES["en"])
    return PROMPT_BUILDERS[kind](language_name)
