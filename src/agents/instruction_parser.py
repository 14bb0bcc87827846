"""Free-text instruction adapter for the Opportunity Detector.

Turns operator phrases such as "only buy, discount over 30 in Paris" into an
OpportunityFilters object. The adapter is best-effort: phrases it does not
recognise are ignored, and the result can only narrow what the detector
returns.
"""

from __future__ import annotations

import re

from src.agents.schemas.opportunity import OpportunityFilters
from src.config.logging_config import get_logger

logger = get_logger("instruction_parser")

_NUMBER = r"\$?\s*(\d+(?:\.\d+)?)"

NUMERIC_PATTERNS: dict[str, re.Pattern[str]] = {
    "min_discount_pct": re.compile(r"discount\s+(?:over|above|of at least)\s*" + _NUMBER, re.I),
    "min_profit": re.compile(r"profit\s+(?:over|above|of at least)\s*" + _NUMBER, re.I),
    "min_margin_pct": re.compile(r"margin\s+(?:over|above|of at least)\s*" + _NUMBER, re.I),
    "min_roi_pct": re.compile(r"roi\s+(?:over|above|of at least)\s*" + _NUMBER, re.I),
    "max_price": re.compile(r"(?:max(?:imum)?\s+price|price\s+under)\s*" + _NUMBER, re.I),
    "min_price": re.compile(r"(?:min(?:imum)?\s+price|price\s+over)\s*" + _NUMBER, re.I),
    "max_days_to_check_in": re.compile(r"within\s+(\d+)\s+days", re.I),
}

FLAG_PATTERNS: dict[str, re.Pattern[str]] = {
    "only_buy": re.compile(r"\bonly\s+buy|\bbuy\s+only\b", re.I),
    "only_sell": re.compile(r"\bonly\s+sell|\bsell\s+only\b", re.I),
    "urgent_only": re.compile(r"\burgent\b|\bhigh\s+priority\b", re.I),
    "weekend_only": re.compile(r"\bweekends?\b", re.I),
    "free_cancellation_only": re.compile(r"\bfree\s+cancell?ation\b", re.I),
}

HOTEL_PATTERN = re.compile(r"\bhotel\s+(\w+)", re.I)
CITY_PATTERNS = [
    re.compile(r"\bcity\s+(\w+)", re.I),
    re.compile(r"\bin\s+([A-Z][\w-]+)"),
]
SEASON_PATTERN = re.compile(r"\b(summer|winter|spring|fall|autumn)\b", re.I)

# Capitalized words after "in" that name a time, not a place
NON_PLACE_WORDS = frozenset({
    "summer", "winter", "spring", "fall", "autumn",
    "january", "february", "march", "april", "may", "june", "july",
    "august", "september", "october", "november", "december",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "weekend", "weekends", "advance",
})


def parse_instructions(text: str | None) -> OpportunityFilters:
    """Extract structured filters from an operator instruction string.

    Returns:
        OpportunityFilters (empty when nothing was recognised).
    """
    if not text or not text.strip():
        return OpportunityFilters()

    values: dict[str, object] = {}

    for field, pattern in NUMERIC_PATTERNS.items():
        match = pattern.search(text)
        if match:
            values[field] = float(match.group(1))

    for field, pattern in FLAG_PATTERNS.items():
        if pattern.search(text):
            values[field] = True

    hotel = HOTEL_PATTERN.search(text)
    if hotel:
        values["hotel_name"] = hotel.group(1)

    city = _find_city(text)
    if city:
        values["city"] = city

    season = SEASON_PATTERN.search(text)
    if season:
        name = season.group(1).lower()
        values["season"] = "fall" if name == "autumn" else name

    logger.debug("instructions_parsed", text=text[:100], filters=sorted(values))
    return OpportunityFilters(**values)


def _find_city(text: str) -> str | None:
    for pattern in CITY_PATTERNS:
        for match in pattern.finditer(text):
            if match.group(1).lower() not in NON_PLACE_WORDS:
                return match.group(1)
    return None
