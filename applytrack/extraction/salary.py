"""Salary string parsing."""
import logging
import re
from dataclasses import dataclass
from typing import Optional

from applytrack.persistence.models import WageType

logger = logging.getLogger(__name__)

# Max synthesized from a lone amount on job pages ("$120K" -> 120K-144K)
SYNTHESIZED_MAX_FACTOR = 1.2

# Unit cues, checked in order; first hit wins
WAGE_TYPE_PATTERNS = [
    (WageType.HOURLY, r"hour|/\s*hr\b|per\s+hr\b"),
    (WageType.MONTHLY, r"month|/\s*mo\b"),
    (WageType.WEEKLY, r"week|/\s*wk\b"),
    (WageType.YEARLY, r"year|/\s*yr\b|annual"),
]

# "$120,000.00/yr - $163,000.00/yr", "$120K - $130K"
STRUCTURED_RANGE = re.compile(
    r"\$\s*([0-9][0-9,]*(?:\.\d+)?)(?:\s*([kK])\b)?(?:\s*/\s*\w+)?\s*[-–]\s*"
    r"\$\s*([0-9][0-9,]*(?:\.\d+)?)(?:\s*([kK])\b)?(?:\s*/\s*\w+)?"
)
# "$120-130K" / "$120K - $130K"
K_RANGE = re.compile(
    r"\$\s*(\d+(?:\.\d+)?)\s*[kK]?\s*[-–]\s*\$?\s*(\d+(?:\.\d+)?)\s*[kK]\b"
)
# "$120K"
K_SINGLE = re.compile(r"\$\s*(\d+(?:\.\d+)?)\s*[kK]\b")
# Any amount, optionally K-suffixed
AMOUNT = re.compile(r"\$?\s*(\d[\d,]*(?:\.\d+)?)\s*([kK](?![a-zA-Z]))?")


@dataclass
class SalaryRange:
    """Parsed compensation range."""

    min_amount: float
    max_amount: float
    wage_type: str = WageType.YEARLY.value

    def as_record_fields(self) -> dict:
        return {
            "wages_min": self.min_amount,
            "wages_max": self.max_amount,
            "wage_type": self.wage_type,
        }


def detect_wage_type(text: str) -> str:
    """Detect the wage period from keyword cues, defaulting to Yearly."""
    lowered = text.lower()
    for wage_type, pattern in WAGE_TYPE_PATTERNS:
        if re.search(pattern, lowered):
            return wage_type.value
    return WageType.YEARLY.value


def _to_number(raw: str) -> Optional[float]:
    try:
        return float(raw.replace(",", ""))
    except ValueError:
        return None


def parse_salary_string(
    text: Optional[str],
    synthesize_max: bool = False,
) -> Optional[SalaryRange]:
    """Parse a located salary string into a SalaryRange.

    Args:
        text: Salary text such as "$120,000/yr - $150,000/yr" or "$35 per hour"
        synthesize_max: When only one amount is present, set max to
            min * 1.2 instead of min (job-page extraction behaviour)

    Returns:
        SalaryRange, or None when no amount could be parsed
    """
    if not text or not re.search(r"\d", text):
        return None

    try:
        wage_type = detect_wage_type(text)
        low: Optional[float] = None
        high: Optional[float] = None

        match = STRUCTURED_RANGE.search(text)
        if match:
            low, high = _to_number(match.group(1)), _to_number(match.group(3))
            # Only a K attached to one of the matched amounts scales them
            if match.group(2) or match.group(4):
                low = low * 1000 if low is not None and low < 1000 else low
                high = high * 1000 if high is not None and high < 1000 else high
        else:
            match = K_RANGE.search(text)
            if match:
                low = float(match.group(1)) * 1000
                high = float(match.group(2)) * 1000
            else:
                match = K_SINGLE.search(text)
                if match:
                    low = float(match.group(1)) * 1000
                else:
                    amounts = []
                    has_k = False
                    for number, k_suffix in AMOUNT.findall(text):
                        value = _to_number(number)
                        if value is None:
                            continue
                        amounts.append(value)
                        has_k = has_k or bool(k_suffix)
                        if len(amounts) == 2:
                            break
                    if has_k:
                        amounts = [a * 1000 if a < 1000 else a for a in amounts]
                    if amounts:
                        low = amounts[0]
                        high = amounts[1] if len(amounts) > 1 else None

        if low is None:
            return None
        if high is None:
            high = round(low * SYNTHESIZED_MAX_FACTOR, 2) if synthesize_max else low
        if low > high:
            low, high = high, low
        return SalaryRange(min_amount=low, max_amount=high, wage_type=wage_type)

    except (ValueError, TypeError) as e:
        logger.debug("Could not parse salary %r: %s", text, e)
        return None


# Description scan: K ranges first, then the longest generic currency match
DESCRIPTION_K_RANGE = re.compile(
    r"\$\s*\d+(?:\.\d+)?\s*[kK]?\s*(?:[-–]|to)\s*\$?\s*\d+(?:\.\d+)?\s*[kK]\b"
)
DESCRIPTION_GENERIC = re.compile(
    r"\$\s*[\d,]+(?:\.\d+)?\s*[kK]?(?:\s*(?:/\s*\w+|per\s+\w+))?"
    r"(?:\s*(?:[-–]|to)\s*\$?\s*[\d,]+(?:\.\d+)?\s*[kK]?(?:\s*(?:/\s*\w+|per\s+\w+))?)?"
)


def find_salary_in_text(text: Optional[str]) -> Optional[str]:
    """Locate a salary-looking substring in free text.

    Prefers K-notation ranges like "$120-130K"; otherwise the longest
    generic currency match wins.
    """
    if not text or "$" not in text:
        return None
    k_match = DESCRIPTION_K_RANGE.search(text)
    if k_match:
        return k_match.group(0).strip()
    matches = [m.group(0).strip() for m in DESCRIPTION_GENERIC.finditer(text)]
    if not matches:
        return None
    return max(matches, key=len)
