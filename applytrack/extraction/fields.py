"""Field extractors for job-posting pages.

Each field is pulled out by an ordered list of named strategies (see
``strategies.py``). Extractors take a parsed ``BeautifulSoup`` document and
return a value or None; they never raise for missing data.
"""
import hashlib
import logging
import re
from typing import Optional, Union
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup, Tag

from applytrack.extraction.salary import SalaryRange, find_salary_in_text, parse_salary_string
from applytrack.extraction.strategies import Strategy, first_match, normalize_whitespace
from applytrack.persistence.models import normalize_employment_type, normalize_location_type

logger = logging.getLogger(__name__)

MAX_FIELD_LENGTH = 200
MIN_DESCRIPTION_LENGTH = 200


def as_soup(document: Union[str, BeautifulSoup, None]) -> BeautifulSoup:
    """Parse HTML text into a soup; soups pass through unchanged."""
    if isinstance(document, BeautifulSoup):
        return document
    return BeautifulSoup(document or "", "html.parser")


def element_text(element: Optional[Tag]) -> Optional[str]:
    """Whitespace-normalized text of an element, or None."""
    if element is None:
        return None
    text = normalize_whitespace(element.get_text(" "))
    return text or None


def _plausible(text: Optional[str], max_length: int = MAX_FIELD_LENGTH) -> Optional[str]:
    if text and 1 < len(text) <= max_length:
        return text
    return None


def select_text(selector: str, max_length: int = MAX_FIELD_LENGTH):
    """Strategy function returning the text of the first element matching a CSS selector."""

    def _find(soup: BeautifulSoup) -> Optional[str]:
        return _plausible(element_text(soup.select_one(selector)), max_length)

    return _find


def labelled_value(*labels: str):
    """Strategy function reading "Label: value" text from the smallest element carrying it."""
    pattern = re.compile(r"(?:%s)\s*:\s*(.+)" % "|".join(re.escape(label) for label in labels), re.IGNORECASE)

    def _find(soup: BeautifulSoup) -> Optional[str]:
        for string in soup.find_all(string=pattern):
            parent = string.parent
            if parent is None or parent.name in ("script", "style"):
                continue
            match = pattern.search(normalize_whitespace(parent.get_text(" ")))
            if match:
                value = _plausible(normalize_whitespace(match.group(1)))
                if value:
                    return value
        return None

    return _find


def _selector_strategies(prefix: str, selectors: list[str], max_length: int = MAX_FIELD_LENGTH) -> list[Strategy]:
    return [Strategy(f"{prefix}:{selector}", select_text(selector, max_length)) for selector in selectors]


def _body_text(soup: BeautifulSoup) -> str:
    body = soup.body or soup
    return body.get_text(" ").lower()


def _page_title_parts(soup: BeautifulSoup) -> list[str]:
    title = element_text(soup.title)
    if not title:
        return []
    return [part.strip() for part in re.split(r"\s[-|–]\s|\|", title) if part.strip()]


# =============================================================================
# TITLE
# =============================================================================

TITLE_SELECTORS = [
    "h1",
    ".job-title", ".jobTitle",
    ".position-title", ".positionTitle",
    ".job-header h1", ".job-header h2",
    "h1.title", "h2.title",
    '[data-testid="jobTitle"]',
    '[data-automation="job-title"]',
]


def _title_from_page_title(soup: BeautifulSoup) -> Optional[str]:
    parts = _page_title_parts(soup)
    return _plausible(parts[0]) if parts else None


TITLE_STRATEGIES = _selector_strategies("css", TITLE_SELECTORS) + [
    Strategy("page-title", _title_from_page_title),
]


def extract_title(soup: BeautifulSoup) -> Optional[str]:
    """Job title from heading/title selectors, else the page <title>."""
    return first_match(TITLE_STRATEGIES, soup).value


# =============================================================================
# COMPANY
# =============================================================================

COMPANY_SELECTORS = [
    ".company-name", ".companyName",
    ".employer", ".organization",
    ".company",
    '[data-testid="company"]',
    '[data-automation="company-name"]',
    ".job-company", ".jobCompany",
    "h1 + div", "h1 + p", "h1 ~ .subtitle",
]


def _company_from_logo(soup: BeautifulSoup) -> Optional[str]:
    img = soup.select_one('img[alt*="logo" i]')
    if img is None:
        return None
    alt = img.get("alt") or ""
    return _plausible(normalize_whitespace(re.sub(r"\s*logo\s*$", "", alt, flags=re.IGNORECASE)))


def _company_from_page_title(soup: BeautifulSoup) -> Optional[str]:
    parts = _page_title_parts(soup)
    return _plausible(parts[-1]) if len(parts) > 1 else None


COMPANY_STRATEGIES = _selector_strategies("css", COMPANY_SELECTORS) + [
    Strategy("logo-alt", _company_from_logo),
    Strategy("page-title-suffix", _company_from_page_title),
]


def extract_company(soup: BeautifulSoup) -> Optional[str]:
    """Company name from employer selectors, logo alt text or the page <title>."""
    return first_match(COMPANY_STRATEGIES, soup).value


# =============================================================================
# LOCATION
# =============================================================================

LOCATION_SELECTORS = [
    ".job-location", ".jobLocation",
    ".location", ".company-location",
    '[data-testid="location"]',
    '[data-automation="job-location"]',
    ".company + .location", ".company ~ .location",
]

LOCATION_STRATEGIES = _selector_strategies("css", LOCATION_SELECTORS) + [
    Strategy("label:location", labelled_value("Location")),
]


def extract_location(soup: BeautifulSoup) -> Optional[str]:
    """Company location from location selectors or a "Location:" label."""
    value = first_match(LOCATION_STRATEGIES, soup).value
    if value:
        value = re.sub(r"^location\s*:\s*", "", value, flags=re.IGNORECASE)
    return value or None


# =============================================================================
# EMPLOYMENT TYPE
# =============================================================================

EMPLOYMENT_TYPE_SELECTORS = [
    ".job-type", ".jobType",
    ".employment-type", ".employmentType",
    '[data-testid="employmentType"]',
    '[data-automation="job-type"]',
]

# Body keyword cues, checked in order
EMPLOYMENT_TYPE_CUES = [
    ("Full-time", ("full-time", "full time")),
    ("Part-time", ("part-time", "part time")),
    ("Contract", ("contract",)),
    ("Internship", ("internship",)),
    ("Freelance", ("freelance",)),
]


def keyword_employment_type(text: str) -> Optional[str]:
    """Employment type from keyword cues in lowercased free text."""
    for value, cues in EMPLOYMENT_TYPE_CUES:
        if any(cue in text for cue in cues):
            return value
    return None


EMPLOYMENT_TYPE_STRATEGIES = _selector_strategies("css", EMPLOYMENT_TYPE_SELECTORS) + [
    Strategy("label:employment-type", labelled_value("Employment Type", "Job Type")),
    Strategy("body-keywords", lambda soup: keyword_employment_type(_body_text(soup))),
]


def extract_employment_type(soup: BeautifulSoup) -> Optional[str]:
    """Canonical employment type from selectors, labels or body keywords."""
    return normalize_employment_type(first_match(EMPLOYMENT_TYPE_STRATEGIES, soup).value)


# =============================================================================
# LOCATION TYPE
# =============================================================================

LOCATION_TYPE_SELECTORS = [
    ".remote", ".location-type",
    ".locationType", ".work-type",
    '[data-testid="locationType"]',
    '[data-automation="location-type"]',
]


def keyword_location_type(text: str) -> Optional[str]:
    """Location type from remote/hybrid/on-site cues in lowercased free text."""
    if "remote" in text:
        return "Remote"
    if "hybrid" in text:
        return "Hybrid"
    if "on-site" in text or "on site" in text or "onsite" in text:
        return "On-site"
    return None


def _location_type_from_selector(soup: BeautifulSoup) -> Optional[str]:
    value = first_match(_selector_strategies("css", LOCATION_TYPE_SELECTORS), soup).value
    return keyword_location_type(value.lower()) if value else None


LOCATION_TYPE_STRATEGIES = [
    Strategy("css:location-type", _location_type_from_selector),
    Strategy("body-keywords", lambda soup: keyword_location_type(_body_text(soup))),
]


def extract_location_type(soup: BeautifulSoup) -> Optional[str]:
    """Canonical location type from selectors or body keywords."""
    return normalize_location_type(first_match(LOCATION_TYPE_STRATEGIES, soup).value)


# =============================================================================
# DESCRIPTION
# =============================================================================

DESCRIPTION_SELECTORS = [
    ".description__text--rich",
    ".show-more-less-html__markup",
    ".job-description", ".jobDescription",
    ".description", ".details",
    ".job-details", ".jobDetails",
    '[data-testid="jobDescription"]',
    '[data-automation="job-description"]',
    ".job-details-content", ".jobDetailsContent",
    "#job-details", "#jobDetails",
    ".details-section", ".detailsSection",
]


def _clean_block_text(element: Tag) -> Optional[str]:
    for noise in element.find_all(["script", "style"]):
        noise.decompose()
    return element_text(element)


def _description_from_selectors(soup: BeautifulSoup) -> Optional[str]:
    for selector in DESCRIPTION_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            text = _clean_block_text(element)
            if text:
                return text
    return None


def _description_from_long_block(soup: BeautifulSoup) -> Optional[str]:
    for block in soup.find_all(["div", "section"]):
        if block.find("script") is not None:
            continue
        text = element_text(block)
        if text and len(text) > MIN_DESCRIPTION_LENGTH and "." in text:
            return text
    return None


DESCRIPTION_STRATEGIES = [
    Strategy("css:description", _description_from_selectors),
    Strategy("long-text-block", _description_from_long_block),
]


def extract_description(soup: BeautifulSoup) -> Optional[str]:
    """Posting description with script/style content stripped."""
    return first_match(DESCRIPTION_STRATEGIES, soup).value


# =============================================================================
# SALARY (five tiers)
# =============================================================================

SALARY_SELECTORS = [
    ".salary", ".pay-range", ".payRange",
    '[data-testid="salary"]',
    '[data-automation="salary-range"]',
]


def _salary_from_criteria(soup: BeautifulSoup, description: Optional[str]) -> Optional[str]:
    for item in soup.select(".description__job-criteria-item"):
        header = element_text(item.select_one(".description__job-criteria-subheader")) or ""
        if re.search(r"salary|pay|compensation", header, re.IGNORECASE):
            text = element_text(item.select_one(".description__job-criteria-text"))
            if text and re.search(r"\d", text):
                return text
    for selector in SALARY_SELECTORS:
        text = element_text(soup.select_one(selector))
        if text and re.search(r"\d", text):
            return re.sub(r"^(salary|compensation)\s*:\s*", "", text, flags=re.IGNORECASE)
    return labelled_value("Salary", "Compensation", "Pay Range")(soup)


def _salary_from_compensation_block(soup: BeautifulSoup, description: Optional[str]) -> Optional[str]:
    for selector in (".compensation__salary-range", ".salary.compensation__salary", ".compensation"):
        text = element_text(soup.select_one(selector))
        if text and "$" in text:
            return text
    return None


def _salary_from_job_insight(soup: BeautifulSoup, description: Optional[str]) -> Optional[str]:
    for insight in soup.select(".job-details-jobs-unified-top-card__job-insight"):
        text = element_text(insight)
        if text and "$" in text:
            return text
    return None


def _salary_from_description(soup: BeautifulSoup, description: Optional[str]) -> Optional[str]:
    return find_salary_in_text(description)


def _salary_from_list_item(soup: BeautifulSoup, description: Optional[str]) -> Optional[str]:
    for item in soup.find_all("li"):
        text = element_text(item)
        if text and "$" in text:
            return text
    return None


SALARY_STRATEGIES = [
    Strategy("salary-selector", _salary_from_criteria),
    Strategy("compensation-block", _salary_from_compensation_block),
    Strategy("job-insight", _salary_from_job_insight),
    Strategy("description-regex", _salary_from_description),
    Strategy("list-item", _salary_from_list_item),
]


def extract_salary(
    soup: BeautifulSoup,
    description: Optional[str] = None,
    synthesize_max: bool = True,
) -> Optional[SalaryRange]:
    """Locate and parse a salary using the five-tier fallback.

    Args:
        soup: Parsed posting page
        description: Already-extracted description text (tier 4 scans it)
        synthesize_max: Page extraction synthesizes max = min * 1.2 for lone amounts

    Returns:
        SalaryRange or None
    """
    for strategy in SALARY_STRATEGIES:
        located = first_match([strategy], soup, description).value
        if not located:
            continue
        parsed = parse_salary_string(located, synthesize_max=synthesize_max)
        if parsed:
            logger.debug("Salary found by %s: %s", strategy.name, located)
            return parsed
    return None


# =============================================================================
# EXTERNAL JOB ID
# =============================================================================

JOB_ID_PARAMS = ["jobId", "id", "job_id", "jid", "opportunityId"]
JOB_ID_ATTRIBUTES = ["data-job-id", "data-posting-id", "data-requisition-id", "data-req-id"]


def _id_from_query(soup: Optional[BeautifulSoup], url: str) -> Optional[str]:
    params = parse_qs(urlparse(url).query)
    for name in JOB_ID_PARAMS:
        if params.get(name) and params[name][0]:
            return params[name][0]
    return None


def _id_from_path(soup: Optional[BeautifulSoup], url: str) -> Optional[str]:
    segments = [segment for segment in urlparse(url).path.split("/") if segment]
    if not segments:
        return None
    last = segments[-1]
    if len(last) > 3 and re.fullmatch(r"[A-Za-z0-9_-]+", last):
        return last
    return None


def _id_from_attributes(soup: Optional[BeautifulSoup], url: str) -> Optional[str]:
    if soup is None:
        return None
    for attribute in JOB_ID_ATTRIBUTES:
        element = soup.find(attrs={attribute: True})
        if element is not None and element.get(attribute):
            return str(element[attribute]).strip()
    return None


def synthesize_job_id(url: str) -> str:
    """Stable id derived from the URL, so re-extraction yields the same value."""
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:10]
    return f"url-{digest}"


EXTERNAL_ID_STRATEGIES = [
    Strategy("query-param", _id_from_query),
    Strategy("path-segment", _id_from_path),
    Strategy("data-attribute", _id_from_attributes),
]


def extract_external_job_id(soup: Optional[BeautifulSoup], url: Optional[str]) -> Optional[str]:
    """External posting id from URL params, path, data attributes, else a URL hash."""
    if not url:
        return None
    found = first_match(EXTERNAL_ID_STRATEGIES, soup, url).value
    return found or synthesize_job_id(url)
