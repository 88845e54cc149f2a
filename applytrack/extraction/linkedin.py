"""Extraction for LinkedIn public (guest) job posting pages."""
import logging
import re
from typing import Optional, Union

from bs4 import BeautifulSoup

from applytrack.extraction.fields import (
    as_soup,
    element_text,
    extract_description,
    extract_salary,
    keyword_employment_type,
    keyword_location_type,
)
from applytrack.extraction.page import drop_empty
from applytrack.extraction.strategies import Strategy, first_match
from applytrack.extraction.urls import extract_job_id_from_url
from applytrack.persistence.models import normalize_employment_type, normalize_location_type

logger = logging.getLogger(__name__)

ENRICHMENT_MARKER = "Enriched with LinkedIn data"


def _first_text(*selectors: str):
    def _find(soup: BeautifulSoup) -> Optional[str]:
        for selector in selectors:
            text = element_text(soup.select_one(selector))
            if text:
                return text
        return None

    return _find


def criteria_value(soup: BeautifulSoup, header_pattern: str) -> Optional[str]:
    """Value of the job-criteria item whose subheader matches a pattern."""
    for item in soup.select(".description__job-criteria-item"):
        header = element_text(item.select_one(".description__job-criteria-subheader")) or ""
        if re.search(header_pattern, header, re.IGNORECASE):
            return element_text(item.select_one(".description__job-criteria-text"))
    return None


POSTING_TITLE_STRATEGIES = [
    Strategy("top-card-title", _first_text(".top-card-layout__title", ".topcard__title")),
    Strategy("heading", _first_text("h1", "h2")),
]

POSTING_COMPANY_STRATEGIES = [
    Strategy("org-name-link", _first_text(".topcard__org-name-link", ".top-card-layout__second-subline a")),
    Strategy("flavor", _first_text(".topcard__flavor")),
]

POSTING_EMPLOYMENT_STRATEGIES = [
    Strategy("criteria:employment-type", lambda soup: criteria_value(soup, r"employment type")),
    Strategy("body-keywords", lambda soup: keyword_employment_type(soup.get_text(" ").lower())),
]


def extract_recruiter(soup: BeautifulSoup) -> tuple[Optional[str], Optional[str]]:
    """Name and role of the recruiter card, when the posting shows one."""
    card = soup.select_one(".message-the-recruiter")
    if card is None:
        return None, None
    name = element_text(card.select_one("h3.base-main-card__title"))
    role = element_text(card.select_one("h4.base-main-card__subtitle"))
    return name, role


def extract_linkedin_posting(
    document: Union[str, BeautifulSoup, None],
    url: Optional[str] = None,
) -> dict:
    """Extract fields from a LinkedIn guest posting page.

    Args:
        document: Page HTML or parsed soup
        url: Posting URL, used for the external id

    Returns:
        Dict of JobRecord field names plus optional ``recruiter_name`` /
        ``recruiter_title``; empty values removed
    """
    soup = as_soup(document)
    description = extract_description(soup)
    location = _first_text(".topcard__flavor--bullet", ".top-card-layout__second-subline .topcard__flavor--bullet")(soup)
    recruiter_name, recruiter_title = extract_recruiter(soup)

    data = {
        "job_title": first_match(POSTING_TITLE_STRATEGIES, soup).value,
        "company": first_match(POSTING_COMPANY_STRATEGIES, soup).value,
        "company_location": location,
        "location_type": normalize_location_type(keyword_location_type((location or "").lower())),
        "employment_type": normalize_employment_type(first_match(POSTING_EMPLOYMENT_STRATEGIES, soup).value),
        "description": description,
        "external_job_id": extract_job_id_from_url(url),
        "recruiter_name": recruiter_name,
        "recruiter_title": recruiter_title,
    }

    salary = extract_salary(soup, description, synthesize_max=True)
    if salary:
        data.update(salary.as_record_fields())

    return drop_empty(data)
