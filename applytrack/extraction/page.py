"""Whole-page extraction for job postings."""
import json
import logging
import re
from typing import Optional, Union
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from applytrack.extraction.fields import (
    as_soup,
    extract_company,
    extract_description,
    extract_employment_type,
    extract_external_job_id,
    extract_location,
    extract_location_type,
    extract_salary,
    extract_title,
    keyword_employment_type,
)
from applytrack.extraction.salary import find_salary_in_text, parse_salary_string
from applytrack.extraction.strategies import normalize_whitespace

logger = logging.getLogger(__name__)

# Script markers for career sites that render postings client-side
SCRIPT_HEAVY_MARKERS = [
    "US.Opportunity",
    "CandidateOpportunityDetail",
    "Workday",
    "Greenhouse",
]

GENERIC_HOST_LABELS = {"www", "jobs", "careers", "boards", "apply", "recruiting"}


def drop_empty(data: dict) -> dict:
    """Remove keys with empty values so a merge never blanks out stored data."""
    return {key: value for key, value in data.items() if value not in (None, "", [], {})}


def is_script_heavy(soup: BeautifulSoup) -> bool:
    """Detect pages whose posting data lives in embedded scripts."""
    for script in soup.find_all("script"):
        content = script.string or script.get_text() or ""
        if any(marker in content for marker in SCRIPT_HEAVY_MARKERS):
            return True
    if soup.select_one('div[data-automation-id="jobPostingHeader"]') is not None:
        return True
    return soup.select_one("div.app-wrapper") is not None


def find_embedded_posting(soup: BeautifulSoup) -> Optional[dict]:
    """Find a JSON object describing the posting inside a <script> tag."""
    for script in soup.find_all("script"):
        content = script.string or script.get_text() or ""
        if not content:
            continue

        if "CandidateOpportunityDetail" in content:
            match = re.search(r"CandidateOpportunityDetail\((\{.*?\})\)", content, re.DOTALL)
            if match:
                try:
                    return json.loads(match.group(1))
                except ValueError as e:
                    logger.debug("Could not decode opportunity JSON: %s", e)

        if script.get("type") == "application/ld+json":
            try:
                data = json.loads(content)
            except ValueError:
                continue
            if isinstance(data, dict) and data.get("@type") == "JobPosting":
                return data

        match = re.search(r"\{.*\"title\".*\"description\".*\}", content, re.DOTALL | re.IGNORECASE)
        if match:
            try:
                data = json.loads(match.group(0))
            except ValueError:
                continue
            if isinstance(data, dict) and (data.get("title") or data.get("jobTitle") or data.get("Title")):
                return data
    return None


def _strip_html(html: Optional[str]) -> str:
    if not html:
        return ""
    return normalize_whitespace(BeautifulSoup(html, "html.parser").get_text(" "))


def _company_from_host(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    host_labels = (urlparse(url).hostname or "").split(".")
    if len(host_labels) < 2:
        return None
    candidate = host_labels[0]
    if candidate in GENERIC_HOST_LABELS:
        candidate = host_labels[1] if host_labels[1] not in ("com", "org", "io", "net") else ""
    return candidate.capitalize() or None


def _embedded_location(posting: dict) -> tuple[Optional[str], Optional[str]]:
    locations = posting.get("Locations") or []
    if not locations:
        return None, None
    first = locations[0] or {}
    localized = first.get("LocalizedName") or ""
    location_type = None
    if re.search(r"remote|anywhere", localized, re.IGNORECASE):
        location_type = "Remote"

    address = first.get("Address") or {}
    parts = []
    if address.get("City"):
        parts.append(address["City"])
    state = address.get("State") or {}
    if state.get("Name") or state.get("Code"):
        parts.append(state.get("Name") or state.get("Code"))
    country = (address.get("Country") or {}).get("Name")
    if country and country not in parts:
        parts.append(country)
    location = ", ".join(parts) or localized or None
    return location, location_type


def extract_from_embedded_json(soup: BeautifulSoup, url: Optional[str]) -> dict:
    """Read posting fields from embedded JSON on script-heavy career sites."""
    posting = find_embedded_posting(soup)
    if not posting:
        return {}

    description = _strip_html(posting.get("Description") or posting.get("description"))
    data = {
        "job_title": posting.get("Title") or posting.get("title") or posting.get("jobTitle"),
        "description": description,
        "company": _company_from_host(url),
    }

    hiring_org = posting.get("hiringOrganization")
    if isinstance(hiring_org, dict) and hiring_org.get("name"):
        data["company"] = hiring_org["name"]

    location, location_type = _embedded_location(posting)
    data["company_location"] = location
    data["location_type"] = location_type

    if posting.get("FullTime") is True:
        data["employment_type"] = "Full-time"
    elif posting.get("FullTime") is False:
        data["employment_type"] = "Part-time"
    elif description:
        data["employment_type"] = keyword_employment_type(description.lower())

    salary_text = find_salary_in_text(description)
    salary = parse_salary_string(salary_text, synthesize_max=True) if salary_text else None
    if salary:
        data.update(salary.as_record_fields())

    posting_id = posting.get("Id") or posting.get("id")
    if posting_id:
        data["external_job_id"] = str(posting_id)

    return drop_empty(data)


def extract_job_data(document: Union[str, BeautifulSoup, None], url: Optional[str] = None) -> dict:
    """Extract structured job fields from a posting page.

    Script-heavy pages are read from embedded JSON first; any field still
    missing falls back to the selector strategies.

    Args:
        document: Page HTML or an already-parsed soup
        url: Source URL (used for the external id)

    Returns:
        Dict of JobRecord field names to values, empty values removed
    """
    soup = as_soup(document)
    data: dict = {}

    if is_script_heavy(soup):
        logger.debug("Script-heavy page detected for %s", url)
        data.update(extract_from_embedded_json(soup, url))

    description = data.get("description") or extract_description(soup)
    fallback = {
        "job_title": extract_title(soup),
        "company": extract_company(soup),
        "company_location": extract_location(soup),
        "employment_type": extract_employment_type(soup),
        "location_type": extract_location_type(soup),
        "description": description,
        "external_job_id": extract_external_job_id(soup, url),
    }
    if "wages_min" not in data:
        salary = extract_salary(soup, description, synthesize_max=True)
        if salary:
            fallback.update(salary.as_record_fields())

    for key, value in fallback.items():
        data.setdefault(key, value)
    return drop_empty(data)
