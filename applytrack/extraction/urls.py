"""URL helpers for job postings."""
import re
from typing import Optional

LINKEDIN_JOB_VIEW = re.compile(r"/jobs/view/(\d+)")
LINKEDIN_GUEST_POSTING_URL = "https://www.linkedin.com/jobs-guest/jobs/api/jobPosting/{job_id}"


def extract_job_id_from_url(url: Optional[str]) -> Optional[str]:
    """Extract the LinkedIn posting id from a job URL.

    Handles both ``/jobs/view/<id>`` and the ``/comm/jobs/view/<id>`` links
    found in LinkedIn notification emails.
    """
    if not url:
        return None
    normalized = url.replace("/comm/jobs/view/", "/jobs/view/")
    match = LINKEDIN_JOB_VIEW.search(normalized)
    return match.group(1) if match else None


def is_linkedin_job_url(url: Optional[str]) -> bool:
    """Check whether a URL points at a LinkedIn job posting."""
    return bool(url) and "linkedin.com" in url and extract_job_id_from_url(url) is not None


def clean_linkedin_job_url(url: Optional[str]) -> Optional[str]:
    """Strip tracking parameters from a LinkedIn job URL.

    Returns the canonical ``https://www.linkedin.com/jobs/view/<id>/`` form,
    the input unchanged when no posting id is present, or None for empty input.
    """
    if not url:
        return None
    job_id = extract_job_id_from_url(url)
    if not job_id:
        return url
    return f"https://www.linkedin.com/jobs/view/{job_id}/"


def linkedin_guest_url(job_id: str) -> str:
    """Public (no login) endpoint serving a LinkedIn posting as HTML."""
    return LINKEDIN_GUEST_POSTING_URL.format(job_id=job_id)


def format_website_url(value: Optional[str]) -> str:
    """Turn a spreadsheet cell or bare host into an absolute URL.

    Accepts ``=HYPERLINK("https://...", "label")`` formulas and values
    without a scheme; returns "" for blanks.
    """
    if not value:
        return ""
    url = str(value).strip()
    if url.upper().startswith("=HYPERLINK("):
        match = re.search(r'=HYPERLINK\(\s*"([^"]+)"', url, re.IGNORECASE)
        url = match.group(1).strip() if match else ""
    if not url:
        return ""
    if not re.match(r"^https?://", url, re.IGNORECASE):
        url = f"https://{url}"
    return url
