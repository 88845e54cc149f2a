"""Parsers turning job emails into application, status and response items.

Each field comes from an ordered list of named strategies; every parser
degrades to a placeholder title ("Position at {company}") rather than fail.
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup

from applytrack.exceptions import ParseError
from applytrack.extraction.fields import element_text, keyword_employment_type, keyword_location_type
from applytrack.extraction.salary import parse_salary_string
from applytrack.extraction.strategies import Strategy, first_match, normalize_whitespace
from applytrack.extraction.urls import clean_linkedin_job_url, extract_job_id_from_url
from applytrack.mail.items import ApplicationItem, ResponseItem, StatusUpdateItem
from applytrack.mail.message import EmailMessage, html_to_text
from applytrack.persistence.models import ResponseStatus, normalize_location_type

logger = logging.getLogger(__name__)

UNKNOWN_COMPANY = "Unknown Company"
UNKNOWN_POSITION = "Unknown Position"


def placeholder_title(company: str) -> str:
    """Title used when no strategy finds one."""
    return f"Position at {company}"


@dataclass
class MessageView:
    """An email with its body parsed once for all strategies."""

    email: EmailMessage
    soup: BeautifulSoup
    text: str
    html: str

    @property
    def subject(self) -> str:
        return self.email.subject or ""

    @property
    def combined_text(self) -> str:
        """Plain text plus text rendered from HTML, for keyword scans."""
        rendered = html_to_text(self.html) if self.html else ""
        return f"{self.text}\n{rendered}"


def view_message(email: EmailMessage) -> MessageView:
    """Parse the body of an email once so strategies can share the soup."""
    html = email.body_html or ""
    return MessageView(
        email=email,
        soup=BeautifulSoup(html, "html.parser"),
        text=email.body_text or "",
        html=html,
    )


# =============================================================================
# SHARED HELPERS
# =============================================================================

# Links that point at a job posting, checked in order
JOB_LINK_PATTERNS = [
    r"linkedin\.com/(?:comm/)?jobs/view/\d+",
    r"/jobs/view/",
    r"boards\.greenhouse\.io/.+/jobs/\d+",
    r"jobs\.lever\.co/.+/[0-9a-f-]{8,}",
    r"myworkdayjobs\.com/.+/job/",
    r"jobs\.ashbyhq\.com/",
]

JOB_LINK_TEXT_CUES = ("view", "job", "position", "details", "apply", "careers")

# "... in Austin, TX" / "... in London, United Kingdom"; "Engineer in Test" is left alone
TRAILING_LOCATION = re.compile(
    r"\s+in\s+[A-Z][\w.'-]*(?:\s+[A-Z][\w.'-]*)*,\s*[A-Z][\w.'-]*(?:\s+[A-Z][\w.'-]*)*"
    r"(?:\s*\([^)]*\))?$"
)


def find_job_link(view: MessageView) -> Optional[str]:
    """First link in the body that matches a job-view URL pattern."""
    links = view.soup.find_all("a", href=True)
    for pattern in JOB_LINK_PATTERNS:
        for link in links:
            if re.search(pattern, link["href"], re.IGNORECASE):
                return link["href"].strip()
    return None


def find_cue_link(view: MessageView) -> Optional[str]:
    """First link whose text suggests it opens the posting ("View job", "Apply")."""
    for link in view.soup.find_all("a", href=True):
        text = (element_text(link) or "").lower()
        if any(cue in text for cue in JOB_LINK_TEXT_CUES) and link["href"].startswith("http"):
            return link["href"].strip()
    return None


def posting_reference(url: Optional[str]) -> tuple[str, Optional[str]]:
    """Canonical website and external id for a posting link."""
    if not url:
        return "", None
    job_id = extract_job_id_from_url(url)
    if job_id:
        return clean_linkedin_job_url(url), job_id
    return url, None


def clean_title(title: Optional[str], company: Optional[str] = None) -> Optional[str]:
    """Strip company, location and decoration noise from a title candidate."""
    if not title:
        return None
    cleaned = title
    if company and company.lower() in cleaned.lower():
        cleaned = re.sub(r"\s*(?:\bat\s+)?" + re.escape(company) + r".*$", "", cleaned, flags=re.IGNORECASE)
    if "       " in cleaned:
        cleaned = cleaned.split("       ")[0]
    cleaned = re.sub(r"\s*·\s*.+$", "", cleaned)
    cleaned = re.sub(r"\s*\(\s*Remote\s*\)\s*$", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s*-\s*Remote\s*$", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s+at\s+.+$", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s+in\s+remote\b.*$", "", cleaned, flags=re.IGNORECASE)
    cleaned = TRAILING_LOCATION.sub("", cleaned)
    cleaned = re.sub(r"\s*\([^)]*\)$", "", cleaned)
    cleaned = normalize_whitespace(cleaned).strip(" -|:,")
    return cleaned if len(cleaned) > 1 else None


def _title_from_job_link(view: MessageView) -> Optional[str]:
    for link in view.soup.select('a[href*="/jobs/view/"]'):
        text = element_text(link)
        if text and len(text) > 3:
            return text
    return None


def _title_from_title_classes(view: MessageView) -> Optional[str]:
    for element in view.soup.select(".job-title, .job-position, .position-title, .role-title"):
        text = element_text(element)
        if text and 3 < len(text) < 100:
            return text
    return None


def _title_from_headings(view: MessageView) -> Optional[str]:
    for heading in view.soup.find_all(["h1", "h2", "h3"]):
        text = element_text(heading)
        if text and 5 < len(text) < 100 and "LinkedIn" not in text and "Application" not in text:
            return text
    return None


KEYWORD_SENTENCE_PREFIXES = [
    r"applied for",
    r"the position of",
    r"the role of",
    r"position:",
    r"role:",
    r"job:",
]


# Phrasings that wrap the title, e.g. "interest in the Data Engineer role"
KEYWORD_TITLE_PATTERNS = [
    r"(?:applied for|application for|applying for|applying to|interest in|consideration for)\s+(?:the\s+)?(.+?)\s+(?:position|role|job|opening)\b",
    r"(?:the position of|the role of)\s+(.+?)(?:\s+at\s+|$)",
]


def _body_paragraphs(view: MessageView) -> list[str]:
    paragraphs = [element_text(element) for element in view.soup.find_all(["p", "span", "td"])]
    paragraphs += view.text.splitlines()
    return [normalize_whitespace(text) for text in paragraphs if text and 5 < len(text.strip()) < 300]


def _title_from_keyword_sentence(view: MessageView) -> Optional[str]:
    paragraphs = _body_paragraphs(view)
    for text in paragraphs:
        for pattern in KEYWORD_TITLE_PATTERNS:
            match = re.search(pattern, text, re.IGNORECASE)
            if match and 2 < len(match.group(1)) < 100:
                return normalize_whitespace(match.group(1))
    for text in paragraphs:
        for sentence in re.split(r"[.!?]+", text):
            if not re.search(r"\b(position|role|job)\b", sentence, re.IGNORECASE):
                continue
            cleaned = sentence
            for prefix in KEYWORD_SENTENCE_PREFIXES:
                cleaned = re.sub(prefix, "", cleaned, flags=re.IGNORECASE)
            cleaned = normalize_whitespace(cleaned)
            if 3 < len(cleaned) < 100:
                return cleaned
    return None


def _title_from_emphasis(view: MessageView) -> Optional[str]:
    for element in view.soup.find_all(["strong", "b", "em"]):
        text = element_text(element)
        if text and 5 < len(text) < 100 and "LinkedIn" not in text and "http" not in text:
            return text
    return None


def _title_from_first_paragraph(view: MessageView) -> Optional[str]:
    for paragraph in view.soup.find_all("p"):
        text = element_text(paragraph)
        if text and 5 < len(text) < 100:
            return text
    return None


def detect_location(view: MessageView) -> tuple[str, Optional[str]]:
    """Location and location type from a "Company · Location" line."""
    for paragraph in view.soup.find_all("p"):
        text = element_text(paragraph) or ""
        if "·" in text:
            parts = [part.strip() for part in text.split("·")]
            if len(parts) >= 2 and parts[1]:
                location = parts[1]
                location_type = keyword_location_type(location.lower()) or "On-site"
                return location, normalize_location_type(location_type)
    return "", None


def detect_salary(view: MessageView):
    """First dollar amount in the body, parsed with min = max for lone amounts."""
    for string in view.soup.find_all(string=re.compile(r"\$\s*\d")):
        parent = string.parent
        if parent is None or parent.name in ("script", "style"):
            continue
        parsed = parse_salary_string(element_text(parent), synthesize_max=False)
        if parsed:
            return parsed
    if "$" in view.text:
        return parse_salary_string(view.text, synthesize_max=False)
    return None


# =============================================================================
# RESPONSE OUTCOME
# =============================================================================

# Checked in order; rejection cues are scanned first
RESPONSE_KEYWORD_FAMILIES = [
    (
        ResponseStatus.REJECTED,
        "rejection",
        [
            r"not (?:be )?moving forward",
            r"unfortunately",
            r"other candidates",
            r"pursuing other",
            r"pursued other candidates",
            r"will not be",
            r"thank you for your interest",
            r"regret to inform",
            r"not (?:a )?match",
            r"no longer being considered",
            r"proceed with other",
            r"position has been filled",
            r"selected another candidate",
        ],
    ),
    (
        ResponseStatus.INTERVIEW,
        "interview request",
        [
            r"interview",
            r"schedule a call",
            r"would like to speak",
            r"next steps",
            r"move forward",
        ],
    ),
    (
        ResponseStatus.OFFER,
        "job offer",
        [
            r"offer",
            r"congratulations",
            r"welcome to the team",
        ],
    ),
]


def classify_response_outcome(text: str, default: str = ResponseStatus.NO_RESPONSE.value) -> tuple[str, str]:
    """Scan text for outcome keyword families.

    Returns:
        (response status value, human description); the default status when
        no family matches
    """
    for status, description, patterns in RESPONSE_KEYWORD_FAMILIES:
        if any(re.search(pattern, text, re.IGNORECASE) for pattern in patterns):
            return status.value, description
    return default, "response" if default == ResponseStatus.NO_RESPONSE.value else default.lower()


# =============================================================================
# LINKEDIN PARSERS
# =============================================================================

LINKEDIN_TITLE_STRATEGIES = [
    Strategy("job-link", _title_from_job_link),
    Strategy("title-classes", _title_from_title_classes),
    Strategy("headings", _title_from_headings),
    Strategy("keyword-sentence", _title_from_keyword_sentence),
    Strategy("emphasis", _title_from_emphasis),
]

LINKEDIN_STATUS_PATTERNS = [
    (r"was viewed by (.+)$", "viewed"),
    (r"is in review at (.+)$", "in review"),
    (r"is being considered at (.+)$", "being considered"),
    (r"application status(?: update)?\s*(?:at|from|with|for)\s+(.+)$", "status update"),
]

STATUS_TITLE_STRATEGIES = [
    Strategy("job-link", _title_from_job_link),
    Strategy("headings", _title_from_headings),
    Strategy("first-paragraph", _title_from_first_paragraph),
]

LINKEDIN_RESPONSE_PATTERNS = [
    (r"application to (.+?) at (.+)$", 1, 2),
    (r"update on your application to (.+)$", None, 1),
    (r"your update from (.+)$", None, 1),
    (r"response to your application (?:to|at|with) (.+)$", None, 1),
    (r"your application to (.+)$", None, 1),
]

RESPONSE_TITLE_STRATEGIES = [
    Strategy("job-link", _title_from_job_link),
    Strategy("keyword-sentence", _title_from_keyword_sentence),
]


def _strip_trailing(value: str) -> str:
    return normalize_whitespace(re.sub(r"[\s.!,:;—-]+$", "", value))


def subject_head(subject: str) -> str:
    """Subject up to the first " — ", " – " or " | " separator."""
    return re.split(r"\s+[—–|]\s+", subject, maxsplit=1)[0]


def parse_linkedin_application(view: MessageView) -> ApplicationItem:
    """Parse a LinkedIn "your application was sent to {company}" email.

    Raises:
        ParseError: If the subject does not name a company
    """
    match = re.search(r"application was sent to (.+)$", view.subject, re.IGNORECASE)
    if not match:
        raise ParseError(f"message {view.email.id}", "no company in LinkedIn application subject")
    company = _strip_trailing(match.group(1))
    job_title = None

    titled = re.search(r"application was sent to (.+?) at (.+)$", view.subject, re.IGNORECASE)
    if titled:
        job_title = titled.group(1).strip()
        company = _strip_trailing(titled.group(2))

    if not job_title:
        job_title = first_match(LINKEDIN_TITLE_STRATEGIES, view).value
    job_title = clean_title(job_title, company) or placeholder_title(company)

    website, external_id = posting_reference(find_job_link(view))
    location, location_type = detect_location(view)
    salary = detect_salary(view)
    applied = view.email.date

    item = ApplicationItem(
        company=company,
        job_title=job_title,
        applied=applied,
        source="LinkedIn",
        application_through="LinkedIn",
        company_location=location,
        location_type=location_type,
        employment_type=keyword_employment_type(view.combined_text.lower()),
        website=website,
        external_job_id=external_id,
        notes=f"Applied via LinkedIn on {applied:%Y-%m-%d}",
        message_id=view.email.id,
    )
    if salary:
        item.wages_min = salary.min_amount
        item.wages_max = salary.max_amount
        item.wage_type = salary.wage_type
    return item


def parse_linkedin_status(view: MessageView) -> StatusUpdateItem:
    """Parse a LinkedIn "viewed by / in review / being considered" email.

    Raises:
        ParseError: If no status pattern matches the subject
    """
    for pattern, status_type in LINKEDIN_STATUS_PATTERNS:
        match = re.search(pattern, view.subject, re.IGNORECASE)
        if match:
            company = _strip_trailing(match.group(1))
            break
    else:
        raise ParseError(f"message {view.email.id}", "unrecognized LinkedIn status subject")

    website, external_id = posting_reference(find_job_link(view))
    job_title = clean_title(first_match(STATUS_TITLE_STRATEGIES, view).value, company)

    return StatusUpdateItem(
        company=company,
        status_type=status_type,
        date=view.email.date,
        job_title=job_title,
        website=website,
        external_job_id=external_id,
        message_id=view.email.id,
    )


def parse_linkedin_response(view: MessageView) -> ResponseItem:
    """Parse a LinkedIn "update on your application" email.

    Raises:
        ParseError: If the subject does not name a company
    """
    company = None
    job_title = None
    for pattern, title_group, company_group in LINKEDIN_RESPONSE_PATTERNS:
        match = re.search(pattern, subject_head(view.subject), re.IGNORECASE)
        if match:
            company = _strip_trailing(match.group(company_group))
            if title_group:
                job_title = match.group(title_group).strip()
            break
    if not company:
        raise ParseError(f"message {view.email.id}", "no company in LinkedIn response subject")

    if not job_title:
        job_title = first_match(RESPONSE_TITLE_STRATEGIES, view).value
    job_title = clean_title(job_title, company) or placeholder_title(company)

    response, description = classify_response_outcome(view.combined_text)
    website, external_id = posting_reference(find_job_link(view))
    responded = view.email.date

    return ResponseItem(
        company=company,
        response=response,
        responded=responded,
        job_title=job_title,
        website=website,
        external_job_id=external_id,
        notes=f"Received a {description} from {company} for {job_title} position on {responded:%Y-%m-%d}",
        message_id=view.email.id,
    )


# =============================================================================
# GENERIC PARSERS
# =============================================================================

FREEMAIL_DOMAINS = re.compile(r"gmail|hotmail|outlook|yahoo|aol|icloud|protonmail", re.IGNORECASE)

# Applicant tracking systems send on behalf of the employer
ATS_DOMAINS = {
    "greenhouse.io",
    "greenhouse-mail.io",
    "lever.co",
    "hire.lever.co",
    "workday.com",
    "myworkday.com",
    "icims.com",
    "jobvite.com",
    "smartrecruiters.com",
    "ashbyhq.com",
    "workablemail.com",
    "clearcompany.com",
    "breezy.hr",
    "recruitee.com",
    "bamboohr.com",
    "jazzhr.com",
    "ultipro.com",
    "linkedin.com",
}

GENERIC_SENDER_NAMES = re.compile(
    r"^(HR|Recruiting|Recruitment|Talent|Talent Acquisition|Careers|Jobs|Applications|Human Resources|"
    r"Notifications?|No[- ]?Reply|DoNotReply|Careers Portal|Hiring Team)$",
    re.IGNORECASE,
)

SUBJECT_COMPANY_PATTERNS = [
    r"thank you for (?:applying|your application|your interest) (?:to|at|with|in)\s+(.+?)(?:\s*[!.]?\s*$|\s*[-–|])",
    r"thanks for (?:applying|your application|your interest) (?:to|at|with|in)\s+(.+?)(?:\s*[!.]?\s*$|\s*[-–|])",
    r"update on your application (?:to|with|at)\s+(.+?)(?:\s*$|\s*[-–|])",
    r"your application (?:to|for) .+? at\s+(.+?)(?:\s*$|\s*[-–|])",
    r"received your application (?:to|for|at)\s+(.+?)(?:\s*[!.]?\s*$)",
    r"(?:update|message|news) from\s+(.+?)(?:\s*$|\s*[-–|])",
    r"application (?:to|at|with)\s+(.+?)(?:\s+(?:received|complete|submitted)|\s*$|\s*[-–|])",
    r"^(.+?)\s+(?:application (?:received|update)|careers|recruiting)\b",
]

BODY_THANK_YOU = re.compile(r"thank you for (?:applying|your application) (?:to|at|with) ([^,.!\n]+)", re.IGNORECASE)

SUBJECT_ROLE_PATTERNS = [
    r"for (?:the )?(.+?) role\b",
    r"for (?:the )?(.+?) position\b",
    r"application for (?:the )?(.+?)(?:\s+at\s+|\s*[-–|]|\s*$)",
    r"your application to (.+?) at ",
]

BODY_ROLE_PATTERNS = [
    r"(?:position|role)\s*:\s*([^,.\n]+)",
    r"applied for (?:the )?([^,.\n]+?) (?:position|role|job)",
    r"application for (?:the )?([^,.\n]+?) (?:position|role|job)",
    r"for the ([^,.\n]+?) (?:position|role)\b",
]

TITLE_NOISE_PREFIX = re.compile(r"^(?:the|your|a|an)\s+", re.IGNORECASE)
TITLE_NOISE_SUFFIX = re.compile(r"\s+(?:position|role|job|opening|application|received|complete)$", re.IGNORECASE)


def _sender_domain_company(view: MessageView) -> Optional[str]:
    domain = view.email.sender_domain
    if not domain or FREEMAIL_DOMAINS.search(domain):
        return None
    if any(domain == ats or domain.endswith("." + ats) for ats in ATS_DOMAINS):
        return None
    labels = domain.split(".")
    if len(labels) < 2:
        return None
    return labels[-2].capitalize()


def _display_name_company(view: MessageView) -> Optional[str]:
    name = normalize_whitespace(view.email.from_name)
    if not name or GENERIC_SENDER_NAMES.match(name):
        return None
    name = re.sub(r"\s+(?:Recruiting|Recruitment|Talent(?: Acquisition)?|Careers|Hiring Team|HR|Jobs)$", "", name, flags=re.IGNORECASE)
    if "@" in name or GENERIC_SENDER_NAMES.match(name):
        return None
    return name or None


def _subject_company(view: MessageView) -> Optional[str]:
    for pattern in SUBJECT_COMPANY_PATTERNS:
        match = re.search(pattern, subject_head(view.subject), re.IGNORECASE)
        if match:
            company = _strip_trailing(match.group(1))
            if company and len(company) < 60:
                return company
    return None


def _logo_company(view: MessageView) -> Optional[str]:
    for img in view.soup.find_all("img"):
        label = img.get("alt") or img.get("title") or ""
        match = re.search(r"(.+?)\s+logo", label, re.IGNORECASE)
        if match:
            return normalize_whitespace(match.group(1))
    return None


def _signature_company(view: MessageView) -> Optional[str]:
    blocks = view.soup.select('div.signature, div.footer, footer, div[class*="footer"], div[class*="signature"]')
    for block in blocks:
        lines = [line.strip() for line in block.get_text("\n").split("\n") if line.strip()]
        if lines and 2 < len(lines[0]) < 50:
            return lines[0]
    return None


def _body_phrase_company(view: MessageView) -> Optional[str]:
    match = BODY_THANK_YOU.search(view.combined_text)
    return normalize_whitespace(match.group(1)) if match else None


def _domain_label_company(view: MessageView) -> Optional[str]:
    domain = view.email.sender_domain
    if not domain or FREEMAIL_DOMAINS.search(domain):
        return None
    return domain.split(".")[0].capitalize() or None


# Subject pattern, then sender heuristics, then body signature cues
GENERIC_COMPANY_STRATEGIES = [
    Strategy("subject-pattern", _subject_company),
    Strategy("sender-domain", _sender_domain_company),
    Strategy("sender-name", _display_name_company),
    Strategy("logo-alt", _logo_company),
    Strategy("signature-block", _signature_company),
    Strategy("thank-you-phrase", _body_phrase_company),
    Strategy("domain-label", _domain_label_company),
]


def _clean_role(raw: str) -> Optional[str]:
    role = TITLE_NOISE_PREFIX.sub("", raw.strip())
    role = TITLE_NOISE_SUFFIX.sub("", role)
    role = normalize_whitespace(role)
    return role if 2 < len(role) < 100 else None


def _subject_title(view: MessageView) -> Optional[str]:
    for pattern in SUBJECT_ROLE_PATTERNS:
        match = re.search(pattern, view.subject, re.IGNORECASE)
        if match:
            role = _clean_role(match.group(1))
            if role and not re.search(r"\b(applying|interest|application)\b", role, re.IGNORECASE):
                return role
    return None


def _body_title(view: MessageView) -> Optional[str]:
    for pattern in BODY_ROLE_PATTERNS:
        match = re.search(pattern, view.combined_text, re.IGNORECASE)
        if match:
            role = _clean_role(match.group(1))
            if role:
                return role
    return None


GENERIC_TITLE_STRATEGIES = [
    Strategy("subject-role", _subject_title),
    Strategy("job-link", _title_from_job_link),
    Strategy("body-role", _body_title),
    Strategy("title-classes", _title_from_title_classes),
]


def parse_generic_application(view: MessageView) -> ApplicationItem:
    """Parse an application confirmation from any employer or ATS."""
    company = first_match(GENERIC_COMPANY_STRATEGIES, view).value or UNKNOWN_COMPANY
    job_title = clean_title(first_match(GENERIC_TITLE_STRATEGIES, view).value, company)
    if not job_title:
        job_title = placeholder_title(company) if company != UNKNOWN_COMPANY else UNKNOWN_POSITION

    website, external_id = posting_reference(find_job_link(view) or find_cue_link(view))
    applied = view.email.date

    return ApplicationItem(
        company=company,
        job_title=job_title,
        applied=applied,
        source="Email",
        application_through="Email",
        website=website,
        external_job_id=external_id,
        notes=f"Application confirmation received via email on {applied:%Y-%m-%d}",
        message_id=view.email.id,
    )


def parse_generic_response(view: MessageView, default_response: str = ResponseStatus.REJECTED.value) -> ResponseItem:
    """Parse a decision email from any employer or ATS.

    Args:
        view: Parsed message
        default_response: Outcome used when no keyword family matches
    """
    company = first_match(GENERIC_COMPANY_STRATEGIES, view).value or UNKNOWN_COMPANY
    job_title = clean_title(first_match(GENERIC_TITLE_STRATEGIES, view).value, company)
    if not job_title:
        job_title = placeholder_title(company)

    response, description = classify_response_outcome(view.combined_text, default=default_response)
    website, external_id = posting_reference(find_job_link(view) or find_cue_link(view))
    responded = view.email.date

    return ResponseItem(
        company=company,
        response=response,
        responded=responded,
        job_title=job_title,
        website=website,
        external_job_id=external_id,
        notes=f"Received a {description} from {company} for {job_title} position on {responded:%Y-%m-%d}",
        message_id=view.email.id,
    )
