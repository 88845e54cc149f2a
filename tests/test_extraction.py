"""Tests for field extractors, salary parsing and URL helpers."""
import pytest

from applytrack.extraction.fields import (
    as_soup,
    extract_description,
    extract_external_job_id,
    extract_location_type,
    extract_salary,
    synthesize_job_id,
)
from applytrack.extraction.linkedin import extract_linkedin_posting
from applytrack.extraction.page import drop_empty, extract_job_data, is_script_heavy
from applytrack.extraction.salary import find_salary_in_text, parse_salary_string
from applytrack.extraction.strategies import Strategy, first_match, normalize_whitespace
from applytrack.extraction.urls import (
    clean_linkedin_job_url,
    extract_job_id_from_url,
    format_website_url,
    is_linkedin_job_url,
    linkedin_guest_url,
)
from tests.factories import LINKEDIN_POSTING


# =============================================================================
# Strategy runner
# =============================================================================


class TestStrategies:
    """Tests for the ordered strategy runner."""

    def test_first_non_empty_value_wins(self):
        """Strategies returning None or blank strings are skipped."""
        strategies = [
            Strategy("none", lambda text: None),
            Strategy("blank", lambda text: "   "),
            Strategy("upper", lambda text: text.upper()),
            Strategy("never", lambda text: "unused"),
        ]

        result = first_match(strategies, "acme")
        assert result.found
        assert result.value == "ACME"
        assert result.strategy == "upper"

    def test_failing_strategy_is_treated_as_not_found(self):
        """An exception inside a strategy moves on to the next one."""

        def broken(text):
            raise AttributeError("boom")

        result = first_match([Strategy("broken", broken), Strategy("ok", lambda t: t)], "value")
        assert result.value == "value"
        assert result.strategy == "ok"

    def test_nothing_found(self):
        """Exhausted strategies give an empty extraction."""
        result = first_match([Strategy("none", lambda: None)])
        assert not result.found
        assert result.strategy is None

    def test_normalize_whitespace(self):
        """Runs of whitespace collapse to single spaces."""
        assert normalize_whitespace("  Senior\n\n  Engineer\t ") == "Senior Engineer"
        assert normalize_whitespace(None) == ""


# =============================================================================
# Salary parsing
# =============================================================================


class TestSalaryParsing:
    """Tests for salary string parsing."""

    def test_structured_yearly_range(self):
        """Explicit yearly range keeps both amounts."""
        salary = parse_salary_string("$120,000.00/yr - $163,000.00/yr")
        assert salary.min_amount == 120000
        assert salary.max_amount == 163000
        assert salary.wage_type == "Yearly"

    def test_k_notation_range(self):
        """K ranges are expanded to thousands."""
        salary = parse_salary_string("$120-130K")
        assert salary.min_amount == 120000
        assert salary.max_amount == 130000
        assert salary.wage_type == "Yearly"

    def test_structured_range_ignores_unrelated_k(self):
        """A '401k' elsewhere in the text does not scale the range."""
        salary = parse_salary_string("$25.00/hr - $30.00/hr, plus 401k match")
        assert salary.min_amount == 25
        assert salary.max_amount == 30
        assert salary.wage_type == "Hourly"

    def test_structured_k_suffixed_range(self):
        """K attached to the amounts scales both ends."""
        salary = parse_salary_string("$120K - $130K")
        assert salary.min_amount == 120000
        assert salary.max_amount == 130000

    def test_single_hourly_amount(self):
        """A lone amount gives min == max."""
        salary = parse_salary_string("$35 per hour")
        assert salary.min_amount == 35
        assert salary.max_amount == 35
        assert salary.wage_type == "Hourly"

    def test_single_amount_synthesized_max(self):
        """Page extraction synthesizes max = min * 1.2."""
        salary = parse_salary_string("$35 per hour", synthesize_max=True)
        assert salary.min_amount == 35
        assert salary.max_amount == pytest.approx(42)

    def test_single_k_amount(self):
        """'$120K' on a page becomes 120K-144K."""
        salary = parse_salary_string("$120K", synthesize_max=True)
        assert salary.min_amount == 120000
        assert salary.max_amount == pytest.approx(144000)

    def test_monthly_detection(self):
        """Unit keywords select the wage type."""
        salary = parse_salary_string("$8,000 - $9,000 per month")
        assert salary.wage_type == "Monthly"
        assert salary.min_amount == 8000
        assert salary.max_amount == 9000

    def test_reversed_range_is_ordered(self):
        """min <= max always holds."""
        salary = parse_salary_string("$150,000 - $120,000")
        assert salary.min_amount <= salary.max_amount

    @pytest.mark.parametrize("text", [None, "", "Competitive", "DOE"])
    def test_unparseable_returns_none(self, text):
        """Strings without amounts give None instead of raising."""
        assert parse_salary_string(text) is None

    def test_find_prefers_k_range(self):
        """K-notation ranges beat generic currency matches."""
        text = "Signing bonus of $5,000. Base pay $120-130K depending on level."
        assert find_salary_in_text(text) == "$120-130K"

    def test_find_longest_generic_match(self):
        """Among generic matches the longest wins."""
        text = "Stipend $500. Base salary: $140,000 - $180,000 per year."
        assert find_salary_in_text(text) == "$140,000 - $180,000 per year"

    def test_find_without_currency(self):
        """Text without a dollar sign has no salary."""
        assert find_salary_in_text("Great benefits and 401k") is None


# =============================================================================
# URL helpers
# =============================================================================


class TestUrlHelpers:
    """Tests for LinkedIn and website URL helpers."""

    def test_job_id_from_comm_link(self):
        """Notification links use /comm/jobs/view/<id>."""
        url = "https://www.linkedin.com/comm/jobs/view/3912345678/?trackingId=abc"
        assert extract_job_id_from_url(url) == "3912345678"
        assert is_linkedin_job_url(url)

    def test_clean_linkedin_url(self):
        """Tracking parameters are stripped."""
        url = "https://www.linkedin.com/comm/jobs/view/3912345678/?trackingId=abc&refId=x"
        assert clean_linkedin_job_url(url) == "https://www.linkedin.com/jobs/view/3912345678/"

    def test_clean_non_linkedin_url_passes_through(self):
        """URLs without a posting id are returned unchanged."""
        assert clean_linkedin_job_url("https://acme.com/careers") == "https://acme.com/careers"
        assert clean_linkedin_job_url(None) is None

    def test_guest_url(self):
        """Guest endpoint embeds the posting id."""
        assert linkedin_guest_url("42").endswith("/jobs-guest/jobs/api/jobPosting/42")

    def test_format_hyperlink_formula(self):
        """Spreadsheet HYPERLINK formulas yield their target."""
        cell = '=HYPERLINK("https://acme.com/jobs/1", "Apply")'
        assert format_website_url(cell) == "https://acme.com/jobs/1"

    def test_format_bare_host(self):
        """Values without a scheme get https://."""
        assert format_website_url("acme.com/careers") == "https://acme.com/careers"
        assert format_website_url("") == ""


# =============================================================================
# Field extractors
# =============================================================================


GENERIC_PAGE = """
<html><head><title>Data Engineer - Initech</title></head><body>
  <h1>Data Engineer</h1>
  <div class="company-name">Initech</div>
  <div class="job-location">Austin, TX</div>
  <div class="job-type">Full Time</div>
  <div class="job-description">
    <p>Build pipelines. This is a hybrid role.</p>
    <script>var tracking = 1;</script>
    <p>Salary: $120K - $140K</p>
  </div>
</body></html>
"""


class TestPageExtraction:
    """Tests for whole-page extraction."""

    def test_selector_fields(self):
        """Selector strategies fill the record fields."""
        data = extract_job_data(GENERIC_PAGE, "https://careers.initech.com/jobs/view?jobId=ABC123")

        assert data["job_title"] == "Data Engineer"
        assert data["company"] == "Initech"
        assert data["company_location"] == "Austin, TX"
        assert data["employment_type"] == "Full-time"
        assert data["location_type"] == "Hybrid"
        assert data["external_job_id"] == "ABC123"

    def test_description_strips_scripts(self):
        """Script content never reaches the description."""
        data = extract_job_data(GENERIC_PAGE, "https://careers.initech.com/jobs/view?jobId=ABC123")
        assert "tracking" not in data["description"]
        assert data["description"].startswith("Build pipelines.")

    def test_salary_from_label(self):
        """A 'Salary:' label is located and parsed."""
        data = extract_job_data(GENERIC_PAGE, "https://careers.initech.com/jobs/view?jobId=ABC123")
        assert data["wages_min"] == 120000
        assert data["wages_max"] == 140000
        assert data["wage_type"] == "Yearly"

    def test_empty_page_returns_only_id(self):
        """Missing fields are dropped, never blanked."""
        data = extract_job_data("<html><body></body></html>", "https://acme.com/")
        assert "job_title" not in data
        assert data["external_job_id"].startswith("url-")

    def test_long_block_description_fallback(self):
        """Without a description container, a long sentence-bearing block is used."""
        text = "We build tools for analysts. " * 10
        soup = as_soup(f"<html><body><section>{text}</section></body></html>")
        assert extract_description(soup).startswith("We build tools")

    def test_location_type_keywords(self):
        """Remote cue in body text sets the location type."""
        soup = as_soup("<body><p>This position is fully remote.</p></body>")
        assert extract_location_type(soup) == "Remote"

    def test_drop_empty(self):
        """Empty values are removed."""
        assert drop_empty({"a": "", "b": None, "c": [], "d": "x", "e": 0}) == {"d": "x", "e": 0}


class TestSalaryTiers:
    """Tests for the five-tier salary search."""

    def test_compensation_block(self):
        """Compensation UI block is tier two."""
        soup = as_soup('<div class="compensation__salary-range">$90,000/yr - $110,000/yr</div>')
        salary = extract_salary(soup)
        assert (salary.min_amount, salary.max_amount) == (90000, 110000)

    def test_description_scan(self):
        """Description text is scanned when no element carries the salary."""
        salary = extract_salary(as_soup("<body></body>"), "Pay is $100-120K plus bonus.")
        assert (salary.min_amount, salary.max_amount) == (100000, 120000)

    def test_list_item_fallback(self):
        """Any list item containing '$' is the last tier."""
        soup = as_soup("<ul><li>Benefits</li><li>$60 per hour</li></ul>")
        salary = extract_salary(soup)
        assert salary.min_amount == 60
        assert salary.max_amount == pytest.approx(72)
        assert salary.wage_type == "Hourly"

    def test_no_salary(self):
        """Pages without amounts give None."""
        assert extract_salary(as_soup("<p>Competitive pay</p>")) is None


class TestExternalJobId:
    """Tests for external id extraction."""

    def test_query_parameter(self):
        """Known query parameters win."""
        assert extract_external_job_id(None, "https://jobs.acme.com/apply?jid=77&src=li") == "77"

    def test_path_segment(self):
        """A plausible last path segment is used next."""
        assert extract_external_job_id(None, "https://boards.greenhouse.io/acme/jobs/4567890") == "4567890"

    def test_data_attribute(self):
        """Data attributes are read when the URL carries no id."""
        soup = as_soup('<div data-job-id="REQ-991"></div>')
        assert extract_external_job_id(soup, "https://acme.com/") == "REQ-991"

    def test_synthesized_id_is_stable(self):
        """Unresolvable URLs hash to the same id every time."""
        url = "https://acme.com/"
        assert extract_external_job_id(None, url) == synthesize_job_id(url)
        assert synthesize_job_id(url) == synthesize_job_id(url)
        assert synthesize_job_id(url) != synthesize_job_id("https://globex.com/")

    def test_no_url(self):
        """Without a URL there is no id."""
        assert extract_external_job_id(None, None) is None


# =============================================================================
# Script-heavy pages
# =============================================================================


OPPORTUNITY_PAGE = """
<html><body><div id="root"></div>
<script>
window.detail = new US.Opportunity.CandidateOpportunityDetail({"Id":"op-77","Title":"ML Engineer","Description":"<p>Remote friendly. Pay $150,000 - $190,000 per year.</p>","FullTime":true,"Locations":[{"LocalizedName":"Remote - US","Address":{"City":"Denver","State":{"Name":"Colorado"},"Country":{"Name":"United States"}}}]})
</script>
</body></html>
"""


class TestEmbeddedJson:
    """Tests for embedded JSON extraction."""

    def test_detects_script_heavy_page(self):
        """Opportunity markers flag the page."""
        assert is_script_heavy(as_soup(OPPORTUNITY_PAGE))
        assert not is_script_heavy(as_soup(GENERIC_PAGE))

    def test_reads_opportunity_json(self):
        """Fields come from the embedded posting."""
        data = extract_job_data(OPPORTUNITY_PAGE, "https://jobs.acme.com/careers/op-77")

        assert data["job_title"] == "ML Engineer"
        assert data["company"] == "Acme"
        assert data["company_location"] == "Denver, Colorado, United States"
        assert data["location_type"] == "Remote"
        assert data["employment_type"] == "Full-time"
        assert data["external_job_id"] == "op-77"
        assert data["wages_min"] == 150000
        assert data["wages_max"] == 190000
        assert "<p>" not in data["description"]

    def test_ld_json_posting(self):
        """schema.org JobPosting blocks are read on Greenhouse pages."""
        page = """
        <html><body><div class="app-wrapper"></div>
        <script type="application/ld+json">
        {"@type": "JobPosting", "title": "Support Lead", "description": "Help customers.",
         "hiringOrganization": {"name": "Hooli"}}
        </script></body></html>
        """
        data = extract_job_data(page, "https://boards.greenhouse.io/hooli/jobs/123456")
        assert data["job_title"] == "Support Lead"
        assert data["company"] == "Hooli"
        assert data["description"] == "Help customers."


# =============================================================================
# LinkedIn postings
# =============================================================================


class TestLinkedInPosting:
    """Tests for LinkedIn guest posting extraction."""

    def test_posting_fields(self):
        """Top card, criteria and description are read."""
        data = extract_linkedin_posting(LINKEDIN_POSTING, "https://www.linkedin.com/jobs/view/4001/")

        assert data["job_title"] == "Staff Data Scientist"
        assert data["company"] == "Globex"
        assert data["company_location"] == "New York, NY (Remote)"
        assert data["location_type"] == "Remote"
        assert data["employment_type"] == "Contract"
        assert data["external_job_id"] == "4001"

    def test_salary_from_description(self):
        """Salary falls through to the description scan."""
        data = extract_linkedin_posting(LINKEDIN_POSTING, "https://www.linkedin.com/jobs/view/4001/")
        assert data["wages_min"] == 180000
        assert data["wages_max"] == 220000

    def test_recruiter(self):
        """Recruiter card gives name and role."""
        data = extract_linkedin_posting(LINKEDIN_POSTING, "https://www.linkedin.com/jobs/view/4001/")
        assert data["recruiter_name"] == "Jane Roe"
        assert data["recruiter_title"] == "Technical Recruiter"

    def test_empty_posting(self):
        """An empty page yields no fields."""
        assert extract_linkedin_posting("", None) == {}
