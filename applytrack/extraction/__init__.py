"""Heuristic extraction of job fields from HTML and text."""
from .fields import (
    extract_company,
    extract_description,
    extract_employment_type,
    extract_external_job_id,
    extract_location,
    extract_location_type,
    extract_salary,
    extract_title,
)
from .linkedin import ENRICHMENT_MARKER, extract_linkedin_posting
from .page import drop_empty, extract_job_data
from .salary import SalaryRange, find_salary_in_text, parse_salary_string
from .strategies import Extraction, Strategy, first_match, normalize_whitespace
from .urls import (
    clean_linkedin_job_url,
    extract_job_id_from_url,
    format_website_url,
    is_linkedin_job_url,
    linkedin_guest_url,
)

__all__ = [
    "Strategy",
    "Extraction",
    "first_match",
    "normalize_whitespace",
    "SalaryRange",
    "parse_salary_string",
    "find_salary_in_text",
    "extract_title",
    "extract_company",
    "extract_location",
    "extract_employment_type",
    "extract_location_type",
    "extract_description",
    "extract_salary",
    "extract_external_job_id",
    "extract_job_data",
    "extract_linkedin_posting",
    "drop_empty",
    "ENRICHMENT_MARKER",
    "extract_job_id_from_url",
    "clean_linkedin_job_url",
    "is_linkedin_job_url",
    "linkedin_guest_url",
    "format_website_url",
]
