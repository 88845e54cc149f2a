"""Mailbox access, email classification and parsing."""
from .classifier import EmailClassifier
from .client import MailboxClient, MailCredentials
from .items import (
    ApplicationItem,
    ClassifiedEmail,
    EmailKind,
    ResponseItem,
    SearchResults,
    StatusUpdateItem,
)
from .message import EmailMessage, parse_raw_message
from .parsers import classify_response_outcome, placeholder_title, view_message
from .search import (
    MailboxSearch,
    build_search_criteria,
    ensure_aware,
    list_mailbox_folders,
    resolve_cutoff,
)

__all__ = [
    "EmailMessage",
    "parse_raw_message",
    "MailboxClient",
    "MailCredentials",
    "EmailKind",
    "ApplicationItem",
    "StatusUpdateItem",
    "ResponseItem",
    "ClassifiedEmail",
    "SearchResults",
    "EmailClassifier",
    "classify_response_outcome",
    "placeholder_title",
    "view_message",
    "MailboxSearch",
    "build_search_criteria",
    "resolve_cutoff",
    "ensure_aware",
    "list_mailbox_folders",
]
