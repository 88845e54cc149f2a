"""Email classification: application, status update, response or ignored."""
import logging
import re

from applytrack.mail.items import ClassifiedEmail, EmailKind
from applytrack.mail.message import EmailMessage
from applytrack.mail.parsers import (
    MessageView,
    parse_generic_application,
    parse_generic_response,
    parse_linkedin_application,
    parse_linkedin_response,
    parse_linkedin_status,
    view_message,
)
from applytrack.persistence.models import ResponseStatus

logger = logging.getLogger(__name__)


class EmailClassifier:
    """Rule-based email classifier.

    Rules are evaluated in order and the first match wins. Classification is
    a pure function of the message, so classifying twice gives equal results.
    """

    # Job-notification senders with dedicated parsers
    NOTIFICATION_SENDER_PATTERNS = [
        r"@(?:[\w-]+\.)*linkedin\.com\b",
        r"\blinkedin\b.*<",
    ]

    APPLICATION_SENT_PATTERNS = [
        r"application was sent to",
    ]

    STATUS_PATTERNS = [
        r"was viewed by",
        r"is in review",
        r"is being considered",
        r"application status",
    ]

    RESPONSE_PATTERNS = [
        r"update on your application",
        r"your update from",
        r"response to your application",
        r"your application to",
    ]

    GENERIC_APPLICATION_PATTERNS = [
        r"application (?:received|submitted|confirmation|complete)",
        r"thank(?:s| you) for (?:applying|your application|submitting)",
        r"we(?:'ve| have) received your application",
        r"your application (?:has been|was) (?:received|submitted)",
        r"application for .+ (?:received|submitted)",
    ]

    GENERIC_STATUS_PATTERNS = [
        r"application (?:status|update)",
        r"update (?:on|regarding|about) your application",
        r"regarding your application",
        r"your application (?:to|for|with|at)",
        r"thank you for your interest",
        r"your candidacy",
        r"next steps",
    ]

    REJECTION_BODY_PATTERNS = [
        r"unfortunately",
        r"not (?:be )?moving forward",
        r"regret to inform",
        r"other candidates",
        r"decided to (?:move|proceed|pursue)",
        r"not (?:been )?selected",
        r"will not be (?:moving|proceeding)",
        r"position has been filled",
    ]

    def _any(self, patterns: list[str], text: str) -> bool:
        return any(re.search(pattern, text, re.IGNORECASE) for pattern in patterns)

    def is_notification_sender(self, email: EmailMessage) -> bool:
        """Check the sender against known job-notification addresses."""
        return self._any(self.NOTIFICATION_SENDER_PATTERNS, email.sender)

    def classify(self, email: EmailMessage) -> ClassifiedEmail:
        """
        Classify a single email and extract its item.

        Args:
            email: Parsed message

        Returns:
            ClassifiedEmail with the item and the name of the parser used

        Raises:
            ParseError: If the selected parser cannot extract the item
        """
        subject = email.subject or ""
        view = view_message(email)

        if self.is_notification_sender(email):
            if self._any(self.APPLICATION_SENT_PATTERNS, subject):
                return self._parsed(EmailKind.APPLICATION, "linkedin-application", parse_linkedin_application, view)
            if self._any(self.STATUS_PATTERNS, subject):
                return self._parsed(EmailKind.STATUS_UPDATE, "linkedin-status", parse_linkedin_status, view)
            if self._any(self.RESPONSE_PATTERNS, subject):
                return self._parsed(EmailKind.RESPONSE, "linkedin-response", parse_linkedin_response, view)

        if self._any(self.GENERIC_APPLICATION_PATTERNS, subject):
            return self._parsed(EmailKind.APPLICATION, "generic-application", parse_generic_application, view)

        if self._any(self.GENERIC_STATUS_PATTERNS, subject) and self._any(
            self.REJECTION_BODY_PATTERNS, view.combined_text
        ):
            item = parse_generic_response(view, default_response=ResponseStatus.REJECTED.value)
            return ClassifiedEmail(kind=EmailKind.RESPONSE, item=item, parser="generic-response")

        return ClassifiedEmail(kind=EmailKind.IGNORED)

    def _parsed(self, kind: EmailKind, name: str, parser, view: MessageView) -> ClassifiedEmail:
        item = parser(view)
        logger.debug("Message %s parsed by %s", view.email.id, name)
        return ClassifiedEmail(kind=kind, item=item, parser=name)
