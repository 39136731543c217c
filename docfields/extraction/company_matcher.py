"""Identifies which registered company issued a document or page."""

from collections.abc import Iterable

from docfields.registry.models import CompanyRecord
from docfields.utils.logger import get_logger

logger = get_logger(__name__)


class CompanyMatcher:
    """Case-insensitive substring search over registered company names.

    The first record, in registry order, whose name occurs anywhere in the
    text wins. A shorter name listed earlier therefore beats a longer name
    that contains it ("Acme" before "Acme Corp").
    """

    def match(
        self, text: str, companies: Iterable[CompanyRecord]
    ) -> CompanyRecord | None:
        """Find the issuing company of a text.

        Args:
            text: Document or page text.
            companies: Registry records in registry order.

        Returns:
            The first matching record, or ``None`` when no name occurs.
        """
        haystack = text.lower()
        for record in companies:
            name = record.company.strip().lower()
            if name and name in haystack:
                logger.info("Company identified: %s", record.company)
                return record

        logger.info("No company match found in text")
        return None
