"""Label-and-separator fallback for fields missing from the form pairs.

Scans the flattened line text for a line mentioning the field label and
takes whatever follows the first ``:``, ``-`` or ``=`` on that line.
"""

import re

from docfields.utils.logger import get_logger

logger = get_logger(__name__)

_SEPARATOR = re.compile(r"[:\-=]")


class PatternExtractor:
    """Case-insensitive ``label <sep> value`` scanner over document text."""

    def extract(self, text: str, field_name: str) -> str | None:
        """Find the value following ``field_name`` on its first matching line.

        Matching is done on lower-cased text, so the value comes back
        lower-cased too.

        Args:
            text: Newline-joined LINE texts.
            field_name: Field label as configured for the company.

        Returns:
            The stripped text after the first separator, or ``None`` when no
            line mentions the label together with a separator.
        """
        needle = field_name.lower()
        for line in text.lower().split("\n"):
            if needle not in line:
                continue
            parts = _SEPARATOR.split(line, maxsplit=1)
            if len(parts) > 1:
                value = parts[1].strip()
                logger.debug("Pattern match for '%s': %s", field_name, value)
                return value

        logger.debug("No pattern match for field '%s'", field_name)
        return None
