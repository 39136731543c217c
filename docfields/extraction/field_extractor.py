"""Per-field resolution combining form pairs with the pattern fallback."""

from dataclasses import dataclass

from docfields.ocr.blocks import BlockGraph
from docfields.utils.logger import get_logger

from .key_value import KeyValueExtractor
from .pattern import PatternExtractor

logger = get_logger(__name__)


@dataclass
class ExtractedField:
    """Outcome of resolving one requested field."""

    field_name: str
    value: str | None
    extraction_method: str | None


class FieldExtractor:
    """Looks up each field in the form pairs first, then by pattern.

    Holds no state between calls: the same graph and field list always
    produce the same result.

    Args:
        key_value: Form pair extractor.
        pattern: Fallback text scanner.
    """

    def __init__(
        self,
        key_value: KeyValueExtractor | None = None,
        pattern: PatternExtractor | None = None,
    ) -> None:
        self.key_value = key_value or KeyValueExtractor()
        self.pattern = pattern or PatternExtractor()

    def extract_fields(
        self, graph: BlockGraph, fields: list[str]
    ) -> list[ExtractedField]:
        """Resolve every field, recording which strategy found it.

        Args:
            graph: Blocks of a document or of one page.
            fields: Field labels in the order they should be reported.

        Returns:
            One entry per field; ``value`` is ``None`` when neither strategy
            located it.
        """
        pairs = self.key_value.extract(graph)
        text = graph.text()

        results: list[ExtractedField] = []
        for field_name in fields:
            value = pairs.get(field_name)
            method = "key_value"
            if not value:
                value = self.pattern.extract(text, field_name)
                method = "pattern"
            if value is None:
                method = None
            logger.debug("Field '%s': %s", field_name, value if value is not None else "not found")
            results.append(ExtractedField(field_name, value, method))

        found = sum(1 for r in results if r.value is not None)
        logger.info("Extracted %d of %d fields", found, len(results))
        return results
