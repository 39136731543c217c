"""Form field extraction from KEY_VALUE_SET block pairs.

A KEY block points at its VALUE block through a VALUE relationship; both
reach their words (and checkboxes) through CHILD relationships.
"""

from docfields.ocr.blocks import (
    Block,
    BlockGraph,
    KeyValueSetBlock,
    RelationshipType,
    SelectionElementBlock,
    WordBlock,
)
from docfields.utils.logger import get_logger

logger = get_logger(__name__)

SELECTED_TOKEN = "[X]"
NOT_SELECTED_TOKEN = "[ ]"


def block_text(block: Block, graph: BlockGraph) -> str:
    """Text of a block assembled from its CHILD words and checkboxes.

    Args:
        block: Block whose children carry the text, usually a KEY_VALUE_SET.
        graph: Graph used to resolve the child ids.

    Returns:
        Space-joined tokens, stripped. Checkboxes render as ``[X]`` or ``[ ]``.
    """
    tokens: list[str] = []
    for child in graph.related(block, RelationshipType.CHILD):
        if isinstance(child, WordBlock):
            tokens.append(child.text)
        elif isinstance(child, SelectionElementBlock):
            tokens.append(SELECTED_TOKEN if child.is_selected else NOT_SELECTED_TOKEN)
    return " ".join(tokens).strip()


class KeyValueExtractor:
    """Resolves form key/value pairs into a ``{key text: value text}`` mapping."""

    def extract(self, graph: BlockGraph) -> dict[str, str]:
        """Pair every KEY block with its VALUE block.

        Keys whose VALUE edge is missing or points at a block that is not a
        value block of this graph are skipped. When two keys read the same,
        the one later in block order wins.

        Args:
            graph: Whole document or a single page.

        Returns:
            Mapping from key text to value text, both stripped.
        """
        key_blocks: list[KeyValueSetBlock] = []
        value_blocks: dict[str, KeyValueSetBlock] = {}
        for block in graph:
            if not isinstance(block, KeyValueSetBlock):
                continue
            if block.is_key:
                key_blocks.append(block)
            else:
                value_blocks[block.id] = block

        logger.debug("Found %d keys and %d values", len(key_blocks), len(value_blocks))

        pairs: dict[str, str] = {}
        for key_block in key_blocks:
            value_ids = key_block.related_ids(RelationshipType.VALUE)
            value_block = value_blocks.get(value_ids[0]) if value_ids else None
            if value_block is None:
                continue

            key_text = block_text(key_block, graph)
            if not key_text:
                continue
            pairs[key_text] = block_text(value_block, graph)
            logger.debug("Mapped key-value: '%s' -> '%s'", key_text, pairs[key_text])

        return pairs
