"""Typed block graph produced by the OCR/layout analysis service.

Each analysis response is a flat list of blocks linked by CHILD and VALUE
relationships. Blocks are parsed into one dataclass per block type so that
only the attributes meaningful for that type exist on the object, and
collected into a :class:`BlockGraph` for id lookups and short traversals.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from docfields.utils.logger import get_logger

logger = get_logger(__name__)


class BlockType(StrEnum):
    """Block types the pipeline understands."""

    PAGE = "PAGE"
    LINE = "LINE"
    WORD = "WORD"
    KEY_VALUE_SET = "KEY_VALUE_SET"
    SELECTION_ELEMENT = "SELECTION_ELEMENT"


class EntityRole(StrEnum):
    """Role of a KEY_VALUE_SET block within a form field pair."""

    KEY = "KEY"
    VALUE = "VALUE"


class SelectionStatus(StrEnum):
    """State of a checkbox or radio button."""

    SELECTED = "SELECTED"
    NOT_SELECTED = "NOT_SELECTED"


class RelationshipType(StrEnum):
    """Edge kinds between blocks."""

    CHILD = "CHILD"
    VALUE = "VALUE"


@dataclass(frozen=True)
class BoundingBox:
    """Block position as fractions of the page width and height."""

    top: float = 0.0
    left: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class Relationship:
    """An ordered group of edges of one kind."""

    kind: RelationshipType
    ids: tuple[str, ...]


@dataclass(frozen=True)
class _BaseBlock:
    id: str
    bbox: BoundingBox = field(default_factory=BoundingBox)
    relationships: tuple[Relationship, ...] = ()
    page: int | None = None

    block_type: ClassVar[BlockType]

    def related_ids(self, kind: RelationshipType) -> list[str]:
        """Ids referenced through relationships of ``kind``, in order."""
        return [i for rel in self.relationships if rel.kind == kind for i in rel.ids]

    def references(self, block_id: str) -> bool:
        """Whether any relationship of this block points at ``block_id``."""
        return any(block_id in rel.ids for rel in self.relationships)


@dataclass(frozen=True)
class PageBlock(_BaseBlock):
    block_type: ClassVar[BlockType] = BlockType.PAGE


@dataclass(frozen=True)
class LineBlock(_BaseBlock):
    text: str = ""

    block_type: ClassVar[BlockType] = BlockType.LINE


@dataclass(frozen=True)
class WordBlock(_BaseBlock):
    text: str = ""

    block_type: ClassVar[BlockType] = BlockType.WORD


@dataclass(frozen=True)
class KeyValueSetBlock(_BaseBlock):
    entity_roles: frozenset[EntityRole] = frozenset()

    block_type: ClassVar[BlockType] = BlockType.KEY_VALUE_SET

    @property
    def is_key(self) -> bool:
        return EntityRole.KEY in self.entity_roles


@dataclass(frozen=True)
class SelectionElementBlock(_BaseBlock):
    selection_status: SelectionStatus = SelectionStatus.NOT_SELECTED

    block_type: ClassVar[BlockType] = BlockType.SELECTION_ELEMENT

    @property
    def is_selected(self) -> bool:
        return self.selection_status == SelectionStatus.SELECTED


Block = PageBlock | LineBlock | WordBlock | KeyValueSetBlock | SelectionElementBlock


def _parse_bbox(geometry: Any) -> BoundingBox:
    """Read ``Geometry.BoundingBox``; anything malformed becomes an empty box."""
    if not isinstance(geometry, dict):
        return BoundingBox()
    raw = geometry.get("BoundingBox")
    if not isinstance(raw, dict):
        return BoundingBox()
    try:
        return BoundingBox(
            top=float(raw.get("Top", 0.0)),
            left=float(raw.get("Left", 0.0)),
            width=float(raw.get("Width", 0.0)),
            height=float(raw.get("Height", 0.0)),
        )
    except (TypeError, ValueError):
        return BoundingBox()


def _parse_relationships(raw: Any) -> tuple[Relationship, ...]:
    relationships: list[Relationship] = []
    if not isinstance(raw, list):
        return ()
    for rel in raw:
        if not isinstance(rel, dict):
            continue
        try:
            kind = RelationshipType(rel.get("Type"))
        except ValueError:
            continue
        ids = rel.get("Ids")
        if not isinstance(ids, list):
            continue
        relationships.append(
            Relationship(kind=kind, ids=tuple(i for i in ids if isinstance(i, str)))
        )
    return tuple(relationships)


def parse_block(raw: dict[str, Any]) -> Block | None:
    """Convert one provider block into its typed variant.

    Args:
        raw: Block in the provider's wire shape (``Id``, ``BlockType``,
            ``Text``, ``EntityTypes``, ``SelectionStatus``, ``Geometry``,
            ``Relationships``, ``Page``).

    Returns:
        The typed block, or ``None`` for block types the pipeline does not
        use (tables, cells, layout regions) and for blocks without an id.
    """
    block_id = raw.get("Id")
    if not block_id:
        return None
    try:
        block_type = BlockType(raw.get("BlockType"))
    except ValueError:
        return None

    common: dict[str, Any] = {
        "id": block_id,
        "bbox": _parse_bbox(raw.get("Geometry")),
        "relationships": _parse_relationships(raw.get("Relationships")),
        "page": raw.get("Page"),
    }

    if block_type == BlockType.PAGE:
        return PageBlock(**common)
    if block_type == BlockType.LINE:
        return LineBlock(text=raw.get("Text") or "", **common)
    if block_type == BlockType.WORD:
        return WordBlock(text=raw.get("Text") or "", **common)
    if block_type == BlockType.KEY_VALUE_SET:
        roles = frozenset(
            EntityRole(r) for r in raw.get("EntityTypes") or () if r in EntityRole.__members__
        )
        return KeyValueSetBlock(entity_roles=roles, **common)

    status = raw.get("SelectionStatus")
    return SelectionElementBlock(
        selection_status=(
            SelectionStatus(status)
            if status in SelectionStatus.__members__
            else SelectionStatus.NOT_SELECTED
        ),
        **common,
    )


def parse_blocks(raw_blocks: Iterable[dict[str, Any]]) -> list[Block]:
    """Parse a provider block list, dropping block types the pipeline ignores."""
    blocks: list[Block] = []
    skipped = 0
    for raw in raw_blocks:
        block = parse_block(raw)
        if block is None:
            skipped += 1
            continue
        blocks.append(block)
    if skipped:
        logger.debug("Skipped %d blocks of unsupported type", skipped)
    return blocks


class BlockGraph:
    """Id-indexed view over one batch of blocks.

    Iteration follows the order the provider returned the blocks in. A
    repeated id keeps its first position and the last block seen.

    Args:
        blocks: Parsed blocks of one analysis response (or a subset of one).
    """

    def __init__(self, blocks: Iterable[Block] = ()) -> None:
        self._blocks: dict[str, Block] = {}
        for block in blocks:
            self._blocks[block.id] = block

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> "BlockGraph":
        """Build a graph from a raw response holding a ``Blocks`` list."""
        return cls(parse_blocks(response.get("Blocks") or []))

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[Block]:
        return iter(self._blocks.values())

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._blocks

    def get(self, block_id: str) -> Block | None:
        return self._blocks.get(block_id)

    def resolve_children(
        self, block_id: str, kind: RelationshipType = RelationshipType.CHILD
    ) -> list[Block]:
        """Blocks referenced by ``block_id`` through ``kind`` edges.

        Unknown ids, on either end of the edge, are skipped rather than
        raised.
        """
        block = self._blocks.get(block_id)
        if block is None:
            return []
        return self.related(block, kind)

    def related(self, block: Block, kind: RelationshipType) -> list[Block]:
        """Like :meth:`resolve_children`, starting from a block object."""
        resolved = []
        for child_id in block.related_ids(kind):
            child = self._blocks.get(child_id)
            if child is not None:
                resolved.append(child)
        return resolved

    def lines(self) -> list[LineBlock]:
        return [b for b in self._blocks.values() if isinstance(b, LineBlock)]

    def pages(self) -> list[PageBlock]:
        """PAGE blocks by provider page index, batch order where it is missing."""
        pages = [b for b in self._blocks.values() if isinstance(b, PageBlock)]
        indexed = list(enumerate(pages))
        indexed.sort(key=lambda item: (item[1].page is None, item[1].page or 0, item[0]))
        return [page for _, page in indexed]

    def text(self) -> str:
        """All LINE texts in block order, one per line."""
        return "\n".join(line.text for line in self.lines())

    def page_scope(self, page_id: str, max_hops: int = 3) -> "BlockGraph":
        """Sub-graph of the blocks that belong to one page.

        A block belongs to the page when it is reachable from the PAGE block
        within ``max_hops`` CHILD/VALUE edges, when one of its own
        relationships points at the page id, or when it carries the same
        provider page index as the PAGE block.

        Args:
            page_id: Id of a PAGE block in this graph.
            max_hops: Traversal depth limit.

        Returns:
            A new graph in the original block order; empty if the page is
            unknown.
        """
        page = self._blocks.get(page_id)
        if page is None:
            return BlockGraph()

        reachable = {page_id}
        frontier = [page_id]
        for _ in range(max_hops):
            next_frontier = []
            for block_id in frontier:
                block = self._blocks.get(block_id)
                if block is None:
                    continue
                for rel in block.relationships:
                    for child_id in rel.ids:
                        if child_id in self._blocks and child_id not in reachable:
                            reachable.add(child_id)
                            next_frontier.append(child_id)
            if not next_frontier:
                break
            frontier = next_frontier

        return BlockGraph(
            b
            for b in self._blocks.values()
            if b.id in reachable
            or b.references(page_id)
            or (page.page is not None and b.page == page.page)
        )
