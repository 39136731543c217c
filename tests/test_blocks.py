"""Tests for block parsing and the block graph."""

from docfields.ocr.blocks import (
    BlockGraph,
    BoundingBox,
    KeyValueSetBlock,
    LineBlock,
    RelationshipType,
    SelectionElementBlock,
    parse_block,
    parse_blocks,
)
from tests.builders import checkbox, graph, key, line, page, value, word


class TestParseBlock:
    """Tests for converting wire blocks into typed blocks."""

    def test_line_block(self) -> None:
        block = parse_block(line("l1", "Invoice", top=0.25, left=0.5))
        assert isinstance(block, LineBlock)
        assert block.text == "Invoice"
        assert block.bbox.top == 0.25
        assert block.bbox.left == 0.5
        assert block.page == 1

    def test_key_value_roles(self) -> None:
        key_block = parse_block(key("k1", "v1", ["w1"]))
        value_block = parse_block(value("v1", ["w2"]))
        assert isinstance(key_block, KeyValueSetBlock)
        assert key_block.is_key
        assert not value_block.is_key
        assert key_block.related_ids(RelationshipType.VALUE) == ["v1"]
        assert key_block.related_ids(RelationshipType.CHILD) == ["w1"]

    def test_selection_status(self) -> None:
        selected = parse_block(checkbox("s1", True))
        assert isinstance(selected, SelectionElementBlock)
        assert selected.is_selected
        assert not parse_block(checkbox("s2", False)).is_selected

    def test_unknown_selection_status_is_not_selected(self) -> None:
        block = parse_block({"Id": "s1", "BlockType": "SELECTION_ELEMENT", "SelectionStatus": "?"})
        assert not block.is_selected

    def test_unsupported_type_returns_none(self) -> None:
        assert parse_block({"Id": "t1", "BlockType": "TABLE"}) is None
        assert parse_block({"Id": "c1", "BlockType": "CELL"}) is None

    def test_missing_id_returns_none(self) -> None:
        assert parse_block({"BlockType": "LINE", "Text": "x"}) is None

    def test_malformed_geometry_becomes_empty_box(self) -> None:
        block = parse_block(
            {"Id": "l1", "BlockType": "LINE", "Geometry": {"BoundingBox": {"Top": "n/a"}}}
        )
        assert block.bbox == BoundingBox()

    def test_unknown_relationship_type_ignored(self) -> None:
        block = parse_block(
            {
                "Id": "l1",
                "BlockType": "LINE",
                "Relationships": [
                    {"Type": "MERGED_CELL", "Ids": ["x"]},
                    {"Type": "CHILD", "Ids": ["w1"]},
                ],
            }
        )
        assert len(block.relationships) == 1
        assert block.related_ids(RelationshipType.CHILD) == ["w1"]

    def test_malformed_relationships_skipped(self) -> None:
        blocks = parse_blocks(
            [
                {
                    "Id": "k1",
                    "BlockType": "KEY_VALUE_SET",
                    "EntityTypes": ["KEY"],
                    "Relationships": [
                        "bogus",
                        {"Type": "VALUE", "Ids": "v1"},
                        {"Type": "CHILD", "Ids": ["w1", 7]},
                    ],
                },
                {"Id": "l1", "BlockType": "LINE", "Relationships": "bogus"},
                word("w1", "Date"),
            ]
        )
        assert [b.id for b in blocks] == ["k1", "l1", "w1"]
        assert blocks[0].related_ids(RelationshipType.CHILD) == ["w1"]
        assert blocks[0].related_ids(RelationshipType.VALUE) == []
        assert blocks[1].relationships == ()

    def test_parse_blocks_drops_unsupported(self) -> None:
        blocks = parse_blocks([line("l1", "a"), {"Id": "t1", "BlockType": "TABLE"}, word("w1", "a")])
        assert [b.id for b in blocks] == ["l1", "w1"]


class TestBlockGraph:
    """Tests for lookups and traversals over a block graph."""

    def test_resolve_children_unknown_id(self) -> None:
        g = graph(line("l1", "a"))
        assert g.resolve_children("missing") == []

    def test_resolve_children_skips_dangling_ids(self) -> None:
        g = graph(key("k1", None, ["w1", "gone", "w2"]), word("w1", "Order"), word("w2", "No"))
        children = g.resolve_children("k1")
        assert [c.id for c in children] == ["w1", "w2"]

    def test_resolve_children_by_kind(self) -> None:
        g = graph(key("k1", "v1", ["w1"]), value("v1", []), word("w1", "Date"))
        assert [c.id for c in g.resolve_children("k1", RelationshipType.VALUE)] == ["v1"]

    def test_repeated_id_keeps_last_block(self) -> None:
        g = graph(line("l1", "first"), line("l2", "x"), line("l1", "second"))
        assert len(g) == 2
        assert [b.id for b in g] == ["l1", "l2"]
        assert g.get("l1").text == "second"

    def test_contains(self) -> None:
        g = graph(page("p1"), line("l1", "a"), word("w1", "a"))
        assert "l1" in g
        assert "zz" not in g

    def test_text_joins_lines_in_order(self) -> None:
        g = graph(line("l1", "Northwind"), word("w1", "ignored"), line("l2", "Date: 2024"))
        assert g.text() == "Northwind\nDate: 2024"

    def test_pages_sorted_by_index(self) -> None:
        g = graph(page("p3", page_no=3), page("px", page_no=None), page("p1", page_no=1))
        assert [p.id for p in g.pages()] == ["p1", "p3", "px"]

    def test_from_response_without_blocks(self) -> None:
        assert len(BlockGraph.from_response({})) == 0


class TestPageScope:
    """Tests for selecting the blocks of one page."""

    def test_reachable_blocks_included(self) -> None:
        g = graph(
            page("p1", ["k1"], page_no=None),
            key("k1", "v1", ["w1"], page_no=None),
            value("v1", ["w2"], page_no=None),
            word("w1", "Date", page_no=None),
            word("w2", "today", page_no=None),
            line("other", "elsewhere", page_no=None),
        )
        scope = g.page_scope("p1")
        assert [b.id for b in scope] == ["p1", "k1", "v1", "w1", "w2"]

    def test_hop_limit(self) -> None:
        g = graph(
            page("p1", ["k1"], page_no=None),
            key("k1", "v1", [], page_no=None),
            value("v1", ["w1"], page_no=None),
            word("w1", "deep", page_no=None),
        )
        assert "w1" in g.page_scope("p1", max_hops=3)
        assert "w1" not in g.page_scope("p1", max_hops=2)

    def test_same_page_index_included(self) -> None:
        g = graph(
            page("p1", [], page_no=1),
            page("p2", [], page_no=2),
            line("l1", "Northwind", page_no=1),
            line("l2", "Contoso", page_no=2),
        )
        scope = g.page_scope("p1")
        assert scope.text() == "Northwind"
        assert g.page_scope("p2").text() == "Contoso"

    def test_block_referencing_page_included(self) -> None:
        g = graph(
            page("p1", [], page_no=None),
            {"Id": "l1", "BlockType": "LINE", "Text": "back", "Relationships": [{"Type": "CHILD", "Ids": ["p1"]}]},
        )
        assert "l1" in g.page_scope("p1")

    def test_unknown_page_is_empty(self) -> None:
        assert len(graph(line("l1", "a")).page_scope("nope")) == 0
