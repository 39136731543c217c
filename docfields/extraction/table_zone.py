"""Line item reconstruction from LINE geometry.

Purchase orders list their items in a table under a known header row. The
analysis service's own table output is not used; instead the lines below
the header are grouped into visual rows by their vertical position and
read top to bottom with a small state machine:

* a row starting with ``"<n>."`` opens a new item,
* a quantity row (``"2,000 PCS"``) sets quantity and unit,
* product code, ``CODE ...`` and ``LOT No ...`` rows add to the description,
* money values (``"1,250.00"``) fill unit price, then amount.

Missing or odd geometry only yields fewer or emptier items.
"""

import math
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from docfields.ocr.blocks import BlockGraph, LineBlock
from docfields.utils.config import DEFAULT_TABLE_HEADERS, TableConfig
from docfields.utils.logger import get_logger

logger = get_logger(__name__)

_ITEM_NO = re.compile(r"^(\d+)\.$")
_QUANTITY = re.compile(r"^([\d,]+)\s+(PCS|PLS|EA|UNIT|UNITES|UNITS)$", re.IGNORECASE)
_PRODUCT_CODE = re.compile(r"^[A-Z]{2}\d+")
_CODE_LINE = re.compile(r"^CODE\s")
_LOT_NO = re.compile(r"^LOT\sNo", re.IGNORECASE)
_MONEY = re.compile(r"^[\d,]+\.\d{2}$")

_DESCRIPTION_PATTERNS = (_PRODUCT_CODE, _CODE_LINE, _LOT_NO)


@dataclass
class LineItem:
    """One reconstructed table row."""

    item_no: str
    quantity: str = ""
    quantity_unit: str = ""
    descriptions: str = ""
    unit_price: str = ""
    amount: str = ""

    def to_item(self) -> dict[str, Any]:
        """Storage representation with the sink's attribute names."""
        return {
            "itemNo": self.item_no,
            "quantity": self.quantity,
            "quantityUnit": self.quantity_unit,
            "descriptions": self.descriptions,
            "unitPrice": self.unit_price,
            "amount": self.amount,
        }


@dataclass
class _ItemBuilder:
    item_no: str
    quantity: str = ""
    quantity_unit: str = ""
    descriptions: list[str] = field(default_factory=list)
    prices: list[str] = field(default_factory=list)

    def build(self) -> LineItem:
        return LineItem(
            item_no=self.item_no,
            quantity=self.quantity,
            quantity_unit=self.quantity_unit,
            descriptions=" ".join(self.descriptions),
            unit_price=self.prices[0] if self.prices else "",
            amount=self.prices[1] if len(self.prices) > 1 else "",
        )


class RowGrouper(Protocol):
    """Clusters table lines into visual rows, top row first."""

    def group(self, lines: Iterable[LineBlock]) -> list[list[LineBlock]]: ...


class QuantizedRowGrouper:
    """Treats lines whose ``top`` rounds to the same value as one row.

    Args:
        precision: Decimal places kept from the normalized ``top``.
    """

    def __init__(self, precision: int = 3) -> None:
        self.scale = 10**precision

    def row_key(self, line: LineBlock) -> float:
        # half-up, unlike round()
        return math.floor(line.bbox.top * self.scale + 0.5) / self.scale

    def group(self, lines: Iterable[LineBlock]) -> list[list[LineBlock]]:
        rows: dict[float, list[LineBlock]] = {}
        for line in lines:
            rows.setdefault(self.row_key(line), []).append(line)
        return [rows[key] for key in sorted(rows)]


class TableZoneExtractor:
    """Reads line items from the zone below the table header.

    Args:
        headers: Exact header labels that mark the top of the table.
        bottom: Normalized page height where the table is assumed to end.
        grouper: Row clustering strategy.
    """

    def __init__(
        self,
        headers: list[str] | None = None,
        bottom: float = 0.9,
        grouper: RowGrouper | None = None,
    ) -> None:
        self.headers = list(headers) if headers is not None else list(DEFAULT_TABLE_HEADERS)
        self.bottom = bottom
        self.grouper = grouper or QuantizedRowGrouper()

    @classmethod
    def from_config(cls, config: TableConfig) -> "TableZoneExtractor":
        return cls(
            headers=config.headers,
            bottom=config.bottom,
            grouper=QuantizedRowGrouper(config.row_precision),
        )

    def find_headers(self, lines: list[LineBlock]) -> list[LineBlock]:
        """First line matching each header label; labels not found are left out."""
        found = []
        for label in self.headers:
            match = next((line for line in lines if line.text == label), None)
            if match is not None:
                found.append(match)
        return found

    def extract(self, graph: BlockGraph) -> list[LineItem]:
        """Reconstruct the line items of a document or page.

        Args:
            graph: Blocks holding the LINE blocks of the table.

        Returns:
            Items in table order; empty when no header line is present.
        """
        lines = graph.lines()
        header_lines = self.find_headers(lines)
        if not header_lines:
            logger.debug("No table header found")
            return []

        top = min(h.bbox.top for h in header_lines)
        zone = [line for line in lines if top < line.bbox.top < self.bottom]
        logger.debug("Table zone %.3f-%.3f holds %d lines", top, self.bottom, len(zone))

        header_labels = set(self.headers)
        items: list[LineItem] = []
        current: _ItemBuilder | None = None

        for row in self.grouper.group(zone):
            if any(line.text in header_labels for line in row):
                continue
            row = sorted(row, key=lambda line: line.bbox.left)
            first = row[0].text.strip()

            item_match = _ITEM_NO.match(first)
            if item_match:
                if current is not None:
                    items.append(current.build())
                current = _ItemBuilder(item_no=item_match.group(1))
            elif current is None:
                continue
            else:
                self._classify(first, current)

            current.prices.extend(
                line.text.strip() for line in row if _MONEY.match(line.text.strip())
            )

        if current is not None:
            items.append(current.build())

        logger.info("Extracted %d line items", len(items))
        return items

    def _classify(self, text: str, item: _ItemBuilder) -> None:
        """Assign the first line of a row to the open item."""
        quantity = _QUANTITY.match(text)
        if quantity:
            item.quantity = quantity.group(1)
            item.quantity_unit = quantity.group(2).lower()
            return
        if any(pattern.match(text) for pattern in _DESCRIPTION_PATTERNS):
            item.descriptions.append(text)
