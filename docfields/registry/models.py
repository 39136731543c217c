"""Per-company extraction rules."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CompanyRecord:
    """Extraction rules registered for one company.

    ``company`` is stored as registered and matched case-insensitively.
    ``fields`` are the labels to extract, in report order, and
    ``target_tables`` the sinks that receive the results.
    """

    company: str
    fields: tuple[str, ...] = ()
    target_tables: tuple[str, ...] = ()

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "CompanyRecord":
        """Build a record from a registry item.

        Accepts both the ``targetTables`` spelling used by the DynamoDB
        table and ``target_tables`` used in YAML files.
        """
        tables = item.get("targetTables", item.get("target_tables")) or ()
        return cls(
            company=str(item["company"]),
            fields=tuple(str(f) for f in item.get("fields") or ()),
            target_tables=tuple(str(t) for t in tables),
        )
