"""Company registry backends.

The pipeline only needs two reads: every registered company (to identify
the issuer of a document) and the target tables of one company.
"""

from pathlib import Path
from typing import Any, Protocol

import boto3
import yaml
from botocore.exceptions import BotoCoreError, ClientError

from docfields.exceptions import RegistryError
from docfields.utils.config import RegistryConfig
from docfields.utils.logger import get_logger

from .models import CompanyRecord

logger = get_logger(__name__)


class CompanyRegistry(Protocol):
    """Read-only source of :class:`CompanyRecord` entries."""

    def list_all(self) -> list[CompanyRecord]: ...

    def get_target_tables(self, company: str) -> list[str]: ...


class YamlCompanyRegistry:
    """Registry backed by a YAML file.

    The file holds either a list of company items or a mapping with a
    ``companies`` list. Registry order is file order, which decides ties
    when several company names occur in one document.

    Args:
        path: Path to the companies YAML file.
    """

    def __init__(self, path: Path = Path("configs/companies.yaml")) -> None:
        self.path = path
        self._records = self._load(path)

    def _load(self, path: Path) -> list[CompanyRecord]:
        if not path.exists():
            logger.debug("No companies file at %s, using an empty registry", path)
            return []
        with open(path) as f:
            data = yaml.safe_load(f) or []
        if isinstance(data, dict):
            data = data.get("companies") or []
        try:
            records = [CompanyRecord.from_item(item) for item in data]
        except (KeyError, TypeError, AttributeError) as exc:
            raise RegistryError(f"Malformed company entry in {path}: {exc}") from exc
        logger.info("Loaded %d company records from %s", len(records), path)
        return records

    def list_all(self) -> list[CompanyRecord]:
        return list(self._records)

    def get_target_tables(self, company: str) -> list[str]:
        for record in self._records:
            if record.company == company:
                return list(record.target_tables)
        return []


class DynamoCompanyRegistry:
    """Registry backed by a DynamoDB table keyed on ``company``.

    Args:
        table_name: Name of the company configuration table.
        resource: DynamoDB service resource; created from the default
            session when omitted.
        region_name: Region for the default resource.
    """

    _PROJECTION = "company, fields, targetTables"

    def __init__(
        self,
        table_name: str,
        resource: Any | None = None,
        region_name: str | None = None,
    ) -> None:
        self.table_name = table_name
        resource = resource or boto3.resource("dynamodb", region_name=region_name)
        self._table = resource.Table(table_name)

    def list_all(self) -> list[CompanyRecord]:
        """Scan the whole table, following pagination.

        Raises:
            RegistryError: The scan failed.
        """
        logger.info("Fetching all company records from %s", self.table_name)
        params: dict[str, Any] = {"ProjectionExpression": self._PROJECTION}
        items: list[dict[str, Any]] = []
        try:
            while True:
                page = self._table.scan(**params)
                items.extend(page.get("Items", []))
                last_key = page.get("LastEvaluatedKey")
                if not last_key:
                    break
                params["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as exc:
            logger.error("Failed to fetch company records: %s", exc)
            raise RegistryError(f"Cannot scan {self.table_name}: {exc}") from exc

        logger.info("Retrieved %d company records", len(items))
        return [CompanyRecord.from_item(item) for item in items]

    def get_target_tables(self, company: str) -> list[str]:
        """Target tables of one company; ``[]`` when unknown or unreadable."""
        try:
            response = self._table.get_item(
                Key={"company": company}, ProjectionExpression="targetTables"
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Error getting target tables for %s: %s", company, exc)
            return []
        tables = list((response.get("Item") or {}).get("targetTables") or [])
        logger.debug("Target tables for %s: %s", company, tables)
        return tables


class CachedCompanyRegistry:
    """Keeps the records of another registry in memory for its lifetime.

    Args:
        inner: Registry read through on the first call.
    """

    def __init__(self, inner: CompanyRegistry) -> None:
        self.inner = inner
        self._records: list[CompanyRecord] | None = None

    def list_all(self) -> list[CompanyRecord]:
        if self._records is None:
            self._records = self.inner.list_all()
        return list(self._records)

    def get_target_tables(self, company: str) -> list[str]:
        for record in self.list_all():
            if record.company == company:
                return list(record.target_tables)
        return self.inner.get_target_tables(company)


def build_registry(
    config: RegistryConfig, region_name: str | None = None
) -> CompanyRegistry:
    """Create the registry selected by the configuration."""
    if config.backend == "dynamodb":
        return CachedCompanyRegistry(
            DynamoCompanyRegistry(config.table_name, region_name=region_name)
        )
    return YamlCompanyRegistry(Path(config.path))
