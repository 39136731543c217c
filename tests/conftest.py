"""Shared test fixtures for the field extraction test suite."""

import json
from pathlib import Path
from typing import Any

import pytest

from docfields.registry.models import CompanyRecord
from docfields.registry.store import YamlCompanyRegistry


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


@pytest.fixture
def sample_response(project_root: Path) -> dict[str, Any]:
    """Saved single-page purchase order analysis."""
    with open(project_root / "samples" / "northwind_po.json") as f:
        return json.load(f)


@pytest.fixture
def companies() -> list[CompanyRecord]:
    """Two registered companies in registry order."""
    return [
        CompanyRecord(
            company="Northwind Packaging",
            fields=("Your Order No", "Deliver to:", "Date"),
            target_tables=("northwind-orders",),
        ),
        CompanyRecord(
            company="Contoso Components",
            fields=("PO Number", "Order Date"),
            target_tables=("contoso-orders", "purchase-orders-archive"),
        ),
    ]


@pytest.fixture
def companies_yaml(tmp_path: Path) -> Path:
    """Companies file in the YAML registry format."""
    path = tmp_path / "companies.yaml"
    path.write_text(
        "companies:\n"
        "  - company: Northwind Packaging\n"
        "    fields: [Your Order No, 'Deliver to:', Date]\n"
        "    targetTables: [northwind-orders]\n"
        "  - company: Contoso Components\n"
        "    fields: [PO Number, Order Date]\n"
        "    target_tables: [contoso-orders, purchase-orders-archive]\n"
    )
    return path


@pytest.fixture
def registry(companies_yaml: Path) -> YamlCompanyRegistry:
    return YamlCompanyRegistry(companies_yaml)


@pytest.hookimpl(hookwrapper=True, trylast=True)
def pytest_runtest_call(item):
    """Keep the root logger bare during the call phase for ``bare_root`` tests.

    pytest's logging plugin attaches its capture handlers to the root logger
    after fixtures run; detach them so ``bare_root`` really has no handlers.
    """
    if "bare_root" not in getattr(item, "fixturenames", ()):
        yield
        return
    import logging

    root = logging.getLogger()
    saved = root.handlers[:]
    root.handlers.clear()
    try:
        yield
    finally:
        root.handlers[:] = saved
