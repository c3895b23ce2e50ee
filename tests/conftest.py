"""
Shared fixtures: a file-backed SQLite database, canned HTML pages and a
fake fetcher so collectors never touch the network.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import pytest

from src.harvester.db.base import Base, import_all_models
from src.harvester.db.session import build_engine, build_session_factory
from src.harvester.errors import SourceConnectionError
from src.harvester.models.collection import ValidationResult
from src.harvester.models.source import DataSourceConfig, Region, Schedule, SourceType


INDEX_URL = "https://county.example.gov/taxsale/"


@pytest.fixture
def engine(tmp_path):
    """SQLite file database shared by the worker threads of a test."""
    import_all_models()
    engine = build_engine(f"sqlite:///{tmp_path / 'harvester.db'}")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


class FakeFetcher:
    """
    Serves canned pages by URL.

    A page registered as an Exception instance is raised instead of
    returned. Unknown URLs raise SourceConnectionError.
    """

    def __init__(self, pages: Optional[Dict[str, object]] = None, reachable: bool = True):
        self.pages = dict(pages or {})
        self.reachable = reachable
        self.requests: List[str] = []

    def fetch(self, url: str) -> str:
        self.requests.append(url)
        page = self.pages.get(url)
        if page is None:
            raise SourceConnectionError(f"Failed to fetch {url}: 404 Not Found", details={"url": url})
        if isinstance(page, Exception):
            raise page
        return page

    def check_url(self, url: str) -> ValidationResult:
        if self.reachable:
            return ValidationResult(valid=True)
        return ValidationResult(valid=False, message="URL returned status 503")


def table_html(headers: Iterable[str], rows: Iterable[Iterable[str]], table_id: str = "listings") -> str:
    head = "".join(f"<th>{h}</th>" for h in headers)
    body = "".join(
        "<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>"
        for row in rows
    )
    return f"<html><body><table id='{table_id}'><tr>{head}</tr>{body}</table></body></html>"


def detail_html(values: Dict[str, str]) -> str:
    rows = "".join(f"<tr><th>{label}:</th><td>{value}</td></tr>" for label, value in values.items())
    return f"<html><body><table class='details'>{rows}</table></body></html>"


LISTING_HEADERS = ["Tax Acct#", "Owner", "Property Address", "Amount Due", "Property Description"]

LISTING_ROWS = [
    ["01-123456", "SMITH JOHN", "22 Main Street, Leonardtown, MD 20650", "$1,234.50", "Dwelling"],
    ["02-654321", "DOE JANE", "48 Oak Lane, Lexington Park, MD 20653", "$987.00", "Vacant Lot"],
    ["03-111222", "ROE RICHARD", "9 Point Road, California, MD 20619", "$2,010.75", "Commercial Store"],
]


@pytest.fixture
def listing_page():
    return table_html(LISTING_HEADERS, LISTING_ROWS)


@pytest.fixture
def fake_fetcher(listing_page):
    return FakeFetcher({INDEX_URL: listing_page})


def make_source_config(**overrides) -> DataSourceConfig:
    values = dict(
        name="Test County Tax Sale",
        source_type=SourceType.COUNTY_WEBSITE,
        url=INDEX_URL,
        region=Region(state="MD", county="St. Mary's"),
        collector_type="county-tax-sale",
        schedule=Schedule(),
        metadata={},
    )
    values.update(overrides)
    return DataSourceConfig(**values)


@pytest.fixture
def source_config():
    return make_source_config()


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
