"""
Markup Parsing

BeautifulSoup helpers for the two shapes county pages come in: an index
table of listings and a detail page of label/value pairs.
"""
import re
from typing import Dict, List, Mapping, Optional

from bs4 import BeautifulSoup

from src.harvester.errors import ParsingError
from src.harvester.utils.logger import get_logger

logger = get_logger(__name__)


def _normalize_label(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip().rstrip(":").strip().lower()


def parse_table(html: str, selector: str = "table") -> List[Dict[str, str]]:
    """
    Parse the first table matching `selector` into header -> value rows.

    Headers come from the first row holding <th> cells, or from the first
    row when the table has none. Cells are matched to headers by position
    within each row, so reordered columns keep their meaning.

    Args:
        html: Page markup
        selector: CSS selector for the table

    Returns:
        List of row dicts in page order

    Raises:
        ParsingError: When no table matches the selector
    """
    soup = BeautifulSoup(html, "html.parser")
    table = soup.select_one(selector)
    if table is None:
        raise ParsingError(f"No table matches selector '{selector}'", details={"selector": selector})

    rows = table.find_all("tr")
    if not rows:
        return []

    header_index = next((i for i, row in enumerate(rows) if row.find("th")), 0)
    header_cells = rows[header_index].find_all(["th", "td"])

    headers: List[str] = []
    for position, cell in enumerate(header_cells):
        name = " ".join(cell.get_text(" ", strip=True).split()) or f"column_{position + 1}"
        # Repeated header text gets a positional suffix
        if name in headers:
            name = f"{name} ({position + 1})"
        headers.append(name)

    records: List[Dict[str, str]] = []
    for row in rows[header_index + 1:]:
        cells = row.find_all("td")
        if not cells:
            continue
        values = [" ".join(cell.get_text(" ", strip=True).split()) for cell in cells]
        if not any(values):
            continue
        record = {header: (values[i] if i < len(values) else "") for i, header in enumerate(headers)}
        records.append(record)

    logger.debug("table_parsed", selector=selector, headers=len(headers), rows=len(records))
    return records


class MarkupDocument:
    """
    Structural queries over one parsed page.
    """

    LABEL_TAGS = ["th", "td", "dt", "span", "div", "label", "b", "strong"]

    def __init__(self, html: str):
        self.soup = BeautifulSoup(html, "html.parser")

    def select_text(self, selector: str) -> List[str]:
        """Text of every element matching a CSS selector."""
        return [
            " ".join(el.get_text(" ", strip=True).split())
            for el in self.soup.select(selector)
        ]

    def labeled_value(self, label: str) -> Optional[str]:
        """
        Value printed next to a label.

        Finds the first element whose own text equals `label` (case and a
        trailing colon ignored) and returns the text of its next sibling
        element.
        """
        target = _normalize_label(label)
        for element in self.soup.find_all(self.LABEL_TAGS):
            if _normalize_label(element.get_text(" ", strip=True)) != target:
                continue
            sibling = element.find_next_sibling()
            while sibling is not None:
                value = " ".join(sibling.get_text(" ", strip=True).split())
                if value:
                    return value
                sibling = sibling.find_next_sibling()
        return None

    def labeled_values(self, labels: Mapping[str, str]) -> Dict[str, str]:
        """
        Collect several labelled values.

        Args:
            labels: Label text -> output key

        Returns:
            Output key -> value for every label found on the page
        """
        found: Dict[str, str] = {}
        for label, key in labels.items():
            value = self.labeled_value(label)
            if value is not None and key not in found:
                found[key] = value
        return found
