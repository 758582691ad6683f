import logging
import re
from datetime import datetime
from decimal import Decimal
from html.parser import HTMLParser
from typing import Dict, Iterable, List, Optional, Tuple

from services.models import ReportingByTeamLine, ReportingLogLine, ReportingParseError
from services.team_service import TeamResolver

logger = logging.getLogger(__name__)

REPORTING_DATE_FORMAT = "%d.%m.%Y"
REPORTING_DATE_PATTERN = re.compile(r"[0-9]{2}\.[0-9]{2}\.[0-9]{4}")
HOURS_PATTERN = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)")


class _TableRowCollector(HTMLParser):
    """Collects the text of the <td> cells of every <tr>, in document order"""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.rows: List[List[str]] = []
        self._table_depth = 0
        # (row cells, table depth the row was opened at)
        self._open_rows: List[Tuple[List[str], int]] = []
        self._open_cells: List[Tuple[List[str], List[str]]] = []

    def _in_cell_of_current_row(self) -> bool:
        return bool(self._open_rows and self._open_cells and self._open_cells[-1][0] is self._open_rows[-1][0])

    def _finish_cell(self) -> None:
        row, parts = self._open_cells.pop()
        row.append("".join(parts))

    def _finish_row(self) -> None:
        if self._in_cell_of_current_row():
            self._finish_cell()
        self._open_rows.pop()

    def _finish_rows_deeper_than(self, depth: int) -> None:
        while self._open_rows and self._open_rows[-1][1] > depth:
            self._finish_row()

    def handle_starttag(self, tag, attrs):
        if tag == "table":
            self._table_depth += 1
        elif tag == "tr":
            # Same table depth means a sibling row whose </tr> was omitted
            self._finish_rows_deeper_than(self._table_depth - 1)
            row: List[str] = []
            self.rows.append(row)
            self._open_rows.append((row, self._table_depth))
        elif tag == "td" and self._open_rows:
            if self._in_cell_of_current_row():
                self._finish_cell()
            self._open_cells.append((self._open_rows[-1][0], []))

    def handle_endtag(self, tag):
        if tag == "table":
            self._table_depth = max(self._table_depth - 1, 0)
            self._finish_rows_deeper_than(self._table_depth)
        elif tag == "td" and self._in_cell_of_current_row():
            self._finish_cell()
        elif tag == "tr" and self._open_rows:
            self._finish_row()

    def handle_data(self, data):
        # Nested cell text also belongs to every enclosing cell
        for _, parts in self._open_cells:
            parts.append(data)

    def close(self):
        super().close()
        while self._open_rows:
            self._finish_row()


def _parse_date(text: str):
    if not REPORTING_DATE_PATTERN.fullmatch(text):
        raise ReportingParseError(f"'{text}' is not a dd.mm.yyyy date")
    try:
        return datetime.strptime(text, REPORTING_DATE_FORMAT).date()
    except ValueError as e:
        raise ReportingParseError(f"'{text}' is not a dd.mm.yyyy date") from e


def _parse_hours(text: str) -> Decimal:
    normalized = text.replace(",", ".")
    # Plain decimals only: no exponents, digit separators or NaN/Infinity
    if not HOURS_PATTERN.fullmatch(normalized):
        raise ReportingParseError(f"'{text}' is not a number of hours")
    return Decimal(normalized)


def parse_reporting_info(html_content: Optional[str]) -> List[ReportingLogLine]:
    """
    Parse the reporting table of a work item into log lines

    Only rows with exactly four cells (date, alias, hours, comment) are used;
    other rows are skipped.

    Raises:
        ReportingParseError: when a four-cell row has a malformed date or number
    """
    if not html_content:
        return []

    collector = _TableRowCollector()
    collector.feed(html_content.replace("&nbsp;", " "))
    collector.close()

    lines = []
    for cells in collector.rows:
        if len(cells) != 4:
            logger.debug(f"Skipping reporting row with {len(cells)} cells")
            continue
        cells = [cell.replace("\xa0", " ").strip() for cell in cells]
        lines.append(ReportingLogLine(
            date=_parse_date(cells[0]),
            alias=cells[1],
            hours=_parse_hours(cells[2]),
            comment=cells[3]
        ))

    logger.info(f"Parsed {len(lines)} reporting lines from {len(collector.rows)} rows")
    return lines


def aggregate_reporting_by_team(resolver: TeamResolver,
                                lines: Iterable[ReportingLogLine]) -> List[ReportingByTeamLine]:
    """Sum logged hours per alias, then per team, ordered by total descending then team"""
    hours_by_alias: Dict[str, Decimal] = {}
    for line in lines:
        hours_by_alias[line.alias] = hours_by_alias.get(line.alias, Decimal(0)) + line.hours

    hours_by_team: Dict[str, Decimal] = {}
    for alias, hours in hours_by_alias.items():
        label = resolver.label_for(alias)
        hours_by_team[label] = hours_by_team.get(label, Decimal(0)) + hours

    result = [ReportingByTeamLine(team_label=label, total_hours=hours) for label, hours in hours_by_team.items()]
    result.sort(key=lambda line: (-line.total_hours, line.team_label))
    return result
