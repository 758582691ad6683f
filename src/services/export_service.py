import io
import logging
import xlsxwriter
from typing import Dict, List, Any

from services.models import RemainingByTeamLine, ReportingByTeamLine

logger = logging.getLogger(__name__)

# ================================================================================
# COLUMN CONFIGURATION SECTION
# ================================================================================

REMAINING_BY_TEAM_COLUMNS = [
    {'field': 'team', 'header': 'Team', 'width': 25},
    {'field': 'remaining', 'header': 'Remaining Work', 'width': 18, 'numeric': True},
]

TASK_COLUMNS = [
    {'field': 'team', 'header': 'Team', 'width': 25},
    {'field': 'id', 'header': 'ID', 'width': 10},
    {'field': 'title', 'header': 'Title', 'width': 50},
    {'field': 'remaining', 'header': 'Remaining Work', 'width': 18, 'numeric': True},
]

REPORTING_BY_TEAM_COLUMNS = [
    {'field': 'teamLabel', 'header': 'Team', 'width': 25},
    {'field': 'totalHours', 'header': 'Total Hours', 'width': 15, 'numeric': True},
]

# ================================================================================
# END COLUMN CONFIGURATION SECTION
# ================================================================================

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ExportService:
    """Renders report lines as in-memory Excel workbooks"""

    def _build_sheet_with_config(self, workbook, worksheet_name: str, rows: List[Dict[str, Any]],
                                 columns_config: List[Dict], header_format, cell_format,
                                 number_format) -> None:
        """
        Generic method to build a worksheet using column configuration
        """
        logger.info(f"Building {worksheet_name} sheet with {len(rows)} rows")
        worksheet = workbook.add_worksheet(worksheet_name)

        for col, column in enumerate(columns_config):
            worksheet.set_column(col, col, column['width'])
            worksheet.write(0, col, column['header'], header_format)

        for row_index, row in enumerate(rows, start=1):
            for col, column in enumerate(columns_config):
                value = row.get(column['field'], "")
                if column.get('numeric'):
                    worksheet.write_number(row_index, col, float(value or 0), number_format)
                else:
                    worksheet.write(row_index, col, value, cell_format)

        # Totals row under numeric columns
        if rows:
            total_row = len(rows) + 1
            worksheet.write(total_row, 0, "Total", header_format)
            for col, column in enumerate(columns_config):
                if column.get('numeric'):
                    total = sum(float(row.get(column['field']) or 0) for row in rows)
                    worksheet.write_number(total_row, col, total, number_format)

    def _new_workbook(self, output: io.BytesIO):
        workbook = xlsxwriter.Workbook(output, {'in_memory': True})
        formats = {
            'header_format': workbook.add_format({'bold': True, 'bg_color': '#D0D0D0', 'border': 1}),
            'cell_format': workbook.add_format({'border': 1}),
            'number_format': workbook.add_format({'border': 1, 'num_format': '0.00'}),
        }
        return workbook, formats

    def build_remaining_workbook(self, work_item_id: int, lines: List[RemainingByTeamLine]) -> bytes:
        """
        Build a workbook with a team summary sheet and, when task details are present, a task sheet
        """
        output = io.BytesIO()
        try:
            workbook, formats = self._new_workbook(output)
            self._build_sheet_with_config(
                workbook, f"Remaining {work_item_id}", [line.to_dict() for line in lines],
                REMAINING_BY_TEAM_COLUMNS, **formats
            )

            if any(line.tasks is not None for line in lines):
                task_rows = [
                    {'team': line.team, **task.to_dict()}
                    for line in lines for task in line.tasks or []
                ]
                self._build_sheet_with_config(workbook, "Tasks", task_rows, TASK_COLUMNS, **formats)

            workbook.close()
        except Exception as e:
            logger.exception(f"Error building remaining work workbook: {str(e)}")
            raise
        return output.getvalue()

    def build_reporting_workbook(self, work_item_id: int, lines: List[ReportingByTeamLine]) -> bytes:
        output = io.BytesIO()
        try:
            workbook, formats = self._new_workbook(output)
            self._build_sheet_with_config(
                workbook, f"Reporting {work_item_id}", [line.to_dict() for line in lines],
                REPORTING_BY_TEAM_COLUMNS, **formats
            )
            workbook.close()
        except Exception as e:
            logger.exception(f"Error building reporting workbook: {str(e)}")
            raise
        return output.getvalue()
