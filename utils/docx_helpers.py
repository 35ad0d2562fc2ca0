from typing import List, Sequence

from docx.document import Document
from docx.table import Table


def add_key_value_table(doc: Document, pairs: Sequence[tuple]) -> Table:
    """
    Two-column table of label/value rows. Labels are bold.
    """
    table = doc.add_table(rows=0, cols=2)
    table.style = "Table Grid"
    for label, value in pairs:
        cells = table.add_row().cells
        cells[0].text = ""
        cells[0].paragraphs[0].add_run(str(label)).bold = True
        cells[1].text = "" if value is None else str(value)
    return table


def add_grid_table(doc: Document, headers: List[str], rows: List[List[str]], bold_last_row: bool = False) -> Table:
    """
    Header row plus data rows; every value is written as text.
    """
    table = doc.add_table(rows=1, cols=len(headers))
    table.style = "Table Grid"

    for cell, header in zip(table.rows[0].cells, headers):
        cell.text = ""
        cell.paragraphs[0].add_run(header).bold = True

    for row in rows:
        cells = table.add_row().cells
        for cell, value in zip(cells, row):
            cell.text = str(value)

    if bold_last_row and rows:
        for cell in table.rows[-1].cells:
            for p in cell.paragraphs:
                for run in p.runs:
                    run.bold = True

    return table
