import re
from io import BytesIO
from typing import Sequence

from openpyxl import Workbook

from models import Expense

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
HEADERS = ["Name", "Category", "Amount", "Date", "Icon", "CreatedAt"]


def sanitize_cell_value(value: str) -> str:
    """
    Neutralise text cells that a spreadsheet would evaluate as formulas by
    prefixing them with a quote character.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "'" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "'" + value

    return value


def export_expenses(expenses: Sequence[Expense]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Expenses"
    ws.append(HEADERS)
    for expense in expenses:
        ws.append(
            [
                sanitize_cell_value(expense.name),
                expense.category.value,
                float(expense.amount),
                expense.date.date().isoformat() if expense.date else "N/A",
                sanitize_cell_value(expense.icon or "") or "N/A",
                expense.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            ]
        )
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()
