"""
Excel import / export of test cases.

Sheet layout (first sheet, header in row 1):

    Submodule Name | Test Case ID | Title | Description | Step Number | Action | Expected Result

One row per step; rows sharing (Submodule Name, Test Case ID) form one
test case. The import is all-or-nothing: any row error aborts it before
anything is written.
"""

import io
import logging
from collections import OrderedDict

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from app.core.exceptions import ValidationError
from app.models import db
from app.models.testing import TestCase, TestModule, TestStep
from app.services import execution_service, module_service

logger = logging.getLogger(__name__)

HEADERS = [
    "Submodule Name",
    "Test Case ID",
    "Title",
    "Description",
    "Step Number",
    "Action",
    "Expected Result",
]
# Columns every data row must fill
_REQUIRED = ("Submodule Name", "Test Case ID", "Title", "Step Number", "Action", "Expected Result")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

TEMPLATE_EXAMPLE = [
    ["Login", "TC-LOGIN-01", "Valid login", "User signs in with valid credentials",
     1, "Open the login page", "Login form is shown"],
    ["Login", "TC-LOGIN-01", "Valid login", "User signs in with valid credentials",
     2, "Submit valid username and password", "Dashboard is shown"],
    ["Login", "TC-LOGIN-02", "Invalid password", "Wrong password is rejected",
     1, "Submit a wrong password", "Error message is shown"],
]


# ═══════════════════════════════════════════════════════════════
# Styling helpers
# ═══════════════════════════════════════════════════════════════
def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply dark-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def _build_workbook(title: str, rows) -> io.BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    ws.append(HEADERS)
    _apply_header_style(ws, 1, len(HEADERS))
    for row in rows:
        ws.append(row)
    ws.freeze_panes = "A2"
    _auto_width(ws)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


# ═══════════════════════════════════════════════════════════════
# Export
# ═══════════════════════════════════════════════════════════════
def generate_template() -> io.BytesIO:
    """Styled import template with a few example rows."""
    return _build_workbook("Test Cases", TEMPLATE_EXAMPLE)


def export_module(module: TestModule) -> io.BytesIO:
    """Every case and step of ``module`` in the import layout."""
    rows = []
    for submodule in module.submodules:
        for tc in submodule.test_cases:
            steps = tc.steps or [None]
            for step in steps:
                rows.append([
                    submodule.name,
                    tc.test_case_id,
                    tc.title,
                    tc.description or "",
                    step.step_number if step else None,
                    step.action if step else None,
                    step.expected_result if step else None,
                ])
    logger.info("Exporting module %d: %d rows", module.id, len(rows))
    return _build_workbook("Test Cases", rows)


# ═══════════════════════════════════════════════════════════════
# Import
# ═══════════════════════════════════════════════════════════════
def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _parse_step_number(raw: str):
    """Positive integer step number, or an error message."""
    try:
        number = float(raw)
    except ValueError:
        return None, f"Step Number must be a valid integer (found: {raw})"
    if not number.is_integer():
        return None, f"Step Number must be a valid integer (found: {raw})"
    if number < 1:
        return None, f"Step Number must be positive (found: {int(number)})"
    return int(number), None


def _load_sheet(file_storage):
    filename = (getattr(file_storage, "filename", "") or "").lower()
    if not filename:
        raise ValidationError("File is required")
    if not filename.endswith(".xlsx"):
        raise ValidationError("Invalid file format. Only .xlsx files are supported.")
    try:
        wb = load_workbook(io.BytesIO(file_storage.read()), read_only=True, data_only=True)
    except Exception as exc:  # openpyxl raises a zoo of types for corrupt files
        logger.info("Unreadable workbook %s: %s", filename, exc)
        raise ValidationError("Could not read the Excel file") from exc
    return wb, wb.worksheets[0]


def parse_rows(sheet, existing_codes: set[str]) -> tuple[OrderedDict, int, list[str]]:
    """
    Validate the data rows of ``sheet``.

    Returns (groups, skipped, errors) where ``groups`` maps
    (submodule name, case id) to its row dicts in file order. A case id
    belongs to the first submodule that uses it; later rows naming another
    submodule for it are errors.
    """
    rows = sheet.iter_rows(values_only=True)
    header = next(rows, None)
    if header is None:
        raise ValidationError("Excel file has no header row")
    header = list(header) + [None] * len(HEADERS)
    for index, expected in enumerate(HEADERS):
        found = _cell_text(header[index])
        if found != expected:
            raise ValidationError(
                f"Invalid header at column {index + 1}. Expected: {expected}, Found: {found}"
            )

    groups: OrderedDict = OrderedDict()
    owner_of: dict[str, str] = {}   # case id -> submodule name that claimed it
    skipped = 0
    errors: list[str] = []
    for row_num, values in enumerate(rows, start=2):
        cells = [_cell_text(v) for v in (list(values) + [None] * len(HEADERS))[:len(HEADERS)]]
        if not any(cells):
            break
        record = dict(zip(HEADERS, cells))

        missing = next((col for col in _REQUIRED if not record[col]), None)
        if missing:
            errors.append(f"Row {row_num}: {missing} is required")
            continue
        step_number, error = _parse_step_number(record["Step Number"])
        if error:
            errors.append(f"Row {row_num}: {error}")
            continue

        code = record["Test Case ID"]
        if code in existing_codes:
            skipped += 1
            continue
        owner = owner_of.setdefault(code, record["Submodule Name"])
        if owner != record["Submodule Name"]:
            errors.append(
                f"Row {row_num}: Test Case ID {code} is already used by submodule '{owner}'"
            )
            continue

        groups.setdefault((record["Submodule Name"], code), []).append({
            "title": record["Title"],
            "description": record["Description"],
            "step_number": step_number,
            "action": record["Action"],
            "expected_result": record["Expected Result"],
        })
    return groups, skipped, errors


def import_test_cases(module: TestModule, file_storage) -> dict:
    """
    Import an uploaded workbook into ``module``.

    Raises ValidationError (with ``details["errors"]``) when any row is
    invalid; nothing is written in that case. Flushes; the caller commits.
    """
    wb, sheet = _load_sheet(file_storage)
    existing_codes = {tc.test_case_id for tc in module.test_cases()}
    try:
        groups, skipped, errors = parse_rows(sheet, existing_codes)
    finally:
        wb.close()

    if errors:
        raise ValidationError("Validation failed: " + "; ".join(errors),
                              details={"errors": errors})

    submodules_created = 0
    cases_created = 0
    for (submodule_name, code), step_rows in groups.items():
        submodule, created = module_service.find_or_create_submodule(module, submodule_name)
        submodules_created += int(created)

        first = step_rows[0]
        test_case = TestCase(
            submodule=submodule,
            test_case_id=code,
            title=first["title"],
            description=first["description"],
            priority="MEDIUM",
        )
        # Declared numbers only order the steps; stored numbers run 1..N
        ordered = sorted(step_rows, key=lambda r: r["step_number"])
        test_case.steps = [
            TestStep(step_number=number, action=r["action"],
                     expected_result=r["expected_result"])
            for number, r in enumerate(ordered, start=1)
        ]
        db.session.add(test_case)
        db.session.flush()
        execution_service.generate_for_users(
            test_case, module.assigned_users, step_status="NOT_EXECUTED",
        )
        cases_created += 1

    db.session.flush()
    logger.info("Imported into module %d: %d submodules, %d cases created, %d skipped",
                module.id, submodules_created, cases_created, skipped)
    return {
        "success": True,
        "message": "Import completed successfully",
        "submodules_created": submodules_created,
        "test_cases_created": cases_created,
        "test_cases_skipped": skipped,
        "errors": [],
    }
