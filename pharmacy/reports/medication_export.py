# /pharmacy/reports/medication_export.py
import io
import re
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter

SHEET_NAME = "Medications"

BEFORE_ADMISSION_COLUMNS = [
    ("Medication", "name"),
    ("Dosage and Frequency", "dosageFrequency"),
    ("Home med or New", "homeNewStatus"),
    ("Currently Charted?", "chartedStatus"),
    ("Comments/Actions", "commentsActions"),
    ("Dr to sign when action completed", "drSignActionCompleted"),
]

# Administration times are keyed as entered on the chart
DOSE_TIMES = [("7AM", "7am"), ("8AM", "8am"), ("Noon", "Noon"), ("2PM", "2pm"),
              ("6PM", "6pm"), ("8PM", "8pm"), ("10PM", "10pm")]


def medication_headers(template_type):
    if template_type == "before-admission":
        return [header for header, _ in BEFORE_ADMISSION_COLUMNS]
    return ["Medication"] + [header for header, _ in DOSE_TIMES] + ["Status", "Comments"]


def medication_row(medication, template_type):
    if template_type == "before-admission":
        return [medication.get(key) for _, key in BEFORE_ADMISSION_COLUMNS]
    times = medication.get("times") or {}
    return ([medication.get("name")]
            + [times.get(key) for _, key in DOSE_TIMES]
            + [medication.get("status"), medication.get("comments")])


def export_medications(medications, template_type):
    """Writes a discharge form's medication list to an .xlsx workbook and returns its bytes."""
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_NAME

    headers = medication_headers(template_type)
    for idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=1, column=idx, value=header)
        cell.font = Font(bold=True)
        cell.fill = PatternFill("solid", fgColor="DDDDDD")
        cell.alignment = Alignment(wrap_text=True, vertical="center")

    for medication in medications or []:
        ws.append(medication_row(medication, template_type))

    for idx, header in enumerate(headers, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = max(12, len(header) + 4)
    ws.freeze_panes = "A2"

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def medication_export_filename(patient_name, template_type):
    safe_name = re.sub(r"\s", "_", patient_name)
    return f"{safe_name}_Medications_{template_type}.xlsx"
