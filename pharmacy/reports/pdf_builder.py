"""
PDF rendering for account reports.

Takes the report models built by :mod:`pharmacy.accounting.report_aggregator`
and lays them out with ReportLab platypus. Nothing here filters, sorts or
derives status; what the model says is what gets printed.
"""

import io
import re
from datetime import date, datetime
from decimal import Decimal
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas as rl_canvas
from reportlab.platypus import (
    BaseDocTemplate,
    Frame,
    KeepTogether,
    PageTemplate,
    Paragraph,
    Spacer,
    Table,
    TableStyle,
)

from pharmacy.accounting.schemas import AccountReport, AccountStatus, BulkReport

FOOTER_TEXT = "Confidential - Pharmacy Management System"
MARGIN = 15 * mm
HEADER_HEIGHT = 25 * mm

HEADER_FILL = colors.Color(248 / 255, 249 / 255, 250 / 255)
RULE_GREY = colors.Color(200 / 255, 200 / 255, 200 / 255)
TABLE_HEAD = colors.Color(66 / 255, 66 / 255, 66 / 255)
STATUS_COLOURS = {
    AccountStatus.OVERDUE: colors.Color(185 / 255, 28 / 255, 28 / 255),
    AccountStatus.CURRENT: colors.Color(29 / 255, 78 / 255, 216 / 255),
    AccountStatus.PAID: colors.Color(21 / 255, 128 / 255, 61 / 255),
}


# --- Formatting ---


def format_money(value) -> str:
    return f"${Decimal(value or 0):,.2f}"


def format_date(value) -> str:
    """Australian day/month/year, or a dash when there is no date."""
    if value is None:
        return "-"
    return value.strftime("%d/%m/%Y")


def bulk_report_filename(report_type, account_count: int, day: date) -> str:
    """e.g. ``Overdue-Accounts-Report-12-accounts-2024-05-01.pdf``"""
    label = getattr(report_type, "value", report_type)
    return f"{label.capitalize()}-Accounts-Report-{account_count}-accounts-{day.isoformat()}.pdf"


def account_report_filename(patient_name: str, day: date) -> str:
    sanitized = re.sub(r"[^a-z0-9]", "-", patient_name, flags=re.IGNORECASE).lower()
    return f"account-report-{sanitized}-{day.isoformat()}.pdf"


# --- Page furniture ---


class _NumberedCanvas(rl_canvas.Canvas):
    """Defers page output until the end so each page can show 'Page i of n'."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._page_states = []

    def showPage(self):
        self._page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._page_states)
        for state in self._page_states:
            self.__dict__.update(state)
            self._draw_page_count(total)
            super().showPage()
        super().save()

    def _draw_page_count(self, total):
        width, _ = self._pagesize
        self.setFont("Helvetica", 8)
        self.setFillColor(colors.grey)
        self.drawRightString(width - MARGIN, 8 * mm, f"Page {self._pageNumber} of {total}")


class _ReportDocument(BaseDocTemplate):
    def __init__(self, buffer, pharmacy_name, pharmacy_address, generated_at, **kwargs):
        super().__init__(
            buffer,
            pagesize=A4,
            leftMargin=MARGIN,
            rightMargin=MARGIN,
            topMargin=MARGIN + HEADER_HEIGHT + 5 * mm,
            bottomMargin=MARGIN + 5 * mm,
            **kwargs,
        )
        self.pharmacy_name = pharmacy_name
        self.pharmacy_address = pharmacy_address
        self.generated_at = generated_at
        frame = Frame(self.leftMargin, self.bottomMargin, self.width, self.height, id="body")
        self.addPageTemplates([PageTemplate(id="report", frames=[frame], onPage=self._draw_furniture)])

    def _draw_furniture(self, canvas, doc):
        width, height = doc.pagesize
        canvas.saveState()

        # Header band
        top = height - MARGIN
        canvas.setFillColor(HEADER_FILL)
        canvas.rect(MARGIN, top - HEADER_HEIGHT, width - 2 * MARGIN, HEADER_HEIGHT, stroke=0, fill=1)
        canvas.setFillColor(colors.black)
        canvas.setFont("Helvetica-Bold", 14)
        canvas.drawString(MARGIN + 5 * mm, top - 8 * mm, self.pharmacy_name)
        canvas.setFont("Helvetica", 8)
        canvas.drawString(MARGIN + 5 * mm, top - 14 * mm, self.pharmacy_address)
        canvas.drawRightString(
            width - MARGIN - 5 * mm, top - 8 * mm,
            f"Generated: {self.generated_at.strftime('%d %b %Y %H:%M')}",
        )

        # Footer
        canvas.setStrokeColor(RULE_GREY)
        canvas.line(MARGIN, 15 * mm, width - MARGIN, 15 * mm)
        canvas.setFont("Helvetica", 8)
        canvas.setFillColor(colors.grey)
        canvas.drawString(MARGIN, 8 * mm, FOOTER_TEXT)

        canvas.restoreState()


# --- Builder ---


class AccountReportPDF:
    """Lays out bulk and single-account reports under the pharmacy letterhead."""

    def __init__(self, pharmacy_name: str, pharmacy_address: str):
        self.pharmacy_name = pharmacy_name
        self.pharmacy_address = pharmacy_address
        base = getSampleStyleSheet()
        self.styles = {
            "title": ParagraphStyle("ReportTitle", parent=base["Title"], fontSize=16, alignment=0, spaceAfter=6),
            "section": ParagraphStyle("Section", parent=base["Heading2"], fontSize=13, spaceBefore=10, spaceAfter=4),
            "group": ParagraphStyle("Group", parent=base["Heading3"], fontSize=11, spaceBefore=8, spaceAfter=3),
            "body": ParagraphStyle("Body", parent=base["BodyText"], fontSize=9, leading=11),
            "cell": ParagraphStyle("Cell", parent=base["BodyText"], fontSize=8, leading=10),
            "cell_head": ParagraphStyle("CellHead", parent=base["BodyText"], fontSize=8, leading=10, textColor=colors.white),
            "cell_right": ParagraphStyle("CellRight", parent=base["BodyText"], fontSize=8, leading=10, alignment=TA_RIGHT),
            "muted": ParagraphStyle("Muted", parent=base["BodyText"], fontSize=9, textColor=colors.grey),
        }

    def _render(self, story, generated_at, title) -> bytes:
        buffer = io.BytesIO()
        doc = _ReportDocument(
            buffer, self.pharmacy_name, self.pharmacy_address, generated_at,
            title=title, author=self.pharmacy_name,
        )
        doc.build(story, canvasmaker=_NumberedCanvas)
        return buffer.getvalue()

    # --- Table helpers ---

    def _key_value_table(self, rows):
        table = Table(
            [[Paragraph(f"<b>{escape(k)}</b>", self.styles["body"]), Paragraph(escape(str(v)), self.styles["body"])]
             for k, v in rows],
            colWidths=[45 * mm, 100 * mm],
            hAlign="LEFT",
        )
        table.setStyle(TableStyle([
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
        ]))
        return table

    def _grid(self, header, rows, col_widths, right_align=()):
        data = [[Paragraph(f"<b>{escape(h)}</b>", self.styles["cell_head"]) for h in header]]
        for row in rows:
            data.append([
                Paragraph(escape(str(value)), self.styles["cell_right" if i in right_align else "cell"])
                for i, value in enumerate(row)
            ])
        table = Table(data, colWidths=col_widths, repeatRows=1, hAlign="LEFT")
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), TABLE_HEAD),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, HEADER_FILL]),
            ("GRID", (0, 0), (-1, -1), 0.25, RULE_GREY),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]))
        return table

    # --- Bulk report sections ---

    def _summary_section(self, summary):
        rows = [
            ("Total Accounts", summary.total_accounts),
            ("Total Outstanding", format_money(summary.total_outstanding)),
            ("Total Payments", format_money(summary.total_payments)),
            ("Average Balance", format_money(summary.average_balance)),
            ("Overdue Accounts", f"{summary.overdue_count} ({summary.overdue_percentage:.1f}%)"),
            ("Current Accounts", f"{summary.current_count} ({summary.current_percentage:.1f}%)"),
            ("Paid Accounts", f"{summary.paid_count} ({summary.paid_percentage:.1f}%)"),
        ]
        return [Paragraph("Summary Statistics", self.styles["section"]), self._key_value_table(rows)]

    def _aging_section(self, aging):
        rows = [
            (f"{b.label} days", b.count, format_money(b.amount), f"{b.percentage:.1f}%")
            for b in aging
        ]
        return [
            Paragraph("Aging Analysis", self.styles["section"]),
            self._grid(["Days Overdue", "Accounts", "Amount", "% of Overdue"], rows,
                       [45 * mm, 30 * mm, 40 * mm, 35 * mm], right_align=(1, 2, 3)),
        ]

    def _contact_section(self, contacts):
        rows = [(c.patient_name, c.mrn, c.phone or "Not provided", format_money(c.total_owed), c.status.value.title())
                for c in contacts]
        return [
            Paragraph("Contact List", self.styles["section"]),
            self._grid(["Patient", "MRN", "Phone", "Balance", "Status"], rows,
                       [55 * mm, 30 * mm, 35 * mm, 30 * mm, 25 * mm], right_align=(3,)),
        ]

    def _accounts_table(self, accounts):
        rows = [
            (
                a.patient_name,
                a.mrn,
                format_money(a.total_owed),
                format_date(a.effective_due_date),
                a.days_overdue if a.status == AccountStatus.OVERDUE else "-",
                a.status.value.title(),
                format_date(a.last_payment_date),
            )
            for a in accounts
        ]
        return self._grid(
            ["Patient", "MRN", "Balance", "Due Date", "Days Overdue", "Status", "Last Payment"],
            rows,
            [42 * mm, 22 * mm, 24 * mm, 22 * mm, 20 * mm, 20 * mm, 24 * mm],
            right_align=(2, 4),
        )

    def _detail_section(self, report: BulkReport):
        elements = [Paragraph("Account Details", self.styles["section"])]
        if report.groups is not None:
            for group in report.groups:
                if not group.accounts:
                    continue
                colour = STATUS_COLOURS[group.status].hexval()[2:]
                elements.append(Paragraph(
                    f'<font color="#{colour}">{group.status.value.title()} Accounts ({len(group.accounts)})</font>',
                    self.styles["group"],
                ))
                elements.append(self._accounts_table(group.accounts))
        else:
            elements.append(self._accounts_table(report.accounts))
        return elements

    def build_bulk(self, report: BulkReport, generated_at: datetime) -> bytes:
        """Renders a multi-account report to PDF bytes."""
        story = [
            Paragraph(escape(report.title), self.styles["title"]),
            Paragraph(f"{len(report.accounts)} accounts as at {format_date(report.generated_on)}", self.styles["muted"]),
            Spacer(1, 4 * mm),
        ]
        if report.summary is not None:
            story.extend(self._summary_section(report.summary))
        if report.aging is not None:
            story.extend(self._aging_section(report.aging))
        if report.contacts is not None:
            story.extend(self._contact_section(report.contacts))
        if report.include_detailed_breakdown:
            story.extend(self._detail_section(report))
        for detail in report.account_details or []:
            story.append(Spacer(1, 6 * mm))
            story.append(Paragraph(escape(detail.title), self.styles["section"]))
            story.extend(self._account_sections(detail))
        return self._render(story, generated_at, report.title)

    # --- Single-account sections ---

    def _account_sections(self, report: AccountReport):
        options = report.options
        account = report.account
        elements = []

        if options.include_account_summary:
            elements.append(KeepTogether([
                Paragraph("Account Summary", self.styles["section"]),
                self._key_value_table([
                    ("Account Created", format_date(report.created_at)),
                    ("Account Age", f"{report.account_age_days} days"),
                    ("Total Owed", format_money(account.total_owed)),
                    ("Total Payments", format_money(report.total_payments)),
                ]),
            ]))

        if options.include_contact_info:
            elements.append(KeepTogether([
                Paragraph("Contact Information", self.styles["section"]),
                self._key_value_table([
                    ("Patient", account.patient_name),
                    ("MRN", account.mrn),
                    ("Phone", account.phone or "Not provided"),
                ]),
            ]))

        if options.include_outstanding_balance:
            outstanding = report.outstanding
            if outstanding.status == AccountStatus.PAID:
                standing = "Paid in full"
            elif outstanding.status == AccountStatus.OVERDUE:
                standing = f"{outstanding.days_overdue} days overdue"
            else:
                standing = f"{outstanding.days_until_due} days until due"
            elements.append(KeepTogether([
                Paragraph("Outstanding Balance", self.styles["section"]),
                self._key_value_table([
                    ("Current", format_money(outstanding.total_owed)),
                    ("Due Date", format_date(outstanding.effective_due_date) if outstanding.effective_due_date else "Not Set"),
                    ("Status", standing),
                ]),
            ]))

        if report.payments is not None:
            elements.append(Paragraph("Payment History", self.styles["section"]))
            if report.payments:
                rows = [(format_date(p.payment_date), format_money(p.amount), p.method.value.title(), p.notes or "")
                        for p in report.payments]
                elements.append(self._grid(["Date", "Amount", "Method", "Notes"], rows,
                                           [30 * mm, 30 * mm, 30 * mm, 85 * mm], right_align=(1,)))
            else:
                elements.append(Paragraph("No payment records found.", self.styles["muted"]))

        if report.calls is not None:
            elements.append(Paragraph("Call History", self.styles["section"]))
            if report.calls:
                rows = [(format_date(c.call_date), c.comments, c.created_by or "") for c in report.calls]
                elements.append(self._grid(["Date", "Comments", "Made By"], rows,
                                           [30 * mm, 110 * mm, 35 * mm]))
            else:
                elements.append(Paragraph("No call records found.", self.styles["muted"]))

        if report.notes:
            elements.append(Paragraph("Notes", self.styles["section"]))
            elements.append(Paragraph(escape(report.notes).replace("\n", "<br/>"), self.styles["body"]))

        return elements

    def build_account(self, report: AccountReport, generated_at: datetime) -> bytes:
        """Renders a single-account report to PDF bytes."""
        status = report.account.status
        colour = STATUS_COLOURS[status].hexval()[2:]
        story = [
            Paragraph(escape(report.title), self.styles["title"]),
            Paragraph(
                f"{escape(report.account.patient_name)} (MRN: {escape(report.account.mrn)}) "
                f'<font color="#{colour}">Status: {status.value.title()}</font>',
                self.styles["body"],
            ),
            Spacer(1, 4 * mm),
        ]
        story.extend(self._account_sections(report))
        return self._render(story, generated_at, report.title)
