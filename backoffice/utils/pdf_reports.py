"""
PDF documents: the sales report and a per-sale receipt.
Plain tables, no charts.
"""
import io
from datetime import datetime
from decimal import Decimal
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from reportlab.lib.enums import TA_CENTER, TA_RIGHT

from backoffice.config import settings
from backoffice.models import Sale
from backoffice.schemas.reports import SalesReport

HEADER_STYLE = [
    ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
    ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
    ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
    ('FONTSIZE', (0, 0), (-1, 0), 9),
    ('BOTTOMPADDING', (0, 0), (-1, 0), 10),
    ('BACKGROUND', (0, 1), (-1, -1), colors.white),
    ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
    ('FONTSIZE', (0, 1), (-1, -1), 8),
    ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
    ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.whitesmoke, colors.white]),
]


def _money(value: Decimal) -> str:
    return f"${value:,.2f}"


class PDFReportGenerator:
    def __init__(self):
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        """Setup custom paragraph styles."""
        self.styles.add(ParagraphStyle(
            name='ReportTitle',
            parent=self.styles['Heading1'],
            fontSize=22,
            alignment=TA_CENTER,
            spaceAfter=24,
            textColor=colors.HexColor('#2c3e50')
        ))
        self.styles.add(ParagraphStyle(
            name='ReportSubtitle',
            parent=self.styles['Heading2'],
            fontSize=12,
            alignment=TA_CENTER,
            spaceAfter=16,
            textColor=colors.HexColor('#7f8c8d')
        ))
        self.styles.add(ParagraphStyle(
            name='SectionHeader',
            parent=self.styles['Heading2'],
            fontSize=14,
            spaceBefore=16,
            spaceAfter=8,
            textColor=colors.HexColor('#2980b9')
        ))
        self.styles.add(ParagraphStyle(
            name='NormalText',
            parent=self.styles['Normal'],
            fontSize=10,
            spaceAfter=6
        ))
        self.styles.add(ParagraphStyle(
            name='Footer',
            parent=self.styles['Normal'],
            fontSize=8,
            textColor=colors.gray,
            alignment=TA_CENTER
        ))
        self.styles.add(ParagraphStyle(name='ReceiptHeader', fontSize=14, alignment=TA_CENTER, spaceAfter=8))
        self.styles.add(ParagraphStyle(name='ReceiptInfo', fontSize=9, leading=12))
        self.styles.add(ParagraphStyle(name='ReceiptTotal', fontSize=10, leading=14, alignment=TA_RIGHT))

    @staticmethod
    def _table(data, col_widths, header_color: str, right_align_from: int = 1) -> Table:
        table = Table(data, colWidths=col_widths)
        table.setStyle(TableStyle(
            [('BACKGROUND', (0, 0), (-1, 0), colors.HexColor(header_color)),
             ('ALIGN', (right_align_from, 1), (-1, -1), 'RIGHT')] + HEADER_STYLE
        ))
        return table

    def generate_sales_report(self, report: SalesReport) -> bytes:
        """Render a SalesReport (summary, periods, payment methods, top items) to PDF bytes"""
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=A4, rightMargin=72, leftMargin=72, topMargin=72, bottomMargin=72)

        start = report.date_range.start_date.isoformat()
        end = report.date_range.end_date.isoformat()
        story = [
            Paragraph("Sales Report", self.styles['ReportTitle']),
            Paragraph(f"{start} to {end} (by {report.group_by.value})", self.styles['ReportSubtitle']),
            Paragraph(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", self.styles['Footer']),
            Spacer(1, 16),
        ]

        summary = report.summary
        story.append(Paragraph(
            f"<b>Summary:</b><br/>"
            f"Total Sales: {summary.total_sales}<br/>"
            f"Total Revenue: {_money(summary.total_revenue)}<br/>"
            f"Average Sale: {_money(summary.average_sale)}<br/>"
            f"Total Tax: {_money(summary.total_tax)}<br/>"
            f"Total Discounts: {_money(summary.total_discounts)}<br/>",
            self.styles['NormalText'],
        ))

        story.append(Paragraph("Sales by Period", self.styles['SectionHeader']))
        rows = [['Period', 'Sales', 'Revenue']]
        rows += [[p.period.isoformat(), str(p.sales_count), _money(p.revenue)] for p in report.time_series]
        story.append(self._table(rows, [2 * inch, 1.2 * inch, 1.6 * inch], '#27ae60'))

        story.append(Paragraph("Payment Methods", self.styles['SectionHeader']))
        rows = [['Method', 'Count', 'Total']]
        rows += [[m.method, str(m.count), _money(m.total)] for m in report.payment_methods]
        story.append(self._table(rows, [2 * inch, 1.2 * inch, 1.6 * inch], '#3498db'))

        story.append(Paragraph("Top Items", self.styles['SectionHeader']))
        rows = [['Item', 'SKU', 'Quantity', 'Revenue']]
        rows += [
            [item.name, item.sku or '', f"{item.total_quantity:.3f}", _money(item.total_revenue)]
            for item in report.top_items
        ]
        story.append(self._table(rows, [2.4 * inch, 1.2 * inch, 1 * inch, 1.2 * inch], '#2c3e50', right_align_from=2))

        story.append(Spacer(1, 24))
        story.append(Paragraph(f"{settings.APP_NAME} - Sales Report", self.styles['Footer']))

        doc.build(story)
        buffer.seek(0)
        return buffer.getvalue()

    def generate_receipt(self, sale: Sale) -> bytes:
        """Customer receipt for one sale. Expects sale.items with .item loaded."""
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=(3.5 * inch, 8 * inch),
            rightMargin=10,
            leftMargin=10,
            topMargin=10,
            bottomMargin=10
        )

        info = (
            f"<b>Receipt #:</b> {sale.sale_number}<br/>"
            f"<b>Date:</b> {sale.sale_date.strftime('%Y-%m-%d %H:%M')}<br/>"
            f"<b>Payment:</b> {sale.payment_method}<br/>"
        )
        if sale.customer_name:
            info += f"<b>Customer:</b> {sale.customer_name}<br/>"

        story = [
            Paragraph(settings.APP_NAME, self.styles['ReceiptHeader']),
            Paragraph(info, self.styles['ReceiptInfo']),
            Spacer(1, 10),
        ]

        rows = [['Item', 'Qty', 'Price', 'Total']]
        for line in sale.items:
            name = line.item.name if line.item is not None else f"Item {line.inventory_id}"
            rows.append([name, f"{Decimal(line.quantity):g}", _money(line.unit_price), _money(line.total_price)])
        story.append(self._table(rows, [1.2 * inch, 0.5 * inch, 0.7 * inch, 0.7 * inch], '#2c3e50'))
        story.append(Spacer(1, 10))

        totals = (
            f"Subtotal: {_money(sale.subtotal)}<br/>"
            f"Tax: {_money(sale.tax_amount)}<br/>"
        )
        if sale.discount_amount:
            totals += f"Discount: -{_money(sale.discount_amount)}<br/>"
        totals += f"<b>TOTAL: {_money(sale.total_amount)}</b>"
        story.append(Paragraph(totals, self.styles['ReceiptTotal']))
        story.append(Spacer(1, 16))
        story.append(Paragraph("Thank you for your business!", self.styles['Footer']))

        doc.build(story)
        buffer.seek(0)
        return buffer.getvalue()


pdf_generator = PDFReportGenerator()
