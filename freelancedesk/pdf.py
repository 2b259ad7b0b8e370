# freelancedesk/pdf.py

from flask import render_template

from .invoices import format_cents


def html_to_pdf(html):
    # WeasyPrint loads pango/cairo when imported
    from weasyprint import HTML
    return HTML(string=html).write_pdf()


def render_invoice_pdf(invoice):
    rendered_html = render_template('invoice_pdf.html', invoice=invoice, format_cents=format_cents)
    return html_to_pdf(rendered_html)


def pdf_filename(invoice):
    return f'rechnung-{invoice.id}.pdf'
