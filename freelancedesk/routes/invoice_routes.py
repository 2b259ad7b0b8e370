from flask import Blueprint, render_template, request, redirect, url_for, flash, make_response, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import SQLAlchemyError
from .. import invoices as billing
from .. import pdf
from ..access import require_manage, require_read, visible_projects
from ..errors import NotFoundError
from ..extensions import db
from ..models import Invoice
from .helpers import form_action

invoice_bp = Blueprint('invoices', __name__)


def _get_invoice(project_id, invoice_id):
    invoice = Invoice.query.filter_by(id=invoice_id, project_id=project_id).first()
    if invoice is None:
        raise NotFoundError('Invoice not found.')
    return invoice


def _item_from_form():
    return billing.clean_item({
        'description': request.form.get('description'),
        'quantity': request.form.get('quantity', 1),
        'unit_price_cents': request.form.get('unit_price_cents'),
    })


def _to_detail(invoice):
    return redirect(url_for('invoices.invoice_detail', project_id=invoice.project_id, invoice_id=invoice.id))


@invoice_bp.route('/invoices')
@login_required
def invoices():
    try:
        project_ids = [p.id for p in visible_projects(current_user)]
        all_invoices = (Invoice.query.filter(Invoice.project_id.in_(project_ids))
                        .order_by(Invoice.created_at.desc()).all()) if project_ids else []
    except SQLAlchemyError as e:
        current_app.logger.error(f"Listing invoices failed: {e}", exc_info=True)
        all_invoices = []
    return render_template('invoices.html', invoices=all_invoices, format_cents=billing.format_cents)


@invoice_bp.route('/projects/<int:project_id>/invoices/new', methods=['GET', 'POST'])
@login_required
@form_action
def create_invoice(project_id):
    project, _ = require_manage(current_user, project_id)

    if request.method == 'POST':
        items = billing.parse_items(request.form.get('items'))
        invoice = billing.create_invoice(project, current_user.id, request.form.get('title'), items)
        flash(f'Invoice "{invoice.title}" created.', 'success')
        return redirect(url_for('projects.project_detail', project_id=project.id) + '#invoices')

    return render_template('invoice_form.html', project=project, invoice=None)


@invoice_bp.route('/projects/<int:project_id>/invoices/<int:invoice_id>')
@login_required
def invoice_detail(project_id, invoice_id):
    project, _ = require_read(current_user, project_id)
    invoice = _get_invoice(project.id, invoice_id)
    return render_template('invoice_detail.html', project=project, invoice=invoice,
                           is_owner=project.owner_id == current_user.id, format_cents=billing.format_cents)


@invoice_bp.route('/projects/<int:project_id>/invoices/<int:invoice_id>/edit', methods=['GET', 'POST'])
@login_required
@form_action
def edit_invoice(project_id, invoice_id):
    project, _ = require_manage(current_user, project_id)
    invoice = _get_invoice(project.id, invoice_id)

    if request.method == 'POST':
        items = billing.parse_items(request.form.get('items'))
        billing.update_invoice(invoice, request.form.get('title'), request.form.get('status', 'Open'), items)
        flash('Invoice updated.', 'success')
        return _to_detail(invoice)

    return render_template('invoice_form.html', project=project, invoice=invoice)


@invoice_bp.route('/projects/<int:project_id>/invoices/<int:invoice_id>/items', methods=['POST'])
@login_required
@form_action
def add_item(project_id, invoice_id):
    require_manage(current_user, project_id)
    invoice = _get_invoice(project_id, invoice_id)
    billing.add_item(invoice, _item_from_form())
    flash('Item added.', 'success')
    return _to_detail(invoice)


@invoice_bp.route('/projects/<int:project_id>/invoices/<int:invoice_id>/items/<int:item_id>/edit', methods=['POST'])
@login_required
@form_action
def edit_item(project_id, invoice_id, item_id):
    require_manage(current_user, project_id)
    invoice = _get_invoice(project_id, invoice_id)
    billing.edit_item(invoice, item_id, _item_from_form())
    flash('Item updated.', 'success')
    return _to_detail(invoice)


@invoice_bp.route('/projects/<int:project_id>/invoices/<int:invoice_id>/items/<int:item_id>/delete', methods=['POST'])
@login_required
@form_action
def remove_item(project_id, invoice_id, item_id):
    require_manage(current_user, project_id)
    invoice = _get_invoice(project_id, invoice_id)
    billing.remove_item(invoice, item_id)
    flash('Item removed.', 'success')
    return _to_detail(invoice)


@invoice_bp.route('/projects/<int:project_id>/invoices/<int:invoice_id>/paid', methods=['POST'])
@login_required
@form_action
def mark_paid(project_id, invoice_id):
    require_manage(current_user, project_id)
    invoice = _get_invoice(project_id, invoice_id)
    billing.mark_paid(invoice)
    flash(f'Invoice "{invoice.title}" marked as paid.', 'success')
    return redirect(url_for('projects.project_detail', project_id=project_id) + '#invoices')


@invoice_bp.route('/projects/<int:project_id>/invoices/<int:invoice_id>/delete', methods=['POST'])
@login_required
@form_action
def delete_invoice(project_id, invoice_id):
    require_manage(current_user, project_id)
    invoice = _get_invoice(project_id, invoice_id)
    billing.delete_invoice(invoice)
    flash('Invoice deleted.', 'success')
    return redirect(url_for('projects.project_detail', project_id=project_id) + '#invoices')


@invoice_bp.route('/api/invoices/<int:invoice_id>/pdf')
@login_required
def download_pdf(invoice_id):
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError('Invoice not found.')
    require_read(current_user, invoice.project_id)

    try:
        pdf_bytes = pdf.render_invoice_pdf(invoice)
    except Exception as e:
        current_app.logger.error(f"Error generating PDF for invoice {invoice.id}: {e}", exc_info=True)
        raise
    response = make_response(pdf_bytes)
    response.headers['Content-Type'] = 'application/pdf'
    response.headers['Content-Disposition'] = f'attachment; filename="{pdf.pdf_filename(invoice)}"'
    return response
