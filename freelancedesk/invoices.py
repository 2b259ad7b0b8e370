# freelancedesk/invoices.py

"""
Invoice bookkeeping.

``Invoice.amount_cents`` is never set from input. Every path that touches an
invoice's items ends in ``recompute_amount`` before the commit, so the stored
total always equals the sum over the current items.
"""

import json
import logging
import math

from .errors import NotFoundError, ValidationError
from .extensions import db
from .models import Invoice, InvoiceItem

logger = logging.getLogger(__name__)

INVOICE_STATUSES = ('Open', 'Paid')
MAX_LINE_CENTS = 10 ** 12


def compute_amount_cents(items):
    """Sum of quantity x unit price over (quantity, unit_price_cents) pairs or items."""
    total = 0
    for item in items:
        if isinstance(item, InvoiceItem):
            quantity, unit_price_cents = item.quantity, item.unit_price_cents
        elif isinstance(item, dict):
            quantity, unit_price_cents = item['quantity'], item['unit_price_cents']
        else:
            quantity, unit_price_cents = item
        total += round(quantity * unit_price_cents)
    return total


def recompute_amount(invoice):
    invoice.amount_cents = compute_amount_cents(invoice.items)
    return invoice.amount_cents


def parse_items(raw):
    """
    Parse the JSON ``items`` form field into validated dicts.

    Each entry needs a description, a positive quantity and a non-negative
    integer unit price in cents.
    """
    try:
        data = json.loads(raw or '[]')
    except ValueError:
        raise ValidationError('Could not read the invoice items.')
    if not isinstance(data, list):
        raise ValidationError('Could not read the invoice items.')
    return [clean_item(entry) for entry in data]


def clean_item(entry):
    if not isinstance(entry, dict):
        raise ValidationError('Could not read the invoice items.')
    description = str(entry.get('description') or '').strip()
    if not description:
        raise ValidationError('Every item needs a description.')
    try:
        quantity = float(entry.get('quantity', 1))
        unit_price = float(entry.get('unit_price_cents'))
    except (TypeError, ValueError):
        raise ValidationError('Quantity and unit price must be numbers.')
    if not (math.isfinite(quantity) and math.isfinite(unit_price)):
        raise ValidationError('Quantity and unit price must be finite numbers.')
    if not unit_price.is_integer():
        raise ValidationError('Unit price must be a whole number of cents.')
    unit_price_cents = int(unit_price)
    if quantity <= 0:
        raise ValidationError('Quantity must be greater than zero.')
    if unit_price_cents < 0:
        raise ValidationError('Unit price cannot be negative.')
    if quantity * unit_price_cents > MAX_LINE_CENTS:
        raise ValidationError('Item total is too large.')
    return {'description': description, 'quantity': quantity, 'unit_price_cents': unit_price_cents}


def create_invoice(project, owner_id, title, items):
    title = (title or '').strip()
    if not title:
        raise ValidationError('Title is required.')
    if not items:
        raise ValidationError('At least one item is required.')

    invoice = Invoice(project_id=project.id, owner_id=owner_id, title=title, status='Open')
    for item in items:
        invoice.items.append(InvoiceItem(**item))
    recompute_amount(invoice)
    db.session.add(invoice)
    db.session.commit()
    logger.info('Invoice %s created for project %s (%s cents)', invoice.id, project.id, invoice.amount_cents)
    return invoice


def update_invoice(invoice, title, status, items):
    """Replace title, status and the whole item list."""
    title = (title or '').strip()
    if not title or not items:
        raise ValidationError('Title and items are required.')
    if status not in INVOICE_STATUSES:
        raise ValidationError(f'Unknown invoice status: {status}')

    invoice.title = title
    invoice.status = status
    invoice.items.clear()
    for item in items:
        invoice.items.append(InvoiceItem(**item))
    recompute_amount(invoice)
    db.session.commit()
    return invoice


def add_item(invoice, item):
    invoice.items.append(InvoiceItem(**item))
    recompute_amount(invoice)
    db.session.commit()
    return invoice


def _get_item(invoice, item_id):
    for item in invoice.items:
        if item.id == item_id:
            return item
    raise NotFoundError('Invoice item not found.')


def edit_item(invoice, item_id, item):
    existing = _get_item(invoice, item_id)
    existing.description = item['description']
    existing.quantity = item['quantity']
    existing.unit_price_cents = item['unit_price_cents']
    recompute_amount(invoice)
    db.session.commit()
    return invoice


def remove_item(invoice, item_id):
    invoice.items.remove(_get_item(invoice, item_id))
    recompute_amount(invoice)
    db.session.commit()
    return invoice


def mark_paid(invoice):
    invoice.status = 'Paid'
    db.session.commit()
    return invoice


def delete_invoice(invoice):
    db.session.delete(invoice)
    db.session.commit()


def format_cents(cents):
    return f'{cents / 100:,.2f}'
