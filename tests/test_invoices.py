"""Tests for invoice totals and item bookkeeping."""

import pytest

from freelancedesk import invoices as billing
from freelancedesk.errors import NotFoundError, ValidationError
from freelancedesk.extensions import db
from freelancedesk.models import Invoice, InvoiceItem


@pytest.fixture
def invoice(project, owner):
    return billing.create_invoice(project, owner.id, 'March work', [
        {'description': 'Design', 'quantity': 2, 'unit_price_cents': 1000},
        {'description': 'Hosting', 'quantity': 1, 'unit_price_cents': 500},
    ])


class TestComputeAmount:

    def test_sum_over_pairs(self):
        assert billing.compute_amount_cents([(2, 1000), (1, 500)]) == 2500

    def test_fractional_quantity(self):
        assert billing.compute_amount_cents([(0.5, 1000), (1.25, 400)]) == 1000

    def test_empty(self):
        assert billing.compute_amount_cents([]) == 0


class TestInvoiceTotals:

    def test_amount_is_sum_of_items(self, invoice):
        assert invoice.amount_cents == 2500
        assert db.session.get(Invoice, invoice.id).amount_cents == 2500

    def test_add_item_recomputes(self, invoice):
        billing.add_item(invoice, {'description': 'Extra', 'quantity': 3, 'unit_price_cents': 100})
        assert invoice.amount_cents == 2800

    def test_edit_item_recomputes(self, invoice):
        design = invoice.items[0]
        billing.edit_item(invoice, design.id, {'description': 'Design', 'quantity': 1, 'unit_price_cents': 1000})
        assert invoice.amount_cents == 1500

    def test_remove_item_recomputes(self, invoice):
        hosting = invoice.items[1]
        billing.remove_item(invoice, hosting.id)
        assert invoice.amount_cents == 2000
        assert InvoiceItem.query.filter_by(invoice_id=invoice.id).count() == 1

    def test_unknown_item(self, invoice):
        with pytest.raises(NotFoundError):
            billing.remove_item(invoice, 9999)

    def test_update_replaces_all_items(self, invoice):
        billing.update_invoice(invoice, 'April work', 'Paid', [
            {'description': 'Support', 'quantity': 4, 'unit_price_cents': 250},
        ])
        assert invoice.title == 'April work'
        assert invoice.status == 'Paid'
        assert invoice.amount_cents == 1000
        assert InvoiceItem.query.filter_by(invoice_id=invoice.id).count() == 1

    def test_update_rejects_unknown_status(self, invoice):
        with pytest.raises(ValidationError):
            billing.update_invoice(invoice, 'March work', 'Cancelled', [
                {'description': 'Design', 'quantity': 1, 'unit_price_cents': 1},
            ])

    def test_mark_paid(self, invoice):
        billing.mark_paid(invoice)
        assert db.session.get(Invoice, invoice.id).status == 'Paid'

    def test_create_requires_items(self, project, owner):
        with pytest.raises(ValidationError):
            billing.create_invoice(project, owner.id, 'Empty', [])


class TestParseItems:

    def test_parse_form_json(self):
        items = billing.parse_items('[{"description": " Design ", "quantity": "2", "unit_price_cents": "1000"}]')
        assert items == [{'description': 'Design', 'quantity': 2.0, 'unit_price_cents': 1000}]

    @pytest.mark.parametrize('raw', ['not json', '{"description": "x"}', '[1, 2]'])
    def test_unreadable(self, raw):
        with pytest.raises(ValidationError):
            billing.parse_items(raw)

    @pytest.mark.parametrize('entry', [
        {'description': '', 'quantity': 1, 'unit_price_cents': 100},
        {'description': 'x', 'quantity': 0, 'unit_price_cents': 100},
        {'description': 'x', 'quantity': 1, 'unit_price_cents': -1},
        {'description': 'x', 'quantity': 'many', 'unit_price_cents': 100},
        {'description': 'x', 'quantity': float('nan'), 'unit_price_cents': 100},
        {'description': 'x', 'quantity': 'inf', 'unit_price_cents': 100},
        {'description': 'x', 'quantity': 1, 'unit_price_cents': float('inf')},
        {'description': 'x', 'quantity': 1, 'unit_price_cents': 1.5},
        {'description': 'x', 'quantity': 1e300, 'unit_price_cents': 100},
    ])
    def test_invalid_items(self, entry):
        with pytest.raises(ValidationError):
            billing.clean_item(entry)

    @pytest.mark.parametrize('number', ['NaN', 'Infinity', '1e309'])
    def test_non_finite_json_numbers(self, number):
        raw = '[{"description": "Design", "quantity": %s, "unit_price_cents": 1000}]' % number
        with pytest.raises(ValidationError):
            billing.parse_items(raw)

    def test_whole_float_price_is_accepted(self):
        assert billing.clean_item({'description': 'x', 'quantity': 1, 'unit_price_cents': 250.0})['unit_price_cents'] == 250


def test_format_cents():
    assert billing.format_cents(123456) == '1,234.56'
