"""
Unit tests for the sale aggregate builder.
"""

import pytest
import uuid
from decimal import Decimal

from app.exceptions import ValidationError, NotFoundError, ConflictError
from app.models import Sale


def at(day, invoice, sale_data, **overrides):
    data = dict(sale_data, invoice_number=invoice, sale_date=day)
    data.update(overrides)
    return data


class TestCreate:
    """Tests for sale creation."""

    def test_round_trip(self, sale_service, sale_data):
        """Test that a created sale reads back with its amounts."""
        created = sale_service.create(sale_data)

        sale = sale_service.get_by_id(created.id)
        assert sale.total == Decimal('100.00')
        assert sale.discount == Decimal('10.00')
        assert sale.tax == Decimal('5.00')
        assert sale.grand_total == Decimal('95.00')
        assert sale.status == 'unpaid'
        assert sale.invoice_number == 'INV-001'
        assert sale.customer_id is None
        assert sale.items == []

    def test_grand_total_stored_as_given(self, sale_service, sale_data):
        """Test that grand_total is not recomputed."""
        sale = sale_service.create(dict(sale_data, grand_total=1))
        assert sale.grand_total == Decimal('1.00')

    def test_duplicate_invoice_conflicts(self, sale_service, sale, sale_data, session):
        """Test that invoice numbers are unique."""
        with pytest.raises(ConflictError):
            sale_service.create(dict(sale_data, total=5, grand_total=5))
        assert session.query(Sale).count() == 1

    @pytest.mark.parametrize('field,value', [
        ('status', 'refunded'),
        ('invoice_number', 'X' * 51),
        ('outlet_staff_id', None),
        ('total', 'abc'),
        ('customer_id', 'nope'),
        ('total', '123456789012.00'),
        ('tax', 1e30),
        ('grand_total', float('inf')),
    ])
    def test_invalid_input(self, sale_service, sale_data, session, field, value):
        """Test that malformed fields are reported by name and nothing is stored."""
        with pytest.raises(ValidationError) as exc:
            sale_service.create(dict(sale_data, **{field: value}))
        assert field in exc.value.errors
        assert session.query(Sale).count() == 0


class TestReads:
    """Tests for sale lookups and listings."""

    def test_get_by_id_is_idempotent(self, sale_service, sale):
        """Test that two reads without writes return identical data."""
        assert sale_service.get_by_id(sale.id).to_dict() == sale_service.get_by_id(sale.id).to_dict()

    def test_get_by_invoice_number(self, sale_service, sale):
        """Test lookup by invoice number."""
        assert sale_service.get_by_invoice_number('INV-001').id == sale.id
        with pytest.raises(NotFoundError):
            sale_service.get_by_invoice_number('INV-404')

    def test_get_missing(self, sale_service):
        """Test lookup of an unknown id."""
        with pytest.raises(NotFoundError):
            sale_service.get_by_id(uuid.uuid4())

    def test_list_filters(self, sale_service, sale_data, other_outlet_id):
        """Test status, outlet, date and search filters."""
        sale_service.create(at('2024-03-01T10:00:00', 'INV-A', sale_data, status='paid'))
        sale_service.create(at('2024-03-02T10:00:00', 'INV-B', sale_data))
        sale_service.create(at('2024-03-03T10:00:00', 'INV-C', sale_data, outlet_id=str(other_outlet_id)))

        assert sale_service.list(filters={'status': 'paid'}).total_results == 1
        assert sale_service.list(filters={'outlet_id': other_outlet_id}).total_results == 1
        assert sale_service.list(filters={'date_from': '2024-03-02', 'date_to': '2024-03-02'}).total_results == 1
        assert sale_service.list(search='inv-').total_results == 3

        page = sale_service.list(page=2, limit=2)
        assert page.total_pages == 2
        assert len(page.results) == 1

    def test_search_wildcards_are_literal(self, sale_service, sale_data):
        """Test that _ and % in a search do not act as LIKE wildcards."""
        sale_service.create(dict(sale_data, invoice_number='INV_7'))
        sale_service.create(dict(sale_data, invoice_number='INVX7', note='100% cash'))

        assert [s.invoice_number for s in sale_service.list(search='inv_').results] == ['INV_7']
        assert [s.invoice_number for s in sale_service.list(search='%').results] == ['INVX7']

    def test_list_rejects_inverted_dates(self, sale_service):
        """Test that date_from after date_to is rejected."""
        with pytest.raises(ValidationError):
            sale_service.list(filters={'date_from': '2024-03-05', 'date_to': '2024-03-01'})

    def test_list_by_date_range(self, sale_service, sale_data, outlet_id):
        """Test the outlet date range listing."""
        sale_service.create(at('2024-03-01T10:00:00', 'INV-A', sale_data))
        sale_service.create(at('2024-03-10T10:00:00', 'INV-B', sale_data))

        sales = sale_service.list_by_date_range(outlet_id, '2024-03-01T00:00:00', '2024-03-05T00:00:00')
        assert [s.invoice_number for s in sales] == ['INV-A']

        with pytest.raises(ValidationError):
            sale_service.list_by_date_range(outlet_id, '2024-03-05T00:00:00', '2024-03-01T00:00:00')

    def test_list_by_outlet(self, sale_service, sale, outlet_id, other_outlet_id):
        """Test listing the sales of one outlet."""
        assert [s.id for s in sale_service.list_by_outlet(outlet_id)] == [sale.id]
        assert sale_service.list_by_outlet(other_outlet_id) == []


class TestReport:
    """Tests for the sales report."""

    def test_report_without_grouping(self, sale_service, sale_data, outlet_id):
        """Test a report with no period buckets."""
        sale_service.create(at('2024-03-01T10:00:00', 'INV-A', sale_data))
        report = sale_service.report(outlet_id=outlet_id)

        assert len(report['sales']) == 1
        assert report['group_by'] is None
        assert report['groups'] == []

    def test_report_grouped_by_month(self, sale_service, sale_data, outlet_id):
        """Test monthly buckets and their sums."""
        sale_service.create(at('2024-03-01T10:00:00', 'INV-A', sale_data))
        sale_service.create(at('2024-03-20T10:00:00', 'INV-B', sale_data))
        sale_service.create(at('2024-04-02T10:00:00', 'INV-C', sale_data))

        report = sale_service.report(outlet_id=outlet_id, group_by='month')

        assert [g['period'] for g in report['groups']] == ['2024-03', '2024-04']
        march = report['groups'][0]
        assert march['count'] == 2
        assert march['total'] == Decimal('200.00')
        assert march['grand_total'] == Decimal('190.00')

    def test_report_date_window_and_day_grouping(self, sale_service, sale_data):
        """Test that date_to includes the whole day."""
        sale_service.create(at('2024-03-01T10:00:00', 'INV-A', sale_data))
        sale_service.create(at('2024-03-01T23:30:00', 'INV-B', sale_data))
        sale_service.create(at('2024-03-02T09:00:00', 'INV-C', sale_data))

        report = sale_service.report(date_from='2024-03-01', date_to='2024-03-01', group_by='day')

        assert len(report['sales']) == 2
        assert report['groups'][0]['period'] == '2024-03-01'
        assert report['groups'][0]['tax'] == Decimal('10.00')

    def test_report_rejects_unknown_grouping(self, sale_service):
        """Test an unsupported group_by value."""
        with pytest.raises(ValidationError):
            sale_service.report(group_by='week')


class TestUpdate:
    """Tests for sparse sale updates."""

    def test_sparse_update(self, sale_service, sale):
        """Test that only supplied fields change and zero is written."""
        updated = sale_service.update(sale.id, {'note': 'table by the window', 'tax': 0})

        assert updated.note == 'table by the window'
        assert updated.tax == Decimal('0.00')
        assert updated.total == Decimal('100.00')
        assert updated.invoice_number == 'INV-001'

    def test_empty_update_is_noop(self, sale_service, sale):
        """Test that an update with no fields returns the stored sale."""
        before = sale_service.get_by_id(sale.id).to_dict()
        assert sale_service.update(sale.id, {}).to_dict() == before

    def test_blank_money_fields_mean_unchanged(self, sale_service, sale):
        """Test that empty strings leave amounts untouched."""
        before = sale_service.get_by_id(sale.id).to_dict()

        updated = sale_service.update(sale.id, {'total': '', 'tax': '', 'grand_total': ' ', 'customer_id': ''})

        assert updated.to_dict() == before

    def test_update_rejects_out_of_range_amount(self, sale_service, sale):
        """Test that update applies the money column bound."""
        with pytest.raises(ValidationError) as exc:
            sale_service.update(sale.id, {'total': '100000000'})
        assert exc.value.field == 'total'
        assert sale_service.get_by_id(sale.id).total == Decimal('100.00')

    def test_update_status(self, sale_service, sale):
        """Test free status transitions and unknown statuses."""
        assert sale_service.update_status(sale.id, 'void').status == 'void'
        assert sale_service.update_status(sale.id, 'paid').status == 'paid'

        with pytest.raises(ValidationError):
            sale_service.update_status(sale.id, 'refunded')
        with pytest.raises(NotFoundError):
            sale_service.update_status(uuid.uuid4(), 'paid')

    def test_update_invoice_conflict(self, sale_service, sale, sale_data):
        """Test renaming onto an existing invoice number."""
        other = sale_service.create(dict(sale_data, invoice_number='INV-002'))
        with pytest.raises(ConflictError):
            sale_service.update(other.id, {'invoice_number': 'INV-001'})


class TestItems:
    """Tests for sale items."""

    def test_add_and_list_items(self, sale_service, sale, item_data):
        """Test that an added item shows up on the sale."""
        item = sale_service.add_item(sale.id, item_data)

        assert item.total == Decimal('50.00')
        assert [i.id for i in sale_service.items.list_for_sale(sale.id)] == [item.id]
        assert [i.id for i in sale_service.get_by_id(sale.id).items] == [item.id]

    def test_add_item_to_missing_sale(self, sale_service, item_data):
        """Test adding an item to an unknown sale."""
        with pytest.raises(NotFoundError):
            sale_service.add_item(uuid.uuid4(), item_data)

    def test_add_item_validates_quantity(self, sale_service, sale, item_data):
        """Test that quantity must be at least one."""
        with pytest.raises(ValidationError):
            sale_service.add_item(sale.id, dict(item_data, quantity=0))

    def test_add_item_rejects_huge_quantity(self, sale_service, sale, item_data):
        """Test that quantity must fit the integer column."""
        with pytest.raises(ValidationError) as exc:
            sale_service.add_item(sale.id, dict(item_data, quantity=2 ** 31))
        assert exc.value.field == 'quantity'

    def test_update_and_delete_item(self, sale_service, sale, item_data):
        """Test item sparse update and delete."""
        item_id = sale_service.add_item(sale.id, item_data).id

        updated = sale_service.items.update(item_id, {'quantity': 3, 'total': '75.00'})
        assert updated.quantity == 3
        assert updated.price == Decimal('25.00')

        sale_service.items.delete(item_id)
        with pytest.raises(NotFoundError):
            sale_service.items.get_by_id(item_id)

    def test_blank_item_fields_mean_unchanged(self, sale_service, sale, item_data):
        """Test that empty strings leave item fields untouched."""
        item_id = sale_service.add_item(sale.id, item_data).id
        before = sale_service.items.get_by_id(item_id).to_dict()

        updated = sale_service.items.update(item_id, {'quantity': '', 'price': '', 'total': ' '})

        assert updated.to_dict() == before

    def test_delete_sale_cascades_items(self, sale_service, sale, item_data):
        """Test that deleting a sale removes its items."""
        sale_id = sale.id
        sale_service.add_item(sale_id, item_data)

        sale_service.delete(sale_id)

        assert sale_service.items.list_for_sale(sale_id) == []
        with pytest.raises(NotFoundError):
            sale_service.delete(sale_id)


class TestCoupons:
    """Tests for coupons applied to sales."""

    def test_attach_coupon(self, sale_service, sale, coupon):
        """Test attaching a coupon and reading the link back."""
        link = sale_service.attach_coupon(sale.id, coupon.id)

        assert link.coupon_id == coupon.id
        assert [c.coupon.code for c in sale_service.get_by_id(sale.id).sale_coupons] == ['SUMMER10']
        assert [c.id for c in sale_service.coupons.list_by_coupon(coupon.id)] == [link.id]

    def test_attach_twice_conflicts(self, sale_service, sale, coupon):
        """Test that a coupon attaches to a sale once."""
        sale_service.attach_coupon(sale.id, coupon.id)
        with pytest.raises(ConflictError):
            sale_service.attach_coupon(sale.id, coupon.id)

    def test_attach_missing_coupon(self, sale_service, sale):
        """Test attaching an unknown coupon."""
        with pytest.raises(NotFoundError) as exc:
            sale_service.attach_coupon(sale.id, uuid.uuid4())
        assert exc.value.message == 'Coupon not found'

    def test_attach_to_missing_sale(self, sale_service, coupon):
        """Test attaching to an unknown sale."""
        with pytest.raises(NotFoundError) as exc:
            sale_service.attach_coupon(uuid.uuid4(), coupon.id)
        assert exc.value.message == 'Sale not found'

    def test_attaching_does_not_redeem(self, sale_service, coupon_service, sale, coupon):
        """Test that attaching leaves used_count alone."""
        sale_service.attach_coupon(sale.id, coupon.id)
        assert coupon_service.get_by_id(coupon.id).used_count == 0

    def test_detach(self, sale_service, sale, coupon):
        """Test detaching a coupon and detaching twice."""
        sale_service.attach_coupon(sale.id, coupon.id)

        sale_service.coupons.detach(sale.id, coupon.id)

        assert sale_service.coupons.list_by_sale(sale.id) == []
        with pytest.raises(NotFoundError):
            sale_service.coupons.detach(sale.id, coupon.id)

    def test_paginated_links(self, sale_service, sale, coupon):
        """Test link pagination, get and delete by id."""
        link_id = sale_service.attach_coupon(sale.id, coupon.id).id

        page = sale_service.coupons.list(page=1, limit=10)
        assert [l.id for l in page.results] == [link_id]
        assert sale_service.coupons.get_by_id(link_id).sale_id == sale.id
        sale_service.coupons.delete(link_id)
        with pytest.raises(NotFoundError):
            sale_service.coupons.get_by_id(link_id)
