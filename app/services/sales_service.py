"""
Sales service - Multi-Tenant (outlet scoped).
Handles sale creation, sparse updates, status changes, listings and reports.

Monetary fields are a caller contract: ``grand_total`` is stored exactly as
supplied and never recomputed from total, discount and tax.
"""
import logging
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, func
from sqlalchemy.orm import selectinload

from app.exceptions import NotFoundError, ValidationError
from app.models import Sale, SaleCoupon, SaleItem, SaleStatus
from app.services.entity_store import EntityStore, Page
from app.services.sale_coupon_service import SaleCouponService
from app.services.sale_item_service import SaleItemService
from app.utils.dates import utcnow, start_of_day, end_of_day
from app.utils.validators import (
    is_blank, parse_uuid, parse_str, parse_money, parse_datetime, parse_date,
    parse_choice, parse_pagination, contains_pattern, LIKE_ESCAPE
)

logger = logging.getLogger(__name__)

SALE_STATUSES = tuple(s.value for s in SaleStatus)
GROUP_BY_CHOICES = ('day', 'month', 'year')
INVOICE_MAX_LENGTH = 50
CONFLICT_MESSAGE = 'Sale with this invoice number already exists'
ZERO = Decimal('0.00')


def _eager_options():
    return (
        selectinload(Sale.items),
        selectinload(Sale.sale_coupons).joinedload(SaleCoupon.coupon),
    )


def _period_key(value: datetime, group_by: str) -> str:
    if group_by == 'day':
        return value.strftime('%Y-%m-%d')
    if group_by == 'month':
        return value.strftime('%Y-%m')
    return value.strftime('%Y')


class SaleService:
    """Sale aggregate builder: the sale row plus its items and applied coupons."""

    def __init__(self, store: EntityStore, log: Optional[logging.Logger] = None):
        self.store = store
        self.log = log or logger
        self.items = SaleItemService(store, self.log)
        self.coupons = SaleCouponService(store, self.log)

    # =====================================================
    # READS
    # =====================================================

    def get_by_id(self, sale_id) -> Sale:
        sale_id = parse_uuid(sale_id, 'id')
        sale = self.store.get(Sale, sale_id, options=_eager_options())
        if not sale:
            raise NotFoundError('Sale not found')
        return sale

    def get_by_invoice_number(self, invoice_number: str) -> Sale:
        invoice_number = parse_str(invoice_number, 'invoice_number', max_length=INVOICE_MAX_LENGTH)
        sale = self.store.get_by(Sale, options=_eager_options(), invoice_number=invoice_number)
        if not sale:
            raise NotFoundError('Sale not found')
        return sale

    def list(self, page=None, limit=None, search: Optional[str] = None,
             filters: Optional[Dict[str, Any]] = None, max_limit: int = 100) -> Page:
        """
        Paginated sales, newest first.

        ``filters`` accepts outlet_id, customer_id, payment_method_id, status,
        date_from and date_to (inclusive, by sale_date).
        """
        page, limit = parse_pagination(page, limit, max_limit=max_limit)
        filters = filters or {}

        query = self.store.query(Sale, options=_eager_options()).order_by(Sale.created_at.desc())
        if search and search.strip():
            pattern = contains_pattern(search)
            query = query.filter(or_(
                func.lower(Sale.invoice_number).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Sale.note).like(pattern, escape=LIKE_ESCAPE)
            ))

        outlet_id = parse_uuid(filters.get('outlet_id'), 'outlet_id', required=False)
        customer_id = parse_uuid(filters.get('customer_id'), 'customer_id', required=False)
        payment_method_id = parse_uuid(filters.get('payment_method_id'), 'payment_method_id', required=False)
        status = parse_choice(filters.get('status'), 'status', SALE_STATUSES, required=False)

        if outlet_id:
            query = query.filter(Sale.outlet_id == outlet_id)
        if customer_id:
            query = query.filter(Sale.customer_id == customer_id)
        if payment_method_id:
            query = query.filter(Sale.payment_method_id == payment_method_id)
        if status:
            query = query.filter(Sale.status == status)
        query = self._filter_dates(query, filters.get('date_from'), filters.get('date_to'))

        return self.store.paginate(query, page, limit, 'Sale')

    def list_by_outlet(self, outlet_id) -> List[Sale]:
        outlet_id = parse_uuid(outlet_id, 'outlet_id')
        query = self.store.query(Sale).filter(
            Sale.outlet_id == outlet_id
        ).order_by(Sale.created_at.desc())
        return self.store.all(query, 'Sale')

    def list_by_date_range(self, outlet_id, start: Any, end: Any) -> List[Sale]:
        """Sales of an outlet with ``start <= sale_date <= end``, latest first."""
        outlet_id = parse_uuid(outlet_id, 'outlet_id')
        start = parse_datetime(start, 'start_date')
        end = parse_datetime(end, 'end_date')
        if end < start:
            raise ValidationError('End date must be after start date', field='end_date')

        query = self.store.query(Sale).filter(
            Sale.outlet_id == outlet_id,
            Sale.sale_date >= start,
            Sale.sale_date <= end
        ).order_by(Sale.sale_date.desc())
        return self.store.all(query, 'Sale')

    def report(self, outlet_id=None, date_from=None, date_to=None, group_by: Optional[str] = None) -> Dict[str, Any]:
        """
        Sales matching the outlet and date predicates.

        With ``group_by`` (day, month or year) the result also carries one
        bucket per period with the count and the summed money columns.
        """
        outlet_id = parse_uuid(outlet_id, 'outlet_id', required=False)
        group_by = parse_choice(group_by, 'group_by', GROUP_BY_CHOICES, required=False)

        query = self.store.query(Sale).order_by(Sale.sale_date)
        if outlet_id:
            query = query.filter(Sale.outlet_id == outlet_id)
        query = self._filter_dates(query, date_from, date_to)

        sales = self.store.all(query, 'Sale')
        report = {'sales': sales, 'group_by': group_by, 'groups': []}
        if group_by:
            report['groups'] = self._aggregate(sales, group_by)
        return report

    # =====================================================
    # WRITES
    # =====================================================

    def create(self, data: Dict[str, Any]) -> Sale:
        """Validate and persist a sale. Items and coupons are attached afterwards."""
        sale_date = parse_datetime(data.get('sale_date'), 'sale_date', required=False)

        sale = Sale(
            outlet_id=parse_uuid(data.get('outlet_id'), 'outlet_id'),
            outlet_staff_id=parse_uuid(data.get('outlet_staff_id'), 'outlet_staff_id'),
            table_id=parse_uuid(data.get('table_id'), 'table_id'),
            customer_id=parse_uuid(data.get('customer_id'), 'customer_id', required=False),
            payment_method_id=parse_uuid(data.get('payment_method_id'), 'payment_method_id', required=False),
            invoice_number=parse_str(data.get('invoice_number'), 'invoice_number', max_length=INVOICE_MAX_LENGTH),
            total=parse_money(data.get('total'), 'total'),
            discount=parse_money(data.get('discount'), 'discount', required=False, default=ZERO),
            tax=parse_money(data.get('tax'), 'tax', required=False, default=ZERO),
            grand_total=parse_money(data.get('grand_total'), 'grand_total'),
            status=parse_choice(data.get('status'), 'status', SALE_STATUSES),
            sale_date=sale_date or utcnow(),
            note=parse_str(data.get('note'), 'note', required=False)
        )

        sale = self.store.create(sale, conflict_message=CONFLICT_MESSAGE)
        self.log.info(f"[SALE] Created {sale.invoice_number} ({sale.id}) for outlet {sale.outlet_id}")
        return self.get_by_id(sale.id)

    def update(self, sale_id, data: Dict[str, Any]) -> Sale:
        """
        Sparse update: absent keys, ``None`` and empty strings leave the stored
        value unchanged. Money fields are written as given, including 0.
        """
        sale = self.get_by_id(sale_id)
        values = self._collect_update_values(data)
        if not values:
            return sale

        if self.store.update(Sale, sale.id, values, conflict_message=CONFLICT_MESSAGE) == 0:
            raise NotFoundError('Sale not found')

        self.log.info(f"[SALE] Updated {sale.id}: {', '.join(sorted(values))}")
        return self.get_by_id(sale.id)

    def update_status(self, sale_id, status: str) -> Sale:
        """Overwrite the status. Any status may follow any other."""
        sale_id = parse_uuid(sale_id, 'id')
        status = parse_choice(status, 'status', SALE_STATUSES)

        if self.store.update(Sale, sale_id, {'status': status}) == 0:
            raise NotFoundError('Sale not found')

        self.log.info(f"[SALE] Status of {sale_id} set to {status}")
        return self.get_by_id(sale_id)

    def delete(self, sale_id) -> None:
        """Hard delete of the sale row; child rows are left to the schema's cascade rules."""
        sale_id = parse_uuid(sale_id, 'id')
        if self.store.delete(Sale, sale_id) == 0:
            raise NotFoundError('Sale not found')
        self.log.info(f"[SALE] Deleted {sale_id}")

    def add_item(self, sale_id, data: Dict[str, Any]) -> SaleItem:
        return self.items.create(sale_id, data)

    def attach_coupon(self, sale_id, coupon_id) -> SaleCoupon:
        return self.coupons.create(sale_id, coupon_id)

    # =====================================================
    # PRIVATE HELPERS
    # =====================================================

    @staticmethod
    def _filter_dates(query, date_from, date_to):
        """Inclusive sale_date window. A bare date for ``date_to`` covers the whole day."""
        start = parse_date(date_from, 'date_from')
        end = parse_date(date_to, 'date_to')
        if start and end and end < start:
            raise ValidationError('date_to must be on or after date_from', field='date_to')
        if start:
            query = query.filter(Sale.sale_date >= start_of_day(start))
        if end:
            query = query.filter(Sale.sale_date <= end_of_day(end))
        return query

    @staticmethod
    def _aggregate(sales: List[Sale], group_by: str) -> List[Dict[str, Any]]:
        buckets: Dict[str, Dict[str, Any]] = OrderedDict()
        for sale in sales:
            key = _period_key(sale.sale_date, group_by)
            bucket = buckets.setdefault(key, {
                'period': key,
                'count': 0,
                'total': ZERO,
                'discount': ZERO,
                'tax': ZERO,
                'grand_total': ZERO,
            })
            bucket['count'] += 1
            bucket['total'] += sale.total
            bucket['discount'] += sale.discount
            bucket['tax'] += sale.tax
            bucket['grand_total'] += sale.grand_total
        return sorted(buckets.values(), key=lambda b: b['period'])

    @staticmethod
    def _collect_update_values(data: Dict[str, Any]) -> Dict[str, Any]:
        values = {}
        for field in ('customer_id', 'payment_method_id', 'table_id'):
            if not is_blank(data.get(field)):
                values[field] = parse_uuid(data[field], field)
        for field in ('total', 'discount', 'tax', 'grand_total'):
            if not is_blank(data.get(field)):
                values[field] = parse_money(data[field], field)
        if not is_blank(data.get('status')):
            values['status'] = parse_choice(data['status'], 'status', SALE_STATUSES)
        if not is_blank(data.get('note')):
            values['note'] = parse_str(data['note'], 'note')
        if not is_blank(data.get('invoice_number')):
            values['invoice_number'] = parse_str(data['invoice_number'], 'invoice_number',
                                                 max_length=INVOICE_MAX_LENGTH)
        if not is_blank(data.get('sale_date')):
            values['sale_date'] = parse_datetime(data['sale_date'], 'sale_date')
        return values
