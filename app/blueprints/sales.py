"""Sales API blueprint - sales, their items and applied coupons."""
from flask import Blueprint, request, current_app

from app.database import get_session
from app.services.entity_store import EntityStore
from app.services.sales_service import SaleService
from app.utils.responses import success, paginated, serialize_all, request_json

sales_bp = Blueprint('sales', __name__, url_prefix='/v1')


def _service() -> SaleService:
    return SaleService(EntityStore(get_session()))


def _money(value):
    return float(value)


def _serialize_group(group):
    return {
        'period': group['period'],
        'count': group['count'],
        'total': _money(group['total']),
        'discount': _money(group['discount']),
        'tax': _money(group['tax']),
        'grand_total': _money(group['grand_total']),
    }


# =====================================================
# SALES
# =====================================================

@sales_bp.route('/sales', methods=['GET'])
def list_sales():
    """List sales with pagination, search and filters."""
    filters = {
        'outlet_id': request.args.get('outletId'),
        'customer_id': request.args.get('customerId'),
        'payment_method_id': request.args.get('paymentMethodId'),
        'status': request.args.get('status'),
        'date_from': request.args.get('dateFrom'),
        'date_to': request.args.get('dateTo'),
    }
    page = _service().list(
        page=request.args.get('page'),
        limit=request.args.get('limit') or current_app.config.get('DEFAULT_PAGE_LIMIT', 10),
        search=request.args.get('search', ''),
        filters=filters,
        max_limit=current_app.config.get('MAX_PAGE_LIMIT', 100)
    )
    return paginated('Sales retrieved successfully', page, lambda s: s.to_dict(nested=False))


@sales_bp.route('/sales', methods=['POST'])
def create_sale():
    sale = _service().create(request_json(request))
    return success('Sale created successfully', 201, sale=sale.to_dict())


@sales_bp.route('/sales/report', methods=['GET'])
def sales_report():
    """Sales in a date window, optionally bucketed by day, month or year."""
    report = _service().report(
        outlet_id=request.args.get('outletId'),
        date_from=request.args.get('dateFrom'),
        date_to=request.args.get('dateTo'),
        group_by=request.args.get('groupBy')
    )
    return success(
        'Sales report retrieved successfully',
        report=serialize_all(report['sales'], lambda s: s.to_dict(nested=False)),
        group_by=report['group_by'],
        groups=[_serialize_group(g) for g in report['groups']]
    )


@sales_bp.route('/sales/invoice/<invoice_number>', methods=['GET'])
def get_sale_by_invoice(invoice_number):
    sale = _service().get_by_invoice_number(invoice_number)
    return success('Sale retrieved successfully', sale=sale.to_dict())


@sales_bp.route('/sales/<sale_id>', methods=['GET'])
def get_sale(sale_id):
    sale = _service().get_by_id(sale_id)
    return success('Sale retrieved successfully', sale=sale.to_dict())


@sales_bp.route('/sales/<sale_id>', methods=['PUT'])
def update_sale(sale_id):
    sale = _service().update(sale_id, request_json(request))
    return success('Sale updated successfully', sale=sale.to_dict())


@sales_bp.route('/sales/<sale_id>/status', methods=['PATCH'])
def update_sale_status(sale_id):
    sale = _service().update_status(sale_id, request_json(request).get('status'))
    return success('Sale status updated successfully', sale=sale.to_dict())


@sales_bp.route('/sales/<sale_id>', methods=['DELETE'])
def delete_sale(sale_id):
    _service().delete(sale_id)
    return success('Sale deleted successfully')


# =====================================================
# SALE ITEMS
# =====================================================

@sales_bp.route('/sales/<sale_id>/items', methods=['GET'])
def list_sale_items(sale_id):
    items = _service().items.list_for_sale(sale_id)
    return success('Sale items retrieved successfully', items=serialize_all(items))


@sales_bp.route('/sales/<sale_id>/items', methods=['POST'])
def add_sale_item(sale_id):
    item = _service().add_item(sale_id, request_json(request))
    return success('Sale item created successfully', 201, item=item.to_dict())


@sales_bp.route('/sale-items/<item_id>', methods=['GET'])
def get_sale_item(item_id):
    item = _service().items.get_by_id(item_id)
    return success('Sale item retrieved successfully', item=item.to_dict())


@sales_bp.route('/sale-items/<item_id>', methods=['PUT'])
def update_sale_item(item_id):
    item = _service().items.update(item_id, request_json(request))
    return success('Sale item updated successfully', item=item.to_dict())


@sales_bp.route('/sale-items/<item_id>', methods=['DELETE'])
def delete_sale_item(item_id):
    _service().items.delete(item_id)
    return success('Sale item deleted successfully')


# =====================================================
# SALE COUPONS
# =====================================================

@sales_bp.route('/sales/<sale_id>/coupons', methods=['GET'])
def list_sale_coupons(sale_id):
    links = _service().coupons.list_by_sale(sale_id)
    return success('Sale coupons retrieved successfully', coupons=serialize_all(links))


@sales_bp.route('/sales/<sale_id>/coupons', methods=['POST'])
def attach_sale_coupon(sale_id):
    link = _service().attach_coupon(sale_id, request_json(request).get('coupon_id'))
    return success('Coupon applied to sale successfully', 201, sale_coupon=link.to_dict())


@sales_bp.route('/sales/<sale_id>/coupons/<coupon_id>', methods=['DELETE'])
def detach_sale_coupon(sale_id, coupon_id):
    _service().coupons.detach(sale_id, coupon_id)
    return success('Coupon removed from sale successfully')
