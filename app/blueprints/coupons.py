"""Coupons API blueprint - CRUD, lookup by code, validation and redemption."""
from flask import Blueprint, request, current_app

from app.blueprints.metrics import coupon_redemptions_total
from app.database import get_session
from app.exceptions import CouponInvalidError
from app.services.coupon_service import CouponService
from app.services.entity_store import EntityStore
from app.utils.responses import success, paginated, serialize_all, request_json

coupons_bp = Blueprint('coupons', __name__, url_prefix='/v1/coupons')


def _service() -> CouponService:
    return CouponService(EntityStore(get_session()))


def _page_args():
    return {
        'page': request.args.get('page'),
        'limit': request.args.get('limit') or current_app.config.get('DEFAULT_PAGE_LIMIT', 10),
        'max_limit': current_app.config.get('MAX_PAGE_LIMIT', 100),
    }


@coupons_bp.route('', methods=['GET'])
def list_coupons():
    """List coupons with pagination, search and optional outlet filter."""
    page = _service().list(
        search=request.args.get('search', ''),
        outlet_id=request.args.get('outletId'),
        **_page_args()
    )
    return paginated('Coupons retrieved successfully', page)


@coupons_bp.route('', methods=['POST'])
def create_coupon():
    coupon = _service().create(request_json(request))
    return success('Coupon created successfully', 201, coupon=coupon.to_dict())


@coupons_bp.route('/active', methods=['GET'])
def list_active_coupons():
    """Coupons of an outlet that can be redeemed right now."""
    coupons = _service().list_active(request.args.get('outletId'))
    return success('Active coupons retrieved successfully', coupons=serialize_all(coupons))


@coupons_bp.route('/code/<code>', methods=['GET'])
def get_coupon_by_code(code):
    coupon = _service().get_by_code(code, request.args.get('outletId'))
    return success('Coupon retrieved successfully', coupon=coupon.to_dict())


@coupons_bp.route('/validate', methods=['POST'])
def validate_coupon():
    """Check whether a code can be redeemed now (no side effects)."""
    data = request_json(request)
    coupon = _service().validate_for_redemption(data.get('code'), data.get('outlet_id'))
    return success('Coupon is valid', coupon=coupon.to_dict())


@coupons_bp.route('/redeem', methods=['POST'])
def redeem_coupon_code():
    """Validate and count one use of a code in a single atomic step."""
    data = request_json(request)
    try:
        coupon = _service().redeem_code(data.get('code'), data.get('outlet_id'))
    except CouponInvalidError as e:
        coupon_redemptions_total.labels(outcome=e.reason).inc()
        current_app.logger.info(f"[COUPON] Redemption of '{data.get('code')}' refused: {e.reason}")
        raise
    coupon_redemptions_total.labels(outcome='redeemed').inc()
    return success('Coupon redeemed successfully', coupon=coupon.to_dict())


@coupons_bp.route('/<coupon_id>', methods=['GET'])
def get_coupon(coupon_id):
    coupon = _service().get_by_id(coupon_id)
    return success('Coupon retrieved successfully', coupon=coupon.to_dict())


@coupons_bp.route('/<coupon_id>', methods=['PUT', 'PATCH'])
def update_coupon(coupon_id):
    coupon = _service().update(coupon_id, request_json(request))
    return success('Coupon updated successfully', coupon=coupon.to_dict())


@coupons_bp.route('/<coupon_id>', methods=['DELETE'])
def delete_coupon(coupon_id):
    _service().delete(coupon_id)
    return success('Coupon deleted successfully')


@coupons_bp.route('/<coupon_id>/redeem', methods=['POST'])
def redeem_coupon(coupon_id):
    """Count one use by id. Callers validate first via /validate."""
    service = _service()
    service.redeem(coupon_id)
    coupon_redemptions_total.labels(outcome='redeemed').inc()
    return success('Coupon usage recorded', coupon=service.get_by_id(coupon_id).to_dict())
