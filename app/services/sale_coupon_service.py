"""Sale-coupon links (coupons applied to a sale)."""
import logging
from typing import List, Optional

from app.exceptions import ConflictError, NotFoundError
from app.models import Coupon, Sale, SaleCoupon
from app.services.entity_store import EntityStore, Page
from app.utils.validators import parse_uuid, parse_pagination

logger = logging.getLogger(__name__)

ALREADY_APPLIED = 'Coupon is already applied to this sale'


class SaleCouponService:
    """Junction between sales and coupons. At most one link per (sale, coupon)."""

    def __init__(self, store: EntityStore, log: Optional[logging.Logger] = None):
        self.store = store
        self.log = log or logger

    def list(self, page=None, limit=None, max_limit: int = 100) -> Page:
        page, limit = parse_pagination(page, limit, max_limit=max_limit)
        query = self.store.query(SaleCoupon).order_by(SaleCoupon.created_at.desc())
        return self.store.paginate(query, page, limit, 'SaleCoupon')

    def get_by_id(self, link_id) -> SaleCoupon:
        link_id = parse_uuid(link_id, 'id')
        link = self.store.get(SaleCoupon, link_id)
        if not link:
            raise NotFoundError('Sale coupon not found')
        return link

    def list_by_sale(self, sale_id) -> List[SaleCoupon]:
        sale_id = parse_uuid(sale_id, 'sale_id')
        query = self.store.query(SaleCoupon).filter(SaleCoupon.sale_id == sale_id).order_by(SaleCoupon.created_at)
        return self.store.all(query, 'SaleCoupon')

    def list_by_coupon(self, coupon_id) -> List[SaleCoupon]:
        coupon_id = parse_uuid(coupon_id, 'coupon_id')
        query = self.store.query(SaleCoupon).filter(SaleCoupon.coupon_id == coupon_id).order_by(SaleCoupon.created_at)
        return self.store.all(query, 'SaleCoupon')

    def create(self, sale_id, coupon_id) -> SaleCoupon:
        """
        Link a coupon to a sale after checking both exist.

        The pre-check gives a clean error in the common case; the unique
        constraint on (sale_id, coupon_id) still rejects a concurrent duplicate.
        """
        sale_id = parse_uuid(sale_id, 'sale_id')
        coupon_id = parse_uuid(coupon_id, 'coupon_id')

        if not self.store.get(Sale, sale_id):
            raise NotFoundError('Sale not found')
        if not self.store.get(Coupon, coupon_id):
            raise NotFoundError('Coupon not found')
        if self.store.get_by(SaleCoupon, sale_id=sale_id, coupon_id=coupon_id):
            raise ConflictError(ALREADY_APPLIED)

        link = self.store.create(SaleCoupon(sale_id=sale_id, coupon_id=coupon_id), conflict_message=ALREADY_APPLIED)
        self.log.info(f"[SALE] Coupon {coupon_id} applied to sale {sale_id}")
        return link

    def delete(self, link_id) -> None:
        link_id = parse_uuid(link_id, 'id')
        if self.store.delete(SaleCoupon, link_id) == 0:
            raise NotFoundError('Sale coupon not found')

    def detach(self, sale_id, coupon_id) -> None:
        sale_id = parse_uuid(sale_id, 'sale_id')
        coupon_id = parse_uuid(coupon_id, 'coupon_id')
        removed = self.store.delete_where(
            SaleCoupon,
            SaleCoupon.sale_id == sale_id,
            SaleCoupon.coupon_id == coupon_id
        )
        if removed == 0:
            raise NotFoundError('Sale coupon relationship not found')
        self.log.info(f"[SALE] Coupon {coupon_id} removed from sale {sale_id}")
