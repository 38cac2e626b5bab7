"""
Coupon lifecycle service - Multi-Tenant (outlet scoped).
Handles coupon creation, sparse updates, redemption validity and usage counting.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, func

from app.exceptions import (
    ValidationError, NotFoundError, ConflictError,
    CouponNotActiveError, CouponNotYetValidError, CouponExpiredError, CouponExhaustedError
)
from app.models import Coupon, DiscountType
from app.services.entity_store import EntityStore, Page
from app.utils.dates import utcnow
from app.utils.validators import (
    is_blank, parse_uuid, parse_str, parse_money, parse_int, parse_bool,
    parse_datetime, parse_choice, parse_pagination, contains_pattern, LIKE_ESCAPE
)

logger = logging.getLogger(__name__)

DISCOUNT_TYPES = tuple(t.value for t in DiscountType)
CODE_MAX_LENGTH = 100
CONFLICT_MESSAGE = 'Coupon with this code already exists'


class CouponService:
    """
    Coupon lifecycle manager.

    Redemption is a two-step protocol: ``validate_for_redemption`` then
    ``redeem``. The increment itself is a single atomic UPDATE, but the pair is
    not transactional; two callers may both pass validation at
    ``used_count == max_uses - 1`` and push the count past the ceiling.
    Callers needing strict exhaustion use ``redeem_code``, which checks and
    increments in one conditional statement.
    """

    def __init__(self, store: EntityStore, log: Optional[logging.Logger] = None):
        self.store = store
        self.log = log or logger

    # =====================================================
    # READS
    # =====================================================

    def get_by_id(self, coupon_id) -> Coupon:
        coupon_id = parse_uuid(coupon_id, 'id')
        coupon = self.store.get(Coupon, coupon_id)
        if not coupon:
            raise NotFoundError('Coupon not found')
        return coupon

    def get_by_code(self, code: str, outlet_id=None) -> Coupon:
        """
        Fetch a coupon by code.

        With ``outlet_id`` the lookup is scoped to that outlet. Without it the
        code must identify a single coupon across all outlets.
        """
        code = parse_str(code, 'code', max_length=CODE_MAX_LENGTH)
        outlet_id = parse_uuid(outlet_id, 'outlet_id', required=False)

        query = self.store.query(Coupon).filter(Coupon.code == code)
        if outlet_id:
            coupon = self.store.first(query.filter(Coupon.outlet_id == outlet_id), 'Coupon')
            if not coupon:
                raise NotFoundError('Coupon not found')
            return coupon

        matches = self.store.all(query.limit(2), 'Coupon')
        if not matches:
            raise NotFoundError('Coupon not found')
        if len(matches) > 1:
            raise ValidationError(
                f"Coupon code '{code}' exists in more than one outlet; outlet_id is required",
                field='outlet_id'
            )
        return matches[0]

    def list(self, page=None, limit=None, search: Optional[str] = None, outlet_id=None,
             max_limit: int = 100) -> Page:
        """Paginated coupons, newest first, optionally filtered by outlet and search text."""
        page, limit = parse_pagination(page, limit, max_limit=max_limit)
        outlet_id = parse_uuid(outlet_id, 'outlet_id', required=False)

        query = self.store.query(Coupon).order_by(Coupon.created_at.desc())
        if search and search.strip():
            pattern = contains_pattern(search)
            query = query.filter(or_(
                func.lower(Coupon.code).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Coupon.description).like(pattern, escape=LIKE_ESCAPE)
            ))
        if outlet_id:
            query = query.filter(Coupon.outlet_id == outlet_id)

        return self.store.paginate(query, page, limit, 'Coupon')

    def list_by_outlet(self, outlet_id) -> List[Coupon]:
        outlet_id = parse_uuid(outlet_id, 'outlet_id')
        query = self.store.query(Coupon).filter(
            Coupon.outlet_id == outlet_id
        ).order_by(Coupon.created_at.desc())
        return self.store.all(query, 'Coupon')

    def list_active(self, outlet_id, now: Optional[datetime] = None) -> List[Coupon]:
        """Coupons of an outlet that would pass redemption validation at ``now``."""
        outlet_id = parse_uuid(outlet_id, 'outlet_id')
        now = self._now(now)
        query = self.store.query(Coupon).filter(
            Coupon.outlet_id == outlet_id,
            *self._redeemable_conditions(now)
        ).order_by(Coupon.created_at.desc())
        return self.store.all(query, 'Coupon')

    # =====================================================
    # WRITES
    # =====================================================

    def create(self, data: Dict[str, Any]) -> Coupon:
        """Validate and persist a new coupon with ``used_count = 0``."""
        start_date = parse_datetime(data.get('start_date'), 'start_date')
        end_date = parse_datetime(data.get('end_date'), 'end_date')
        if end_date < start_date:
            raise ValidationError('End date must be after start date', field='end_date')

        coupon = Coupon(
            outlet_id=parse_uuid(data.get('outlet_id'), 'outlet_id'),
            code=parse_str(data.get('code'), 'code', max_length=CODE_MAX_LENGTH),
            description=parse_str(data.get('description'), 'description', required=False),
            discount_type=parse_choice(data.get('discount_type'), 'discount_type', DISCOUNT_TYPES),
            discount_value=parse_money(data.get('discount_value'), 'discount_value'),
            max_uses=parse_int(data.get('max_uses'), 'max_uses', minimum=1),
            used_count=0,
            start_date=start_date,
            end_date=end_date,
            is_active=parse_bool(data.get('is_active'), 'is_active', default=True)
        )

        coupon = self.store.create(coupon, conflict_message=CONFLICT_MESSAGE)
        self.log.info(f"[COUPON] Created {coupon.code} ({coupon.id}) for outlet {coupon.outlet_id}")
        return coupon

    def update(self, coupon_id, data: Dict[str, Any]) -> Coupon:
        """
        Sparse update: only keys present in ``data`` are written.

        ``None`` and empty strings also mean "leave unchanged", so a string
        field cannot be cleared through this call. Numbers and booleans are
        written as given, including 0 and False.
        """
        coupon = self.get_by_id(coupon_id)
        values = self._collect_update_values(data)

        start_date = values.get('start_date', coupon.start_date)
        end_date = values.get('end_date', coupon.end_date)
        if start_date and end_date and end_date < start_date:
            raise ValidationError('End date must be after start date', field='end_date')

        if 'max_uses' in values and values['max_uses'] < coupon.used_count:
            raise ValidationError(
                f'max_uses cannot be lower than the current used count ({coupon.used_count})',
                field='max_uses'
            )

        if not values:
            return coupon

        affected = self.store.update(Coupon, coupon.id, values, conflict_message=CONFLICT_MESSAGE)
        if affected == 0:
            raise NotFoundError('Coupon not found')

        self.log.info(f"[COUPON] Updated {coupon.id}: {', '.join(sorted(values))}")
        return self.get_by_id(coupon.id)

    def delete(self, coupon_id) -> None:
        coupon_id = parse_uuid(coupon_id, 'id')
        if self.store.delete(Coupon, coupon_id) == 0:
            raise NotFoundError('Coupon not found')
        self.log.info(f"[COUPON] Deleted {coupon_id}")

    # =====================================================
    # REDEMPTION
    # =====================================================

    def validate_for_redemption(self, code: str, outlet_id=None, now: Optional[datetime] = None) -> Coupon:
        """Return the coupon if it can be redeemed at ``now``; raise the precise reason otherwise."""
        coupon = self.get_by_code(code, outlet_id)
        self._check_redeemable(coupon, self._now(now))
        return coupon

    def redeem(self, coupon_id) -> None:
        """
        Count one use of a coupon.

        Single statement ``used_count = used_count + 1``; validity is not
        re-checked here (see ``validate_for_redemption``).
        """
        coupon_id = parse_uuid(coupon_id, 'id')
        if self.store.increment(Coupon, coupon_id, Coupon.used_count) == 0:
            raise NotFoundError('Coupon not found')
        self.log.info(f"[COUPON] Redeemed {coupon_id}")

    def redeem_code(self, code: str, outlet_id=None, now: Optional[datetime] = None) -> Coupon:
        """
        Validate and count one use in a single conditional UPDATE.

        Concurrent callers cannot push ``used_count`` past ``max_uses``.
        """
        now = self._now(now)
        coupon = self.get_by_code(code, outlet_id)
        affected = self.store.increment(
            Coupon, coupon.id, Coupon.used_count,
            conditions=self._redeemable_conditions(now)
        )
        if affected == 0:
            coupon = self.get_by_id(coupon.id)
            self._check_redeemable(coupon, now)
            # State changed again between the UPDATE and the re-read
            raise ConflictError("Coupon was modified concurrently, try again")

        self.log.info(f"[COUPON] Redeemed {coupon.code} ({coupon.id}) atomically")
        return self.get_by_id(coupon.id)

    # =====================================================
    # PRIVATE HELPERS
    # =====================================================

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return parse_datetime(now, 'now') if now is not None else utcnow()

    @staticmethod
    def _check_redeemable(coupon: Coupon, now: datetime) -> None:
        if not coupon.is_active:
            raise CouponNotActiveError(coupon=coupon)
        if now < coupon.start_date:
            raise CouponNotYetValidError(coupon=coupon)
        if now > coupon.end_date:
            raise CouponExpiredError(coupon=coupon)
        if coupon.used_count >= coupon.max_uses:
            raise CouponExhaustedError(coupon=coupon)

    @staticmethod
    def _redeemable_conditions(now: datetime):
        return (
            Coupon.is_active.is_(True),
            Coupon.start_date <= now,
            Coupon.end_date >= now,
            Coupon.used_count < Coupon.max_uses,
        )

    @staticmethod
    def _collect_update_values(data: Dict[str, Any]) -> Dict[str, Any]:
        values = {}
        if not is_blank(data.get('code')):
            values['code'] = parse_str(data['code'], 'code', max_length=CODE_MAX_LENGTH)
        if not is_blank(data.get('description')):
            values['description'] = parse_str(data['description'], 'description')
        if not is_blank(data.get('discount_type')):
            values['discount_type'] = parse_choice(data['discount_type'], 'discount_type', DISCOUNT_TYPES)
        if not is_blank(data.get('discount_value')):
            values['discount_value'] = parse_money(data['discount_value'], 'discount_value')
        if not is_blank(data.get('max_uses')):
            values['max_uses'] = parse_int(data['max_uses'], 'max_uses', minimum=1)
        if not is_blank(data.get('start_date')):
            values['start_date'] = parse_datetime(data['start_date'], 'start_date')
        if not is_blank(data.get('end_date')):
            values['end_date'] = parse_datetime(data['end_date'], 'end_date')
        if not is_blank(data.get('is_active')):
            values['is_active'] = parse_bool(data['is_active'], 'is_active')
        return values
