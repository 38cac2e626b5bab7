"""Models package - exports all SQLAlchemy models."""
from app.models.coupon import Coupon, DiscountType
from app.models.sale import Sale, SaleStatus
from app.models.sale_item import SaleItem
from app.models.sale_coupon import SaleCoupon

__all__ = [
    'Coupon', 'DiscountType',
    'Sale', 'SaleStatus', 'SaleItem', 'SaleCoupon',
]
