"""Coupon model."""
import enum
import uuid
from sqlalchemy import (
    Column, String, Text, Numeric, Integer, Boolean, DateTime, Uuid,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.dates import utcnow, isoformat


class DiscountType(str, enum.Enum):
    """How a coupon's discount_value is applied."""
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


class Coupon(Base):
    """Discount coupon owned by an outlet."""
    
    __tablename__ = 'coupon'
    __table_args__ = (
        UniqueConstraint('outlet_id', 'code', name='uq_coupon_outlet_code'),
        CheckConstraint('end_date >= start_date', name='ck_coupon_date_window'),
        CheckConstraint('used_count >= 0', name='ck_coupon_used_count'),
        CheckConstraint('max_uses >= 1', name='ck_coupon_max_uses'),
    )
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    outlet_id = Column(Uuid, nullable=False, index=True)
    code = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    max_uses = Column(Integer, nullable=False, default=1)
    used_count = Column(Integer, nullable=False, default=0)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    
    # Relationships
    sale_coupons = relationship('SaleCoupon', back_populates='coupon', passive_deletes=True)
    
    @property
    def remaining_uses(self) -> int:
        return max((self.max_uses or 0) - (self.used_count or 0), 0)
    
    def to_dict(self):
        return {
            'id': str(self.id),
            'outlet_id': str(self.outlet_id),
            'code': self.code,
            'description': self.description,
            'discount_type': self.discount_type,
            'discount_value': float(self.discount_value),
            'max_uses': self.max_uses,
            'used_count': self.used_count,
            'start_date': isoformat(self.start_date),
            'end_date': isoformat(self.end_date),
            'is_active': self.is_active,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
    
    def __repr__(self):
        return f"<Coupon(id={self.id}, code='{self.code}', used={self.used_count}/{self.max_uses})>"
