"""Sale-Coupon junction model."""
import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.dates import utcnow


class SaleCoupon(Base):
    """Coupon applied to a sale. One row per (sale, coupon) pair."""
    
    __tablename__ = 'sale_coupon'
    __table_args__ = (
        UniqueConstraint('sale_id', 'coupon_id', name='uq_sale_coupon_pair'),
    )
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sale_id = Column(Uuid, ForeignKey('sale.id', ondelete='CASCADE'), nullable=False, index=True)
    coupon_id = Column(Uuid, ForeignKey('coupon.id', ondelete='CASCADE'), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    
    # Relationships
    sale = relationship('Sale', back_populates='sale_coupons')
    coupon = relationship('Coupon', back_populates='sale_coupons', lazy='joined')
    
    def to_dict(self):
        return {
            'id': str(self.id),
            'sale_id': str(self.sale_id),
            'coupon_id': str(self.coupon_id),
            'code': self.coupon.code if self.coupon is not None else None,
        }
    
    def __repr__(self):
        return f"<SaleCoupon(sale_id={self.sale_id}, coupon_id={self.coupon_id})>"
