"""Sale model."""
import enum
import uuid
from sqlalchemy import Column, String, Text, Numeric, DateTime, Uuid
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.dates import utcnow, isoformat


class SaleStatus(str, enum.Enum):
    """Sale status enum. Transitions are caller-driven."""
    PAID = 'paid'
    UNPAID = 'unpaid'
    VOID = 'void'
    HOLD = 'hold'


class Sale(Base):
    """Sale (ticket) processed at an outlet."""
    
    __tablename__ = 'sale'
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    outlet_id = Column(Uuid, nullable=False, index=True)
    outlet_staff_id = Column(Uuid, nullable=False)
    customer_id = Column(Uuid, nullable=True)
    payment_method_id = Column(Uuid, nullable=True)
    table_id = Column(Uuid, nullable=False)
    invoice_number = Column(String(50), nullable=False, unique=True)
    total = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    # Stored as supplied by the caller, never recomputed
    grand_total = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False)
    sale_date = Column(DateTime, nullable=False, default=utcnow, index=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    
    # Relationships
    items = relationship(
        'SaleItem', back_populates='sale', lazy='selectin',
        order_by='SaleItem.created_at', passive_deletes=True
    )
    sale_coupons = relationship(
        'SaleCoupon', back_populates='sale', lazy='selectin',
        order_by='SaleCoupon.created_at', passive_deletes=True
    )
    
    def to_dict(self, nested=True):
        data = {
            'id': str(self.id),
            'outlet_id': str(self.outlet_id),
            'outlet_staff_id': str(self.outlet_staff_id),
            'customer_id': str(self.customer_id) if self.customer_id else None,
            'payment_method_id': str(self.payment_method_id) if self.payment_method_id else None,
            'table_id': str(self.table_id),
            'invoice_number': self.invoice_number,
            'total': float(self.total),
            'discount': float(self.discount),
            'tax': float(self.tax),
            'grand_total': float(self.grand_total),
            'status': self.status,
            'sale_date': isoformat(self.sale_date),
            'note': self.note,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
        if nested:
            data['items'] = [item.to_dict() for item in self.items]
            data['coupons'] = [link.to_dict() for link in self.sale_coupons]
        return data
    
    def __repr__(self):
        return f"<Sale(id={self.id}, invoice='{self.invoice_number}', status={self.status})>"
