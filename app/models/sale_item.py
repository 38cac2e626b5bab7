"""Sale Item model."""
import uuid
from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.dates import utcnow, isoformat


class SaleItem(Base):
    """Sale line item. The line total is supplied by the caller."""
    
    __tablename__ = 'sale_item'
    __table_args__ = (
        CheckConstraint('quantity >= 1', name='ck_sale_item_quantity'),
    )
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sale_id = Column(Uuid, ForeignKey('sale.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(Uuid, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    
    # Relationships
    sale = relationship('Sale', back_populates='items')
    
    def to_dict(self):
        return {
            'id': str(self.id),
            'sale_id': str(self.sale_id),
            'product_id': str(self.product_id),
            'quantity': self.quantity,
            'price': float(self.price),
            'discount': float(self.discount),
            'total': float(self.total),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
    
    def __repr__(self):
        return f"<SaleItem(id={self.id}, product_id={self.product_id}, qty={self.quantity})>"
