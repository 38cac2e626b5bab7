"""Sale item service - line items appended to an existing sale."""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.exceptions import NotFoundError
from app.models import Sale, SaleItem
from app.services.entity_store import EntityStore
from app.utils.validators import is_blank, parse_uuid, parse_money, parse_int


logger = logging.getLogger(__name__)


class SaleItemService:
    """CRUD for sale items. Line totals are supplied by the caller and stored as-is."""

    def __init__(self, store: EntityStore, log: Optional[logging.Logger] = None):
        self.store = store
        self.log = log or logger

    def list_for_sale(self, sale_id) -> List[SaleItem]:
        sale_id = parse_uuid(sale_id, 'sale_id')
        query = self.store.query(SaleItem).filter(
            SaleItem.sale_id == sale_id
        ).order_by(SaleItem.created_at)
        return self.store.all(query, 'SaleItem')

    def get_by_id(self, item_id) -> SaleItem:
        item_id = parse_uuid(item_id, 'id')
        item = self.store.get(SaleItem, item_id)
        if not item:
            raise NotFoundError('Sale item not found')
        return item

    def create(self, sale_id, data: Dict[str, Any]) -> SaleItem:
        sale_id = parse_uuid(sale_id, 'sale_id')
        item = SaleItem(
            sale_id=sale_id,
            product_id=parse_uuid(data.get('product_id'), 'product_id'),
            quantity=parse_int(data.get('quantity'), 'quantity', minimum=1),
            price=parse_money(data.get('price'), 'price'),
            discount=parse_money(data.get('discount'), 'discount', required=False, default=Decimal('0.00')),
            total=parse_money(data.get('total'), 'total')
        )

        if not self.store.get(Sale, sale_id):
            raise NotFoundError('Sale not found')

        item = self.store.create(item)
        self.log.info(f"[SALE] Item {item.id} added to sale {sale_id} (product {item.product_id} x{item.quantity})")
        return item

    def update(self, item_id, data: Dict[str, Any]) -> SaleItem:
        """Sparse update of quantity, price, discount and total."""
        item = self.get_by_id(item_id)

        values = {}
        if not is_blank(data.get('quantity')):
            values['quantity'] = parse_int(data['quantity'], 'quantity', minimum=1)
        for field in ('price', 'discount', 'total'):
            if not is_blank(data.get(field)):
                values[field] = parse_money(data[field], field)

        if not values:
            return item

        if self.store.update(SaleItem, item.id, values) == 0:
            raise NotFoundError('Sale item not found')
        return self.get_by_id(item.id)

    def delete(self, item_id) -> None:
        item_id = parse_uuid(item_id, 'id')
        if self.store.delete(SaleItem, item_id) == 0:
            raise NotFoundError('Sale item not found')
