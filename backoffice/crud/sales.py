"""
Sale composer. One sale is one transaction:
- every line is validated against live stock before anything is written
- item rows are locked in ascending id order, then each item gets one
  conditional UPDATE (rounded current_stock >= summed quantity) as a second guard
- each line writes one sale_items row and one "out" stock movement
- any failure rolls back the header, the lines, the stock and the ledger
"""
from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.orm import Session, selectinload
import logging
from typing import Dict, List, Optional, Tuple
from datetime import date, datetime, timezone
from decimal import Decimal

from backoffice.models import InventoryItem, Sale, SaleItem
from backoffice.crud.base import CRUDBase
from backoffice.crud.inventory import lock_item, stock_ledger
from backoffice.exceptions import (
    BackofficeError, ConflictError, InsufficientStockError, NotFoundError, PersistenceError, ValidationError,
)
from backoffice.schemas.inventory import MovementType
from backoffice.schemas.sales import SaleCreate, SaleRecord, PaymentMethod, PaymentStatus
from backoffice.utils.periods import quantize_money, day_bounds

logger = logging.getLogger(__name__)

SALE_NUMBER_FORMAT = "SALE-{day:%Y%m%d}-{sequence:04d}"


def _sale_number_prefix(now: datetime) -> str:
    return f"SALE-{now:%Y%m%d}-"


def generate_sale_number(db: Session, now: datetime) -> str:
    """SALE-YYYYMMDD-NNNN where NNNN is today's sale count + 1"""
    stmt = (
        select(func.count())
        .select_from(Sale)
        .where(Sale.sale_number.like(_sale_number_prefix(now) + "%"))
    )
    count = db.execute(stmt).scalar_one()
    return SALE_NUMBER_FORMAT.format(day=now, sequence=count + 1)


def next_free_sale_number(db: Session, now: datetime) -> str:
    """Used after a collision: one past the highest sequence issued today"""
    prefix = _sale_number_prefix(now)
    numbers = db.execute(select(Sale.sale_number).where(Sale.sale_number.like(prefix + "%"))).scalars().all()
    highest = 0
    for number in numbers:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return SALE_NUMBER_FORMAT.format(day=now, sequence=highest + 1)


def compute_totals(sale_in: SaleCreate, tax_rate: Decimal) -> Tuple[List[Decimal], Dict[str, Decimal]]:
    """
    Line totals and sale amounts, all rounded to cents.
    total = subtotal + tax - discount, with no floor at zero.
    """
    line_totals = [quantize_money(line.quantity * line.unit_price) for line in sale_in.items]
    subtotal = sum(line_totals, Decimal("0.00"))
    tax_amount = quantize_money(subtotal * Decimal(str(tax_rate)))
    discount_amount = quantize_money(sale_in.discount_amount)
    return line_totals, {
        "subtotal": subtotal,
        "tax_amount": tax_amount,
        "discount_amount": discount_amount,
        "total_amount": subtotal + tax_amount - discount_amount,
    }


def _lock_and_validate(db: Session, sale_in: SaleCreate) -> Tuple[Dict[int, InventoryItem], Dict[int, Decimal]]:
    """Lock every item on the cart and check stock against the per-item total"""
    requested: Dict[int, Decimal] = {}
    for line in sale_in.items:
        requested[line.inventory_id] = requested.get(line.inventory_id, Decimal("0")) + line.quantity

    # Fixed lock order so two multi-line sales cannot deadlock each other
    items = {inventory_id: lock_item(db, inventory_id) for inventory_id in sorted(requested)}

    for inventory_id, quantity in requested.items():
        item = items[inventory_id]
        available = Decimal(item.current_stock)
        if available < quantity:
            raise InsufficientStockError(item.name, available, quantity)
    return items, requested


def _decrement_stock(db: Session, item: InventoryItem, quantity: Decimal, now: datetime) -> None:
    """
    Conditional decrement, one statement per item. Both sides are rounded to
    the column scale so SQLite's float arithmetic cannot leave 0.19999...
    behind a 0.2 check.
    """
    inventory = InventoryItem.__table__
    stock = inventory.c.current_stock
    scale = stock.type.scale
    result = db.execute(
        update(inventory)
        .where(
            inventory.c.id == item.id,
            inventory.c.is_active.is_(True),
            func.round(stock, scale, type_=stock.type) >= quantity,
        )
        .values(current_stock=func.round(stock - quantity, scale, type_=stock.type), updated_at=now)
    )
    if result.rowcount != 1:
        db.refresh(item)
        raise InsufficientStockError(item.name, Decimal(item.current_stock), quantity)
    db.expire(item, ["current_stock", "updated_at"])


def _insert_header(db: Session, *, sale_in: SaleCreate, amounts: Dict[str, Decimal], user_id: int, now: datetime) -> Sale:
    """
    Insert the sale row inside a SAVEPOINT. A duplicate sale_number is
    regenerated once; a second duplicate is a ConflictError.
    """
    sale_number = generate_sale_number(db, now)
    for attempt in range(2):
        sale = Sale(
            sale_number=sale_number,
            customer_name=sale_in.customer_name,
            customer_email=sale_in.customer_email,
            customer_phone=sale_in.customer_phone,
            payment_method=PaymentMethod(sale_in.payment_method).value,
            payment_status=PaymentStatus.COMPLETED.value,
            sale_date=now,
            notes=sale_in.notes,
            created_by=user_id,
            created_at=now,
            updated_at=now,
            **amounts,
        )
        try:
            with db.begin_nested():
                db.add(sale)
            return sale
        except IntegrityError as e:
            if "sale_number" not in str(e.orig):
                raise
            logger.warning(f"Sale number {sale_number} already taken (attempt {attempt + 1})")
            sale_number = next_free_sale_number(db, now)
    raise ConflictError("Sale number conflict, please retry")


def create_sale(
    db: Session,
    *,
    sale_in: SaleCreate,
    user_id: Optional[int],
    tax_rate: Decimal,
    now: Optional[datetime] = None,
) -> SaleRecord:
    """
    Turn a cart into a committed, completed sale.

    Raises ValidationError (no lines), NotFoundError (unknown or inactive
    item), InsufficientStockError (item name and available quantity),
    ConflictError (sale number taken twice) or PersistenceError. On any of
    them nothing from this call is left in the database.
    """
    if not sale_in.items:
        raise ValidationError("items: at least one item is required")
    now = now or datetime.now(timezone.utc)

    try:
        items, requested = _lock_and_validate(db, sale_in)
        line_totals, amounts = compute_totals(sale_in, tax_rate)
        sale = _insert_header(db, sale_in=sale_in, amounts=amounts, user_id=user_id, now=now)

        for inventory_id in sorted(requested):
            _decrement_stock(db, items[inventory_id], requested[inventory_id], now)

        for line, line_total in zip(sale_in.items, line_totals):
            item = items[line.inventory_id]
            sale.items.append(
                SaleItem(
                    inventory_id=line.inventory_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total_price=line_total,
                    created_at=now,
                )
            )
            stock_ledger.append(
                db,
                inventory_id=line.inventory_id,
                movement_type=MovementType.OUT,
                quantity=line.quantity,
                unit_cost=item.cost_price,
                reference_number=sale.sale_number,
                notes=f"Sale: {sale.sale_number}",
                created_by=user_id,
            )

        db.commit()
    except BackofficeError as e:
        db.rollback()
        logger.warning(f"Sale rejected: {e.message}")
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating sale: {e}")
        raise PersistenceError() from e

    logger.info(f"Sale {sale.sale_number} created by user {user_id}: total {sale.total_amount}")
    return SaleRecord.model_validate(sale)


class CRUDSale(CRUDBase[Sale]):
    resource_name = "Sale"

    def __init__(self):
        super().__init__(Sale)

    def get_with_items(self, db: Session, sale_id: int) -> Sale:
        stmt = (
            select(Sale)
            .options(selectinload(Sale.items).selectinload(SaleItem.item))
            .where(Sale.id == sale_id)
        )
        try:
            sale = db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting sale {sale_id}: {e}")
            raise PersistenceError() from e
        if sale is None:
            raise NotFoundError(self.resource_name, sale_id)
        return sale

    def list_sales(
        self,
        db: Session,
        *,
        search: Optional[str] = None,
        payment_method: Optional[PaymentMethod] = None,
        payment_status: Optional[PaymentStatus] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[SaleRecord], int]:
        conditions = []
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(Sale.sale_number.ilike(pattern), Sale.customer_name.ilike(pattern)))
        if payment_method is not None:
            conditions.append(Sale.payment_method == PaymentMethod(payment_method).value)
        if payment_status is not None:
            conditions.append(Sale.payment_status == PaymentStatus(payment_status).value)
        lower, upper = day_bounds(start, end)
        if lower is not None:
            conditions.append(Sale.sale_date >= lower)
        if upper is not None:
            conditions.append(Sale.sale_date < upper)

        try:
            total = db.execute(select(func.count()).select_from(Sale).where(*conditions)).scalar_one()
            stmt = (
                select(Sale)
                .options(selectinload(Sale.items))
                .where(*conditions)
                .order_by(Sale.sale_date.desc(), Sale.id.desc())
                .offset(skip)
                .limit(limit)
            )
            sales = db.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Error listing sales: {e}")
            raise PersistenceError() from e
        return [SaleRecord.model_validate(sale) for sale in sales], total


crud_sale = CRUDSale()


def get_sale(db: Session, sale_id: int) -> SaleRecord:
    return SaleRecord.model_validate(crud_sale.get_with_items(db, sale_id))


def list_sales(db: Session, **filters) -> Tuple[List[SaleRecord], int]:
    return crud_sale.list_sales(db, **filters)
