"""
Stock alert generation for the dashboard.
- out of stock: critical
- at or below minimum stock: warning
- expiring within the warning window (or already expired): warning
"""
from sqlalchemy.orm import Session
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional
import logging

from backoffice.models import InventoryItem
from backoffice.exceptions import PersistenceError
from backoffice.schemas.inventory import StockAlert, StockAlertsResponse, StockStatus
from backoffice.utils.periods import format_quantity

logger = logging.getLogger(__name__)


def stock_status(current_stock: Decimal, minimum_stock: Decimal) -> StockStatus:
    if current_stock <= 0:
        return StockStatus.OUT_OF_STOCK
    if current_stock <= minimum_stock:
        return StockStatus.LOW
    return StockStatus.NORMAL


def check_stock_alerts(db: Session, today: Optional[date] = None, expiry_days: int = 30) -> StockAlertsResponse:
    """Alerts for every active item that needs attention, critical ones first"""
    today = today or date.today()
    horizon = today + timedelta(days=expiry_days)
    try:
        stmt = select(InventoryItem).where(InventoryItem.is_active.is_(True)).order_by(InventoryItem.name)
        items = db.execute(stmt).scalars().all()
    except SQLAlchemyError as e:
        logger.error(f"Error checking stock alerts: {e}")
        raise PersistenceError() from e

    alerts: List[StockAlert] = []
    out_count = low_count = expiring_count = 0
    for item in items:
        current = Decimal(item.current_stock)
        minimum = Decimal(item.minimum_stock)
        status = stock_status(current, minimum)

        if status == StockStatus.OUT_OF_STOCK:
            out_count += 1
            alerts.append(StockAlert(
                item_id=item.id, name=item.name, sku=item.sku, level="critical", status=status,
                current_stock=current, minimum_stock=minimum, expiry_date=item.expiry_date,
                message=f"{item.name} is OUT OF STOCK",
            ))
        elif status == StockStatus.LOW:
            low_count += 1
            alerts.append(StockAlert(
                item_id=item.id, name=item.name, sku=item.sku, level="warning", status=status,
                current_stock=current, minimum_stock=minimum, expiry_date=item.expiry_date,
                message=(
                    f"{item.name} stock is LOW: {format_quantity(current)} {item.unit_of_measure} "
                    f"(minimum: {format_quantity(minimum)})"
                ),
            ))

        if item.expiry_date is not None and item.expiry_date <= horizon:
            expiring_count += 1
            verb = "expired" if item.expiry_date < today else "expires"
            alerts.append(StockAlert(
                item_id=item.id, name=item.name, sku=item.sku, level="warning", status=status,
                current_stock=current, minimum_stock=minimum, expiry_date=item.expiry_date,
                message=f"{item.name} {verb} on {item.expiry_date.isoformat()}",
            ))

    alerts.sort(key=lambda a: 0 if a.level == "critical" else 1)
    return StockAlertsResponse(
        alerts=alerts,
        out_of_stock_count=out_count,
        low_stock_count=low_count,
        expiring_count=expiring_count,
    )
