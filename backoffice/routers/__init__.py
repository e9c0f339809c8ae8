"""
Routers for the back-office API
"""

from .auth import router as auth_router
from .catalog import categories_router, suppliers_router
from .expenses import router as expenses_router
from .inventory import router as inventory_router
from .reports import router as reports_router
from .sales import router as sales_router
from .workers import router as workers_router

__all__ = [
    "auth_router",
    "categories_router",
    "suppliers_router",
    "expenses_router",
    "inventory_router",
    "reports_router",
    "sales_router",
    "workers_router",
]
