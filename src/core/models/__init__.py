from src.core.models.base import Base
from src.core.models.pending_order import PendingOrderRecord

__all__ = [
    "Base",
    "PendingOrderRecord",
]
