from .auth import User, SessionToken, AuditLog
from .inventory import (
    PurchaseAccount,
    Phone,
    Repair,
    StockPiece,
    RepairPart,
    MaterielExpense,
    Sold,
    Unsold,
    normalize_sale_state,
    PHONE_CONDITIONS,
    REPAIR_STATUSES,
    MATERIEL_CATEGORIES,
)

__all__ = [
    'User', 'SessionToken', 'AuditLog',
    'PurchaseAccount', 'Phone', 'Repair', 'StockPiece', 'RepairPart', 'MaterielExpense',
    'Sold', 'Unsold', 'normalize_sale_state',
    'PHONE_CONDITIONS', 'REPAIR_STATUSES', 'MATERIEL_CATEGORIES',
]
