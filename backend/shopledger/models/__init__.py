from .inventory import InventoryItem
from .customers import Customer
from .auth import User
from .purchases import Purchase, PurchaseItem, PurchaseActivity
from .sales import Sale, SaleItem, SaleActivity
from .repairs import Repair, RepairEntry
from .payments import Payment, PaymentAllocation

__all__ = [
    'InventoryItem',
    'Customer',
    'User',
    'Purchase', 'PurchaseItem', 'PurchaseActivity',
    'Sale', 'SaleItem', 'SaleActivity',
    'Repair', 'RepairEntry',
    'Payment', 'PaymentAllocation',
]
