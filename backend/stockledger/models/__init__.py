from .tenancy import Business, BusinessSettings, User, BusinessMember
from .inventory import InventorySchema, InventoryItem
from .operations import Operation
from .logs import InventoryLog

__all__ = [
    'Business', 'BusinessSettings', 'User', 'BusinessMember',
    'InventorySchema', 'InventoryItem',
    'Operation',
    'InventoryLog',
]
