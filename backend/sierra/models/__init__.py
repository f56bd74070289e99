from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken
from .parties import Customer, Supplier
from .inventory import Product, InventoryTransaction
from .orders import Order, OrderItem
from .payments import Payment, SupplierPayment
from .purchases import Purchase, PurchaseItem
from .accounts import Bank, CompanyAccount, AccountTransaction
from .expenses import Expense
from .budgets import Budget
from .documents import DocumentSequence

__all__ = [
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken',
    'Customer', 'Supplier',
    'Product', 'InventoryTransaction',
    'Order', 'OrderItem',
    'Payment', 'SupplierPayment',
    'Purchase', 'PurchaseItem',
    'Bank', 'CompanyAccount', 'AccountTransaction',
    'Expense',
    'Budget',
    'DocumentSequence',
]
