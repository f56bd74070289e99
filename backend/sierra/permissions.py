"""
Permission System Constants and Definitions

WHY: Centralized permission definitions ensure consistency across the application.
All permission codes and role mappings defined here.

DESIGN PRINCIPLES:
- Permissions are granular (one action per permission)
- Categories group related permissions for UI display
- Admin has all permissions by default
- Staff handles day-to-day billing, payments and stock, nothing administrative
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    PURCHASING = "PURCHASING"
    FINANCE = "FINANCE"
    USERS = "USERS"
    REPORTS = "REPORTS"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    # INVENTORY PERMISSIONS
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View products, stock levels and inventory transactions",
        PermissionCategory.INVENTORY
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create and edit products",
        PermissionCategory.INVENTORY
    ),
    (
        "ADJUST_INVENTORY",
        "Adjust Inventory",
        "Add or subtract stock outside of sales and purchases",
        PermissionCategory.INVENTORY
    ),

    # SALES PERMISSIONS
    (
        "VIEW_ORDERS",
        "View Orders",
        "View bills, unpaid bills and customer balances",
        PermissionCategory.SALES
    ),
    (
        "CREATE_ORDERS",
        "Create Orders",
        "Create and update bills",
        PermissionCategory.SALES
    ),
    (
        "PROCESS_RETURNS",
        "Process Returns",
        "Cancel bills or return items to stock",
        PermissionCategory.SALES
    ),
    (
        "RECORD_PAYMENTS",
        "Record Payments",
        "Record customer payments and update cheque status",
        PermissionCategory.SALES
    ),
    (
        "MANAGE_CUSTOMERS",
        "Manage Customers",
        "Create and edit customers",
        PermissionCategory.SALES
    ),

    # PURCHASING PERMISSIONS
    (
        "VIEW_PURCHASES",
        "View Purchases",
        "View purchases and suppliers",
        PermissionCategory.PURCHASING
    ),
    (
        "CREATE_PURCHASES",
        "Create Purchases",
        "Record purchases from the primary supplier",
        PermissionCategory.PURCHASING
    ),
    (
        "EDIT_PURCHASES",
        "Edit Purchases",
        "Edit posted purchases (re-applies stock differences)",
        PermissionCategory.PURCHASING
    ),
    (
        "MANAGE_SUPPLIERS",
        "Manage Suppliers",
        "Create and edit suppliers",
        PermissionCategory.PURCHASING
    ),
    (
        "PAY_SUPPLIERS",
        "Pay Suppliers",
        "Record supplier payments and update supplier cheque status",
        PermissionCategory.PURCHASING
    ),

    # FINANCE PERMISSIONS
    (
        "VIEW_ACCOUNTS",
        "View Accounts",
        "View company accounts, banks and account ledgers",
        PermissionCategory.FINANCE
    ),
    (
        "MANAGE_ACCOUNTS",
        "Manage Accounts",
        "Create accounts and banks, deposit and transfer funds",
        PermissionCategory.FINANCE
    ),
    (
        "MANAGE_EXPENSES",
        "Manage Expenses",
        "Record, edit and delete expenses",
        PermissionCategory.FINANCE
    ),
    (
        "MANAGE_BUDGETS",
        "Manage Budgets",
        "Set, change and delete monthly budgets",
        PermissionCategory.FINANCE
    ),

    # REPORT PERMISSIONS
    (
        "VIEW_REPORTS",
        "View Reports",
        "View financial reports, analytics, budgets and dashboard statistics",
        PermissionCategory.REPORTS
    ),

    # USER PERMISSIONS
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create, edit and deactivate users and assign roles",
        PermissionCategory.USERS
    ),
]


# =============================================================================
# DEFAULT ROLE PERMISSIONS
# =============================================================================

DEFAULT_ROLE_PERMISSIONS = {
    # Admin gets ALL permissions
    "admin": [perm[0] for perm in PERMISSION_DEFINITIONS],
    "staff": [
        "VIEW_INVENTORY",
        "MANAGE_PRODUCTS",
        "ADJUST_INVENTORY",
        "VIEW_ORDERS",
        "CREATE_ORDERS",
        "PROCESS_RETURNS",
        "RECORD_PAYMENTS",
        "MANAGE_CUSTOMERS",
        "VIEW_PURCHASES",
        "CREATE_PURCHASES",
        "MANAGE_SUPPLIERS",
        "PAY_SUPPLIERS",
        "VIEW_ACCOUNTS",
        "MANAGE_EXPENSES",
    ],
}

DEFAULT_ROLE_DESCRIPTIONS = {
    "admin": "Full access including purchase edits, reports and account administration",
    "staff": "Billing, payments, purchases and stock",
}


# =============================================================================
# PERMISSION HELPERS
# =============================================================================

def get_all_permission_codes():
    """Get list of all permission codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def validate_permission_code(code):
    """Check if a permission code is valid."""
    return code in get_all_permission_codes()
