# Overview: All permission definitions organized by module.
# Each permission is defined as: (name, module, component, description)
#
# Names are matched exactly. They keep the spelling used by the screens that
# check them, which is why conventions differ between modules.

from .categories import PermissionModule


# -- ADMINISTRATION --

ADMINISTRATION_PERMISSIONS = [
    ("access_admin", PermissionModule.ADMINISTRATION, "Admin", "Open the administration area"),
    ("access_settings", PermissionModule.ADMINISTRATION, "Settings", "Open the settings area"),
    ("view_users", PermissionModule.ADMINISTRATION, "Users", "View users of the organization"),
    ("create_users", PermissionModule.ADMINISTRATION, "Users", "Create users"),
    ("edit_users", PermissionModule.ADMINISTRATION, "Users", "Edit users and their role assignments"),
    ("view_roles", PermissionModule.ADMINISTRATION, "Roles", "View roles"),
    ("create_role", PermissionModule.ADMINISTRATION, "Roles", "Create roles"),
    ("edit_roles", PermissionModule.ADMINISTRATION, "Roles", "Edit role permissions and delete roles"),
    ("view_permissions", PermissionModule.ADMINISTRATION, "Permissions", "View the permission catalog"),
    ("view_organization", PermissionModule.ADMINISTRATION, "Organizations", "View organizations"),
    ("create_organization", PermissionModule.ADMINISTRATION, "Organizations", "Create organizations"),
    ("edit_organization", PermissionModule.ADMINISTRATION, "Organizations", "Edit organizations"),
    ("manage_partner", PermissionModule.ADMINISTRATION, "Partners", "Add, activate and deactivate partners"),
]


# -- MASTER DATA --

MASTER_DATA_PERMISSIONS = [
    ("view-division", PermissionModule.MASTER_DATA, "Divisions", "View divisions"),
    ("create-division", PermissionModule.MASTER_DATA, "Divisions", "Create divisions"),
    ("edit-division", PermissionModule.MASTER_DATA, "Divisions", "Edit divisions"),
    ("view-item", PermissionModule.MASTER_DATA, "Items", "View items"),
    ("create-item", PermissionModule.MASTER_DATA, "Items", "Create items"),
    ("edit-item", PermissionModule.MASTER_DATA, "Items", "Edit items, costs and prices"),
    ("view-item-group", PermissionModule.MASTER_DATA, "Item Groups", "View item groups"),
    ("create-item-group", PermissionModule.MASTER_DATA, "Item Groups", "Create item groups"),
    ("edit-item-group", PermissionModule.MASTER_DATA, "Item Groups", "Edit item groups"),
    ("view-category", PermissionModule.MASTER_DATA, "Categories", "View categories"),
    ("create-category", PermissionModule.MASTER_DATA, "Categories", "Create categories"),
    ("edit-category", PermissionModule.MASTER_DATA, "Categories", "Edit categories"),
    ("view-sales-channel", PermissionModule.MASTER_DATA, "Sales Channels", "View sales channels"),
    ("create-sales-channel", PermissionModule.MASTER_DATA, "Sales Channels", "Create sales channels"),
    ("edit-sales-channel", PermissionModule.MASTER_DATA, "Sales Channels", "Edit sales channels"),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    ("view-inventory", PermissionModule.INVENTORY, "Stock", "View stock summary and stock ledger"),
    ("View Inventory transfer", PermissionModule.INVENTORY, "Transfers", "View inventory transfers"),
    ("Create Inventory transfer", PermissionModule.INVENTORY, "Transfers", "Initiate inventory transfers"),
    ("Edit Inventory transfer", PermissionModule.INVENTORY, "Transfers", "Edit tracking number of initiated transfers"),
    ("Confirm Inventory transfer", PermissionModule.INVENTORY, "Transfers", "Confirm receipt of transfers"),
]


# -- PROCUREMENT --

PROCUREMENT_PERMISSIONS = [
    ("View PO", PermissionModule.PROCUREMENT, "Purchase Orders", "View purchase orders"),
    ("Create PO", PermissionModule.PROCUREMENT, "Purchase Orders", "Create purchase orders"),
    ("Edit PO", PermissionModule.PROCUREMENT, "Purchase Orders", "Approve purchase orders"),
    ("Cancel PO", PermissionModule.PROCUREMENT, "Purchase Orders", "Cancel purchase orders"),
    ("View PO Receive", PermissionModule.PROCUREMENT, "PO Receive", "View goods receipts"),
    ("Create PO Receive", PermissionModule.PROCUREMENT, "PO Receive", "Receive goods against purchase orders"),
    ("View Open PO Widget", PermissionModule.PROCUREMENT, "Dashboard", "See open purchase orders on the dashboard"),
]


# -- PAYABLES --

PAYABLES_PERMISSIONS = [
    ("View Invoices", PermissionModule.PAYABLES, "Invoices", "View invoices"),
    ("Create Invoice", PermissionModule.PAYABLES, "Invoices", "Generate invoices from received purchase orders"),
    ("Edit Invoice", PermissionModule.PAYABLES, "Invoices", "Edit invoices"),
    ("approve-invoice", PermissionModule.PAYABLES, "Invoices", "Approve invoices"),
    ("Invoice awaiting approval", PermissionModule.PAYABLES, "Dashboard", "See invoices awaiting approval"),
    ("AP Balance", PermissionModule.PAYABLES, "Dashboard", "See outstanding payables"),
    ("View Payments", PermissionModule.PAYABLES, "Payments", "View payments"),
    ("Create Payment", PermissionModule.PAYABLES, "Payments", "Create payments"),
    ("Edit Payment", PermissionModule.PAYABLES, "Payments", "Edit payments"),
    ("approve_payments", PermissionModule.PAYABLES, "Payments", "Approve payments"),
    ("reject_payments", PermissionModule.PAYABLES, "Payments", "Reject payments"),
]


# -- FINANCE --

FINANCE_PERMISSIONS = [
    ("View COA", PermissionModule.FINANCE, "Chart of Accounts", "View chart of accounts"),
    ("Create COA", PermissionModule.FINANCE, "Chart of Accounts", "Create accounts"),
    ("Edit COA", PermissionModule.FINANCE, "Chart of Accounts", "Edit accounts"),
    ("View Rules", PermissionModule.FINANCE, "Accounting Rules", "View accounting rules"),
    ("Create Rules", PermissionModule.FINANCE, "Accounting Rules", "Create accounting rules"),
    ("Edit Rules", PermissionModule.FINANCE, "Accounting Rules", "Edit accounting rules"),
    ("Delete Rules", PermissionModule.FINANCE, "Accounting Rules", "Delete accounting rules"),
    ("View Journal", PermissionModule.FINANCE, "Journals", "View journals"),
    ("Create Journal", PermissionModule.FINANCE, "Journals", "Create manual journals"),
    ("Edit Journal", PermissionModule.FINANCE, "Journals", "Edit draft journals"),
    ("Post Journal", PermissionModule.FINANCE, "Journals", "Post balanced journals"),
    ("Reverse Journal", PermissionModule.FINANCE, "Journals", "Reverse posted journals"),
    ("View Subledger", PermissionModule.FINANCE, "Subledger", "View party subledger and balances"),
    ("View General Ledger", PermissionModule.FINANCE, "General Ledger", "View bill-to/remit-to ledger statements"),
]


# -- ALL PERMISSIONS --

PERMISSION_DEFINITIONS = (
    ADMINISTRATION_PERMISSIONS
    + MASTER_DATA_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + PROCUREMENT_PERMISSIONS
    + PAYABLES_PERMISSIONS
    + FINANCE_PERMISSIONS
)
