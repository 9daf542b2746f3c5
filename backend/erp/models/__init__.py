from .tenancy import Organization, Division, Contact, Reference, Partner
from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken
from .security import SecurityEvent, AuditEvent, DocumentSequence
from .catalog import ItemGroup, Category, SalesChannel, Item, ItemCost, ItemPrice
from .inventory import InventoryStock, InventoryTransfer, InventoryTransferLine
from .purchasing import PurchaseOrder, PurchaseOrderLine, PurchaseOrderGstBreakdown, PurchaseOrderReceipt
from .finance import (
    Invoice,
    InvoiceLine,
    Payment,
    ChartOfAccount,
    AccountingRule,
    AccountingRuleLine,
    JournalHeader,
    JournalLine,
    SubledgerEntry,
    GeneralLedgerEntry,
)

__all__ = [
    'Organization', 'Division', 'Contact', 'Reference', 'Partner',
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken',
    'SecurityEvent', 'AuditEvent', 'DocumentSequence',
    'ItemGroup', 'Category', 'SalesChannel', 'Item', 'ItemCost', 'ItemPrice',
    'InventoryStock', 'InventoryTransfer', 'InventoryTransferLine',
    'PurchaseOrder', 'PurchaseOrderLine', 'PurchaseOrderGstBreakdown', 'PurchaseOrderReceipt',
    'Invoice', 'InvoiceLine', 'Payment', 'ChartOfAccount',
    'AccountingRule', 'AccountingRuleLine',
    'JournalHeader', 'JournalLine', 'SubledgerEntry', 'GeneralLedgerEntry',
]
