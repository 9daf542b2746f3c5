# Overview: Permission module constants for grouping related permissions in the role editor.


class PermissionModule:
    """Top-level modules; each permission also names the screen (component) it guards."""
    ADMINISTRATION = "Administration"
    MASTER_DATA = "Master Data"
    INVENTORY = "Inventory"
    PROCUREMENT = "Procurement"
    PAYABLES = "Payables"
    FINANCE = "Finance"
