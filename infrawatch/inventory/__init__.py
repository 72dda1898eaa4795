from infrawatch.inventory.registry import (
    CloudGroup,
    Inventory,
    InventoryRegistry,
    JumpHost,
    ServerDescriptor,
    ServiceDescriptor,
    Upstream,
)

__all__ = [
    "CloudGroup",
    "Inventory",
    "InventoryRegistry",
    "JumpHost",
    "ServerDescriptor",
    "ServiceDescriptor",
    "Upstream",
]
