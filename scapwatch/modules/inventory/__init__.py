"""Process and package inventory queries."""

from scapwatch.modules.inventory.service import InventoryService

__all__ = ["InventoryService"]
