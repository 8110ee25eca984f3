"""Per-project stock and spend ledger keyed by case-insensitive item name."""
from __future__ import annotations

from typing import Dict, Iterable, List

from utils.errors import InsufficientQuantity, ItemNotInInventory


def normalize_item_name(name: str) -> str:
    return " ".join(str(name).split()).lower()


class InventoryLedger:
    """Ordered mapping of stock entries plus cumulative usage counters.

    Entries keep the display name of their first occurrence; lookups go through the
    normalized (trimmed, lower-cased) name so "Cement" and "cement" share one entry.
    """

    def __init__(self, inventory: Iterable[Dict] | None = None, used_items: Iterable[Dict] | None = None) -> None:
        self._stock: Dict[str, Dict] = {}
        self._used: Dict[str, Dict] = {}
        for entry in inventory or []:
            key = normalize_item_name(entry.get("name", ""))
            if not key:
                continue
            existing = self._stock.get(key)
            if existing:
                existing["quantity"] += float(entry.get("quantity") or 0)
                existing["totalSpent"] += float(entry.get("totalSpent") or 0)
                continue
            self._stock[key] = {
                "name": entry.get("name"),
                "quantity": float(entry.get("quantity") or 0),
                "price": float(entry.get("price") or 0),
                "totalSpent": float(entry.get("totalSpent") or 0),
            }
        for entry in used_items or []:
            key = normalize_item_name(entry.get("name", ""))
            if not key:
                continue
            existing = self._used.get(key)
            if existing:
                existing["quantity"] += float(entry.get("quantity") or 0)
                continue
            self._used[key] = {"name": entry.get("name"), "quantity": float(entry.get("quantity") or 0)}

    @classmethod
    def from_project(cls, project) -> "InventoryLedger":
        return cls(project.inventory or [], project.used_items or [])

    def available(self, name: str) -> float:
        entry = self._stock.get(normalize_item_name(name))
        return entry["quantity"] if entry else 0.0

    def has_item(self, name: str) -> bool:
        return normalize_item_name(name) in self._stock

    def used_quantity(self, name: str) -> float:
        entry = self._used.get(normalize_item_name(name))
        return entry["quantity"] if entry else 0.0

    def total_spent(self) -> float:
        return sum(entry["totalSpent"] for entry in self._stock.values())

    def record_purchase(self, name: str, quantity: float, price: float) -> float:
        """Add stock for an item and return the cost of this purchase."""
        key = normalize_item_name(name)
        cost = float(price) * float(quantity)
        entry = self._stock.get(key)
        if entry:
            entry["quantity"] += float(quantity)
            entry["price"] = float(price)
            entry["totalSpent"] += cost
        else:
            self._stock[key] = {
                "name": str(name).strip(),
                "quantity": float(quantity),
                "price": float(price),
                "totalSpent": cost,
            }
        return cost

    def record_utilisation(self, name: str, quantity: float) -> None:
        key = normalize_item_name(name)
        entry = self._stock.get(key)
        if entry is None:
            raise ItemNotInInventory(str(name).strip(), float(quantity))
        if float(quantity) > entry["quantity"]:
            raise InsufficientQuantity(entry["name"], float(quantity), entry["quantity"])
        entry["quantity"] = max(0.0, entry["quantity"] - float(quantity))

        used = self._used.get(key)
        if used:
            used["quantity"] += float(quantity)
        else:
            self._used[key] = {"name": entry["name"], "quantity": float(quantity)}

    def ensure_available(self, items: Iterable[Dict]) -> None:
        """Check every requested utilisation against current stock without mutating it.

        Repeated names in one request are summed before comparison.
        """
        requested: Dict[str, float] = {}
        display: Dict[str, str] = {}
        for item in items:
            key = normalize_item_name(item["name"])
            requested[key] = requested.get(key, 0.0) + float(item["quantity"])
            display.setdefault(key, str(item["name"]).strip())
        for key, quantity in requested.items():
            entry = self._stock.get(key)
            if entry is None:
                raise ItemNotInInventory(display[key], quantity)
            if quantity > entry["quantity"]:
                raise InsufficientQuantity(entry["name"], quantity, entry["quantity"])

    def inventory_view(self) -> List[Dict]:
        return [dict(entry) for entry in self._stock.values()]

    def used_items_view(self) -> List[Dict]:
        return [dict(entry) for entry in self._used.values()]

    def apply_to(self, project) -> None:
        """Write stock, usage and the derived expenditure back to the project."""
        project.inventory = self.inventory_view()
        project.used_items = self.used_items_view()
        project.expenditure = self.total_spent()
