"""Product storage with slug lookup and the staleness flag.

Products are created externally; the pipeline reads them and toggles
is_stale (set by the integrity check, cleared by a successful refresh).

Usage:
    from audit_system.data_management.product_store import ProductStore

    store = ProductStore()
    await store.upsert(product)
    product = await store.get_by_slug("acme-x1000")
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog

from audit_system.data_management.persistence import JsonPersistence
from audit_system.data_management.schemas import Product


class ProductStore:
    """Storage for products keyed by product_id, with a slug index."""

    def __init__(self, persistence_path: Optional[str | Path] = None) -> None:
        """Initialize ProductStore.

        Args:
            persistence_path: Optional path to JSON file for persistence.
                            If None, storage is memory-only.
        """
        self._products: dict[str, Product] = {}
        self._lock = asyncio.Lock()
        self._persistence = JsonPersistence(persistence_path)
        self._logger = structlog.get_logger().bind(component="ProductStore")
        self._load()

    async def upsert(self, product: Product) -> None:
        async with self._lock:
            with self._persistence.locked():
                self._load()
                self._products[product.product_id] = product.model_copy(deep=True)
                self._save()

    async def get(self, product_id: str) -> Optional[Product]:
        async with self._lock:
            self._load()
            product = self._products.get(product_id)
            return product.model_copy(deep=True) if product else None

    async def get_by_slug(self, slug: str) -> Optional[Product]:
        async with self._lock:
            self._load()
            for product in self._products.values():
                if product.slug == slug:
                    return product.model_copy(deep=True)
            return None

    async def set_stale(self, product_id: str, stale: bool) -> bool:
        """Toggle the staleness flag.

        Returns:
            True if the product exists, False otherwise.
        """
        async with self._lock:
            with self._persistence.locked():
                self._load()
                product = self._products.get(product_id)
                if product is None:
                    return False
                if product.is_stale == stale:
                    return True
                product.is_stale = stale
                product.stale_flagged_at = datetime.now(timezone.utc) if stale else None
                self._save()

            self._logger.info("product_stale_flag_set", product_id=product_id, stale=stale)
            return True

    async def list_stale(self, limit: Optional[int] = None) -> list[str]:
        """Product IDs flagged stale, oldest flag first."""
        async with self._lock:
            self._load()
            flagged = [p for p in self._products.values() if p.is_stale]
            flagged.sort(
                key=lambda p: p.stale_flagged_at or datetime.min.replace(tzinfo=timezone.utc)
            )
            ids = [p.product_id for p in flagged]
            return ids[:limit] if limit is not None else ids

    async def count(self) -> int:
        async with self._lock:
            self._load()
            return len(self._products)

    def _load(self) -> None:
        if not self._persistence.enabled:
            return
        data = self._persistence.load() or {}
        self._products = {pid: Product.model_validate(raw) for pid, raw in data.items()}

    def _save(self) -> None:
        if self._persistence.enabled:
            self._persistence.save(
                {pid: p.model_dump(mode="json") for pid, p in self._products.items()}
            )
