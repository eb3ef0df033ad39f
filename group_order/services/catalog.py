"""
Catalog Service

Stores and their menus, as maintained from the back office:
- Store upsert by name (with optional banner image)
- Store removal, cascading to its menu, groups and their orders
- Menu item add/edit/delete and spreadsheet upsert on (store, name)

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from group_order.models import DailyGroup, Order, Product, Store
from group_order.schemas import ProductCreate, ProductUpdate, ProductUpsert, StoreUpdate, StoreUpsert
from group_order.services.errors import (
    DuplicateProductError,
    ImageUploadError,
    ProductNotFoundError,
    StoreNotFoundError,
)
from group_order.services.storage import BaseStorageService

logger = logging.getLogger(__name__)


@dataclass
class ImageUpload:
    """An image file received with a store form."""
    content: bytes
    filename: str
    content_type: Optional[str] = None


@dataclass
class ImportSummary:
    inserted: int = 0
    updated: int = 0

    @property
    def processed(self) -> int:
        return self.inserted + self.updated


# =============================================================================
# STORES
# =============================================================================

async def list_stores(session: AsyncSession) -> list[Store]:
    result = await session.execute(select(Store).order_by(Store.id))
    return list(result.scalars().all())


async def get_store(session: AsyncSession, store_id: int) -> Store:
    store = await session.get(Store, store_id)
    if store is None:
        raise StoreNotFoundError(f"Store #{store_id} not found")
    return store


async def find_store_by_name(session: AsyncSession, name: str) -> Optional[Store]:
    result = await session.execute(select(Store).where(Store.name == name))
    return result.scalar_one_or_none()


async def _discard_image(storage: Optional[BaseStorageService], path: Optional[str]) -> None:
    """Best-effort removal of a stored image; failures are only logged."""
    if not path or storage is None:
        return
    try:
        result = await storage.delete(path)
        if not result.success:
            logger.warning(f"Could not delete image {path}: {result.error_message}")
    except Exception as e:
        logger.warning(f"Could not delete image {path}: {e}")


async def _store_image(
    storage: BaseStorageService,
    store: Store,
    image: ImageUpload,
) -> Optional[str]:
    """Upload a new banner for the store; returns the replaced image's path."""
    result = await storage.upload(image.content, image.filename, image.content_type)
    if not result.success:
        raise ImageUploadError(result.error_message or "Image upload failed")

    previous = store.image_path
    store.image_path = result.path
    store.image_url = result.public_url
    return previous


async def _commit_store(
    session: AsyncSession,
    storage: Optional[BaseStorageService],
    uploaded: Optional[str],
) -> None:
    """Commit store changes; a just-uploaded image is removed if the commit fails."""
    try:
        await session.commit()
    except SQLAlchemyError:
        await _discard_image(storage, uploaded)
        raise


async def upsert_store(
    session: AsyncSession,
    data: StoreUpsert,
    storage: Optional[BaseStorageService] = None,
    image: Optional[ImageUpload] = None,
) -> tuple[Store, bool]:
    """
    Create a store, or update the one with the same name.

    Returns:
        (store, created)
    """
    store = await find_store_by_name(session, data.name)
    created = store is None
    if created:
        store = Store(name=data.name)
        session.add(store)

    if data.phone is not None or created:
        store.phone = data.phone

    replaced = uploaded = None
    if image is not None and storage is not None:
        replaced = await _store_image(storage, store, image)
        uploaded = store.image_path

    await _commit_store(session, storage, uploaded)
    await session.refresh(store)

    if replaced and replaced != store.image_path:
        await _discard_image(storage, replaced)

    logger.info(f"Store #{store.id} '{store.name}' {'created' if created else 'updated'}")
    return store, created


async def update_store(
    session: AsyncSession,
    store_id: int,
    data: StoreUpdate,
    storage: Optional[BaseStorageService] = None,
    image: Optional[ImageUpload] = None,
) -> Store:
    store = await get_store(session, store_id)

    changes = data.model_dump(exclude_unset=True)
    if changes.get("name"):
        store.name = changes["name"]
    if "phone" in changes:
        store.phone = changes["phone"]

    replaced = uploaded = None
    if image is not None and storage is not None:
        replaced = await _store_image(storage, store, image)
        uploaded = store.image_path

    await _commit_store(session, storage, uploaded)
    await session.refresh(store)

    if replaced and replaced != store.image_path:
        await _discard_image(storage, replaced)

    logger.info(f"Store #{store.id} updated")
    return store


async def delete_store(
    session: AsyncSession,
    store_id: int,
    storage: Optional[BaseStorageService] = None,
) -> Store:
    """
    Remove a store with everything that hangs off it.

    The image goes first and is best-effort: if the storage call fails
    the rows are still removed. Rows are removed children-first (orders
    of the store's groups, groups, menu, store).
    """
    store = await get_store(session, store_id)

    await _discard_image(storage, store.image_path)

    group_ids = select(DailyGroup.id).where(DailyGroup.store_id == store_id)
    await session.execute(delete(Order).where(Order.group_id.in_(group_ids)))
    await session.execute(delete(DailyGroup).where(DailyGroup.store_id == store_id))
    await session.execute(delete(Product).where(Product.store_id == store_id))
    await session.execute(delete(Store).where(Store.id == store_id))
    await session.commit()

    logger.info(f"Store #{store_id} '{store.name}' deleted with its menu and groups")
    return store


# =============================================================================
# MENU
# =============================================================================

async def list_products(
    session: AsyncSession,
    store_id: int,
    order_by: str = "price",
) -> list[Product]:
    """Menu of a store; by price for ordering, by id for the editor."""
    ordering = (Product.price, Product.id) if order_by == "price" else (Product.id,)
    result = await session.execute(
        select(Product).where(Product.store_id == store_id).order_by(*ordering)
    )
    return list(result.scalars().all())


async def get_product(session: AsyncSession, product_id: int) -> Product:
    product = await session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(f"Menu item #{product_id} not found")
    return product


async def create_product(session: AsyncSession, store_id: int, data: ProductCreate) -> Product:
    await get_store(session, store_id)

    existing = await session.execute(
        select(Product.id).where(Product.store_id == store_id, Product.name == data.name)
    )
    if existing.first() is not None:
        raise DuplicateProductError(f"'{data.name}' is already on this menu")

    product = Product(
        store_id=store_id,
        name=data.name,
        price=data.price,
        description=data.description,
    )
    session.add(product)
    await session.commit()
    await session.refresh(product)

    logger.info(f"Menu item #{product.id} '{product.name}' added to store #{store_id}")
    return product


async def update_product(session: AsyncSession, product_id: int, data: ProductUpdate) -> Product:
    product = await get_product(session, product_id)

    changes = data.model_dump(exclude_unset=True)
    if changes.get("price") is not None:
        product.price = changes["price"]
    if "description" in changes:
        product.description = changes["description"]

    await session.commit()
    await session.refresh(product)
    return product


async def delete_product(session: AsyncSession, product_id: int) -> Product:
    product = await get_product(session, product_id)
    await session.delete(product)
    await session.commit()

    logger.info(f"Menu item #{product_id} deleted")
    return product


async def upsert_products(
    session: AsyncSession,
    store_id: int,
    rows: Iterable[ProductUpsert],
) -> ImportSummary:
    """
    Insert or update menu items keyed on (store, name).

    An existing name gets the row's price and note; a new name is added.
    """
    await get_store(session, store_id)

    by_name = {row.name: row for row in rows}
    summary = ImportSummary()
    if not by_name:
        return summary

    result = await session.execute(
        select(Product).where(
            Product.store_id == store_id,
            Product.name.in_(list(by_name)),
        )
    )
    existing = {product.name: product for product in result.scalars().all()}

    for name, row in by_name.items():
        product = existing.get(name)
        if product is None:
            session.add(
                Product(
                    store_id=store_id,
                    name=name,
                    price=row.price,
                    description=row.description,
                )
            )
            summary.inserted += 1
        else:
            product.price = row.price
            product.description = row.description
            summary.updated += 1

    await session.commit()

    logger.info(
        f"Menu import for store #{store_id}: "
        f"{summary.inserted} added, {summary.updated} updated"
    )
    return summary
