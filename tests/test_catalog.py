# Catalog service: stores, menus, cascade removal and spreadsheet upsert.

from datetime import date
from typing import Optional

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from group_order.models import DailyGroup, Order, Product, Store
from group_order.schemas import ProductCreate, ProductUpdate, ProductUpsert, StoreUpdate, StoreUpsert
from group_order.services import catalog
from group_order.services.catalog import ImageUpload
from group_order.services.errors import (
    DuplicateProductError,
    ImageUploadError,
    ProductNotFoundError,
    StoreNotFoundError,
)
from group_order.services.storage import BaseStorageService, LocalStorageService, StorageResult
from tests.conftest import utc


class FailingStorage(BaseStorageService):
    """Storage whose every call fails."""

    def __init__(self):
        self.deleted = []

    @property
    def provider_name(self) -> str:
        return "failing"

    async def upload(self, content: bytes, filename: str, content_type: Optional[str] = None) -> StorageResult:
        return StorageResult(success=False, error_message="bucket unavailable")

    def public_url(self, path: str) -> str:
        return f"https://storage.invalid/{path}"

    async def delete(self, path: str) -> StorageResult:
        self.deleted.append(path)
        raise RuntimeError("storage is down")

    async def health_check(self) -> bool:
        return False


async def count(session, model, *where) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(*where))
    return result.scalar_one()


class TestStores:

    async def test_upsert_creates_then_updates_by_name(self, session):
        store, created = await catalog.upsert_store(session, StoreUpsert(name="Golden Bento", phone="123"))
        again, created_again = await catalog.upsert_store(session, StoreUpsert(name="Golden Bento", phone="456"))

        assert created and not created_again
        assert again.id == store.id
        assert again.phone == "456"
        assert await count(session, Store) == 1

    async def test_upsert_keeps_phone_when_omitted(self, session):
        await catalog.upsert_store(session, StoreUpsert(name="Noodle Bar", phone="123"))
        store, _ = await catalog.upsert_store(session, StoreUpsert(name="Noodle Bar"))

        assert store.phone == "123"

    async def test_image_is_stored_and_replaced(self, session, tmp_path):
        storage = LocalStorageService(root=str(tmp_path))
        first = ImageUpload(content=b"first", filename="a.png", content_type="image/png")
        second = ImageUpload(content=b"second", filename="b.png", content_type="image/png")

        store, _ = await catalog.upsert_store(session, StoreUpsert(name="Cafe"), storage, first)
        old_path = store.image_path
        assert (tmp_path / old_path).read_bytes() == b"first"
        assert store.image_url == f"/uploads/{old_path}"

        store = await catalog.update_store(session, store.id, StoreUpdate(), storage, second)

        assert store.image_path != old_path
        assert (tmp_path / store.image_path).read_bytes() == b"second"
        assert not (tmp_path / old_path).exists()

    async def test_image_removed_when_rename_collides(self, session, tmp_path):
        storage = LocalStorageService(root=str(tmp_path))
        await catalog.upsert_store(session, StoreUpsert(name="Cafe"))
        other, _ = await catalog.upsert_store(session, StoreUpsert(name="Noodle House"))
        image = ImageUpload(content=b"new", filename="b.png", content_type="image/png")

        with pytest.raises(IntegrityError):
            await catalog.update_store(session, other.id, StoreUpdate(name="Cafe"), storage, image)
        await session.rollback()

        assert list(tmp_path.rglob("*.png")) == []

    async def test_failed_upload_is_refused(self, session):
        image = ImageUpload(content=b"x", filename="a.png", content_type="image/png")

        with pytest.raises(ImageUploadError):
            await catalog.upsert_store(session, StoreUpsert(name="Cafe"), FailingStorage(), image)

    async def test_unknown_store(self, session):
        with pytest.raises(StoreNotFoundError):
            await catalog.get_store(session, 999)


class TestDeleteStore:

    async def test_cascade_even_when_image_delete_fails(self, session):
        store, _ = await catalog.upsert_store(session, StoreUpsert(name="Golden Bento"))
        other, _ = await catalog.upsert_store(session, StoreUpsert(name="Other Place"))
        store.image_path = "stores/banner.png"
        await session.commit()

        await catalog.create_product(session, store.id, ProductCreate(name="Fried Rice", price=90))
        await catalog.create_product(session, other.id, ProductCreate(name="Soup", price=30))

        group = DailyGroup(store_id=store.id, order_date=date(2026, 10, 17), end_time=utc(2026, 10, 17, 4))
        kept_group = DailyGroup(store_id=other.id, order_date=date(2026, 10, 17), end_time=utc(2026, 10, 17, 4))
        session.add_all([group, kept_group])
        await session.commit()
        session.add_all([
            Order(group_id=group.id, item_name="Fried Rice", price=90, quantity=1, customer_name="Amy"),
            Order(group_id=kept_group.id, item_name="Soup", price=30, quantity=1, customer_name="Ben"),
        ])
        await session.commit()

        storage = FailingStorage()
        await catalog.delete_store(session, store.id, storage)

        assert storage.deleted == ["stores/banner.png"]
        assert await count(session, Store, Store.id == store.id) == 0
        assert await count(session, Product, Product.store_id == store.id) == 0
        assert await count(session, DailyGroup, DailyGroup.store_id == store.id) == 0
        assert await count(session, Order, Order.group_id == group.id) == 0

        # Other stores are untouched
        assert await count(session, Product, Product.store_id == other.id) == 1
        assert await count(session, Order, Order.group_id == kept_group.id) == 1

    async def test_unknown_store(self, session):
        with pytest.raises(StoreNotFoundError):
            await catalog.delete_store(session, 42, FailingStorage())


class TestProducts:

    async def test_menu_order(self, session):
        store, _ = await catalog.upsert_store(session, StoreUpsert(name="Golden Bento"))
        for name, price in [("Beef", 120), ("Rice", 85), ("Tea", 30)]:
            await catalog.create_product(session, store.id, ProductCreate(name=name, price=price))

        by_price = await catalog.list_products(session, store.id, order_by="price")
        by_id = await catalog.list_products(session, store.id, order_by="id")

        assert [p.name for p in by_price] == ["Tea", "Rice", "Beef"]
        assert [p.name for p in by_id] == ["Beef", "Rice", "Tea"]

    async def test_duplicate_name_is_refused(self, session):
        store, _ = await catalog.upsert_store(session, StoreUpsert(name="Golden Bento"))
        await catalog.create_product(session, store.id, ProductCreate(name="Fried Rice", price=90))

        with pytest.raises(DuplicateProductError):
            await catalog.create_product(session, store.id, ProductCreate(name="Fried Rice", price=95))

    async def test_same_name_in_another_store_is_fine(self, session):
        a, _ = await catalog.upsert_store(session, StoreUpsert(name="A"))
        b, _ = await catalog.upsert_store(session, StoreUpsert(name="B"))

        await catalog.create_product(session, a.id, ProductCreate(name="Fried Rice", price=90))
        await catalog.create_product(session, b.id, ProductCreate(name="Fried Rice", price=80))

        assert await count(session, Product) == 2

    async def test_update_price_keeps_note(self, session):
        store, _ = await catalog.upsert_store(session, StoreUpsert(name="Golden Bento"))
        product = await catalog.create_product(
            session, store.id, ProductCreate(name="Fried Rice", price=90, description="no onion")
        )

        updated = await catalog.update_product(session, product.id, ProductUpdate(price=95))

        assert updated.price == 95
        assert updated.description == "no onion"

    async def test_clear_note(self, session):
        store, _ = await catalog.upsert_store(session, StoreUpsert(name="Golden Bento"))
        product = await catalog.create_product(
            session, store.id, ProductCreate(name="Fried Rice", price=90, description="no onion")
        )

        updated = await catalog.update_product(session, product.id, ProductUpdate(description=None))

        assert updated.description is None
        assert updated.price == 90

    async def test_delete(self, session):
        store, _ = await catalog.upsert_store(session, StoreUpsert(name="Golden Bento"))
        product = await catalog.create_product(session, store.id, ProductCreate(name="Tea", price=30))

        await catalog.delete_product(session, product.id)

        with pytest.raises(ProductNotFoundError):
            await catalog.get_product(session, product.id)


class TestUpsertProducts:

    async def test_reimport_updates_existing_item(self, session):
        store, _ = await catalog.upsert_store(session, StoreUpsert(name="Golden Bento"))

        first = await catalog.upsert_products(
            session, store.id, [ProductUpsert(name="Fried Rice", price=90, description="no onion")]
        )
        second = await catalog.upsert_products(
            session, store.id, [ProductUpsert(name="Fried Rice", price=95, description="no onion")]
        )

        products = await catalog.list_products(session, store.id)
        assert (first.inserted, first.updated) == (1, 0)
        assert (second.inserted, second.updated) == (0, 1)
        assert len(products) == 1
        assert products[0].price == 95
        assert products[0].description == "no onion"

    async def test_mixed_insert_and_update(self, session):
        store, _ = await catalog.upsert_store(session, StoreUpsert(name="Golden Bento"))
        await catalog.create_product(session, store.id, ProductCreate(name="Tea", price=30))

        result = await catalog.upsert_products(session, store.id, [
            ProductUpsert(name="Tea", price=35),
            ProductUpsert(name="Soup", price=40),
        ])

        assert result.processed == 2
        assert {p.name: p.price for p in await catalog.list_products(session, store.id)} == {
            "Tea": 35,
            "Soup": 40,
        }

    async def test_unknown_store(self, session):
        with pytest.raises(StoreNotFoundError):
            await catalog.upsert_products(session, 7, [ProductUpsert(name="Tea", price=30)])
