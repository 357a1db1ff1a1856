import pytest

from taxtracker.db import Collection
from taxtracker.errors import DuplicateCategory, NotFound
from taxtracker.models import DEFAULT_CATEGORIES
from taxtracker.services import CategoryRegistry

from .factories import make_draft


@pytest.fixture
def registry(store):
    return CategoryRegistry(store)


async def test_initialize_defaults_seeds_empty_registry(registry):
    seeded = await registry.initialize_defaults()

    assert [c.name for c in seeded] == [name for name, _, _ in DEFAULT_CATEGORIES]
    furniture = next(c for c in seeded if c.name == "Furniture")
    assert furniture.icon == "🪑"
    assert furniture.color == "#ff5630"


async def test_initialize_defaults_is_idempotent(registry):
    await registry.initialize_defaults()
    await registry.initialize_defaults()

    categories = await registry.list_categories()
    assert len(categories) == len(DEFAULT_CATEGORIES)


async def test_initialize_defaults_never_reseeds_custom_registry(registry):
    await registry.add_category("Consulting")

    categories = await registry.initialize_defaults()

    assert [c.name for c in categories] == ["Consulting"]


async def test_add_category_rejects_duplicates(registry):
    await registry.add_category("Travel", icon="✈️")

    with pytest.raises(DuplicateCategory) as excinfo:
        await registry.add_category("Travel")
    assert excinfo.value.name == "Travel"


async def test_add_category_strips_name(registry):
    category = await registry.add_category("  Books  ")

    assert category.name == "Books"
    assert await registry.get_by_name("Books") == category


async def test_add_category_rejects_empty_name(registry):
    with pytest.raises(ValueError):
        await registry.add_category("   ")


async def test_get_or_create_returns_existing(registry):
    created = await registry.get_or_create("Travel")
    again = await registry.get_or_create("Travel")

    assert again == created
    assert len(await registry.list_categories()) == 1


async def test_rename_category(registry):
    category = await registry.add_category("Internet")

    renamed = await registry.rename_category(category.id, "Broadband")

    assert renamed.id == category.id
    assert (await registry.get_category(category.id)).name == "Broadband"


async def test_rename_to_existing_name_is_rejected(registry):
    await registry.add_category("Internet")
    other = await registry.add_category("Travel")

    with pytest.raises(DuplicateCategory):
        await registry.rename_category(other.id, "Internet")


async def test_rename_missing_category_raises_not_found(registry):
    with pytest.raises(NotFound):
        await registry.rename_category(99, "Anything")


async def test_delete_category_leaves_expenses_untouched(app):
    category = await app.registry.get_by_name("Internet")
    expense = await app.ledger.create(make_draft(expense_category="Internet"))

    await app.registry.delete_category(category.id)

    assert await app.registry.get_by_name("Internet") is None
    assert (await app.ledger.get(expense.id)).expense_category == "Internet"
    assert await app.query.orphaned_categories() == {"Internet": 1}


async def test_delete_missing_category_raises_not_found(registry):
    with pytest.raises(NotFound):
        await registry.delete_category(123)


async def test_categories_collection_is_shared_with_store(registry, store):
    await registry.add_category("Travel")

    assert [c.name for c in await store.get_all(Collection.CATEGORIES)] == ["Travel"]
