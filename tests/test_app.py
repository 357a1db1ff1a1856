from taxtracker.app import create_app
from taxtracker.db import SCHEMA_VERSION
from taxtracker.models import DEFAULT_CATEGORIES

from .factories import make_draft


async def test_create_app_opens_store_and_seeds_defaults(app):
    assert app.store.is_open
    assert await app.store.schema_version() == SCHEMA_VERSION
    assert len(await app.registry.list_categories()) == len(DEFAULT_CATEGORIES)


async def test_services_share_one_store(app):
    assert app.ledger.store is app.store
    assert app.registry.store is app.store
    assert app.snapshot.store is app.store
    assert app.reports.store is app.store
    assert app.query.ledger is app.ledger


async def test_reopening_keeps_data(db_path):
    first = await create_app(db_path)
    expense = await first.ledger.create(make_draft())

    second = await create_app(db_path)

    assert await second.ledger.get(expense.id) == expense
    assert len(await second.registry.list_categories()) == len(DEFAULT_CATEGORIES)


async def test_reset_clears_everything_and_reseeds(app):
    await app.ledger.create(make_draft())
    await app.registry.add_category("Consulting")
    await app.settings.set("theme", "dark")

    await app.reset()

    assert await app.ledger.list_expenses() == []
    assert await app.settings.get_all() == {}
    names = [c.name for c in await app.registry.list_categories()]
    assert names == [name for name, _, _ in DEFAULT_CATEGORIES]


async def test_settings_default(app):
    assert await app.settings.get("missing", "fallback") == "fallback"

    await app.settings.set("count", 3)

    assert await app.settings.get("count") == 3
