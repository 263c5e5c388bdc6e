import pytest

from conftest import make_product
from db.storage import MemoryStorage
from services import preferences
from services.client_lists import MAX_RECENTLY_VIEWED, RecentlyViewed, SavedItems
from services.media_links import format_drive_link, google_drive_file_id

DRIVE_URL = "https://drive.google.com/file/d/1AbC_dEf-9/view?usp=sharing"


@pytest.mark.asyncio
async def test_saved_items_persist():
    storage = MemoryStorage()
    saved = SavedItems()
    assert saved.save_item("p1")
    assert not saved.save_item("p1")
    assert saved.save_item("p2")
    assert saved.unsave_item("p1")
    assert not saved.unsave_item("p1")
    await saved.save(storage)

    restored = await SavedItems.load(storage)
    assert restored.ids == ["p2"]
    assert restored.is_saved("p2")


def test_recently_viewed_moves_to_front_and_caps():
    recent = RecentlyViewed()
    for i in range(10):
        recent.add(f"p{i}")
    recent.add("p5")
    assert len(recent.ids) == MAX_RECENTLY_VIEWED
    assert recent.ids[:3] == ["p5", "p9", "p8"]


def test_resolve_skips_missing_products():
    recent = RecentlyViewed(["p2", "gone", "p1"])
    products = [make_product("p1"), make_product("p2")]
    assert [p.id for p in recent.resolve(products)] == ["p2", "p1"]


@pytest.mark.asyncio
async def test_theme_cycle():
    storage = MemoryStorage()
    assert await preferences.get_theme(storage) == preferences.Theme.LIGHT
    assert await preferences.cycle_theme(storage) == preferences.Theme.DARK
    assert await preferences.cycle_theme(storage) == preferences.Theme.SEPIA
    assert await preferences.cycle_theme(storage) == preferences.Theme.LIGHT


@pytest.mark.asyncio
async def test_banner_dismissal_is_versioned():
    storage = MemoryStorage()
    assert not await preferences.is_banner_dismissed(storage)
    await preferences.dismiss_banner(storage)
    assert await preferences.is_banner_dismissed(storage)
    assert not await preferences.is_banner_dismissed(storage, version=preferences.SALE_BANNER_VERSION + 1)


def test_drive_links():
    assert google_drive_file_id(DRIVE_URL) == "1AbC_dEf-9"
    assert format_drive_link(DRIVE_URL) == "https://lh3.googleusercontent.com/d/1AbC_dEf-9"
    assert format_drive_link(DRIVE_URL, width=600) == "https://lh3.googleusercontent.com/d/1AbC_dEf-9=w600"
    assert format_drive_link(DRIVE_URL, "video") == "https://drive.google.com/file/d/1AbC_dEf-9/preview"
    assert format_drive_link("https://cdn.example.com/a.jpg") == "https://cdn.example.com/a.jpg"
