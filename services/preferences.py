from __future__ import annotations

from enum import Enum

from db.storage import KeyValueStorage, read_json, write_json

THEME_KEY = "storefront:theme:v1"
SALE_BANNER = "sale"
SALE_BANNER_VERSION = 6


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SEPIA = "sepia"


_THEME_CYCLE = {
    Theme.LIGHT: Theme.DARK,
    Theme.DARK: Theme.SEPIA,
    Theme.SEPIA: Theme.LIGHT,
}


def banner_key(name: str, version: int) -> str:
    # Bumping the version shows a dismissed banner again.
    return f"storefront:banner:{name}:v{version}"


async def get_theme(storage: KeyValueStorage) -> Theme:
    raw = await read_json(storage, THEME_KEY)
    try:
        return Theme(raw)
    except ValueError:
        return Theme.LIGHT


async def cycle_theme(storage: KeyValueStorage) -> Theme:
    theme = _THEME_CYCLE[await get_theme(storage)]
    await write_json(storage, THEME_KEY, theme.value)
    return theme


async def is_banner_dismissed(storage: KeyValueStorage, name: str = SALE_BANNER, version: int = SALE_BANNER_VERSION) -> bool:
    return await read_json(storage, banner_key(name, version)) is True


async def dismiss_banner(storage: KeyValueStorage, name: str = SALE_BANNER, version: int = SALE_BANNER_VERSION) -> bool:
    return await write_json(storage, banner_key(name, version), True)
