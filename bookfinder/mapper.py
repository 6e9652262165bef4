"""Map raw catalog records to display-ready results."""
from typing import Optional

from bookfinder.config import Config
from bookfinder.models import CatalogItem, ResultItem

UNTITLED = "Untitled"
UNKNOWN_AUTHOR = "Unknown Author"


def cover_url(
    cover_id: Optional[int],
    size: str = Config.COVER_SIZE,
    base_url: str = Config.COVERS_BASE_URL
) -> Optional[str]:
    """Build a cover image URL, or None when the record has no cover."""
    if cover_id is None:
        return None
    return f"{base_url.rstrip('/')}/{cover_id}-{size}.jpg"


def work_url(key: Optional[str], base_url: str = Config.OPENLIBRARY_BASE_URL) -> Optional[str]:
    """Link to the catalog page for a work key such as ``/works/OL45804W``."""
    if not key:
        return None
    if not key.startswith("/"):
        key = f"/{key}"
    return f"{base_url.rstrip('/')}{key}"


def map_item(raw: CatalogItem) -> ResultItem:
    """
    Convert a raw catalog record into a result item.

    Never fails: a missing title or author list falls back to a
    placeholder, a missing year or cover stays absent.

    Args:
        raw: Record parsed from the search response

    Returns:
        Immutable ResultItem
    """
    return ResultItem(
        key=raw.key,
        title=raw.title or UNTITLED,
        authors=", ".join(raw.author_name) if raw.author_name else UNKNOWN_AUTHOR,
        year=raw.first_publish_year,
        cover_url=cover_url(raw.cover_i),
        work_url=work_url(raw.key),
    )
