"""Parse Open Library search responses into raw catalog records."""
from typing import Dict, Any, List, Optional
import logging

from bookfinder.models import CatalogItem

logger = logging.getLogger(__name__)


def _optional_int(value: Any) -> Optional[int]:
    # bool is an int subclass; the API never sends one for these fields
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def parse_catalog_item(doc: Any) -> Optional[CatalogItem]:
    """
    Parse a single record from the ``docs`` list of a search response.

    Every field is optional. Fields carrying an unexpected type are
    treated as absent rather than rejected.

    Args:
        doc: Single entry of the ``docs`` list

    Returns:
        CatalogItem, or None if the entry is not a JSON object
    """
    if not isinstance(doc, dict):
        logger.warning(f"Skipping non-object search record: {doc!r}")
        return None

    key = doc.get("key")
    title = doc.get("title")

    # author_name is a list of strings; anything else degrades to no authors
    authors = doc.get("author_name") or []
    if not isinstance(authors, list):
        authors = []

    return CatalogItem(
        key=key if isinstance(key, str) and key else None,
        title=title if isinstance(title, str) and title else None,
        author_name=tuple(a for a in authors if isinstance(a, str) and a),
        first_publish_year=_optional_int(doc.get("first_publish_year")),
        cover_i=_optional_int(doc.get("cover_i")),
    )


def parse_search_response(response_json: Any) -> List[CatalogItem]:
    """
    Parse a full search response.

    Args:
        response_json: Decoded response body

    Returns:
        List of CatalogItem objects in source order (empty if no docs)

    Raises:
        ValueError: If the body is not a search response
    """
    if not isinstance(response_json, dict):
        raise ValueError(f"Expected a JSON object, got {type(response_json).__name__}")

    docs = response_json.get("docs", [])
    if docs is None:
        docs = []
    if not isinstance(docs, list):
        raise ValueError(f"Expected 'docs' to be a list, got {type(docs).__name__}")

    items = []
    for doc in docs:
        item = parse_catalog_item(doc)
        if item:
            items.append(item)

    return items


def parse_num_found(response_json: Dict[str, Any]) -> Optional[int]:
    """Total match count reported by the server, if present."""
    return _optional_int(response_json.get("numFound"))
