"""
Listing query engine.

Turns the loose query-string parameters of the listing endpoints into a
SQL filter and a deterministic sort order, and holds the rules listing
mutations share: seller-only access and image-set reconciliation.
"""
import asyncio
import math
import weakref
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .errors import ForbiddenError

SORT_OPTIONS = {
    "priceAsc": "ORDER BY l.price ASC, l.created_at DESC, l.rowid DESC",
    "priceDesc": "ORDER BY l.price DESC, l.created_at DESC, l.rowid DESC",
    "newest": "ORDER BY l.created_at DESC, l.rowid DESC",
}
DEFAULT_SORT = "newest"


def _text(raw: Any) -> str:
    if raw is None:
        return ""
    return str(raw).strip()


def parse_price_bound(raw: Any) -> Optional[float]:
    """Parse a price bound; anything that is not a finite number counts as absent."""
    text = _text(raw)
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_limit(raw: Any) -> Optional[int]:
    """Parse a result cap; only positive integers are honoured."""
    text = _text(raw)
    if not text:
        return None
    try:
        value = int(text)
    except ValueError:
        return None
    return value if value > 0 else None


@dataclass
class ListingQuery:
    """Validated listing search."""
    search: Optional[str] = None
    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    sort_by: str = DEFAULT_SORT
    limit: Optional[int] = None
    seller_id: Optional[str] = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any], seller_id: Optional[str] = None) -> "ListingQuery":
        sort_by = _text(params.get("sortBy"))
        return cls(
            search=params.get("search") or None,
            category=params.get("category") or None,
            min_price=parse_price_bound(params.get("minPrice")),
            max_price=parse_price_bound(params.get("maxPrice")),
            sort_by=sort_by if sort_by in SORT_OPTIONS else DEFAULT_SORT,
            limit=parse_limit(params.get("limit")),
            seller_id=seller_id,
        )


def build_where_clause(query: ListingQuery) -> Tuple[str, List[Any]]:
    """Build WHERE clause and parameters from a listing query.

    Relies on the ``fold`` SQL function registered by the store connection
    for case-insensitive matching.
    """
    where_conditions = []
    parameters: List[Any] = []

    # Text search
    if query.search:
        where_conditions.append(
            "(instr(fold(l.title), ?) > 0"
            " OR instr(fold(l.description), ?) > 0"
            " OR instr(fold(l.location), ?) > 0)"
        )
        term = query.search.casefold()
        parameters.extend([term, term, term])

    # Category filter
    if query.category:
        where_conditions.append("l.category = ?")
        parameters.append(query.category)

    # Price range
    if query.min_price is not None:
        where_conditions.append("l.price >= ?")
        parameters.append(query.min_price)

    if query.max_price is not None:
        where_conditions.append("l.price <= ?")
        parameters.append(query.max_price)

    # Ownership scope
    if query.seller_id is not None:
        where_conditions.append("l.seller_id = ?")
        parameters.append(query.seller_id)

    where_clause = " WHERE " + " AND ".join(where_conditions) if where_conditions else ""
    return where_clause, parameters


def get_order_clause(sort_by: Optional[str]) -> str:
    """Generate ORDER BY clause; unknown values fall back to newest first."""
    return SORT_OPTIONS.get(sort_by or DEFAULT_SORT, SORT_OPTIONS[DEFAULT_SORT])


def ensure_owner(owner_id: Any, user_id: Any, detail: str) -> None:
    """Raise 403 unless the caller owns the resource."""
    if str(owner_id) != str(user_id):
        raise ForbiddenError(detail)


def normalize_image_ref(ref: str) -> str:
    """Reduce a stored path or an absolute image URL to ``uploads/<file>`` form."""
    ref = ref.strip().replace("\\", "/")
    if "://" in ref:
        ref = urlparse(ref).path
    return ref.lstrip("/")


def reconcile_images(
    stored: Sequence[str], retained: Sequence[str], uploaded: Sequence[str]
) -> Tuple[List[str], List[str]]:
    """Work out the new image list of a listing.

    Returns ``(images, removed)``: the retained stored paths in caller order
    followed by the new uploads, and the stored paths that were dropped.
    References to paths the listing does not own are ignored.
    """
    by_ref = {normalize_image_ref(path): path for path in stored}
    kept: List[str] = []
    for ref in retained:
        path = by_ref.get(normalize_image_ref(ref))
        if path is not None and path not in kept:
            kept.append(path)
    removed = [path for path in stored if path not in kept]
    return kept + list(uploaded), removed


class KeyedLocks:
    """One asyncio.Lock per key; a lock lives as long as someone holds it."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock
