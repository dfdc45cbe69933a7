"""
Pagination Fetcher - read every row from the getVehicles action

Apps Script deployments paginate inconsistently: older ones omit ``meta``,
some report a stale offset, some return short pages mid-sheet. The loop
therefore checks several independent stop conditions, in this order:

(a) no meta                      -> this page is the whole dataset
(b) effective offset unchanged   -> upstream is stuck
(c) zero rows returned
(d) accumulated rows >= total
(e) next offset >= total

A hard page ceiling bounds the loop; hitting it returns what was read.
Pages are fetched strictly one after another since each offset depends on
the previous page's meta.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from services.apps_script import AppsScriptClient
from services.row_normalizer import row_has_identity

logger = logging.getLogger(__name__)

PAGE_LIMIT = 500
MAX_PAGES = 50  # 25k row safety cap


@dataclass
class FetchStats:
    """Bookkeeping from one fetch_all_rows run."""
    pages: int = 0
    raw_rows: int = 0
    valid_rows: int = 0
    stop_reason: str = ""
    total_reported: Optional[int] = None


@dataclass
class FetchResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    stats: FetchStats = field(default_factory=FetchStats)


async def fetch_all_pages(
    client: AppsScriptClient,
    limit: int = PAGE_LIMIT,
    max_pages: int = MAX_PAGES,
) -> FetchResult:
    """Run the pagination loop and return rows plus loop statistics.

    Raises ``UpstreamError`` for transport failures or ``ok: false``;
    malformed data never raises.
    """
    result = FetchResult()
    stats = result.stats

    offset = 0
    total: Optional[int] = None
    last_meta_offset: Optional[int] = None

    for _ in range(max_pages):
        page = await client.get_vehicles_page(offset=offset, limit=limit)
        stats.pages += 1
        stats.raw_rows += len(page.rows)

        valid_rows = [row for row in page.rows if row_has_identity(row)]
        stats.valid_rows += len(valid_rows)
        result.rows.extend(valid_rows)

        meta = page.meta
        if meta is None:
            stats.stop_reason = "no_meta"
            break

        if total is None and meta.total is not None and meta.total >= 0:
            total = meta.total
            stats.total_reported = total

        effective_limit = meta.limit if meta.limit is not None and meta.limit > 0 else limit
        effective_offset = meta.offset if meta.offset is not None and meta.offset >= 0 else offset

        if last_meta_offset is not None and effective_offset == last_meta_offset:
            stats.stop_reason = "offset_stuck"
            break
        last_meta_offset = effective_offset

        if not page.rows:
            stats.stop_reason = "empty_page"
            break

        # A short page with nothing usable means the sheet tail is blank rows
        if len(page.rows) < effective_limit and not valid_rows:
            stats.stop_reason = "blank_tail"
            break

        if total is not None and len(result.rows) >= total:
            stats.stop_reason = "reached_total"
            break

        offset = effective_offset + effective_limit
        if total is not None and offset >= total:
            stats.stop_reason = "offset_past_total"
            break
    else:
        stats.stop_reason = "page_cap"
        logger.warning(f"Stopped after {max_pages} pages; returning {len(result.rows)} rows")

    logger.debug(
        f"Fetch complete: pages={stats.pages} raw={stats.raw_rows} "
        f"valid={stats.valid_rows} stop={stats.stop_reason}"
    )
    return result


async def fetch_all_rows(client: AppsScriptClient) -> List[Dict[str, Any]]:
    """Fetch every valid raw row from the upstream sheet."""
    result = await fetch_all_pages(client)
    logger.info(
        f"Fetched {len(result.rows)} rows in {result.stats.pages} page(s) "
        f"({result.stats.stop_reason})"
    )
    return result.rows
