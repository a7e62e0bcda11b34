"""Offset pagination over ordered records and LazyFrames.

A page size of ``0`` is a sentinel for "everything on one page": the page
number is pinned to 1 and ``total_count`` equals the number of items.
"""

import logging
import time
from collections.abc import Sequence
from typing import Any

import polars as pl

from gridfill.models import ResultPage

logger = logging.getLogger(__name__)


def _check(page_size: int, current_page: int) -> None:
    if page_size < 0:
        raise ValueError(f"page_size must be >= 0, got {page_size}")
    if current_page < 1:
        raise ValueError(f"current_page must be >= 1, got {current_page}")


def paginate(records: Sequence[Any], page_size: int, current_page: int = 1) -> ResultPage:
    """Slice already-ordered *records* into the requested page.

    ``total_count`` is the size of *records*, counted before slicing.  A
    page past the end yields no items.
    """
    _check(page_size, current_page)
    if page_size == 0:
        items = list(records)
        return ResultPage(items=items, total_count=len(items), current_page=1, page_size=0)

    offset = (current_page - 1) * page_size
    return ResultPage(
        items=list(records[offset:offset + page_size]),
        total_count=len(records),
        current_page=current_page,
        page_size=page_size,
    )


def count_frame(lf: pl.LazyFrame) -> int:
    """Count rows with a single ``select(pl.len())`` query.

    Polars pushes the count into the scan for formats that support it
    (Parquet, IPC); others still scan, but nothing is materialised.
    """
    t0 = time.perf_counter()
    total = lf.select(pl.len()).collect().item()
    logger.debug("row count: %s (%.1fms)", f"{total:,}", (time.perf_counter() - t0) * 1000)
    return total


def paginate_frame(lf: pl.LazyFrame, page_size: int, current_page: int = 1) -> ResultPage:
    """Count the matches, then collect only the requested page slice."""
    _check(page_size, current_page)
    if page_size == 0:
        t0 = time.perf_counter()
        items = lf.collect().to_dicts()
        logger.debug("collected all %d rows (%.1fms)", len(items), (time.perf_counter() - t0) * 1000)
        return ResultPage(items=items, total_count=len(items), current_page=1, page_size=0)

    total = count_frame(lf)
    offset = (current_page - 1) * page_size
    t0 = time.perf_counter()
    items = lf.slice(offset, page_size).collect().to_dicts()
    logger.debug(
        "page slice: offset=%d, rows=%d, elapsed=%.1fms",
        offset, len(items), (time.perf_counter() - t0) * 1000,
    )
    return ResultPage(items=items, total_count=total, current_page=current_page, page_size=page_size)
