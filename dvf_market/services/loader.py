"""
Progressive, cached loading of DVF vintages.

    IDLE → LOADING_PRIMARY → (enough rows ? DONE : LOADING_FALLBACK) → DONE | FAILED

Only a bounded prefix of each vintage is parsed. The primary vintage wins when
it yields at least `min_transactions` admissible rows; otherwise the fallback
vintage replaces it if it yields anything. A successful result is kept in the
injected TTLStore until it expires or `clear_cache()` is called.
"""

import asyncio
import io
import logging
from dataclasses import dataclass, field
from enum import Enum
from itertools import islice
from typing import Callable, List, Optional

from ..core.cache import MISSING, TTLStore
from ..core.config import settings
from ..core.metrics import CACHED_TRANSACTIONS, ROWS_INGESTED, VINTAGE_LOADS
from ..data.base import SourceError, Transaction, TransactionSource
from ..data.dvf_parser import NATIONAL_LAYOUT, ColumnMapping, IngestionStats, Ok, iter_parsed

logger = logging.getLogger(__name__)

class DataUnavailableError(RuntimeError):
    """No vintage produced any usable transaction."""

class LoaderState(str, Enum):
    IDLE = "idle"
    LOADING_PRIMARY = "loading_primary"
    LOADING_FALLBACK = "loading_fallback"
    DONE = "done"
    FAILED = "failed"

class ProgressStage(str, Enum):
    LOADING = "loading"
    PARSING = "parsing"
    FILTERING = "filtering"
    COMPLETE = "complete"
    ERROR = "error"

@dataclass(frozen=True)
class LoadingProgress:
    stage: ProgressStage
    progress: int                       # 0..100, never decreases within one load
    message: str
    rows_processed: Optional[int] = None
    transactions_loaded: Optional[int] = None

ProgressCallback = Callable[[LoadingProgress], None]

@dataclass(frozen=True)
class DataVintage:
    label: str                          # e.g. "2025"
    location: str                       # path or URL fragment understood by the source

@dataclass
class LoadResult:
    transactions: List[Transaction]
    vintage: str
    stats: IngestionStats = field(default_factory=IngestionStats)

class _Progress:
    """Forwards notifications to the callback, keeping the percentage monotonic."""
    def __init__(self, callback: Optional[ProgressCallback]):
        self.callback = callback
        self.last = 0

    def __call__(self, stage: ProgressStage, progress: int, message: str,
                 rows: Optional[int] = None, accepted: Optional[int] = None) -> None:
        self.last = max(self.last, progress)
        if self.callback is not None:
            self.callback(LoadingProgress(stage, self.last, message, rows, accepted))

class TransactionLoader:
    CACHE_KEY = "transactions"

    def __init__(
        self,
        source: TransactionSource,
        cache: TTLStore,
        primary: DataVintage,
        fallback: Optional[DataVintage] = None,
        row_limit: int = 1000,
        min_transactions: int = 10,
        chunk_size: int = 500,
        delimiter: str = ";",
        mapping: Optional[ColumnMapping] = None,
    ):
        self.source = source
        self.cache = cache
        self.primary = primary
        self.fallback = fallback
        self.row_limit = row_limit
        self.min_transactions = min_transactions
        self.chunk_size = max(1, chunk_size)
        self.delimiter = delimiter
        self.mapping = mapping
        self.state = LoaderState.IDLE
        self.last_stats: Optional[IngestionStats] = None
        self._active_vintage = primary.label
        self._lock = asyncio.Lock()

    async def load_transactions(self, on_progress: Optional[ProgressCallback] = None) -> List[Transaction]:
        cached = self.cache.get(self.CACHE_KEY)
        if cached is not MISSING:
            logger.info("using cached DVF data (%s, %d transactions)", cached.vintage, len(cached.transactions))
            return list(cached.transactions)

        async with self._lock:
            # Another caller may have filled the cache while we waited.
            cached = self.cache.get(self.CACHE_KEY)
            if cached is not MISSING:
                return list(cached.transactions)
            result = await self._load(_Progress(on_progress))
            self.cache.set(self.CACHE_KEY, result)
            CACHED_TRANSACTIONS.set(len(result.transactions))
            self._active_vintage = result.vintage
            self.last_stats = result.stats
            return list(result.transactions)

    def get_active_data_vintage(self) -> str:
        return self._active_vintage

    def clear_cache(self) -> None:
        self.cache.pop(self.CACHE_KEY)
        CACHED_TRANSACTIONS.set(0)
        self._active_vintage = self.primary.label
        self.state = LoaderState.IDLE

    @property
    def cached_count(self) -> int:
        cached = self.cache.get(self.CACHE_KEY)
        return 0 if cached is MISSING else len(cached.transactions)

    async def _load(self, progress: _Progress) -> LoadResult:
        self.state = LoaderState.LOADING_PRIMARY
        progress(ProgressStage.LOADING, 0, f"loading {self.primary.label} data")

        primary: Optional[LoadResult] = None
        try:
            primary = await self._load_vintage(self.primary, progress)
        except SourceError as exc:
            logger.warning("primary vintage %s unavailable: %s", self.primary.label, exc)
            VINTAGE_LOADS.labels(vintage=self.primary.label, outcome="failed").inc()

        if primary is not None and len(primary.transactions) >= self.min_transactions:
            logger.info("primary vintage %s sufficient (%d transactions)",
                        self.primary.label, len(primary.transactions))
            return self._done(primary, progress)

        if self.fallback is not None:
            logger.info("insufficient data in %s, trying fallback %s",
                        self.primary.label, self.fallback.label)
            self.state = LoaderState.LOADING_FALLBACK
            progress(ProgressStage.LOADING, 0, f"{self.primary.label} data insufficient, loading {self.fallback.label} data")
            try:
                fallback = await self._load_vintage(self.fallback, progress)
            except SourceError as exc:
                logger.error("fallback vintage %s unavailable: %s", self.fallback.label, exc)
                VINTAGE_LOADS.labels(vintage=self.fallback.label, outcome="failed").inc()
            else:
                if fallback.transactions:
                    return self._done(fallback, progress)

        if primary is not None and primary.transactions:
            return self._done(primary, progress)

        self.state = LoaderState.FAILED
        progress(ProgressStage.ERROR, 0, "unable to load DVF data")
        raise DataUnavailableError("no DVF vintage produced any transaction")

    def _done(self, result: LoadResult, progress: _Progress) -> LoadResult:
        self.state = LoaderState.DONE
        progress(ProgressStage.COMPLETE, 100,
                 f"loaded {len(result.transactions)} valid transactions ({result.vintage})",
                 result.stats.rows_processed, result.stats.accepted)
        return result

    async def _load_vintage(self, vintage: DataVintage, progress: _Progress) -> LoadResult:
        logger.info("loading DVF %s from %s (first %d rows)", vintage.label, vintage.location, self.row_limit)
        text = await self.source.fetch(vintage.location)
        progress(ProgressStage.PARSING, 20, f"parsing {vintage.label} data")

        stats = IngestionStats()
        transactions: List[Transaction] = []
        rows = islice(iter_parsed(io.StringIO(text), self.delimiter, self.mapping), self.row_limit)
        for result in rows:
            stats.record(result)
            if isinstance(result, Ok):
                transactions.append(result.value)
            if stats.rows_processed % self.chunk_size == 0:
                progress(ProgressStage.PARSING, 20 + 60 * stats.rows_processed // max(1, self.row_limit),
                         f"parsing {vintage.label} data", stats.rows_processed, stats.accepted)
                await asyncio.sleep(0)

        ROWS_INGESTED.labels(vintage=vintage.label, outcome="accepted").inc(stats.accepted)
        for reason, count in stats.reasons.items():
            ROWS_INGESTED.labels(vintage=vintage.label, outcome=reason).inc(count)
        VINTAGE_LOADS.labels(vintage=vintage.label,
                             outcome="ok" if transactions else "empty").inc()
        logger.info("DVF %s: %d rows processed, %d valid, rejected by reason %s",
                    vintage.label, stats.rows_processed, stats.accepted, dict(stats.reasons))

        progress(ProgressStage.FILTERING, 80, f"{stats.accepted} valid transactions found",
                 stats.rows_processed, stats.accepted)
        # Most recent sales first
        transactions.sort(key=lambda t: t.sale_date, reverse=True)
        return LoadResult(transactions=transactions, vintage=vintage.label, stats=stats)

def build_loader(source: TransactionSource, cache: Optional[TTLStore] = None) -> TransactionLoader:
    """Loader wired from settings. The national pipe layout has no usable header names."""
    mapping = NATIONAL_LAYOUT if settings.DVF_DELIMITER == "|" else None
    return TransactionLoader(
        source=source,
        cache=cache or TTLStore(ttl_seconds=settings.DVF_CACHE_TTL_SECONDS, maxsize=1),
        primary=DataVintage(settings.DVF_PRIMARY_VINTAGE, settings.DVF_PRIMARY_PATH),
        fallback=DataVintage(settings.DVF_FALLBACK_VINTAGE, settings.DVF_FALLBACK_PATH),
        row_limit=settings.DVF_ROW_LIMIT,
        min_transactions=settings.DVF_MIN_TRANSACTIONS,
        chunk_size=settings.DVF_CHUNK_SIZE,
        delimiter=settings.DVF_DELIMITER,
        mapping=mapping,
    )
