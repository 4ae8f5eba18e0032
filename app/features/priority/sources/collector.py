"""
Source collector - one aggregation cycle's fan-out/fan-in.

All adapters are queried concurrently, each under its own timeout, so a
cycle takes as long as the slowest source rather than the sum. Failures and
timeouts become failed SourceBatches; they never escape the collector.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable

from app.config import settings
from app.features.priority.domain.errors import SourceUnavailable
from app.features.priority.domain.models import SourceBatch
from app.features.priority.pipeline.normalization.service import Normalizer
from app.features.priority.sources.base import SourceAdapter, SourceAdapterError
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class SourceCollector:
    def __init__(
        self,
        adapters: Iterable[SourceAdapter],
        normalizer: Normalizer | None = None,
        timeout_seconds: float | None = None,
    ):
        self.adapters = list(adapters)
        self.normalizer = normalizer or Normalizer()
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.SOURCE_TIMEOUT_SECONDS
        )

    async def collect(self, focus_user: str) -> list[SourceBatch]:
        """Fetch and normalize every source for one cycle."""
        start_time = time.time()
        batches = await asyncio.gather(
            *(self._collect_one(adapter, focus_user) for adapter in self.adapters)
        )
        logger.info(
            "Source collection completed",
            focus_user=focus_user,
            duration_ms=round((time.time() - start_time) * 1000, 2),
            ok_sources=[batch.source.value for batch in batches if batch.ok],
            failed_sources=[batch.source.value for batch in batches if not batch.ok],
        )
        return list(batches)

    async def _collect_one(self, adapter: SourceAdapter, focus_user: str) -> SourceBatch:
        source = adapter.source
        try:
            raw = await asyncio.wait_for(adapter.fetch(focus_user), timeout=self.timeout_seconds)
        except TimeoutError:
            failure = SourceUnavailable(source.label, f"timed out after {self.timeout_seconds:g}s")
        except SourceAdapterError as e:
            failure = SourceUnavailable(source.label, str(e))
        except Exception as e:
            failure = SourceUnavailable(source.label, f"unexpected error: {type(e).__name__}: {e}")
        else:
            normalized = self.normalizer.normalize(source, raw.records)
            return SourceBatch(
                source=source,
                ok=True,
                items=normalized.items,
                dropped=normalized.dropped,
                fetched_at=raw.fetched_at,
            )

        logger.warning(
            "Source unavailable for this cycle",
            source=source.value,
            focus_user=focus_user,
            error=failure.reason,
        )
        return SourceBatch.failed(source, failure.message)
