"""Per-item fetch, convert and upsert with failure containment."""

import structlog

from docexport.processor.errors import ItemProcessingError
from docexport.processor.protocols import ConversionEngine, SourceClient
from docexport.store.models import ProcessingResult, WorkItem
from docexport.store.progress import ProgressStore


logger = structlog.get_logger()


class ItemProcessor:
    """Exports one item at a time.

    Never raises: any failure becomes a Fail result. On success the item's
    export state is written immediately, before the caller sees the result.
    """

    def __init__(
        self,
        source: SourceClient,
        engine: ConversionEngine,
        progress: ProgressStore,
        run_id: str | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            source: Client fetching item content.
            engine: Engine converting and upserting documents.
            progress: Progress store holding item state.
            run_id: Optional run ID for logging context.
        """
        self._source = source
        self._engine = engine
        self._progress = progress
        self._log = logger.bind(component="processor")
        if run_id:
            self._log = self._log.bind(run_id=run_id)

    def process_one(self, item: WorkItem) -> ProcessingResult:
        """Export a single item.

        Args:
            item: The item to export.

        Returns:
            Success with the artifact reference, or Fail with the reason.
        """
        log = self._log.bind(item_id=item.id, title=item.title)
        existing_ref: str | None = None

        try:
            stored = self._progress.get_item_state(item.id)
            existing_ref = stored.artifact_ref if stored else None
            content = self._source.fetch_content(item.id)
            outcome = self._engine.upsert(content, item.title, existing_ref)
            if not outcome.success:
                raise ItemProcessingError(item.id, "upsert", outcome.message)
            self._progress.record_item_success(item, outcome.artifact_ref)

        except ItemProcessingError as e:
            log.warning("item_failed", stage=e.stage, error=str(e))
            return ProcessingResult.failure(item, str(e))

        except Exception as e:  # noqa: BLE001
            log.warning("item_failed", error_type=type(e).__name__, error=str(e))
            return ProcessingResult.failure(item, f"{type(e).__name__}: {e}")

        log.info(
            "item_exported",
            artifact_ref=outcome.artifact_ref,
            updated=existing_ref is not None,
        )
        return ProcessingResult.success(
            item, outcome.message or "Exported", outcome.artifact_ref
        )
