"""Two-phase analysis pipeline.

Each analysis request runs its own state machine:

    pending -> local_ready -> augmented | fallback

The rule engine runs synchronously and its Diagnosis is published as
local_ready before the augmentation call is issued, so callers always have
a usable result promptly. The pipeline then makes exactly one augmentation
attempt. Any failure, including a malformed payload or an abandoned
request, settles on fallback with canned guidance and diet content. Both
terminal states carry a populated guidance and diet plan, and both archive
the finalized record.
"""

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from hemoscan.schemas.cbc import CBCSample, validate_cbc_payload
from hemoscan.schemas.diagnosis import Augmentation, AugmentedResult, Diagnosis
from hemoscan.schemas.report import AnalysisOutcome, PipelineSnapshot, PipelineState, ReportRecord
from hemoscan.services.archive import ReportArchive
from hemoscan.services.augmentation import (
    AugmentationPort,
    AugmentationUnavailableError,
    coerce_augmentation,
    fallback_augmentation,
)
from hemoscan.services.rule_engine import classify

logger = logging.getLogger(__name__)

Observer = Callable[[PipelineSnapshot], Awaitable[Any] | Any]


async def _publish(snapshot: PipelineSnapshot, observers: Iterable[Observer]) -> None:
    """Deliver a snapshot to each observer; observer failures are logged only."""
    for observer in observers:
        try:
            result = observer(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(
                "Observer failed on %s for request %s", snapshot.state.value, snapshot.request_id
            )


class AnalysisHandle:
    """An in-flight analysis whose local result is already available.

    local holds the local_ready snapshot. outcome() waits for the terminal
    state; abandoning that wait does not stop the pipeline. cancel()
    abandons the augmentation attempt, which settles the request on
    fallback.
    """

    def __init__(self, request_id: uuid.UUID, local: PipelineSnapshot):
        self.request_id = request_id
        self.local = local
        self._task: asyncio.Task[AnalysisOutcome] | None = None
        self._augmentation_task: asyncio.Task[Any] | None = None
        self._abandoned = False

    @property
    def result(self) -> AugmentedResult:
        return self.local.result

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> None:
        """Abandon augmentation; the pipeline still settles and archives."""
        self._abandoned = True
        if self._augmentation_task is not None and not self._augmentation_task.done():
            self._augmentation_task.cancel()

    async def outcome(self) -> AnalysisOutcome:
        if self._task is None:
            raise RuntimeError("analysis has not been started")
        return await asyncio.shield(self._task)


class AnalysisPipeline:
    """Orchestrates local classification, augmentation, merge and archiving.

    Example:
        pipeline = AnalysisPipeline(augmenter=OpenAIAugmentationClient(),
                                    archive=InMemoryReportArchive())
        handle = await pipeline.start(sample, observers=[print])
        render(handle.result)               # local_ready, immediately
        outcome = await handle.outcome()    # augmented or fallback
    """

    def __init__(self, augmenter: AugmentationPort, archive: ReportArchive):
        self._augmenter = augmenter
        self._archive = archive

    @property
    def archive(self) -> ReportArchive:
        return self._archive

    async def start(
        self,
        sample: CBCSample | dict[str, Any],
        observers: Iterable[Observer] = (),
        request_id: uuid.UUID | None = None,
    ) -> AnalysisHandle:
        """Classify a sample, publish local_ready, and begin augmentation.

        Args:
            sample: A CBCSample, or a raw mapping validated before any
                state transition.
            observers: Callables (sync or async) receiving each snapshot.
            request_id: Optional caller-supplied request id.

        Returns:
            AnalysisHandle with the local result available.

        Raises:
            CBCValidationError: If a raw mapping fails validation.
        """
        if not isinstance(sample, CBCSample):
            sample = validate_cbc_payload(sample)

        observers = tuple(observers)
        request_id = request_id or uuid.uuid4()

        diagnosis = classify(sample)
        local = PipelineSnapshot(
            request_id=request_id,
            state=PipelineState.LOCAL_READY,
            result=diagnosis.pending(),
        )
        logger.info(
            "Analysis %s local_ready: severity=%s, risk=%s, morphology=%s",
            request_id,
            diagnosis.severity.value,
            diagnosis.risk_level.value,
            diagnosis.morphology_type,
        )
        await _publish(local, observers)

        handle = AnalysisHandle(request_id, local)
        handle._task = asyncio.create_task(
            self._settle(handle, sample, diagnosis, observers),
            name=f"analysis-{request_id}",
        )
        return handle

    async def run(
        self,
        sample: CBCSample | dict[str, Any],
        observers: Iterable[Observer] = (),
        request_id: uuid.UUID | None = None,
    ) -> AnalysisOutcome:
        """Run an analysis to its terminal state."""
        handle = await self.start(sample, observers, request_id)
        return await handle.outcome()

    async def _augment(
        self, handle: AnalysisHandle, sample: CBCSample, diagnosis: Diagnosis
    ) -> tuple[PipelineState, Augmentation]:
        """Make the single augmentation attempt, falling back on any failure."""
        if handle._abandoned:
            logger.info("Analysis %s abandoned before augmentation; using fallback", handle.request_id)
            return PipelineState.FALLBACK, fallback_augmentation(diagnosis.severity)

        try:
            handle._augmentation_task = asyncio.create_task(self._augmenter.augment(sample, diagnosis))
            raw = await handle._augmentation_task
            return PipelineState.AUGMENTED, coerce_augmentation(raw)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.info("Analysis %s augmentation abandoned; using fallback", handle.request_id)
        except AugmentationUnavailableError as e:
            logger.warning("Analysis %s augmentation unavailable: %s", handle.request_id, e)
        except Exception:
            logger.warning(
                "Analysis %s augmentation raised unexpectedly; using fallback",
                handle.request_id,
                exc_info=True,
            )
        return PipelineState.FALLBACK, fallback_augmentation(diagnosis.severity)

    async def _settle(
        self,
        handle: AnalysisHandle,
        sample: CBCSample,
        diagnosis: Diagnosis,
        observers: tuple[Observer, ...],
    ) -> AnalysisOutcome:
        state, augmentation = await self._augment(handle, sample, diagnosis)
        result = diagnosis.with_augmentation(augmentation)

        snapshot = PipelineSnapshot(request_id=handle.request_id, state=state, result=result)
        logger.info("Analysis %s %s", handle.request_id, state.value)
        await _publish(snapshot, observers)

        warnings: list[str] = []
        record: ReportRecord | None = None
        try:
            record = await self._archive.append(sample, result)
        except Exception as e:
            logger.exception("Analysis %s could not be archived", handle.request_id)
            warnings.append(f"Report could not be saved to history: {e}")

        return AnalysisOutcome(
            request_id=handle.request_id,
            state=state,
            result=result,
            record=record,
            warnings=warnings,
        )
