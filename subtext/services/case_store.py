"""Case record store.

Business records live outside the pipeline; the orchestrator only needs to
read them, flip their status, and find a conversation's completed baseline.
``ArtifactCaseRecordStore`` keeps them in the artifact store without expiry.
"""

import asyncio
from typing import Optional, Protocol

import structlog

from subtext.models import AnalysisKind, CaseRecord, CaseStatus
from subtext.models.cases import utcnow
from subtext.services.storage import ArtifactStore

logger = structlog.get_logger(__name__)


class CaseNotFoundError(KeyError):
    """No case record exists for the given id."""

    retryable = False


class CaseRecordStore(Protocol):
    async def create(self, record: CaseRecord) -> CaseRecord: ...

    async def get(self, case_id: str) -> Optional[CaseRecord]: ...

    async def update_status(
        self,
        case_id: str,
        status: CaseStatus,
        error_message: Optional[str] = None,
    ) -> CaseRecord: ...

    async def find_completed(self, conversation_id: str, kind: AnalysisKind) -> Optional[CaseRecord]: ...


class ArtifactCaseRecordStore:
    def __init__(self, store: ArtifactStore):
        self.store = store
        self._index_lock = asyncio.Lock()

    @staticmethod
    def _record_key(case_id: str) -> str:
        return f"records/{case_id}"

    @staticmethod
    def _index_key(conversation_id: str) -> str:
        return f"conversations/{conversation_id}/cases"

    async def create(self, record: CaseRecord) -> CaseRecord:
        await self.store.put(self._record_key(record.case_id), record.model_dump(mode="json"))
        async with self._index_lock:
            case_ids = await self.store.get(self._index_key(record.conversation_id)) or []
            if record.case_id not in case_ids:
                case_ids.append(record.case_id)
                await self.store.put(self._index_key(record.conversation_id), case_ids)

        logger.info(
            "case_created",
            case_id=record.case_id,
            conversation_id=record.conversation_id,
            analysis_kind=record.analysis_kind.value,
        )
        return record

    async def get(self, case_id: str) -> Optional[CaseRecord]:
        data = await self.store.get(self._record_key(case_id))
        return CaseRecord.model_validate(data) if data is not None else None

    async def update_status(
        self,
        case_id: str,
        status: CaseStatus,
        error_message: Optional[str] = None,
    ) -> CaseRecord:
        record = await self.get(case_id)
        if record is None:
            raise CaseNotFoundError(case_id)

        update = {"status": status, "error_message": error_message}
        if status in (CaseStatus.COMPLETED, CaseStatus.FAILED):
            update["completed_at"] = utcnow()
        record = record.model_copy(update=update)

        await self.store.put(self._record_key(case_id), record.model_dump(mode="json"))
        logger.info("case_status_updated", case_id=case_id, status=status.value)
        return record

    async def find_completed(self, conversation_id: str, kind: AnalysisKind) -> Optional[CaseRecord]:
        """Most recently created completed case of a kind for a conversation."""
        case_ids = await self.store.get(self._index_key(conversation_id)) or []
        for case_id in reversed(case_ids):
            record = await self.get(case_id)
            if record and record.analysis_kind == kind and record.status == CaseStatus.COMPLETED:
                return record
        return None
