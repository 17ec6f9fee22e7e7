"""
Import provenance repository.
"""

import uuid
from typing import List, Optional

from chatledger.db.repositories.base import BaseRepository
from chatledger.models.db import ImportSource


class ImportSourceRepository(BaseRepository[ImportSource]):
    """Repository for ImportSource model."""

    def __init__(self, uow):
        super().__init__(ImportSource, uow)

    def latest_for_session(self, session_id: uuid.UUID) -> Optional[ImportSource]:
        return (
            self.session.query(ImportSource)
            .filter(ImportSource.session_id == session_id)
            .order_by(ImportSource.import_version.desc())
            .first()
        )

    def list_for_session(self, session_id: uuid.UUID) -> List[ImportSource]:
        return (
            self.session.query(ImportSource)
            .filter(ImportSource.session_id == session_id)
            .order_by(ImportSource.import_version)
            .all()
        )

    def record(
        self,
        session_id: uuid.UUID,
        source_type: str,
        checksum: Optional[str],
        source_path: Optional[str] = None,
        source_provider: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> ImportSource:
        """
        Record one (re-)import of a session.

        `import_version` is one more than the session's previous import.
        """
        previous = self.latest_for_session(session_id)
        return self.create(
            session_id=session_id,
            source_type=source_type,
            source_path=source_path,
            source_provider=source_provider,
            checksum=checksum,
            import_version=previous.import_version + 1 if previous else 1,
            extra_data=metadata or {},
        )
