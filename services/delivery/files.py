"""
Session attachments.

Only metadata is kept here; file bytes are stored externally. After
every add or remove the owning session's file summary is recomputed
from the full attachment list.
"""

import logging
import os
from dataclasses import replace
from typing import List, Optional

from core.clock import Clock
from core.data import Repository
from core.errors import NotFoundError, StaleEntityError

from .models import FileCategory, Session, SessionFile, UploaderRole, new_id

logger = logging.getLogger(__name__)


class SessionFileService:
    def __init__(
        self,
        files: Repository[SessionFile],
        sessions: Repository[Session],
        clock: Clock,
        recount_attempts: int = 3,
    ):
        self.files = files
        self.sessions = sessions
        self.clock = clock
        self.recount_attempts = recount_attempts

    async def add_file(
        self,
        session_id: str,
        original_file_name: str,
        file_size: int,
        category: FileCategory,
        uploaded_by: UploaderRole,
        uploaded_by_id: str,
        content_type: Optional[str] = None,
        description: Optional[str] = None,
    ) -> SessionFile:
        """
        Record an attachment for a session.

        Not idempotent: every call records a new attachment. The file
        summary is recounted with a few retries when the session is
        updated concurrently.

        Raises:
            NotFoundError: unknown session
            TransientError: store unavailable. The attachment may already
                be recorded; list the session's files before adding it again.
        """
        if await self.sessions.get_by_id(session_id) is None:
            raise NotFoundError("Session", session_id)

        file_id = new_id()
        extension = os.path.splitext(original_file_name)[1]
        session_file = SessionFile(
            id=file_id,
            session_id=session_id,
            file_name=f"{file_id}{extension}",
            original_file_name=original_file_name,
            file_type=extension.lstrip(".").lower(),
            file_size=file_size,
            category=FileCategory(category),
            uploaded_by=UploaderRole(uploaded_by),
            uploaded_by_id=uploaded_by_id,
            content_type=content_type,
            description=description,
            uploaded_at=self.clock.now(),
        )
        session_file = await self.files.insert(session_file)
        logger.info(f"Added file {file_id} ({original_file_name}) to session {session_id}")

        await self._recount(session_id)
        return session_file

    async def remove_file(self, file_id: str, session_id: Optional[str] = None) -> SessionFile:
        """
        Delete an attachment's metadata.

        Raises:
            NotFoundError: unknown file, or a file of another session
        """
        session_file = await self.files.get_by_id(file_id)
        if session_file is not None and session_id is not None and session_file.session_id != session_id:
            session_file = None
        if session_file is None or not await self.files.delete(file_id):
            raise NotFoundError("SessionFile", file_id)
        logger.info(f"Removed file {file_id} from session {session_file.session_id}")

        await self._recount(session_file.session_id)
        return session_file

    async def list_files(
        self,
        session_id: str,
        category: Optional[FileCategory] = None,
        uploaded_by: Optional[UploaderRole] = None,
    ) -> List[SessionFile]:
        filters = {"session_id": session_id}
        if category is not None:
            filters["category"] = FileCategory(category)
        if uploaded_by is not None:
            filters["uploaded_by"] = UploaderRole(uploaded_by)
        files = await self.files.find(**filters)
        return sorted(files, key=lambda f: (f.uploaded_at is None, f.uploaded_at))

    async def _recount(self, session_id: str) -> Optional[Session]:
        for attempt in range(1, self.recount_attempts + 1):
            session = await self.sessions.get_by_id(session_id)
            if session is None:
                return None

            files = await self.files.find(session_id=session_id)
            try:
                updated = await self.sessions.update(
                    replace(
                        session,
                        file_count=len(files),
                        has_patient_files=any(f.uploaded_by == UploaderRole.PATIENT for f in files),
                        has_doctor_files=any(f.uploaded_by == UploaderRole.DOCTOR for f in files),
                        updated_at=self.clock.now(),
                    )
                )
            except StaleEntityError:
                if attempt == self.recount_attempts:
                    raise
                logger.warning(f"Session {session_id} changed during file recount, retrying ({attempt})")
                continue

            logger.debug(f"Session {session_id} now has {updated.file_count} file(s)")
            return updated
