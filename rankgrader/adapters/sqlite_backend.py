"""Grading backend over the local SQLite database and an upload directory."""

import asyncio
import logging
import os
from pathlib import Path

from ..core import db_builder
from ..core.models import ParticipantUpdate, RankTest
from .base import GradingBackend

logger = logging.getLogger(__name__)


class SqliteBackend(GradingBackend):
    """Persist grading results with db_builder; "upload" PDFs to a directory.

    Database calls run in worker threads so concurrent participant
    pipelines only wait on their own I/O.

    Args:
        db_path: SQLite database built by db_builder.build_database().
        upload_dir: Directory receiving generated documents. The returned
                    URL is the file:// URI of the written file.
    """

    def __init__(self, db_path: str, upload_dir: str):
        self.db_path = db_path
        self.upload_dir = upload_dir

    def find_rank_tests(self, rank_id: str, style_id: str) -> list[RankTest]:
        return db_builder.find_rank_tests(self.db_path, rank_id, style_id)

    async def save_participant(self, event_id: str, update: ParticipantUpdate) -> bool:
        return await asyncio.to_thread(db_builder.update_participant,
                                       self.db_path, event_id, update)

    async def upload_document(self, data: bytes, filename: str) -> str | None:
        return await asyncio.to_thread(self._write_upload, data, filename)

    async def set_result_document(self, event_id: str, participant_id: str,
                                  url: str) -> bool:
        return await asyncio.to_thread(db_builder.set_result_document_url,
                                       self.db_path, event_id, participant_id, url)

    async def append_member_document(self, member_id: str, url: str,
                                     display_name: str) -> bool:
        await asyncio.to_thread(db_builder.append_member_document,
                                self.db_path, member_id, url, display_name)
        return True

    def _write_upload(self, data: bytes, filename: str) -> str:
        os.makedirs(self.upload_dir, exist_ok=True)
        path = Path(self.upload_dir, os.path.basename(filename)).resolve()
        path.write_bytes(data)
        logger.info('Stored %s (%d bytes)', path.name, len(data))
        return path.as_uri()
