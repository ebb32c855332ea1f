"""Abstract collaborators the grading engine talks to."""

from abc import ABC, abstractmethod

from ..core.models import ParticipantUpdate, RankTest


class GradingBackend(ABC):
    """Curriculum lookup, participant persistence, file upload and the
    member document registry.

    Persistence methods report failure by returning False/None; they may
    also raise, which callers treat the same way.
    """

    @abstractmethod
    def find_rank_tests(self, rank_id: str, style_id: str) -> list[RankTest]:
        """Curricula stored for a rank of a style, in sort order."""
        pass

    @abstractmethod
    async def save_participant(self, event_id: str, update: ParticipantUpdate) -> bool:
        """Apply a partial grading update to a participant record."""
        pass

    @abstractmethod
    async def upload_document(self, data: bytes, filename: str) -> str | None:
        """Store a generated document and return its public URL."""
        pass

    @abstractmethod
    async def set_result_document(self, event_id: str, participant_id: str,
                                  url: str) -> bool:
        """Point a participant's result document at ``url``."""
        pass

    @abstractmethod
    async def append_member_document(self, member_id: str, url: str,
                                     display_name: str) -> bool:
        """Add a document to a member's list.

        An existing entry with exactly the same display name is replaced;
        otherwise the document is appended.
        """
        pass
