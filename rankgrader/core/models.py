"""Data models for the rank-testing grading engine."""

from dataclasses import dataclass, field
from enum import Enum


class NamingConvention(str, Enum):
    """Whether a curriculum is keyed by the rank tested into or from."""
    INTO_RANK = 'INTO_RANK'
    FROM_RANK = 'FROM_RANK'


class ScoreState(str, Enum):
    INCOMPLETE = 'INCOMPLETE'
    PASSED = 'PASSED'
    FAILED = 'FAILED'

    def next(self) -> 'ScoreState':
        """incomplete -> passed -> failed -> incomplete."""
        return _NEXT_STATE[self]


_NEXT_STATE = {
    ScoreState.INCOMPLETE: ScoreState.PASSED,
    ScoreState.PASSED: ScoreState.FAILED,
    ScoreState.FAILED: ScoreState.INCOMPLETE,
}


class ParticipantStatus(str, Enum):
    REGISTERED = 'REGISTERED'
    PASSED = 'PASSED'
    FAILED = 'FAILED'
    NO_SHOW = 'NO_SHOW'
    INCOMPLETE = 'INCOMPLETE'


class EventStatus(str, Enum):
    SCHEDULED = 'SCHEDULED'
    COMPLETED = 'COMPLETED'


@dataclass
class Rank:
    id: str
    name: str
    order: int


@dataclass
class Style:
    """A martial-arts style with its ordered rank ladder."""
    id: str
    name: str
    ranks: list[Rank] = field(default_factory=list)
    naming_convention: NamingConvention = NamingConvention.INTO_RANK


@dataclass
class Item:
    """A single checklist entry of a curriculum category."""
    id: str
    name: str
    type: str = 'skill'           # skill, form, workout, sparring, self_defense, ...
    required: bool = False
    description: str | None = None
    reps: int | None = None
    sets: int | None = None
    duration: str | None = None
    distance: str | None = None
    time_limit: str | None = None
    time_limit_operator: str | None = None  # "lte", "gte", ...


@dataclass
class Category:
    id: str
    name: str
    items: list[Item] = field(default_factory=list)
    description: str | None = None


@dataclass
class RankTest:
    """A curriculum: the categorized checklist for one rank of one style."""
    id: str
    name: str
    categories: list[Category] = field(default_factory=list)
    description: str | None = None
    rank_id: str | None = None
    style_id: str | None = None

    def all_items(self) -> list[Item]:
        return [item for category in self.categories for item in category.items]


@dataclass(frozen=True)
class ItemScore:
    """Score of one curriculum item for one participant."""
    state: ScoreState = ScoreState.INCOMPLETE
    notes: str = ''               # free text, also holds MM:SS time entries
    score: float | None = None

    @property
    def passed(self) -> bool:
        return self.state is ScoreState.PASSED

    @property
    def failed(self) -> bool:
        return self.state is ScoreState.FAILED


@dataclass
class Participant:
    id: str
    member_id: str
    member_name: str
    current_rank: str | None = None
    testing_for_rank: str | None = None
    status: ParticipantStatus = ParticipantStatus.REGISTERED
    score: int | None = None
    item_scores: str | None = None    # serialized snapshot, see item_scores.dump_item_scores
    notes: str | None = None          # rich text, participant-facing
    admin_notes: str | None = None    # rich text, internal
    result_document_url: str | None = None


@dataclass
class TestingEvent:
    id: str
    name: str
    date: str                     # ISO date, "2026-03-14"
    style_id: str
    style_name: str = ''
    time: str | None = None
    location: str | None = None
    notes: str | None = None
    status: EventStatus = EventStatus.SCHEDULED
    participants: list[Participant] = field(default_factory=list)


@dataclass
class ParticipantUpdate:
    """Partial participant update sent to the persistence collaborator."""
    participant_id: str
    item_scores: str
    score: int
    status: ParticipantStatus
    notes: str | None = None
    admin_notes: str | None = None


@dataclass
class GradeSummary:
    percent: int
    required_remaining: int
    final_status: ParticipantStatus
    passed_items: int
    failed_items: int
    total_items: int


@dataclass
class SchoolInfo:
    """School identity printed in the result document header."""
    name: str = 'Martial Arts School'
    logo_path: str | None = None   # image drawn left of the school name
