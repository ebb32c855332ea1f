"""Per-item grading state for test participants.

Holds the mutable item score map the grading sheet edits, the serialized
snapshot format persisted on the participant record, and the MM:SS time
entry formatter.

Serialized format (flat JSON object):
    {"<item_id>": {"passed": true, "failed": false, "notes": "1:45", "score": 9.5}}
A missing item id means incomplete.
"""

import json
import logging
import re
from contextlib import contextmanager
from dataclasses import replace
from types import MappingProxyType
from typing import Mapping

from .models import ItemScore, Participant, ParticipantStatus, ScoreState

logger = logging.getLogger(__name__)

ScoreSnapshot = Mapping[str, ItemScore]


class ScoresLockedError(RuntimeError):
    """Raised when a score map is edited while its save is in flight."""


def format_time_input(value: str) -> str:
    """Format raw keystrokes as a MM:SS time.

    '5' -> '5', '45' -> '45', '145' -> '1:45', '1230' -> '12:30',
    '123456' -> '12:34'. Non-digits are dropped.
    """
    digits = re.sub(r'\D', '', value or '')
    if len(digits) <= 2:
        return digits
    digits = digits[:4]
    return f'{digits[:-2]}:{digits[-2:]}'


def is_time_entry(value: str) -> bool:
    """True for raw time keystrokes such as '845' or '8:45'; free text is not."""
    return bool(re.fullmatch(r'\s*\d[\d:]*\s*', value or ''))


class ItemScoreStore:
    """Mutable item_id -> ItemScore map for one participant."""

    def __init__(self, scores: Mapping[str, ItemScore] | None = None):
        self._scores: dict[str, ItemScore] = dict(scores or {})
        self._saving = False

    @classmethod
    def from_participant(cls, participant: Participant) -> 'ItemScoreStore':
        return cls(parse_item_scores(participant.item_scores))

    def get(self, item_id: str) -> ItemScore:
        return self._scores.get(item_id, ItemScore())

    def state(self, item_id: str) -> ScoreState:
        return self.get(item_id).state

    def toggle_pass_state(self, item_id: str) -> ScoreState:
        """Advance an item through incomplete -> passed -> failed -> incomplete."""
        self._check_writable()
        current = self.get(item_id)
        updated = replace(current, state=current.state.next())
        self._scores[item_id] = updated
        return updated.state

    def set_annotation(self, item_id: str, text: str) -> None:
        """Set an item's free-text note without changing its pass state."""
        self._check_writable()
        self._scores[item_id] = replace(self.get(item_id), notes=text)

    def set_time(self, item_id: str, raw: str) -> str:
        """Store a time trial entry, formatted as MM:SS."""
        formatted = format_time_input(raw)
        self.set_annotation(item_id, formatted)
        return formatted

    def snapshot(self) -> ScoreSnapshot:
        """Read-only copy for the aggregator and document generator."""
        return MappingProxyType(dict(self._scores))

    @property
    def is_saving(self) -> bool:
        return self._saving

    @contextmanager
    def saving(self):
        """Block edits while a save of this score map is in flight."""
        self._check_writable()
        self._saving = True
        try:
            yield self.snapshot()
        finally:
            self._saving = False

    def _check_writable(self):
        if self._saving:
            raise ScoresLockedError('Scores are being saved; edits are blocked until the save finishes')

    def __len__(self):
        return len(self._scores)

    def __contains__(self, item_id):
        return item_id in self._scores


class BulkItemScoreStore:
    """participant_id -> ItemScoreStore for grading a whole event at once."""

    def __init__(self):
        self._stores: dict[str, ItemScoreStore] = {}
        self.overrides: dict[str, ParticipantStatus | None] = {}

    @classmethod
    def from_participants(cls, participants: list[Participant]) -> 'BulkItemScoreStore':
        bulk = cls()
        for p in participants:
            bulk._stores[p.id] = ItemScoreStore.from_participant(p)
            bulk.overrides[p.id] = initial_override(p)
        return bulk

    def store(self, participant_id: str) -> ItemScoreStore:
        if participant_id not in self._stores:
            self._stores[participant_id] = ItemScoreStore()
        return self._stores[participant_id]

    def put(self, participant_id: str, store: ItemScoreStore) -> None:
        self._stores[participant_id] = store

    def toggle_pass_state(self, participant_id: str, item_id: str) -> ScoreState:
        return self.store(participant_id).toggle_pass_state(item_id)

    def set_annotation(self, participant_id: str, item_id: str, text: str) -> None:
        self.store(participant_id).set_annotation(item_id, text)

    def set_time(self, participant_id: str, item_id: str, raw: str) -> str:
        return self.store(participant_id).set_time(item_id, raw)

    def snapshots(self) -> dict[str, ScoreSnapshot]:
        return {pid: s.snapshot() for pid, s in self._stores.items()}


def initial_override(participant: Participant) -> ParticipantStatus | None:
    """Manual result carried over from an earlier grading, if any."""
    if participant.status in (ParticipantStatus.PASSED, ParticipantStatus.FAILED):
        return ParticipantStatus(participant.status)
    return None


# --- Serialization ---

def _score_from_dict(raw: dict) -> ItemScore:
    if not isinstance(raw, dict):
        raise TypeError(f'item score must be an object, got {type(raw).__name__}')
    if raw.get('passed'):
        state = ScoreState.PASSED
    elif raw.get('failed'):
        state = ScoreState.FAILED
    else:
        state = ScoreState.INCOMPLETE

    notes = raw.get('notes') or ''
    if not isinstance(notes, str):
        notes = str(notes)

    score = raw.get('score')
    if score is not None and not isinstance(score, (int, float)):
        raise TypeError(f'score must be numeric, got {score!r}')
    return ItemScore(state=state, notes=notes, score=score)


def parse_item_scores(raw: str | bytes | dict | None) -> dict[str, ItemScore]:
    """Decode a persisted item score snapshot.

    Any unparsable or mis-shaped payload decodes to an empty map, so grading
    restarts from incomplete instead of failing.
    """
    if raw is None or raw == '':
        return {}
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if not isinstance(data, dict):
            raise TypeError(f'expected an object, got {type(data).__name__}')
        return {str(item_id): _score_from_dict(value) for item_id, value in data.items()}
    except (ValueError, TypeError) as e:
        logger.warning('Discarding malformed item scores: %s', e)
        return {}


def dump_item_scores(snapshot: ScoreSnapshot) -> str:
    """Encode a snapshot in the persisted JSON format."""
    data = {}
    for item_id, s in snapshot.items():
        entry = {'passed': s.passed, 'failed': s.failed}
        if s.notes:
            entry['notes'] = s.notes
        if s.score is not None:
            entry['score'] = s.score
        data[item_id] = entry
    return json.dumps(data)
