"""Adapter for importing studio data from a JSON export.

Accepts both the web app's camelCase keys (testNamingConvention,
testingForRank, timeLimitOperator) and snake_case keys. Layout:

    {
      "styles":     [{"id", "name", "testNamingConvention", "ranks": [{"id", "name", "order"}]}],
      "rankTests":  [{"id", "name", "rankId", "styleId", "categories": [{"id", "name", "items": [...]}]}],
      "events":     [{"id", "name", "date", "styleId", "participants": [...]}]
    }

Participants without a testing-for rank get the next rank of their style.
"""

import json
import logging

from ..core.curriculum_resolver import next_rank
from ..core.models import (
    Category, EventStatus, Item, NamingConvention, Participant, ParticipantStatus,
    Rank, RankTest, Style, TestingEvent,
)

logger = logging.getLogger(__name__)


class JsonAdapter:
    """Parse styles, curricula and testing events from a JSON file."""

    def parse(self, data_path: str) -> dict:
        """Parse a JSON export.

        Returns:
            Dict with 'styles', 'rank_tests' and 'events' lists of models.
        """
        with open(data_path, 'r') as f:
            raw = json.load(f)
        return self.parse_data(raw)

    def parse_data(self, raw: dict) -> dict:
        styles = [self._extract_style(s) for s in self._get_field(raw, 'styles', default=[])]
        styles_by_id = {s.id: s for s in styles}

        rank_tests = [self._extract_rank_test(t)
                      for t in self._get_field(raw, 'rankTests', 'rank_tests', default=[])]
        events = [self._extract_event(e, styles_by_id)
                  for e in self._get_field(raw, 'events', default=[])]
        return {'styles': styles, 'rank_tests': rank_tests, 'events': events}

    def _extract_style(self, raw: dict) -> Style:
        convention = self._get_field(raw, 'testNamingConvention', 'naming_convention')
        ranks = [
            Rank(id=str(r['id']), name=r['name'],
                 order=int(self._get_field(r, 'order', default=i)))
            for i, r in enumerate(self._get_field(raw, 'ranks', default=[]))
        ]
        return Style(id=str(raw['id']), name=raw['name'], ranks=ranks,
                     naming_convention=NamingConvention(convention or 'INTO_RANK'))

    def _extract_rank_test(self, raw: dict) -> RankTest:
        categories = []
        for c in self._sorted(self._get_field(raw, 'categories', default=[])):
            items = [self._extract_item(i) for i in self._sorted(self._get_field(c, 'items', default=[]))]
            categories.append(Category(id=str(c['id']), name=c['name'], items=items,
                                       description=c.get('description')))
        return RankTest(
            id=str(raw['id']), name=raw['name'], categories=categories,
            description=raw.get('description'),
            rank_id=str(self._get_field(raw, 'rankId', 'rank_id')),
            style_id=str(self._get_field(raw, 'styleId', 'style_id')),
        )

    def _extract_item(self, raw: dict) -> Item:
        return Item(
            id=str(raw['id']),
            name=raw['name'],
            type=self._get_field(raw, 'type', default='skill'),
            required=bool(self._get_field(raw, 'required', default=False)),
            description=raw.get('description'),
            reps=self._get_field(raw, 'reps'),
            sets=self._get_field(raw, 'sets'),
            duration=self._get_field(raw, 'duration'),
            distance=self._get_field(raw, 'distance'),
            time_limit=self._get_field(raw, 'timeLimit', 'time_limit'),
            time_limit_operator=self._get_field(raw, 'timeLimitOperator', 'time_limit_operator'),
        )

    def _extract_event(self, raw: dict, styles_by_id: dict[str, Style]) -> TestingEvent:
        style_id = str(self._get_field(raw, 'styleId', 'style_id'))
        style = styles_by_id.get(style_id)
        style_name = self._get_field(raw, 'styleName', 'style_name',
                                     default=style.name if style else '')
        participants = [self._extract_participant(p, style)
                        for p in self._get_field(raw, 'participants', default=[])]
        return TestingEvent(
            id=str(raw['id']), name=raw['name'], date=raw['date'],
            style_id=style_id, style_name=style_name,
            time=raw.get('time'), location=raw.get('location'), notes=raw.get('notes'),
            status=EventStatus(self._get_field(raw, 'status', default='SCHEDULED')),
            participants=participants,
        )

    def _extract_participant(self, raw: dict, style: Style | None) -> Participant:
        current = self._get_field(raw, 'currentRank', 'current_rank')
        testing_for = self._get_field(raw, 'testingForRank', 'testing_for_rank')
        if not testing_for and current and style is not None:
            testing_for = next_rank(style, current) or None

        item_scores = self._get_field(raw, 'itemScores', 'item_scores')
        if isinstance(item_scores, dict):
            item_scores = json.dumps(item_scores)

        return Participant(
            id=str(raw['id']),
            member_id=str(self._get_field(raw, 'memberId', 'member_id')),
            member_name=self._get_field(raw, 'memberName', 'member_name', default=''),
            current_rank=current,
            testing_for_rank=testing_for,
            status=ParticipantStatus(str(self._get_field(raw, 'status', default='REGISTERED')).upper()),
            score=self._get_field(raw, 'score'),
            item_scores=item_scores,
            notes=raw.get('notes'),
            admin_notes=self._get_field(raw, 'adminNotes', 'admin_notes'),
            result_document_url=self._get_field(raw, 'resultPdfUrl', 'result_document_url'),
        )

    @staticmethod
    def _sorted(rows: list[dict]) -> list[dict]:
        """Order by sortOrder when present, keeping file order otherwise."""
        return sorted(rows, key=lambda r: r.get('sortOrder', r.get('sort_order', 0)))

    @staticmethod
    def _get_field(raw: dict, *keys, default=None):
        """Return the first non-None value among keys."""
        for key in keys:
            if key in raw and raw[key] is not None:
                return raw[key]
        return default


def load_grading_sheet(data_path: str) -> dict:
    """Parse a grading sheet file.

    Layout: {"<participant_id>": {"itemScores": {...}, "status": "PASSED",
    "notes": "...", "adminNotes": "..."}}. Unknown statuses are ignored
    so the participant stays ungraded.

    Returns:
        participant_id -> {'item_scores', 'override', 'notes', 'admin_notes'}
    """
    with open(data_path, 'r') as f:
        raw = json.load(f)

    sheets = {}
    for participant_id, entry in raw.items():
        status = str(entry.get('status') or '').upper()
        override = None
        if status in (ParticipantStatus.PASSED.value, ParticipantStatus.FAILED.value):
            override = ParticipantStatus(status)
        elif status:
            logger.warning('Ignoring status %r for participant %s', status, participant_id)
        sheets[participant_id] = {
            'item_scores': entry.get('itemScores', entry.get('item_scores', {})),
            'override': override,
            'notes': entry.get('notes'),
            'admin_notes': entry.get('adminNotes', entry.get('admin_notes')),
        }
    return sheets
