"""Tests for the single and bulk grading save pipeline.

Runs the coordinator against an in-memory backend whose failures can be
switched on per participant.
"""

import asyncio
import json

import pytest
from factories import make_two_item_curriculum

from rankgrader.adapters.base import GradingBackend
from rankgrader.core.bulk_grading import BulkGradingCoordinator, failure_message
from rankgrader.core.models import ItemScore, ParticipantStatus, ScoreState


class FakeBackend(GradingBackend):

    def __init__(self, fail_save=(), reject_save=(), fail_upload=False, reject_url=False,
                 fail_documents=False):
        self.fail_save = set(fail_save)
        self.reject_save = set(reject_save)
        self.fail_upload = fail_upload
        self.reject_url = reject_url
        self.fail_documents = fail_documents
        self.saved = {}
        self.uploads = {}
        self.result_urls = {}
        self.member_documents = {}

    def find_rank_tests(self, rank_id, style_id):
        return []

    async def save_participant(self, event_id, update):
        await asyncio.sleep(0)
        if update.participant_id in self.fail_save:
            raise ConnectionError('database unavailable')
        if update.participant_id in self.reject_save:
            return False
        self.saved[update.participant_id] = update
        return True

    async def upload_document(self, data, filename):
        if self.fail_upload:
            return None
        url = f'https://files.example/{filename}'
        self.uploads[url] = data
        return url

    async def set_result_document(self, event_id, participant_id, url):
        if self.reject_url:
            return False
        self.result_urls[participant_id] = url
        return True

    async def append_member_document(self, member_id, url, display_name):
        if self.fail_documents:
            raise RuntimeError('document list unavailable')
        self.member_documents.setdefault(member_id, []).append((display_name, url))
        return True


@pytest.fixture
def passed_scores():
    return {'item-kata-1': ItemScore(ScoreState.PASSED),
            'item-kata-2': ItemScore(ScoreState.PASSED),
            'item-run': ItemScore(ScoreState.PASSED, '8:30')}


class TestGradeOne:

    def test_saves_and_publishes(self, event, curriculum, passed_scores):
        backend = FakeBackend()
        participant = event.participants[0]
        result = asyncio.run(BulkGradingCoordinator(backend).grade_one(
            event, participant, curriculum, passed_scores, ParticipantStatus.PASSED,
            notes='  <b>Great</b> form  '))

        assert result.ok
        assert result.percent == 100
        assert result.status == ParticipantStatus.PASSED
        assert result.document_url == \
            'https://files.example/Alex_Kim_Spring_Belt_Test_Results.pdf'

        update = backend.saved['p1']
        assert update.score == 100
        assert update.status == ParticipantStatus.PASSED
        assert json.loads(update.item_scores)['item-run'] == \
            {'passed': True, 'failed': False, 'notes': '8:30'}

        assert backend.uploads[result.document_url][:4] == b'%PDF'
        assert backend.result_urls == {'p1': result.document_url}
        assert backend.member_documents == {
            'member-p1': [('Spring Belt Test - Yellow Belt Results', result.document_url)]}
        assert participant.status == ParticipantStatus.PASSED
        assert participant.result_document_url == result.document_url

    def test_without_override_stays_incomplete(self, event, curriculum, passed_scores):
        backend = FakeBackend()
        result = asyncio.run(BulkGradingCoordinator(backend).grade_one(
            event, event.participants[0], curriculum, passed_scores))
        assert result.ok
        assert result.status == ParticipantStatus.INCOMPLETE
        assert backend.saved['p1'].status == ParticipantStatus.INCOMPLETE

    def test_save_failure_skips_document(self, event, curriculum, passed_scores):
        backend = FakeBackend(fail_save={'p1'})
        participant = event.participants[0]
        result = asyncio.run(BulkGradingCoordinator(backend).grade_one(
            event, participant, curriculum, passed_scores, ParticipantStatus.PASSED))

        assert not result.ok
        assert result.error == 'database unavailable'
        assert result.document_url is None
        assert backend.uploads == {}
        assert participant.status == ParticipantStatus.REGISTERED

    def test_rejected_save(self, event, curriculum):
        backend = FakeBackend(reject_save={'p1'})
        result = asyncio.run(BulkGradingCoordinator(backend).grade_one(
            event, event.participants[0], curriculum, {}))
        assert not result.ok
        assert result.error == 'save rejected'
        assert backend.uploads == {}

    def test_upload_failure_keeps_save(self, event, curriculum, passed_scores):
        backend = FakeBackend(fail_upload=True)
        participant = event.participants[0]
        participant.result_document_url = 'https://files.example/old.pdf'
        result = asyncio.run(BulkGradingCoordinator(backend).grade_one(
            event, participant, curriculum, passed_scores, ParticipantStatus.PASSED))

        assert result.ok
        assert result.document_url is None
        assert 'p1' in backend.saved
        assert backend.result_urls == {}
        assert participant.result_document_url == 'https://files.example/old.pdf'

    def test_rejected_url_update_keeps_old_url(self, event, curriculum, passed_scores):
        backend = FakeBackend(reject_url=True)
        participant = event.participants[0]
        participant.result_document_url = 'https://files.example/old.pdf'
        result = asyncio.run(BulkGradingCoordinator(backend).grade_one(
            event, participant, curriculum, passed_scores, ParticipantStatus.PASSED))

        assert result.ok
        assert result.document_url is None
        assert 'p1' in backend.saved
        assert participant.result_document_url == 'https://files.example/old.pdf'
        assert backend.member_documents == {}

    def test_document_list_failure_keeps_document(self, event, curriculum, passed_scores):
        backend = FakeBackend(fail_documents=True)
        participant = event.participants[0]
        result = asyncio.run(BulkGradingCoordinator(backend).grade_one(
            event, participant, curriculum, passed_scores))
        assert result.ok
        assert 'p1' in backend.saved
        assert result.document_url == backend.result_urls['p1']
        assert participant.result_document_url == result.document_url
        assert backend.member_documents == {}

    def test_no_curriculum_saves_without_document(self, event):
        backend = FakeBackend()
        result = asyncio.run(BulkGradingCoordinator(backend).grade_one(
            event, event.participants[0], None, {}))
        assert result.ok
        assert result.percent == 0
        assert backend.uploads == {}


class TestGradeAll:

    def test_one_failed_save_does_not_affect_others(self, event, curriculum, passed_scores):
        backend = FakeBackend(fail_save={'p2'})
        scores = {p.id: passed_scores for p in event.participants}
        overrides = {'p1': ParticipantStatus.PASSED, 'p2': ParticipantStatus.PASSED,
                     'p3': ParticipantStatus.FAILED}

        results = asyncio.run(BulkGradingCoordinator(backend).grade_all(
            event, curriculum, scores, overrides))

        assert [r.participant.id for r in results] == ['p1', 'p2', 'p3']
        assert [r.ok for r in results] == [True, False, True]
        assert set(backend.saved) == {'p1', 'p3'}
        assert set(backend.result_urls) == {'p1', 'p3'}
        assert results[0].document_url and results[2].document_url
        assert results[1].document_url is None
        assert backend.saved['p3'].status == ParticipantStatus.FAILED
        assert failure_message(results) == 'Failed to save grades for 1 participant(s)'

    def test_all_saved(self, event, curriculum):
        backend = FakeBackend()
        results = asyncio.run(BulkGradingCoordinator(backend).grade_all(
            event, curriculum, {}, {}))
        assert all(r.ok for r in results)
        assert all(r.status == ParticipantStatus.INCOMPLETE for r in results)
        assert failure_message(results) is None

    def test_invalid_override_only_fails_its_participant(self, event):
        backend = FakeBackend()
        curriculum = make_two_item_curriculum()
        results = asyncio.run(BulkGradingCoordinator(backend).grade_all(
            event, curriculum, {}, {'p1': 'MAYBE'}))
        assert [r.ok for r in results] == [False, True, True]
        assert 'p1' not in backend.saved

    def test_unreadable_stored_status_does_not_cancel_others(self, event):
        backend = FakeBackend()
        event.participants[0].status = 'ARCHIVED'
        results = asyncio.run(BulkGradingCoordinator(backend).grade_all(
            event, make_two_item_curriculum(), {}, {'p1': 'MAYBE'}))
        assert [r.ok for r in results] == [False, True, True]
        assert results[0].status == ParticipantStatus.INCOMPLETE
        assert set(backend.saved) == {'p2', 'p3'}

    def test_notes_default_to_participant_notes(self, event, curriculum):
        backend = FakeBackend()
        event.participants[0].notes = 'existing note'
        asyncio.run(BulkGradingCoordinator(backend).grade_all(
            event, curriculum, {}, {}, notes={'p2': 'new note'}))
        assert backend.saved['p1'].notes == 'existing note'
        assert backend.saved['p2'].notes == 'new note'


class TestFailureMessage:

    def test_empty(self):
        assert failure_message([]) is None
