"""Tests for the result PDF generator.

Documents are rendered with PyMuPDF and read back with page.get_text() to
check content and that no item row lands below the page-break limit.
"""

import datetime

import fitz
import pytest
from factories import make_event, make_long_curriculum, make_participant

from rankgrader.core.models import ItemScore, SchoolInfo, ScoreState
from rankgrader.core.pdf_generator import (
    ITEM_BREAK_Y, LOGO_H, MM, NOTES_LINE_BREAK_Y, build_result_document, document_display_name,
    render_result_pdf, result_filename,
)

STATUS_WORDS = {'PASSED', 'FAILED', 'INCOMPLETE'}


def all_text(doc):
    return '\n'.join(page.get_text() for page in doc)


def spans(doc):
    """(page_number, span) for every text span in the document."""
    for page in doc:
        for block in page.get_text('dict')['blocks']:
            for line in block.get('lines', []):
                for span in line['spans']:
                    yield page.number, span


@pytest.fixture
def scores():
    return {
        'item-kata-1': ItemScore(ScoreState.PASSED),
        'item-kata-2': ItemScore(ScoreState.FAILED, 'rushed the turns'),
        'item-run': ItemScore(ScoreState.PASSED, '8:30'),
    }


class TestRenderResultPdf:

    def test_returns_pdf_bytes(self, event, curriculum, scores):
        data = render_result_pdf(event.participants[0], event, curriculum, scores, 67, True)
        assert isinstance(data, bytes)
        assert data[:4] == b'%PDF'
        with fitz.open(stream=data, filetype='pdf') as doc:
            assert doc.page_count == 1

    def test_content(self, event, curriculum, scores):
        participant = event.participants[0]
        doc = build_result_document(
            participant, event, curriculum, scores, 67, True,
            school=SchoolInfo(name='Riverside Karate Academy'),
            graded_at=datetime.datetime(2026, 3, 14, 15, 5, 9))
        try:
            text = all_text(doc)
        finally:
            doc.close()

        assert 'Riverside Karate Academy' in text
        assert 'TEST RESULTS' in text
        assert 'Alex Kim' in text
        assert 'White Belt' in text and 'Yellow Belt' in text
        assert 'Spring Belt Test' in text
        assert '3/14/2026' in text
        assert 'Main Dojo' in text
        assert 'KATA' in text and 'FITNESS' in text
        assert 'Heian Shodan' in text
        assert '- rushed the turns' in text
        assert '(8:30)' in text
        assert 'OVERALL RESULT:' in text
        assert 'Score: 67% (2/3 items)' in text
        assert 'Graded on: 3/14/2026, 3:05:09 PM' in text

    def test_failed_result(self, event, curriculum):
        doc = build_result_document(event.participants[0], event, curriculum, {}, 0, False)
        try:
            text = all_text(doc)
        finally:
            doc.close()
        assert 'FAILED' in text
        assert 'Score: 0% (0/3 items)' in text
        assert text.count('INCOMPLETE') == 3

    def test_default_school_name(self, event, curriculum):
        doc = build_result_document(event.participants[0], event, curriculum, {}, 0, False)
        try:
            assert 'Martial Arts School' in all_text(doc)
        finally:
            doc.close()

    def test_logo_in_header(self, event, curriculum, tmp_path):
        logo = tmp_path / 'logo.png'
        pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, 40, 20), False)
        pix.clear_with(200)
        pix.save(str(logo))

        doc = build_result_document(event.participants[0], event, curriculum, {}, 0, False,
                                    school=SchoolInfo(name='Dojo', logo_path=str(logo)))
        try:
            page = doc[0]
            [image] = page.get_images()
            [rect] = page.get_image_rects(image[0])
            assert rect.height == pytest.approx(LOGO_H * MM, abs=0.5)
            assert rect.width == pytest.approx(2 * LOGO_H * MM, abs=0.5)
        finally:
            doc.close()

    def test_no_logo_by_default(self, event, curriculum):
        doc = build_result_document(event.participants[0], event, curriculum, {}, 0, False)
        try:
            assert doc[0].get_images() == []
        finally:
            doc.close()


class TestPagination:

    def test_long_category_spills_over(self, event):
        curriculum = make_long_curriculum(80)
        doc = build_result_document(event.participants[0], event, curriculum, {}, 0, False)
        try:
            assert doc.page_count >= 2
            text = all_text(doc)
            assert 'Technique 0' in text
            assert 'Technique 79' in text
            assert text.count('INCOMPLETE') == 80

            status_spans = [(n, s) for n, s in spans(doc) if s['text'].strip() in STATUS_WORDS]
            assert status_spans
            for _, span in status_spans:
                assert span['origin'][1] <= ITEM_BREAK_Y * MM + 1
            assert len({n for n, _ in status_spans}) >= 2
        finally:
            doc.close()

    def test_long_notes_flow_onto_new_pages(self, event):
        curriculum = make_long_curriculum(40)
        participant = make_participant(
            notes='<b>Strong kicks.</b> ' + 'Keep practicing your stances every day. ' * 300)
        without_notes = build_result_document(make_participant(), event, curriculum, {}, 0, False)
        with_notes = build_result_document(participant, event, curriculum, {}, 0, False)
        try:
            assert with_notes.page_count > without_notes.page_count
            text = all_text(with_notes)
            assert 'Notes:' in text
            assert text.count('practicing') == 300

            note_spans = [(n, s) for n, s in spans(with_notes) if 'practicing' in s['text']]
            assert len({n for n, _ in note_spans}) >= 2
            for _, span in note_spans:
                assert span['origin'][1] <= NOTES_LINE_BREAK_Y * MM + 1

            bold = [s for _, s in spans(with_notes) if 'Strong' in s['text']]
            assert bold and 'Bold' in bold[0]['font']
        finally:
            without_notes.close()
            with_notes.close()


class TestNames:

    def test_result_filename(self):
        participant = make_participant(name='Alex  Kim')
        event = make_event([participant])
        assert result_filename(participant, event) == 'Alex_Kim_Spring_Belt_Test_Results.pdf'

    def test_display_name(self):
        event = make_event()
        assert document_display_name(event.participants[0], event) == \
            'Spring Belt Test - Yellow Belt Results'

    def test_display_name_without_rank(self):
        participant = make_participant(testing_for=None)
        assert document_display_name(participant, make_event([participant])) == \
            'Spring Belt Test - Test Results'
