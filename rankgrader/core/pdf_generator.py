"""Test result PDF generator.

Renders one participant's graded curriculum as a paginated A4 document:
- Optional school logo, school name and "TEST RESULTS" title
- Participant, rank and event details
- One grey banner per category, one status row per item
- Overall result and score line
- Optional notes with bold spans, word-wrapped by rich_text.layout_segments
- "Graded on" timestamp

Layout runs top-down in millimetres with a running y cursor. A new page is
started when the cursor passes a per-element limit: category banners break
earlier than item rows so a banner is never stranded at the page foot.
"""

import datetime

import fitz  # PyMuPDF

from .item_scores import ScoreSnapshot
from .models import ItemScore, Participant, RankTest, SchoolInfo, ScoreState, TestingEvent
from .rich_text import layout_segments, parse_markup
from .score_aggregator import aggregate

MM = 72 / 25.4  # points per millimetre

# --- Page layout constants (A4: 210 x 297 mm) ---
PAGE_W = 210
PAGE_H = 297
MARGIN = 20
MAX_W = PAGE_W - MARGIN * 2
TOP_Y = 20

# Page-break limits for the y cursor, per element type
CATEGORY_BREAK_Y = 260
ITEM_BREAK_Y = 270
RESULT_BREAK_Y = 240
NOTES_BREAK_Y = 250
NOTES_LINE_BREAK_Y = 270

ITEM_ROW_H = 5
CATEGORY_GAP = 3
NOTES_LINE_H = 4
NOTES_SIZE = 10
LOGO_H = 12

# Colors
BLACK = (0, 0, 0)
GREEN = (0, 128 / 255, 0)
RED = (200 / 255, 0, 0)
GRAY = (128 / 255, 128 / 255, 128 / 255)
NOTE_GRAY = (100 / 255, 100 / 255, 100 / 255)
TEXT_GRAY = (60 / 255, 60 / 255, 60 / 255)
RULE_GRAY = (200 / 255, 200 / 255, 200 / 255)
BANNER_FILL = (240 / 255, 240 / 255, 240 / 255)

FONT_REGULAR = 'Helvetica'
FONT_BOLD = 'Helvetica-Bold'
FONT_ITALIC = 'Helvetica-Oblique'

STATUS_COLORS = {
    ScoreState.PASSED: GREEN,
    ScoreState.FAILED: RED,
    ScoreState.INCOMPLETE: GRAY,
}
STATUS_GLYPHS = {
    ScoreState.PASSED: '[X]',
    ScoreState.FAILED: '[X]',
    ScoreState.INCOMPLETE: '[ ]',
}


def text_width(text: str, fontname: str, fontsize: float) -> float:
    """Rendered width of text in millimetres."""
    return fitz.get_text_length(text, fontname=fontname, fontsize=fontsize) / MM


class _ResultWriter:
    """Thin wrapper over a PyMuPDF document working in millimetres."""

    def __init__(self):
        self.doc = fitz.open()
        self.page = None
        self.y = TOP_Y
        self.new_page()

    def new_page(self):
        self.page = self.doc.new_page(width=PAGE_W * MM, height=PAGE_H * MM)
        self.y = TOP_Y

    def break_after(self, limit: float):
        """Start a new page when the cursor has passed ``limit``."""
        if self.y > limit:
            self.new_page()

    def text(self, x, y, text, fontname=FONT_REGULAR, fontsize=10, color=BLACK,
             align='left'):
        if not text:
            return
        if align == 'center':
            x -= text_width(text, fontname, fontsize) / 2
        elif align == 'right':
            x -= text_width(text, fontname, fontsize)
        self.page.insert_text(fitz.Point(x * MM, y * MM), text,
                              fontname=fontname, fontsize=fontsize, color=color)

    def label_value(self, x, y, label, value, offset, fontsize):
        self.text(x, y, label, FONT_BOLD, fontsize)
        self.text(x + offset, y, value, FONT_REGULAR, fontsize)

    def rule(self, y):
        self.page.draw_line(fitz.Point(MARGIN * MM, y * MM),
                            fitz.Point((PAGE_W - MARGIN) * MM, y * MM),
                            color=RULE_GRAY, width=0.5)

    def banner(self, y):
        rect = fitz.Rect(MARGIN * MM, (y - 4) * MM, (MARGIN + MAX_W) * MM, (y + 3) * MM)
        self.page.draw_rect(rect, color=None, fill=BANNER_FILL)


def build_result_document(participant: Participant, event: TestingEvent,
                          curriculum: RankTest, scores: ScoreSnapshot,
                          overall_score: int, passed: bool,
                          school: SchoolInfo | None = None,
                          graded_at: datetime.datetime | None = None) -> fitz.Document:
    """Lay out and draw a participant's result document.

    Args:
        participant: Graded participant (name, ranks, notes).
        event: Testing event the grading belongs to.
        curriculum: Curriculum the participant was graded against.
        scores: item_id -> ItemScore snapshot.
        overall_score: Percentage score printed on the score line.
        passed: Whether the overall result reads PASSED (else FAILED).
        school: School identity for the header.
        graded_at: Timestamp for the footer line (default: now).

    Returns:
        An open fitz.Document; the caller saves and closes it.
    """
    school = school or SchoolInfo()
    w = _ResultWriter()

    _draw_header(w, school)
    _draw_details(w, participant, event)

    for category in curriculum.categories:
        w.break_after(CATEGORY_BREAK_Y)
        w.banner(w.y)
        w.text(MARGIN + 2, w.y, category.name.upper(), FONT_BOLD, 11)
        w.y += 8

        for item in category.items:
            w.break_after(ITEM_BREAK_Y)
            _draw_item_row(w, item, scores.get(item.id) or ItemScore())
            w.y += ITEM_ROW_H
        w.y += CATEGORY_GAP

    _draw_result(w, curriculum, scores, overall_score, passed)

    if participant.notes:
        _draw_notes(w, participant.notes)

    graded_at = graded_at or datetime.datetime.now()
    w.text(MARGIN, w.y, f'Graded on: {_format_timestamp(graded_at)}',
           FONT_REGULAR, 8, GRAY)
    return w.doc


def render_result_pdf(participant: Participant, event: TestingEvent,
                      curriculum: RankTest, scores: ScoreSnapshot,
                      overall_score: int, passed: bool,
                      school: SchoolInfo | None = None,
                      graded_at: datetime.datetime | None = None) -> bytes:
    """Render the result document and return the PDF bytes."""
    doc = build_result_document(participant, event, curriculum, scores,
                                overall_score, passed, school, graded_at)
    try:
        return doc.tobytes()
    finally:
        doc.close()


def result_filename(participant: Participant, event: TestingEvent) -> str:
    """Upload filename: '{member}_{event}_Results.pdf' with underscores for spaces."""
    member = '_'.join(participant.member_name.split())
    event_name = '_'.join(event.name.split())
    return f'{member}_{event_name}_Results.pdf'


def document_display_name(participant: Participant, event: TestingEvent) -> str:
    """Name of the result in the member's document list."""
    return f'{event.name} - {participant.testing_for_rank or "Test"} Results'


# --- Sections ---

def _draw_header(w: _ResultWriter, school: SchoolInfo):
    if school.logo_path:
        pix = fitz.Pixmap(school.logo_path)
        logo_w = LOGO_H * pix.width / pix.height
        rect = fitz.Rect(MARGIN * MM, (w.y - 4) * MM,
                         (MARGIN + logo_w) * MM, (w.y - 4 + LOGO_H) * MM)
        w.page.insert_image(rect, pixmap=pix)
    w.text(PAGE_W / 2, w.y, school.name or 'Martial Arts School',
           FONT_BOLD, 18, align='center')
    w.y += 8
    w.text(PAGE_W / 2, w.y, 'TEST RESULTS', FONT_BOLD, 14, align='center')
    w.y += 15


def _draw_details(w: _ResultWriter, participant: Participant, event: TestingEvent):
    half = PAGE_W / 2

    w.label_value(MARGIN, w.y, 'Participant:', participant.member_name, 30, 11)
    w.y += 6
    w.label_value(MARGIN, w.y, 'Current Rank:', participant.current_rank or 'N/A', 35, 11)
    w.label_value(half, w.y, 'Testing For:', participant.testing_for_rank or 'N/A', 28, 11)
    w.y += 10

    w.label_value(MARGIN, w.y, 'Test Event:', event.name, 28, 10)
    w.y += 5
    w.label_value(MARGIN, w.y, 'Date:', _format_date(event.date), 15, 10)
    if event.location:
        w.label_value(half, w.y, 'Location:', event.location, 22, 10)
    w.y += 5
    w.label_value(MARGIN, w.y, 'Style:', event.style_name, 15, 10)
    w.y += 10

    w.rule(w.y)
    w.y += 8


def _draw_item_row(w: _ResultWriter, item, score: ItemScore):
    color = STATUS_COLORS[score.state]
    status_text = score.state.value

    w.text(MARGIN, w.y, STATUS_GLYPHS[score.state], FONT_BOLD, 9, color)
    w.text(MARGIN + 12, w.y, item.name, FONT_REGULAR, 9)

    if score.notes:
        note = f'({score.notes})' if item.time_limit else f'- {score.notes}'
        note_x = MARGIN + 12 + text_width(item.name, FONT_REGULAR, 9) + 2
        w.text(note_x, w.y, note, FONT_REGULAR, 9, NOTE_GRAY)

    w.text(PAGE_W - MARGIN, w.y, status_text, FONT_ITALIC, 9, color, align='right')


def _draw_result(w: _ResultWriter, curriculum: RankTest, scores: ScoreSnapshot,
                 overall_score: int, passed: bool):
    w.break_after(RESULT_BREAK_Y)
    w.y += 5
    w.rule(w.y)
    w.y += 10

    w.text(MARGIN, w.y, 'OVERALL RESULT:', FONT_BOLD, 14)
    if passed:
        w.text(MARGIN + 50, w.y, 'PASSED', FONT_BOLD, 14, GREEN)
    else:
        w.text(MARGIN + 50, w.y, 'FAILED', FONT_BOLD, 14, RED)
    w.y += 8

    summary = aggregate(curriculum, scores)
    w.text(MARGIN, w.y,
           f'Score: {overall_score}% ({summary.passed_items}/{summary.total_items} items)',
           FONT_REGULAR, 11)
    w.y += 10


def _draw_notes(w: _ResultWriter, notes: str):
    w.break_after(NOTES_BREAK_Y)
    w.text(MARGIN, w.y, 'Notes:', FONT_BOLD, NOTES_SIZE)
    w.y += 5

    def measure(text, bold):
        return text_width(text, FONT_BOLD if bold else FONT_REGULAR, NOTES_SIZE)

    layout = layout_segments(parse_markup(notes), measure,
                             left=MARGIN, right=PAGE_W - MARGIN, y=w.y,
                             line_height=NOTES_LINE_H,
                             bottom=NOTES_LINE_BREAK_Y, top=TOP_Y)

    pages_drawn = 0
    for word in layout.words:
        while pages_drawn < word.page:
            w.new_page()
            pages_drawn += 1
        w.text(word.x, word.y, word.text,
               FONT_BOLD if word.bold else FONT_REGULAR, NOTES_SIZE, TEXT_GRAY)
    while pages_drawn < layout.pages_added:
        w.new_page()
        pages_drawn += 1

    w.y = layout.y + NOTES_LINE_H + 5


def _format_date(value: str) -> str:
    """'2026-03-14' -> '3/14/2026'; unparsable values are printed as-is."""
    try:
        d = datetime.date.fromisoformat(value[:10])
    except (TypeError, ValueError):
        return value or ''
    return f'{d.month}/{d.day}/{d.year}'


def _format_timestamp(ts: datetime.datetime) -> str:
    hour = ts.hour % 12 or 12
    suffix = 'AM' if ts.hour < 12 else 'PM'
    return f'{ts.month}/{ts.day}/{ts.year}, {hour}:{ts.minute:02d}:{ts.second:02d} {suffix}'
