"""Restricted rich-text support for result documents.

Notes are stored as a small HTML subset where bold (<b>, <strong>) is the
only inline style; <br> and block elements (<div>, <p>) produce line breaks.
Rendering is two independent passes:

  1. parse_markup()    markup -> [Segment(text, bold)]
  2. layout_segments() segments + measure -> words placed on lines and pages

Neither pass touches the PDF backend; pdf_generator paints the placed words.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from html.parser import HTMLParser

_BOLD_TAGS = {'b', 'strong'}
_BLOCK_TAGS = {'div', 'p'}


@dataclass
class Segment:
    text: str
    bold: bool = False


@dataclass
class PlacedWord:
    text: str
    x: float
    y: float
    bold: bool
    page: int      # pages added before this word, relative to the starting page


@dataclass
class TextLayout:
    words: list[PlacedWord] = field(default_factory=list)
    x: float = 0
    y: float = 0
    pages_added: int = 0

    def lines(self) -> list[tuple[int, float, str]]:
        """(page, y, text) per line, words joined by single spaces."""
        out = []
        for w in self.words:
            if out and out[-1][0] == w.page and out[-1][1] == w.y:
                page, y, text = out[-1]
                out[-1] = (page, y, f'{text} {w.text}' if text else w.text)
            else:
                out.append((w.page, w.y, w.text))
        return out


class _MarkupParser(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.segments: list[Segment] = []
        self._bold_depth = 0

    def _block_break(self):
        if self.segments and not self.segments[-1].text.endswith('\n'):
            self.segments.append(Segment('\n', False))

    def handle_starttag(self, tag, attrs):
        if tag == 'br':
            self.segments.append(Segment('\n', False))
        elif tag in _BOLD_TAGS:
            self._bold_depth += 1
        elif tag in _BLOCK_TAGS:
            self._block_break()

    def handle_startendtag(self, tag, attrs):
        if tag == 'br':
            self.segments.append(Segment('\n', False))

    def handle_endtag(self, tag):
        if tag in _BOLD_TAGS:
            self._bold_depth = max(0, self._bold_depth - 1)
        elif tag in _BLOCK_TAGS:
            self._block_break()

    def handle_data(self, data):
        if data:
            self.segments.append(Segment(data, self._bold_depth > 0))


def parse_markup(markup: str | None) -> list[Segment]:
    """Split restricted markup into (text, bold) segments.

    Consecutive segments with the same weight are merged; newlines stay
    embedded in the text. Plain text without any tags is one segment.
    """
    if not markup:
        return []

    parser = _MarkupParser()
    parser.feed(markup)
    parser.close()

    merged: list[Segment] = []
    for seg in parser.segments:
        if merged and merged[-1].bold == seg.bold:
            merged[-1].text += seg.text
        else:
            merged.append(Segment(seg.text, seg.bold))
    return merged


def layout_segments(segments: list[Segment], measure: Callable[[str, bool], float],
                    left: float, right: float, y: float, line_height: float,
                    bottom: float, top: float) -> TextLayout:
    """Flow segments left to right with word wrap and page breaks.

    Args:
        segments: Output of parse_markup().
        measure: Rendered width of (text, bold).
        left, right: Horizontal margins of the text column.
        y: Baseline of the first line.
        line_height: Advance per line.
        bottom: A line whose baseline passes this starts a new page.
        top: Baseline of the first line on a new page.

    A word (plus its trailing space, unless last in its run) that would
    cross the right margin moves to a new line, unless the line is still
    empty; an over-long word is placed whole rather than split or dropped.
    The horizontal cursor carries across segments and resets on explicit
    newlines and wrapped lines. Vertical overflow is checked after each new
    line is started.
    """
    layout = TextLayout(x=left, y=y)

    def new_line():
        layout.y += line_height
        layout.x = left
        if layout.y > bottom:
            layout.pages_added += 1
            layout.y = top

    for segment in segments:
        for i, text in enumerate(segment.text.split('\n')):
            if i > 0:
                new_line()
            if not text:
                continue

            words = text.split(' ')
            for j, word in enumerate(words):
                trailing = ' ' if j < len(words) - 1 else ''
                width = measure(word + trailing, segment.bold)

                if layout.x + width > right and layout.x > left:
                    new_line()

                if word:
                    layout.words.append(PlacedWord(word, layout.x, layout.y,
                                                   segment.bold, layout.pages_added))
                layout.x += width

    return layout
