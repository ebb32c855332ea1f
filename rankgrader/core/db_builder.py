"""SQLite storage for styles, curricula, testing events and participants.

Tables:
  styles, ranks: style ladder and naming convention
  rank_tests, categories, items: curricula keyed by (rank_id, style_id)
  events, participants: testing events and their graded participants
  member_documents: per-member document list (result PDFs)
"""

import datetime
import sqlite3
import time

from .models import (
    Category, EventStatus, Item, NamingConvention, Participant, ParticipantStatus,
    ParticipantUpdate, Rank, RankTest, Style, TestingEvent,
)


class ParticipantExistsError(ValueError):
    """Raised when a member is registered twice for the same event."""


_SCHEMA = [
    '''CREATE TABLE IF NOT EXISTS styles (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        naming_convention TEXT NOT NULL DEFAULT 'INTO_RANK'
    )''',
    '''CREATE TABLE IF NOT EXISTS ranks (
        id TEXT PRIMARY KEY,
        style_id TEXT NOT NULL,
        name TEXT NOT NULL,
        rank_order INTEGER NOT NULL,
        UNIQUE (style_id, rank_order)
    )''',
    '''CREATE TABLE IF NOT EXISTS rank_tests (
        id TEXT PRIMARY KEY,
        style_id TEXT NOT NULL,
        rank_id TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        sort_order INTEGER NOT NULL DEFAULT 0
    )''',
    '''CREATE TABLE IF NOT EXISTS categories (
        id TEXT PRIMARY KEY,
        rank_test_id TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        sort_order INTEGER NOT NULL DEFAULT 0
    )''',
    '''CREATE TABLE IF NOT EXISTS items (
        id TEXT PRIMARY KEY,
        category_id TEXT NOT NULL,
        name TEXT NOT NULL,
        type TEXT NOT NULL DEFAULT 'skill',
        required INTEGER NOT NULL DEFAULT 0,
        description TEXT,
        reps INTEGER,
        sets INTEGER,
        duration TEXT,
        distance TEXT,
        time_limit TEXT,
        time_limit_operator TEXT,
        sort_order INTEGER NOT NULL DEFAULT 0
    )''',
    '''CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        date TEXT NOT NULL,
        time TEXT,
        location TEXT,
        notes TEXT,
        style_id TEXT NOT NULL,
        style_name TEXT,
        status TEXT NOT NULL DEFAULT 'SCHEDULED'
    )''',
    '''CREATE TABLE IF NOT EXISTS participants (
        id TEXT PRIMARY KEY,
        event_id TEXT NOT NULL,
        member_id TEXT NOT NULL,
        member_name TEXT NOT NULL,
        current_rank TEXT,
        testing_for_rank TEXT,
        status TEXT NOT NULL DEFAULT 'REGISTERED',
        score INTEGER,
        item_scores TEXT,
        notes TEXT,
        admin_notes TEXT,
        result_document_url TEXT
    )''',
    '''CREATE TABLE IF NOT EXISTS member_documents (
        id TEXT NOT NULL,
        member_id TEXT NOT NULL,
        name TEXT NOT NULL,
        url TEXT NOT NULL,
        uploaded_at TEXT NOT NULL,
        position INTEGER NOT NULL
    )''',
]


def build_database(db_path: str) -> str:
    """Create any missing tables. Existing data is kept.

    Returns:
        The db_path for convenience.
    """
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        for statement in _SCHEMA:
            cur.execute(statement)
        conn.commit()
    finally:
        conn.close()
    return db_path


# --- Writes used when importing seed data ---

def insert_style(db_path: str, style: Style):
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute('INSERT OR REPLACE INTO styles (id, name, naming_convention) VALUES (?, ?, ?)',
                    (style.id, style.name, NamingConvention(style.naming_convention).value))
        cur.execute('DELETE FROM ranks WHERE style_id = ?', (style.id,))
        for rank in style.ranks:
            cur.execute('INSERT INTO ranks (id, style_id, name, rank_order) VALUES (?, ?, ?, ?)',
                        (rank.id, style.id, rank.name, rank.order))
        conn.commit()
    finally:
        conn.close()


def insert_rank_test(db_path: str, rank_test: RankTest, sort_order: int = 0):
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute('''INSERT OR REPLACE INTO rank_tests
            (id, style_id, rank_id, name, description, sort_order)
            VALUES (?, ?, ?, ?, ?, ?)''',
            (rank_test.id, rank_test.style_id, rank_test.rank_id, rank_test.name,
             rank_test.description, sort_order))
        for ci, category in enumerate(rank_test.categories):
            cur.execute('''INSERT OR REPLACE INTO categories
                (id, rank_test_id, name, description, sort_order) VALUES (?, ?, ?, ?, ?)''',
                (category.id, rank_test.id, category.name, category.description, ci))
            for ii, item in enumerate(category.items):
                cur.execute('''INSERT OR REPLACE INTO items
                    (id, category_id, name, type, required, description, reps, sets,
                     duration, distance, time_limit, time_limit_operator, sort_order)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)''',
                    (item.id, category.id, item.name, item.type, 1 if item.required else 0,
                     item.description, item.reps, item.sets, item.duration, item.distance,
                     item.time_limit, item.time_limit_operator, ii))
        conn.commit()
    finally:
        conn.close()


def insert_event(db_path: str, event: TestingEvent):
    """Store an event and register its participants."""
    conn = sqlite3.connect(db_path)
    try:
        conn.execute('''INSERT OR REPLACE INTO events
            (id, name, date, time, location, notes, style_id, style_name, status)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)''',
            (event.id, event.name, event.date, event.time, event.location, event.notes,
             event.style_id, event.style_name, EventStatus(event.status).value))
        conn.commit()
    finally:
        conn.close()

    for p in event.participants:
        add_participant(db_path, event.id, p)


def add_participant(db_path: str, event_id: str, participant: Participant) -> Participant:
    """Register a member for an event.

    Raises:
        ParticipantExistsError: The member is already registered.
    """
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute('SELECT 1 FROM participants WHERE event_id = ? AND member_id = ?',
                    (event_id, participant.member_id))
        if cur.fetchone():
            raise ParticipantExistsError('Member is already registered for this test')

        cur.execute('''INSERT INTO participants
            (id, event_id, member_id, member_name, current_rank, testing_for_rank,
             status, score, item_scores, notes, admin_notes, result_document_url)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)''',
            (participant.id, event_id, participant.member_id, participant.member_name,
             participant.current_rank or None, participant.testing_for_rank or None,
             ParticipantStatus(participant.status).value, participant.score,
             participant.item_scores, _clean_text(participant.notes),
             _clean_text(participant.admin_notes), participant.result_document_url))
        conn.commit()
    finally:
        conn.close()
    return participant


def remove_participant(db_path: str, event_id: str, participant_id: str) -> bool:
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute('DELETE FROM participants WHERE id = ? AND event_id = ?',
                    (participant_id, event_id))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


# --- Reads ---

def load_style(db_path: str, style_id: str) -> Style | None:
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute('SELECT id, name, naming_convention FROM styles WHERE id = ?', (style_id,))
        row = cur.fetchone()
        if row is None:
            return None
        cur.execute('''SELECT id, name, rank_order FROM ranks
                       WHERE style_id = ? ORDER BY rank_order''', (style_id,))
        ranks = [Rank(id=r[0], name=r[1], order=r[2]) for r in cur.fetchall()]
    finally:
        conn.close()

    return Style(id=row[0], name=row[1], ranks=ranks,
                 naming_convention=NamingConvention(row[2] or 'INTO_RANK'))


def load_event(db_path: str, event_id: str) -> TestingEvent | None:
    """Load an event with its participants, ordered by member name."""
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute('''SELECT id, name, date, time, location, notes, style_id, style_name, status
                       FROM events WHERE id = ?''', (event_id,))
        row = cur.fetchone()
        if row is None:
            return None
        cur.execute('''SELECT id, member_id, member_name, current_rank, testing_for_rank,
                              status, score, item_scores, notes, admin_notes, result_document_url
                       FROM participants WHERE event_id = ?
                       ORDER BY member_name''', (event_id,))
        participants = [
            Participant(id=p[0], member_id=p[1], member_name=p[2], current_rank=p[3],
                        testing_for_rank=p[4], status=ParticipantStatus(p[5]), score=p[6],
                        item_scores=p[7], notes=p[8], admin_notes=p[9],
                        result_document_url=p[10])
            for p in cur.fetchall()
        ]
    finally:
        conn.close()

    return TestingEvent(id=row[0], name=row[1], date=row[2], time=row[3], location=row[4],
                        notes=row[5], style_id=row[6], style_name=row[7] or '',
                        status=EventStatus(row[8]), participants=participants)


def find_rank_tests(db_path: str, rank_id: str, style_id: str) -> list[RankTest]:
    """Curricula for a rank of a style, with categories and items in sort order."""
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute('''SELECT id, name, description FROM rank_tests
                       WHERE rank_id = ? AND style_id = ?
                       ORDER BY sort_order, id''', (rank_id, style_id))
        tests = [RankTest(id=r[0], name=r[1], description=r[2],
                          rank_id=rank_id, style_id=style_id)
                 for r in cur.fetchall()]

        for test in tests:
            cur.execute('''SELECT id, name, description FROM categories
                           WHERE rank_test_id = ? ORDER BY sort_order''', (test.id,))
            test.categories = [Category(id=c[0], name=c[1], description=c[2])
                               for c in cur.fetchall()]
            for category in test.categories:
                cur.execute('''SELECT id, name, type, required, description, reps, sets,
                                      duration, distance, time_limit, time_limit_operator
                               FROM items WHERE category_id = ? ORDER BY sort_order''',
                            (category.id,))
                category.items = [
                    Item(id=i[0], name=i[1], type=i[2], required=bool(i[3]),
                         description=i[4], reps=i[5], sets=i[6], duration=i[7],
                         distance=i[8], time_limit=i[9], time_limit_operator=i[10])
                    for i in cur.fetchall()
                ]
    finally:
        conn.close()
    return tests


# --- Grading updates ---

def update_participant(db_path: str, event_id: str, update: ParticipantUpdate) -> bool:
    """Apply a grading update. Returns False when the participant is unknown."""
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute('''UPDATE participants
                       SET item_scores = ?, score = ?, status = ?, notes = ?, admin_notes = ?
                       WHERE id = ? AND event_id = ?''',
                    (update.item_scores, update.score, ParticipantStatus(update.status).value,
                     _clean_text(update.notes), _clean_text(update.admin_notes),
                     update.participant_id, event_id))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def set_result_document_url(db_path: str, event_id: str, participant_id: str,
                            url: str) -> bool:
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute('''UPDATE participants SET result_document_url = ?
                       WHERE id = ? AND event_id = ?''', (url, participant_id, event_id))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def list_member_documents(db_path: str, member_id: str) -> list[dict]:
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute('''SELECT id, name, url, uploaded_at FROM member_documents
                       WHERE member_id = ? ORDER BY position''', (member_id,))
        return [{'id': r[0], 'name': r[1], 'url': r[2], 'uploaded_at': r[3]}
                for r in cur.fetchall()]
    finally:
        conn.close()


def append_member_document(db_path: str, member_id: str, url: str, name: str,
                           uploaded_at: str | None = None) -> dict:
    """Add a document to a member's list, replacing a same-named entry.

    The display name is the only de-duplication key: a regraded test
    replaces its earlier result, keeping the entry's id and position.
    """
    uploaded_at = uploaded_at or datetime.datetime.now(datetime.timezone.utc).isoformat()
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute('''SELECT id, position FROM member_documents
                       WHERE member_id = ? AND name = ? ORDER BY position LIMIT 1''',
                    (member_id, name))
        existing = cur.fetchone()
        if existing:
            doc_id, position = existing
            cur.execute('''UPDATE member_documents SET url = ?, uploaded_at = ?
                           WHERE member_id = ? AND position = ?''',
                        (url, uploaded_at, member_id, position))
        else:
            doc_id = f'test-result-{int(time.time() * 1000)}'
            cur.execute('SELECT COALESCE(MAX(position), -1) + 1 FROM member_documents WHERE member_id = ?',
                        (member_id,))
            position = cur.fetchone()[0]
            cur.execute('''INSERT INTO member_documents (id, member_id, name, url, uploaded_at, position)
                           VALUES (?, ?, ?, ?, ?, ?)''',
                        (doc_id, member_id, name, url, uploaded_at, position))
        conn.commit()
    finally:
        conn.close()
    return {'id': doc_id, 'name': name, 'url': url, 'uploaded_at': uploaded_at}


def _clean_text(value: str | None) -> str | None:
    """Trim free text; blank becomes NULL."""
    if value is None:
        return None
    value = value.strip()
    return value or None
