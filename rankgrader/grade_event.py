#!/usr/bin/env python3
"""CLI entry point for grading a testing event.

Usage:
    python grade_event.py --db ./studio.db --seed studio_export.json \\
        --event evt-2026-spring --scores grading_sheet.json \\
        --school "Riverside Karate Academy" --uploads ./results/
"""

import argparse
import asyncio
import dataclasses
import logging
import os
import sys

# Add parent directory to path for imports
if not getattr(sys, 'frozen', False):
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rankgrader.adapters.json_adapter import JsonAdapter, load_grading_sheet
from rankgrader.adapters.sqlite_backend import SqliteBackend
from rankgrader.core import db_builder
from rankgrader.core.bulk_grading import BulkGradingCoordinator, failure_message
from rankgrader.core.curriculum_resolver import find_ambiguous_ranks, lookup_rank_name, resolve
from rankgrader.core.item_scores import (
    BulkItemScoreStore, ItemScoreStore, is_time_entry, parse_item_scores,
)
from rankgrader.core.models import SchoolInfo

logger = logging.getLogger(__name__)


def import_seed(db_path: str, seed_path: str):
    """Load styles, curricula and events from a JSON export into the database."""
    data = JsonAdapter().parse(seed_path)
    for style in data['styles']:
        db_builder.insert_style(db_path, style)
    for i, rank_test in enumerate(data['rank_tests']):
        db_builder.insert_rank_test(db_path, rank_test, sort_order=i)
    for event in data['events']:
        try:
            db_builder.insert_event(db_path, event)
        except db_builder.ParticipantExistsError:
            print(f"Event {event.id} already imported, keeping existing participants")
    print(f"Imported {len(data['styles'])} styles, {len(data['rank_tests'])} curricula, "
          f"{len(data['events'])} events")


def apply_grading_sheet(bulk: BulkItemScoreStore, sheets: dict, curricula: dict,
                        notes: dict, admin_notes: dict):
    """Seed the bulk score store from a grading sheet file."""
    for participant_id, sheet in sheets.items():
        store = ItemScoreStore(parse_item_scores(sheet['item_scores']))
        curriculum = curricula.get(participant_id)
        if curriculum is not None:
            for item in curriculum.all_items():
                note = store.get(item.id).notes
                if not item.time_limit or not note:
                    continue
                if is_time_entry(note):
                    store.set_time(item.id, note)
                else:
                    logger.info('Keeping non-time note %r on timed item %s of %s',
                                note, item.id, participant_id)
        bulk.put(participant_id, store)
        if sheet['override'] is not None:
            bulk.overrides[participant_id] = sheet['override']
        if sheet['notes'] is not None:
            notes[participant_id] = sheet['notes']
        if sheet['admin_notes'] is not None:
            admin_notes[participant_id] = sheet['admin_notes']


def main():
    parser = argparse.ArgumentParser(description='Grade a rank testing event')
    parser.add_argument('--db', required=True, help='Path to the SQLite database')
    parser.add_argument('--event', required=True, help='Testing event id')
    parser.add_argument('--seed', default=None,
                        help='JSON export with styles, curricula and events to import first')
    parser.add_argument('--scores', default=None,
                        help='JSON grading sheet: participant id -> item scores and result')
    parser.add_argument('--school', default='Martial Arts School',
                        help='School name printed on result documents')
    parser.add_argument('--logo', default=None,
                        help='School logo image drawn in the result document header')
    parser.add_argument('--uploads', default=None,
                        help='Directory for result PDFs (default: {db dir}/results)')
    parser.add_argument('--participant', default=None,
                        help='Grade only this participant id')
    parser.add_argument('--verbose', action='store_true', help='Log progress details')

    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')

    db_path = args.db
    os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    db_builder.build_database(db_path)
    if args.seed:
        print(f"Importing {args.seed}...")
        import_seed(db_path, args.seed)

    event = db_builder.load_event(db_path, args.event)
    if event is None:
        print(f"Unknown testing event: {args.event}")
        sys.exit(1)
    style = db_builder.load_style(db_path, event.style_id)
    if style is None:
        print(f"Event {event.name} references unknown style {event.style_id}")
        sys.exit(1)

    if args.participant:
        event.participants = [p for p in event.participants if p.id == args.participant]
        if not event.participants:
            print(f"No participant {args.participant} in {event.name}")
            sys.exit(1)

    for names in find_ambiguous_ranks(style):
        print(f"Warning: ranks differ only by case/whitespace: {', '.join(names)}")

    uploads = args.uploads or os.path.join(os.path.dirname(os.path.abspath(db_path)), 'results')
    backend = SqliteBackend(db_path, uploads)

    # Resolve each participant's curriculum; group participants sharing one
    curricula = {}
    groups: dict[str, tuple] = {}
    for p in event.participants:
        curriculum = resolve(style, style.naming_convention, p, backend.find_rank_tests)
        curricula[p.id] = curriculum
        if curriculum is None:
            rank_name = lookup_rank_name(style.naming_convention, p)
            print(f"  {p.member_name}: no curriculum for rank {rank_name!r}, skipping")
            continue
        groups.setdefault(curriculum.id, (curriculum, []))[1].append(p)

    bulk = BulkItemScoreStore.from_participants(event.participants)
    notes = {p.id: p.notes for p in event.participants}
    admin_notes = {p.id: p.admin_notes for p in event.participants}
    if args.scores:
        apply_grading_sheet(bulk, load_grading_sheet(args.scores), curricula,
                            notes, admin_notes)

    if args.logo and not os.path.isfile(args.logo):
        print(f"Logo not found: {args.logo}")
        sys.exit(1)
    school = SchoolInfo(name=args.school, logo_path=args.logo)
    coordinator = BulkGradingCoordinator(backend, school)
    snapshots = bulk.snapshots()

    async def run_all():
        results = []
        for curriculum, participants in groups.values():
            group_event = dataclasses.replace(event, participants=participants)
            results.extend(await coordinator.grade_all(
                group_event, curriculum, snapshots, bulk.overrides, notes, admin_notes))
        return results

    print(f"Grading {sum(len(g[1]) for g in groups.values())} participant(s) "
          f"of {event.name}...")
    results = asyncio.run(run_all())

    for r in results:
        summary = r.summary
        line = f"  {r.participant.member_name}: {r.status.value} {r.percent}%"
        if summary is not None:
            line += f" ({summary.passed_items}/{summary.total_items} items, "
            line += f"{summary.required_remaining} required remaining)"
        if not r.ok:
            line += f" NOT SAVED ({r.error})"
        elif r.document_url:
            line += f" -> {r.document_url}"
        print(line)

    message = failure_message(results)
    if message:
        print(message)
        sys.exit(2)
    print("\nDone!")


if __name__ == '__main__':
    main()
