"""Curriculum lookup for test participants.

A style's naming convention decides which of the participant's ranks keys
the curriculum:
  FROM_RANK: the rank the participant currently holds
  INTO_RANK: the rank being tested for (default)

Rank names are matched exactly first, then case-insensitively with
surrounding whitespace ignored, so operator typos such as "yellow belt "
still find the "Yellow Belt" curriculum.
"""

import logging
from collections.abc import Callable

from .models import NamingConvention, Participant, Rank, RankTest, Style, TestingEvent

logger = logging.getLogger(__name__)

# (rank_id, style_id) -> zero or more curricula
CurriculumLookup = Callable[[str, str], list[RankTest]]


def _normalize_rank_name(name: str) -> str:
    return name.strip().lower()


def lookup_rank_name(naming_convention: NamingConvention | str | None,
                     participant: Participant) -> str | None:
    """Pick the participant rank that keys the curriculum."""
    if naming_convention == NamingConvention.FROM_RANK:
        return participant.current_rank
    return participant.testing_for_rank


def find_rank(style: Style, rank_name: str | None) -> Rank | None:
    """Find a rank by exact name, falling back to a normalized match."""
    if not rank_name or not style.ranks:
        return None

    for rank in style.ranks:
        if rank.name == rank_name:
            return rank

    wanted = _normalize_rank_name(rank_name)
    for rank in style.ranks:
        if _normalize_rank_name(rank.name) == wanted:
            logger.debug('Rank %r matched %r case-insensitively', rank_name, rank.name)
            return rank
    return None


def resolve(style: Style, naming_convention: NamingConvention | str | None,
            participant: Participant, lookup: CurriculumLookup) -> RankTest | None:
    """Resolve the curriculum a participant is graded against.

    Args:
        style: Style of the testing event, with its ranks.
        naming_convention: The style's convention; None means INTO_RANK.
        participant: The participant being graded.
        lookup: Curriculum source keyed by (rank_id, style_id).

    Returns:
        The first curriculum stored for the matched rank, or None when the
        participant has no usable rank name, the rank is unknown, or the
        rank has no curriculum.
    """
    rank_name = lookup_rank_name(naming_convention, participant)
    rank = find_rank(style, rank_name)
    if rank is None:
        logger.info('No rank %r in style %r for participant %s',
                    rank_name, style.name, participant.id)
        return None

    curricula = lookup(rank.id, style.id)
    if not curricula:
        logger.info('No curriculum for rank %r (%s) in style %r',
                    rank.name, rank.id, style.name)
        return None
    return curricula[0]


def resolve_for_event(style: Style, event: TestingEvent,
                      lookup: CurriculumLookup) -> dict[str, RankTest | None]:
    """Resolve curricula for every distinct lookup rank among the participants.

    Each rank name is looked up once. A failing lookup only blanks the
    curriculum of its own rank.
    """
    convention = style.naming_convention
    rank_names = []
    for p in event.participants:
        name = lookup_rank_name(convention, p)
        if name and name not in rank_names:
            rank_names.append(name)

    curricula: dict[str, RankTest | None] = {}
    for name in rank_names:
        rank = find_rank(style, name)
        if rank is None:
            curricula[name] = None
            continue
        try:
            found = lookup(rank.id, style.id)
        except Exception:
            logger.exception('Curriculum lookup failed for rank %r', name)
            curricula[name] = None
            continue
        curricula[name] = found[0] if found else None
    return curricula


def next_rank(style: Style, current_rank: str | None) -> str:
    """Name of the rank after ``current_rank`` in the style's ladder.

    Empty when the current rank is unknown or already the highest.
    """
    if not current_rank:
        return ''
    ordered = sorted(style.ranks, key=lambda r: r.order)
    for i, rank in enumerate(ordered):
        if rank.name == current_rank:
            if i < len(ordered) - 1:
                return ordered[i + 1].name
            return ''
    return ''


def find_ambiguous_ranks(style: Style) -> list[list[str]]:
    """Groups of rank names that only differ by case or surrounding whitespace.

    Such ranks all resolve through the exact-match-first rule; this report
    lets administrators clean up the data.
    """
    groups: dict[str, list[str]] = {}
    for rank in sorted(style.ranks, key=lambda r: r.order):
        groups.setdefault(_normalize_rank_name(rank.name), []).append(rank.name)

    ambiguous = [names for names in groups.values() if len(names) > 1]
    for names in ambiguous:
        logger.warning('Style %r has rank names differing only by case/whitespace: %s',
                       style.name, ', '.join(repr(n) for n in names))
    return ambiguous
