"""Model builders shared by the test modules and conftest fixtures."""

from rankgrader.core.models import (
    Category, Item, NamingConvention, Participant, Rank, RankTest, Style, TestingEvent,
)


def make_style(naming_convention=NamingConvention.INTO_RANK, ranks=None):
    if ranks is None:
        ranks = [
            Rank(id='rank-white', name='White Belt', order=1),
            Rank(id='rank-yellow', name='Yellow Belt', order=2),
            Rank(id='rank-orange', name='Orange Belt', order=3),
        ]
    return Style(id='style-karate', name='Karate', ranks=ranks,
                 naming_convention=naming_convention)


def make_curriculum():
    return RankTest(
        id='rt-yellow',
        name='Yellow Belt Test',
        rank_id='rank-yellow',
        style_id='style-karate',
        categories=[
            Category(id='cat-kata', name='Kata', items=[
                Item(id='item-kata-1', name='Heian Shodan', type='form', required=True),
                Item(id='item-kata-2', name='Heian Nidan', type='form'),
            ]),
            Category(id='cat-fitness', name='Fitness', items=[
                Item(id='item-run', name='Mile Run', type='workout',
                     time_limit='10:00', time_limit_operator='lte'),
            ]),
        ],
    )


def make_two_item_curriculum():
    """One category, one required and one optional item."""
    return RankTest(
        id='rt-two', name='Two Item Test', rank_id='rank-yellow', style_id='style-karate',
        categories=[Category(id='cat-basics', name='Basics', items=[
            Item(id='req', name='Front Kick', required=True),
            Item(id='opt', name='Side Kick'),
        ])],
    )


def make_long_curriculum(n_items=80):
    """A single category long enough to spill over several pages."""
    items = [Item(id=f'item-{i}', name=f'Technique {i}') for i in range(n_items)]
    return RankTest(id='rt-long', name='Black Belt Test', rank_id='rank-orange',
                    style_id='style-karate',
                    categories=[Category(id='cat-all', name='Techniques', items=items)])


def make_participant(pid='p1', name='Alex Kim', current='White Belt',
                     testing_for='Yellow Belt', **kwargs):
    return Participant(id=pid, member_id=f'member-{pid}', member_name=name,
                       current_rank=current, testing_for_rank=testing_for, **kwargs)


def make_event(participants=None):
    if participants is None:
        participants = [
            make_participant('p1', 'Alex Kim'),
            make_participant('p2', 'Blair Ortiz'),
            make_participant('p3', 'Casey Nguyen'),
        ]
    return TestingEvent(id='evt-spring', name='Spring Belt Test', date='2026-03-14',
                        style_id='style-karate', style_name='Karate',
                        location='Main Dojo', participants=participants)
