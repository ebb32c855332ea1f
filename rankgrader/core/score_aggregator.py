"""Score aggregation for a graded curriculum.

The percentage counts passed items over all curriculum items. Required items
gate a pass but never grant one: the final status is whatever the grader
explicitly chose, and INCOMPLETE until they do.
"""

from .item_scores import ScoreSnapshot
from .models import GradeSummary, ParticipantStatus, RankTest, ScoreState


def percent_score(passed_items: int, total_items: int) -> int:
    """Whole-number percentage, rounding halves up; 0 for an empty curriculum."""
    if total_items <= 0:
        return 0
    return (passed_items * 200 + total_items) // (total_items * 2)


def aggregate(curriculum: RankTest | None, snapshot: ScoreSnapshot,
              manual_override: ParticipantStatus | str | None = None) -> GradeSummary:
    """Summarize a participant's item scores against a curriculum.

    Args:
        curriculum: Curriculum graded against (None counts as empty).
        snapshot: item_id -> ItemScore; missing items are incomplete and
                  ids outside the curriculum are ignored.
        manual_override: PASSED or FAILED when the grader made a decision.

    Returns:
        GradeSummary with percent, required_remaining and final_status.
    """
    total = passed = failed = required_remaining = 0

    if curriculum is not None:
        for item in curriculum.all_items():
            total += 1
            score = snapshot.get(item.id)
            state = score.state if score is not None else ScoreState.INCOMPLETE
            if state is ScoreState.PASSED:
                passed += 1
            else:
                if state is ScoreState.FAILED:
                    failed += 1
                if item.required:
                    required_remaining += 1

    return GradeSummary(
        percent=percent_score(passed, total),
        required_remaining=required_remaining,
        final_status=final_status(manual_override),
        passed_items=passed,
        failed_items=failed,
        total_items=total,
    )


def final_status(manual_override: ParticipantStatus | str | None) -> ParticipantStatus:
    """The grader's explicit PASSED/FAILED decision, else INCOMPLETE."""
    if manual_override:
        status = ParticipantStatus(manual_override)
        if status in (ParticipantStatus.PASSED, ParticipantStatus.FAILED):
            return status
    return ParticipantStatus.INCOMPLETE
