"""
Pure resolution of completed submission rounds.

Both functions assume the round is complete (every eligible player has
submitted); the state machine decides when that is the case.
"""

from collections.abc import Mapping, Sequence

from avalon.logic.enums import VoteChoice
from avalon.logic.state import AvalonPlayer
from avalon.logic.types import QuestOutcome, VoteDetail, VoteOutcome


def tally_votes(players: Sequence[AvalonPlayer], votes: Mapping[str, bool]) -> VoteOutcome:
    """
    Tally a team-proposal vote.

    A proposal passes only with strictly more approvals than rejections, so a
    tie is a rejection. Every seated player counts; a missing vote counts as a
    rejection. Vote details are listed in seat order.
    """
    approvals = sum(1 for p in players if votes.get(p.player_id) is True)
    rejections = len(players) - approvals
    details = [
        VoteDetail(
            name=p.name,
            vote=VoteChoice.APPROVE if votes.get(p.player_id) is True else VoteChoice.REJECT,
        )
        for p in players
    ]
    return VoteOutcome(
        passed=approvals > rejections,
        approvals=approvals,
        rejections=rejections,
        votes=details,
    )


def resolve_quest(moves: Mapping[str, bool]) -> QuestOutcome:
    """A mission fails if any single team member played a fail."""
    fail_count = sum(1 for move in moves.values() if move is False)
    return QuestOutcome(success=fail_count == 0, fail_count=fail_count)
