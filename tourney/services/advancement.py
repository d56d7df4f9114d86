"""Advancement decisions: recording a winner and routing it into the next match.

Everything here works on match-like objects (ORM Match or GeneratedMatch) and
returns plain decisions; applying them to the store is done by
tourney.services.persistence.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from tourney.errors import ConflictError

SCHEDULED = "SCHEDULED"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class MatchOutcome:
    """Decision for one match result."""

    match_id: str
    winner_participant_id: str
    loser_participant_id: Optional[str] = None
    next_match_id: Optional[str] = None
    winner_slot_in_next: Optional[str] = None

    @property
    def match_update(self) -> Dict[str, Any]:
        return {"status": COMPLETED, "winner_participant_id": self.winner_participant_id}

    @property
    def next_match_update(self) -> Optional[Dict[str, Any]]:
        """Partial patch for the downstream match: only the slot the winner fills."""
        if not self.next_match_id:
            return None
        return {slot_column(self.winner_slot_in_next): self.winner_participant_id}


@dataclass
class ByePlan:
    outcomes: List[MatchOutcome] = field(default_factory=list)
    cancelled: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.outcomes or self.cancelled)


def _status(match: Any) -> str:
    # Freshly generated matches carry no status yet; older records may be lower-case
    return (getattr(match, "status", None) or SCHEDULED).upper()


def is_manual(match: Any) -> bool:
    return bool(getattr(match, "is_manual", False))


def slot_column(slot: Optional[str]) -> str:
    if slot == "A":
        return "participant_a_id"
    if slot == "B":
        return "participant_b_id"
    raise ValueError(f"Invalid slot {slot!r}; expected 'A' or 'B'")


def loser_of(match: Any, winner_id: Optional[str] = None) -> Optional[str]:
    """The participant who did not win, or None for a bye / undecided match."""
    winner = winner_id or match.winner_participant_id
    if not winner:
        return None
    if winner == match.participant_a_id:
        return match.participant_b_id
    if winner == match.participant_b_id:
        return match.participant_a_id
    return None


def record_result(match: Any, winner_id: str) -> MatchOutcome:
    """Validate a result and decide its effects.

    Raises ConflictError if the match is already completed (or cancelled) or the
    winner is not one of its two participants. The downstream match is only given
    a slot patch; its status is left alone.
    """
    status = _status(match)
    if status == COMPLETED:
        raise ConflictError(f"Match {match.id} already has a result")
    if status == CANCELLED:
        raise ConflictError(f"Match {match.id} is cancelled")
    if not winner_id or winner_id not in (match.participant_a_id, match.participant_b_id):
        raise ConflictError(f"Participant {winner_id} is not playing in match {match.id}")
    return MatchOutcome(
        match_id=match.id,
        winner_participant_id=winner_id,
        loser_participant_id=loser_of(match, winner_id),
        next_match_id=match.next_match_id,
        winner_slot_in_next=match.winner_slot_in_next if match.next_match_id else None,
    )


def final_match(matches: Iterable[Any]) -> Optional[Any]:
    """The root of the bracket: the match nobody feeds forward from. Hand-scheduled matches are not part of the tree."""
    finals = [m for m in matches if not m.next_match_id and not is_manual(m)]
    if not finals:
        return None
    return max(finals, key=lambda m: (m.round_index, -m.match_order))


def champion(matches: Iterable[Any]) -> Optional[str]:
    m = final_match(matches)
    if m is None or _status(m) != COMPLETED:
        return None
    return m.winner_participant_id


def is_bracket_resolved(matches: Iterable[Any]) -> bool:
    return champion(matches) is not None


def resolve_byes(matches: Sequence[Any]) -> ByePlan:
    """Work out which matches can be settled without being played.

    A slot is dead when it is empty and can never be filled: a first-round slot
    with no participant, or a slot whose feeder match is dead. A match with both
    slots dead is cancelled. A scheduled match with one dead slot and a
    participant in the other is won by that participant, and the win is routed
    forward so later rounds can cascade in the same pass.

    Hand-scheduled matches are never settled here: an empty slot there means
    the opponent is still to be decided, not a bye.
    """
    ordered = sorted(matches, key=lambda m: (m.round_index, m.match_order))
    slots = {m.id: {"A": m.participant_a_id, "B": m.participant_b_id} for m in ordered}
    feeders: Dict[str, Dict[str, str]] = defaultdict(dict)
    for m in ordered:
        if m.next_match_id and m.winner_slot_in_next:
            feeders[m.next_match_id][m.winner_slot_in_next] = m.id

    dead: Set[str] = {m.id for m in ordered if _status(m) == CANCELLED}
    plan = ByePlan()

    def slot_dead(m, slot: str) -> bool:
        if slots[m.id][slot] is not None:
            return False
        feeder = feeders.get(m.id, {}).get(slot)
        if feeder is not None:
            return feeder in dead
        return m.round_index == 0

    for m in ordered:
        if _status(m) != SCHEDULED or is_manual(m):
            continue
        a_dead, b_dead = slot_dead(m, "A"), slot_dead(m, "B")
        if a_dead and b_dead:
            dead.add(m.id)
            plan.cancelled.append(m.id)
            continue
        if a_dead == b_dead:
            continue
        winner = slots[m.id]["B"] if a_dead else slots[m.id]["A"]
        if winner is None:
            continue  # live slot still waiting on its feeder
        outcome = MatchOutcome(
            match_id=m.id,
            winner_participant_id=winner,
            next_match_id=m.next_match_id,
            winner_slot_in_next=m.winner_slot_in_next if m.next_match_id else None,
        )
        plan.outcomes.append(outcome)
        if m.next_match_id in slots and m.winner_slot_in_next:
            slots[m.next_match_id][m.winner_slot_in_next] = winner
    return plan
