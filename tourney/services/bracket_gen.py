"""Bracket generation service.

Builds a single-elimination match tree from a flat participant list. Pure: no
database access here, see tourney.services.persistence for writes.
"""
from __future__ import annotations

import math
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence

from tourney.errors import ValidationError
from tourney.timestamps import to_utc_datetime


@dataclass
class GeneratedMatch:
    """Match produced by generate_bracket, before persistence."""

    id: str
    round_index: int
    round_name: str
    match_order: int
    participant_a_id: Optional[str] = None
    participant_b_id: Optional[str] = None
    next_match_id: Optional[str] = None
    winner_slot_in_next: Optional[str] = None  # A or B

    def to_dict(self) -> dict:
        return asdict(self)


def next_power_of_2(n: int) -> int:
    """Round up to next power of 2 (minimum 1)."""
    p = 1
    while p < n:
        p *= 2
    return p


def calculate_byes(n: int) -> int:
    """Empty slots needed to fill the first round."""
    return next_power_of_2(n) - max(n, 0)


def total_rounds_for(bracket_size: int) -> int:
    """Rounds needed for a bracket of this size. A size-1 bracket still has its one Final."""
    return max(1, int(math.log2(bracket_size)))


def round_name(round_index: int, total_rounds: int) -> str:
    """Name a round by its distance from the final."""
    remaining = (total_rounds - 1) - round_index
    if remaining == 0:
        return "Final"
    if remaining == 1:
        return "Semi Final"
    if remaining == 2:
        return "Quarter Final"
    return f"Round {round_index + 1}"


def _created_sort_value(value: Any) -> float:
    # Missing registration time sorts first
    dt = to_utc_datetime(value)
    if dt is None:
        return 0.0
    return dt.timestamp()


def sort_participants(participants: Iterable[Any]) -> List[Any]:
    """Seeded first (seed ascending), then unseeded by created_at ascending. Stable for ties."""

    def key(p):
        seed = getattr(p, "seed", None)
        if seed:
            return (0, seed, 0.0)
        return (1, 0, _created_sort_value(getattr(p, "created_at", None)))

    return sorted(participants, key=key)


def validate_participants(participants: Sequence[Any]) -> None:
    """Raise ValidationError for duplicate ids, bad seeds or a mismatched user/team reference."""
    seen = set()
    for p in participants:
        pid = getattr(p, "id", None)
        if not pid:
            raise ValidationError("Participant is missing an id")
        if pid in seen:
            raise ValidationError(f"Duplicate participant id: {pid}")
        seen.add(pid)
        seed = getattr(p, "seed", None)
        if seed is not None and (not isinstance(seed, int) or isinstance(seed, bool) or seed < 1):
            raise ValidationError(f"Participant {pid} has invalid seed {seed!r}; seeds are positive integers")
        ptype = getattr(p, "type", None)
        if ptype is None:
            continue
        user_id = getattr(p, "user_id", None)
        team_id = getattr(p, "team_id", None)
        if ptype == "USER" and not (user_id and not team_id):
            raise ValidationError(f"Participant {pid} is type USER but does not reference exactly one user")
        if ptype == "TEAM" and not (team_id and not user_id):
            raise ValidationError(f"Participant {pid} is type TEAM but does not reference exactly one team")
        if ptype not in ("USER", "TEAM"):
            raise ValidationError(f"Participant {pid} has unknown type {ptype!r}")


def _new_match_id() -> str:
    return str(uuid.uuid4())


def generate_bracket(
    participants: Sequence[Any],
    existing_matches: Optional[Sequence[Any]] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> List[GeneratedMatch]:
    """Build every match of a single-elimination bracket.

    participants: objects with id and optional seed / created_at.
    existing_matches: a previous bracket for the same stage (objects with .id, or
    plain id strings). Their ids are reused in generation order (round 0 first,
    ascending match_order) before new ids are minted, so regenerating a stage
    overwrites the prior records instead of duplicating them. Not mutated.

    Byes are left as empty slots; resolving them is a separate step
    (advancement.resolve_byes).
    """
    validate_participants(participants)
    make_id = id_factory or _new_match_id
    reusable = [getattr(m, "id", m) for m in (existing_matches or [])]
    reusable.reverse()

    ordered = sort_participants(participants)
    bracket_size = next_power_of_2(len(ordered))
    total_rounds = total_rounds_for(bracket_size)

    slots: List[Optional[Any]] = [None] * max(bracket_size, 2)
    for i, p in enumerate(ordered):
        slots[i] = p

    matches: List[GeneratedMatch] = []
    previous_round: List[GeneratedMatch] = []
    round_size = max(1, bracket_size // 2)
    for r in range(total_rounds):
        current_round: List[GeneratedMatch] = []
        for i in range(round_size):
            match_id = reusable.pop() if reusable else make_id()
            m = GeneratedMatch(
                id=match_id,
                round_index=r,
                round_name=round_name(r, total_rounds),
                match_order=i,
            )
            if r == 0:
                a, b = slots[2 * i], slots[2 * i + 1]
                m.participant_a_id = a.id if a is not None else None
                m.participant_b_id = b.id if b is not None else None
            current_round.append(m)
            matches.append(m)

        # Link the earlier round into this one
        for j, prev in enumerate(previous_round):
            prev.next_match_id = current_round[j // 2].id
            prev.winner_slot_in_next = "A" if j % 2 == 0 else "B"

        previous_round = current_round
        round_size = max(1, round_size // 2)

    return matches
