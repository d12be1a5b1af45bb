"""
Bracket Rules: single source of truth for knockout bracket shape.

Pure functions and value objects, no database access:
1. Balanced seeding order (recursive mirroring)
2. Field-size policy (power of two / byes / play-ins) as a BracketPlan
3. Round naming by distance from the Final
4. Skeleton construction: the full match tree with typed slot sources

bracket_builder.py materializes a skeleton into Match rows. Nothing else
should contain bracket math.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from courtdraw.services.errors import ValidationFailed

BYE_DIRECT = "direct"
BYE_AUTO_COMPLETE = "auto_complete"
BYE_STRATEGIES = (BYE_DIRECT, BYE_AUTO_COMPLETE)

PLAY_IN_ROUND_NAME = "Play-In"

# Indexed by distance from the Final (0 = Final)
ROUND_NAMES_FROM_FINAL = [
    "Final",
    "Semi Finals",
    "Quarter Finals",
    "Round of 16",
    "Round of 32",
    "Round of 64",
]


# =============================================================================
# Slot sources
# =============================================================================

@dataclass(frozen=True)
class Seeded:
    """Slot filled by the qualifier holding this seed."""
    seed: int


@dataclass(frozen=True)
class PlayInWinner:
    """Slot filled by the winner of the play-in match at this 0-based index."""
    index: int


@dataclass(frozen=True)
class Feeder:
    """Slot filled by the winner of the skeleton match with this key."""
    key: int


@dataclass(frozen=True)
class Bye:
    """Structural bye: nobody will ever occupy this slot."""
    pass


SlotSource = Union[Seeded, PlayInWinner, Feeder, Bye]


# =============================================================================
# Sizing helpers
# =============================================================================

def next_power_of_two(n: int) -> int:
    if n <= 1:
        return 1
    return 1 << (n - 1).bit_length()


def prev_power_of_two(n: int) -> int:
    if n <= 1:
        return 1
    return 1 << (n.bit_length() - 1)


def is_power_of_two(n: int) -> bool:
    return n >= 1 and (n & (n - 1)) == 0


def build_seeding_order(bracket_size: int) -> List[int]:
    """
    Standard balanced seeding order for a 2^k bracket.

    Start with [1]; each doubling to size 2s replaces every seed x with
    (x, 2s + 1 - x). Consecutive pairs meet in the first round:
      4  -> [1, 4, 2, 3]
      8  -> [1, 8, 4, 5, 2, 7, 3, 6]
      16 -> [1, 16, 8, 9, 4, 13, 5, 12, 2, 15, 7, 10, 3, 14, 6, 11]
    """
    if not is_power_of_two(bracket_size):
        raise ValueError(f"bracket_size must be a power of two, got {bracket_size}")

    order = [1]
    size = 1
    while size < bracket_size:
        mirror = size * 2 + 1
        expanded: List[int] = []
        for s in order:
            expanded.append(s)
            expanded.append(mirror - s)
        order = expanded
        size *= 2
    return order


def get_round_name(round_number: int, total_rounds: int, has_play_in: bool = False) -> str:
    """Human label for a round, counted backwards from the Final."""
    if has_play_in and round_number == 1:
        return PLAY_IN_ROUND_NAME
    distance = total_rounds - round_number
    if 0 <= distance < len(ROUND_NAMES_FROM_FINAL):
        return ROUND_NAMES_FROM_FINAL[distance]
    return f"Round {round_number}"


def group_letter(group_index: int) -> str:
    """0 -> "A", 1 -> "B", ..."""
    return chr(ord("A") + group_index)


def seed_label(seed: int) -> str:
    return f"Seed{seed}"


# =============================================================================
# Bracket plan
# =============================================================================

@dataclass(frozen=True)
class BracketPlan:
    """Field-size decision for N qualifiers, computed once and consumed by the skeleton builder."""

    qualifier_count: int
    bracket_size: int          # Main-draw size M (power of two)
    play_in_count: int         # Number of play-in matches
    bye_count: int             # Structural byes in the main draw
    total_rounds: int          # Including the play-in round
    bye_strategy: str
    main_slots: Tuple[SlotSource, ...] = field(default_factory=tuple)

    @property
    def has_play_ins(self) -> bool:
        return self.play_in_count > 0

    @property
    def first_main_round(self) -> int:
        return 2 if self.has_play_ins else 1

    def play_in_pairs(self) -> List[Tuple[int, int]]:
        """(higher seed, lower seed) per play-in match, e.g. N=18 -> [(15, 18), (16, 17)]."""
        first_replaced = self.bracket_size - self.play_in_count + 1
        return [
            (first_replaced + i, self.qualifier_count - i)
            for i in range(self.play_in_count)
        ]


def plan_bracket(qualifier_count: int, bye_strategy: str = BYE_DIRECT) -> BracketPlan:
    """
    Decide bracket size, byes and play-ins for N qualifiers.

    Rules:
    - N is a power of two: M = N, no byes, no play-ins
    - N strictly closer to the previous power of two: M = prev, N - prev play-ins
      between the bottom 2 * (N - prev) seeds; winners take the bottom slots
    - otherwise: M = next power of two, next - N byes
    """
    if qualifier_count < 2:
        raise ValidationFailed(f"At least 2 qualifiers are required for a bracket, got {qualifier_count}")
    if bye_strategy not in BYE_STRATEGIES:
        raise ValidationFailed(f"Unknown bye strategy: {bye_strategy}")

    n = qualifier_count
    prev_pow = prev_power_of_two(n)
    next_pow = next_power_of_two(n)

    if n == prev_pow:
        bracket_size, play_ins = n, 0
    elif n - prev_pow < next_pow - n:
        bracket_size, play_ins = prev_pow, n - prev_pow
    else:
        bracket_size, play_ins = next_pow, 0

    first_replaced = bracket_size - play_ins + 1
    slots: List[SlotSource] = []
    for seed in build_seeding_order(bracket_size):
        if seed > n:
            slots.append(Bye())
        elif play_ins and seed >= first_replaced:
            slots.append(PlayInWinner(seed - first_replaced))
        else:
            slots.append(Seeded(seed))

    main_rounds = bracket_size.bit_length() - 1
    return BracketPlan(
        qualifier_count=n,
        bracket_size=bracket_size,
        play_in_count=play_ins,
        bye_count=bracket_size - n if not play_ins else 0,
        total_rounds=main_rounds + (1 if play_ins else 0),
        bye_strategy=bye_strategy,
        main_slots=tuple(slots),
    )


# =============================================================================
# Skeleton
# =============================================================================

@dataclass
class SkeletonMatch:
    key: int
    round_number: int
    round_name: str
    sequence_in_round: int
    slot1: SlotSource
    slot2: SlotSource
    is_final: bool = False

    @property
    def is_bye(self) -> bool:
        return isinstance(self.slot1, Bye) != isinstance(self.slot2, Bye)

    @property
    def sources(self) -> Tuple[SlotSource, SlotSource]:
        return (self.slot1, self.slot2)


def build_skeleton(plan: BracketPlan) -> List[SkeletonMatch]:
    """
    Build the whole match tree for a plan, in insertion order.

    Play-ins first, then the first main round, then each later round pairing the
    previous round left to right. With the direct bye strategy a bye pair creates
    no match and the real side is carried straight into the next round; with
    auto_complete a bye match is created for the materializer to complete.
    """
    skeleton: List[SkeletonMatch] = []
    has_play_in = plan.has_play_ins

    play_in_keys: List[int] = []
    for i, (high, low) in enumerate(plan.play_in_pairs()):
        key = len(skeleton)
        skeleton.append(SkeletonMatch(
            key=key,
            round_number=1,
            round_name=PLAY_IN_ROUND_NAME,
            sequence_in_round=i + 1,
            slot1=Seeded(high),
            slot2=Seeded(low),
        ))
        play_in_keys.append(key)

    slots: List[SlotSource] = [
        Feeder(play_in_keys[s.index]) if isinstance(s, PlayInWinner) else s
        for s in plan.main_slots
    ]

    first_round = plan.first_main_round
    carried = pair_first_round(
        slots,
        first_round,
        get_round_name(first_round, plan.total_rounds, has_play_in),
        plan.bye_strategy,
        skeleton,
    )
    build_elimination_rounds(carried, first_round + 1, plan.total_rounds, skeleton, has_play_in)
    return skeleton


def pair_first_round(
    slots: Sequence[SlotSource],
    round_number: int,
    round_name: str,
    bye_strategy: str,
    skeleton: List[SkeletonMatch],
) -> List[SlotSource]:
    """
    Pair slots (0-1, 2-3, ...) into first-round matches appended to skeleton.

    Returns what each pair sends on: a Feeder for a created match, the real
    side of a direct bye, or Bye for an empty pair.
    """
    carried: List[SlotSource] = []
    seq = 0
    for i in range(0, len(slots), 2):
        left, right = slots[i], slots[i + 1]
        left_bye, right_bye = isinstance(left, Bye), isinstance(right, Bye)
        if left_bye and right_bye:
            carried.append(Bye())
            continue
        if (left_bye or right_bye) and bye_strategy == BYE_DIRECT:
            carried.append(right if left_bye else left)
            continue
        seq += 1
        key = len(skeleton)
        skeleton.append(SkeletonMatch(
            key=key,
            round_number=round_number,
            round_name=round_name,
            sequence_in_round=seq,
            slot1=left,
            slot2=right,
        ))
        carried.append(Feeder(key))
    return carried


def build_draft_skeleton(slots: Sequence[SlotSource], bye_strategy: str = BYE_DIRECT) -> List[SkeletonMatch]:
    """
    Skeleton for an explicit first-round layout instead of a seeding plan.

    slots holds the first round side by side (Bye for an empty side); its length
    must be a power of two. Later rounds pair winners left to right, as in a
    planned bracket, and byes follow bye_strategy.
    """
    if bye_strategy not in BYE_STRATEGIES:
        raise ValidationFailed(f"Unknown bye strategy: {bye_strategy}")
    if len(slots) < 2 or not is_power_of_two(len(slots)):
        raise ValidationFailed(f"A draft's first round needs a power-of-two number of matches, got {len(slots) // 2}")
    if sum(1 for s in slots if isinstance(s, Seeded)) < 2:
        raise ValidationFailed("At least 2 participants are required for a bracket")

    total_rounds = len(slots).bit_length() - 1
    skeleton: List[SkeletonMatch] = []
    carried = pair_first_round(slots, 1, get_round_name(1, total_rounds), bye_strategy, skeleton)
    build_elimination_rounds(carried, 2, total_rounds, skeleton)
    return skeleton


def build_elimination_rounds(
    sources: List[SlotSource],
    round_number: int,
    total_rounds: int,
    skeleton: List[SkeletonMatch],
    has_play_in: bool = False,
) -> Optional[SkeletonMatch]:
    """
    Pair sources round by round until one remains; append matches to skeleton.

    An odd source count gives the last source a free pass: it is paired with a
    Bye in that round. Returns the Final (also flagged is_final), or None when no
    match was needed.
    """
    while len(sources) > 1:
        round_name = get_round_name(round_number, total_rounds, has_play_in)
        next_sources: List[SlotSource] = []
        seq = 0
        for i in range(0, len(sources), 2):
            left = sources[i]
            right = sources[i + 1] if i + 1 < len(sources) else Bye()
            if isinstance(left, Bye) and isinstance(right, Bye):
                next_sources.append(Bye())
                continue
            seq += 1
            key = len(skeleton)
            skeleton.append(SkeletonMatch(
                key=key,
                round_number=round_number,
                round_name=round_name,
                sequence_in_round=seq,
                slot1=left,
                slot2=right,
            ))
            next_sources.append(Feeder(key))
        sources = next_sources
        round_number += 1

    if sources and isinstance(sources[0], Feeder):
        final = skeleton[sources[0].key]
        final.is_final = True
        return final
    return None
