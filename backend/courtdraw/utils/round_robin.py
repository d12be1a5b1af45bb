"""
Round-robin pairing generator for group matches.
"""

from typing import List, Optional, Sequence, Tuple


def generate_round_robin(participant_ids: Sequence[int]) -> List[Tuple[int, int, int]]:
    """
    Circle method. Returns (round_number, player1_id, player2_id) in round order.

    The first entry stays fixed and the rest rotate one position per round.
    An odd count adds a BYE position; pairings against it produce no match,
    so each participant sits out exactly one round.
    """
    ids: List[Optional[int]] = list(participant_ids)
    if len(ids) < 2:
        return []
    if len(ids) % 2 == 1:
        ids.append(None)  # BYE

    n = len(ids)
    half = n // 2
    result: List[Tuple[int, int, int]] = []

    for round_num in range(1, n):
        for i in range(half):
            a, b = ids[i], ids[n - 1 - i]
            if a is None or b is None:
                continue
            result.append((round_num, a, b))
        # Rotate all but the first position
        ids = [ids[0]] + [ids[-1]] + ids[1:-1]

    return result
