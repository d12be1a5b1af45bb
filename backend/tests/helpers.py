"""Builders shared by the engine tests."""
from typing import Dict, List, Optional, Sequence

from sqlmodel import Session, select

from courtdraw.models.group import Group
from courtdraw.models.match import Match
from courtdraw.models.participant import Participant
from courtdraw.models.stage import Stage
from courtdraw.models.tournament import Tournament
from courtdraw.models.user import User
from courtdraw.services.advancement_service import complete_match
from courtdraw.services.bracket_rules import Feeder, SkeletonMatch
from courtdraw.services.group_service import create_groups_with_participants, generate_group_matches
from courtdraw.services.participant_service import register_participant
from courtdraw.services.rating_engine import category_for_rating
from courtdraw.services.tournament_service import TournamentSettings, create_tournament


def make_user(session: Session, name: str, rating: float = 1000.0) -> User:
    user = User(name=name, rating=rating, category=category_for_rating(rating))
    session.add(user)
    session.flush()
    return user


def register_players(session: Session, tournament_id: int, count: int, prefix: str = "P", seeds: Optional[Sequence[Optional[int]]] = None) -> List[Participant]:
    """One user per participant; the user rating decreases with the index."""
    participants = []
    for i in range(count):
        user = make_user(session, f"{prefix}{i + 1}", rating=1300.0 - 10 * i)
        seed = seeds[i] if seeds else None
        participants.append(register_participant(session, tournament_id, f"{prefix}{i + 1}", user1_id=user.id, seed=seed))
    return participants


def make_single_tournament(session: Session, entrants: int, bye_strategy: str = "direct", is_rated: bool = True) -> Tournament:
    tournament = create_tournament(session, TournamentSettings(
        name="Knockout Open",
        tournament_format="single",
        bye_strategy=bye_strategy,
        is_rated=is_rated,
    ))
    register_players(session, tournament.id, entrants)
    session.commit()
    return tournament


def make_group_tournament(
    session: Session,
    group_count: int,
    per_group: int,
    advance: int,
    bracket_seeding: str = "seeded",
    bye_strategy: str = "direct",
    is_rated: bool = True,
) -> Tournament:
    """Round-robin tournament with groups filled in registration order and matches generated."""
    tournament = create_tournament(session, TournamentSettings(
        name="Club Championship",
        tournament_format="round_robin",
        participants_per_group=per_group,
        participants_advance=advance,
        bracket_seeding=bracket_seeding,
        bye_strategy=bye_strategy,
        is_rated=is_rated,
    ))
    participants = register_players(session, tournament.id, group_count * per_group)
    groups = [
        [p.id for p in participants[g * per_group:(g + 1) * per_group]]
        for g in range(group_count)
    ]
    create_groups_with_participants(session, tournament.id, groups)
    generate_group_matches(session, tournament.id)
    session.commit()
    return tournament


def stage_by_name(session: Session, tournament_id: int, name: str) -> Stage:
    return session.exec(select(Stage).where(Stage.tournament_id == tournament_id, Stage.name == name)).one()


def groups_of(session: Session, tournament_id: int) -> List[Group]:
    return list(session.exec(
        select(Group).where(Group.tournament_id == tournament_id).order_by(Group.group_index)
    ).all())


def group_matches(session: Session, group_id: int) -> List[Match]:
    return list(session.exec(select(Match).where(Match.group_id == group_id).order_by(Match.id)).all())


def lower_id_wins(match: Match) -> str:
    """Score where the participant with the lower id wins 6-2, 6-3."""
    if match.player1_id < match.player2_id:
        return "6-2,6-3"
    return "2-6,3-6"


def play_group(session: Session, group_id: int, scorer=lower_id_wins) -> None:
    for match in group_matches(session, group_id):
        if not match.is_completed:
            complete_match(session, match.id, scores_csv=scorer(match))


def play_all_groups(session: Session, tournament_id: int, scorer=lower_id_wins) -> None:
    for group in groups_of(session, tournament_id):
        play_group(session, group.id, scorer)


def bracket_matches(session: Session, stage_id: int) -> List[Match]:
    return list(session.exec(
        select(Match).where(Match.stage_id == stage_id).order_by(Match.round_number, Match.sequence_in_round)
    ).all())


def playable(session: Session, stage_id: int) -> List[Match]:
    return [
        m for m in bracket_matches(session, stage_id)
        if not m.is_completed and not m.is_bye and m.player1_id is not None and m.player2_id is not None
    ]


def play_bracket(session: Session, stage_id: int, scorer=lower_id_wins) -> Dict[int, int]:
    """Play every playable match until none is left. Returns match id -> winner id."""
    winners: Dict[int, int] = {}
    ready = playable(session, stage_id)
    while ready:
        for match in ready:
            result = complete_match(session, match.id, scores_csv=scorer(match))
            winners[match.id] = result.winner_id
        ready = playable(session, stage_id)
    return winners


def rounds_to_final(skeleton: List[SkeletonMatch], key: int) -> int:
    """Matches from skeleton match `key` up to and including the Final."""
    consumers = {}
    for m in skeleton:
        for src in m.sources:
            if isinstance(src, Feeder):
                consumers[src.key] = m.key
    steps = 1
    while key in consumers:
        key = consumers[key]
        steps += 1
    return steps
