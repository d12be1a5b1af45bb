"""
Rating engine: expectation, K-factor by round, dominance multiplier,
categories, and the persisted update with rank recomputation.
"""
import pytest
from sqlmodel import Session, select

from courtdraw.models.match import STATE_COMPLETED, Match
from courtdraw.models.participant import Participant
from courtdraw.models.rating_change import RatingChange
from courtdraw.models.user import User
from courtdraw.services.errors import RatingError
from courtdraw.services.rating_engine import (
    RatingConfig,
    apply_match_rating,
    category_for_rating,
    category_letter,
    compute_deltas,
    dominance,
    dominance_multiplier,
    effective_rating,
    expected_score,
    k_factor,
    rating_history,
    recompute_ranks,
    team_rating,
)
from courtdraw.services.score_parser import SIDE_PLAYER1, SIDE_PLAYER2
from courtdraw.services.tournament_service import TournamentSettings, create_tournament, get_final_stage

from .helpers import make_user


class TestPureMaths:
    def test_expected_score(self):
        assert expected_score(1000, 1000) == pytest.approx(0.5)
        assert expected_score(1200, 1000) + expected_score(1000, 1200) == pytest.approx(1.0)
        assert expected_score(1200, 1000) > 0.5

    def test_k_factor_by_round(self):
        assert k_factor("Final") == 40
        assert k_factor("Semi Finals") == 36
        assert k_factor("Quarter Finals") == 32
        assert k_factor("Round of 16") == 28
        assert k_factor("Round 2") == 28
        assert k_factor(None) == 28

    def test_effective_rating_falls_back_to_baseline(self):
        assert effective_rating(None) == 900.0
        assert effective_rating("abc") == 900.0
        assert effective_rating(-5) == 900.0
        assert effective_rating(float("nan")) == 900.0
        assert effective_rating(1234.5) == 1234.5
        assert effective_rating(None, baseline=1000.0) == 1000.0

    def test_team_rating_is_average(self):
        assert team_rating([1100.0, 900.0]) == pytest.approx(1000.0)
        assert team_rating([1000.0, None]) == pytest.approx(950.0)
        assert team_rating([]) == 900.0

    def test_dominance(self):
        assert dominance([(6, 0), (6, 0)], SIDE_PLAYER1) == pytest.approx(1.0)
        assert dominance([(0, 6), (3, 6)], SIDE_PLAYER2) == pytest.approx(0.75)
        # Never negative from the winner's perspective
        assert dominance([(6, 0)], SIDE_PLAYER2) == 0.0
        assert dominance([], SIDE_PLAYER1) == 0.0
        assert dominance([(6, 0)], None) == 0.0

    def test_dominance_multiplier_is_capped(self):
        assert dominance_multiplier(0.0) == pytest.approx(1.0)
        assert dominance_multiplier(1.0) == pytest.approx(1.5)
        assert dominance_multiplier(10.0) == pytest.approx(1.75)
        assert dominance_multiplier(10.0, RatingConfig(dominance_cap=2.0)) == pytest.approx(2.0)

    def test_underdog_gains_more(self):
        sets = [(6, 4), (6, 4)]
        upset = compute_deltas([1000.0], [1200.0], "Round 1", sets, SIDE_PLAYER1)
        expected = compute_deltas([1200.0], [1000.0], "Round 1", sets, SIDE_PLAYER1)
        assert upset.winner_delta > expected.winner_delta > 0
        assert upset.loser_delta < expected.loser_delta < 0

    def test_zero_sum_for_equal_team_sizes(self):
        deltas = compute_deltas([1100.0], [1000.0], "Final", [(6, 3)], SIDE_PLAYER1)
        assert deltas.winner_delta + deltas.loser_delta == pytest.approx(0.0)

    def test_dominant_win_moves_more_than_narrow_win(self):
        dominant = compute_deltas([1000.0], [1000.0], "Round 1", [(6, 0), (6, 0)], SIDE_PLAYER1)
        narrow = compute_deltas([1000.0], [1000.0], "Round 1", [(7, 6), (6, 7), (7, 6)], SIDE_PLAYER1)

        assert dominant.winner_delta > narrow.winner_delta > 0
        assert dominant.winner_delta == pytest.approx(28 * 1.5 * 0.5)
        assert dominant.winner_delta <= 28 * 1.75 * 0.5

    def test_tie_uses_half_score_and_no_multiplier(self):
        level = compute_deltas([1000.0], [1000.0], "Round 1", [(6, 4), (4, 6)], None, is_tie=True)
        assert level.winner_delta == pytest.approx(0.0)
        assert level.loser_delta == pytest.approx(0.0)
        assert level.k == 28

        uneven = compute_deltas([1000.0], [1200.0], "Round 1", [(6, 0), (0, 6)], None, is_tie=True)
        assert uneven.winner_delta > 0 > uneven.loser_delta

    def test_config_from_env(self, monkeypatch):
        monkeypatch.setenv("RATING_BASELINE", "1000")
        monkeypatch.setenv("RATING_DOMINANCE_CAP", "2.5")
        monkeypatch.setenv("RATING_DOMINANCE_WEIGHT", "0.25")
        config = RatingConfig.from_env()
        assert config == RatingConfig(baseline=1000.0, dominance_cap=2.5, dominance_weight=0.25)


class TestCategories:
    @pytest.mark.parametrize("rating,category", [
        (850, "D-"),
        (900, "D-"),
        (949.9, "D-"),
        (950, "D"),
        (999, "D"),
        (1000, "D+"),
        (1049, "D+"),
        (1050, "C-"),
        (1120, "C"),
        (1199, "C+"),
        (1200, "B-"),
        (1349, "B+"),
        (1350, "A-"),
        (1499, "A+"),
        (1500, "A+"),
        (2100, "A+"),
    ])
    def test_bands(self, rating, category):
        assert category_for_rating(rating) == category


@pytest.fixture
def rated_setup(session: Session):
    """Single-stage tournament with two one-player participants and a bystander in the same category."""
    tournament = create_tournament(session, TournamentSettings(name="Rated Cup", tournament_format="single"))
    stage = get_final_stage(session, tournament.id)
    bystander = make_user(session, "Bystander", rating=1040.0)
    u1 = make_user(session, "Winner", rating=1000.0)
    u2 = make_user(session, "Loser", rating=1000.0)
    p1 = Participant(tournament_id=tournament.id, name="Winner", user1_id=u1.id)
    p2 = Participant(tournament_id=tournament.id, name="Loser", user1_id=u2.id)
    session.add(p1)
    session.add(p2)
    session.flush()

    def make_match(scores, winner_id, round_name="Final", player2_id=None):
        match = Match(
            tournament_id=tournament.id,
            stage_id=stage.id,
            round_number=1,
            round_name=round_name,
            player1_id=p1.id,
            player2_id=player2_id or p2.id,
            scores_csv=scores,
            winner_id=winner_id,
            state=STATE_COMPLETED,
        )
        session.add(match)
        session.flush()
        return match

    return {
        "tournament": tournament,
        "bystander": bystander,
        "u1": u1,
        "u2": u2,
        "p1": p1,
        "p2": p2,
        "make_match": make_match,
    }


class TestApplyMatchRating:
    def test_updates_ratings_history_and_ranks(self, session: Session, rated_setup):
        match = rated_setup["make_match"]("6-0,6-0", rated_setup["p1"].id)

        changes = apply_match_rating(session, match, RatingConfig())
        session.commit()

        assert len(changes) == 2
        u1, u2, bystander = rated_setup["u1"], rated_setup["u2"], rated_setup["bystander"]
        session.refresh(u1)
        session.refresh(u2)
        session.refresh(bystander)

        # K = 40 (Final) * 1.5 (6-0, 6-0), expectation 0.5
        assert u1.rating == pytest.approx(1030.0)
        assert u2.rating == pytest.approx(970.0)
        assert u1.category == "D+"
        assert u2.category == "D"
        assert [bystander.rank, u1.rank, u2.rank] == [1, 2, 3]
        assert match.rating_applied

        history = rating_history(session, u1.id)
        assert len(history) == 1
        assert history[0].rating_before == pytest.approx(1000.0)
        assert history[0].delta == pytest.approx(30.0)
        assert history[0].category_before == "D+"
        assert history[0].k_factor == pytest.approx(60.0)

    def test_second_application_is_a_no_op(self, session: Session, rated_setup):
        match = rated_setup["make_match"]("6-3,6-3", rated_setup["p1"].id)
        apply_match_rating(session, match, RatingConfig())
        rating_after_first = rated_setup["u1"].rating

        assert apply_match_rating(session, match, RatingConfig()) == []
        assert rated_setup["u1"].rating == rating_after_first
        rows = session.exec(select(RatingChange).where(RatingChange.match_id == match.id)).all()
        assert len(rows) == 2

    def test_history_without_flag_marks_applied(self, session: Session, rated_setup):
        match = rated_setup["make_match"]("6-3,6-3", rated_setup["p1"].id)
        apply_match_rating(session, match, RatingConfig())
        match.rating_applied = False

        assert apply_match_rating(session, match, RatingConfig()) == []
        assert match.rating_applied

    def test_tie_between_equals_moves_nobody(self, session: Session, rated_setup):
        match = rated_setup["make_match"]("6-4,4-6", None, round_name="Round 1")
        changes = apply_match_rating(session, match, RatingConfig())
        assert len(changes) == 2
        assert all(c.delta == pytest.approx(0.0) for c in changes)

    def test_team_users_share_the_delta(self, session: Session, rated_setup):
        tournament = rated_setup["tournament"]
        a = make_user(session, "Team A", rating=1100.0)
        b = make_user(session, "Team B", rating=900.0)
        team = Participant(tournament_id=tournament.id, name="Team", user1_id=a.id, user2_id=b.id)
        session.add(team)
        session.flush()

        match = rated_setup["make_match"]("4-6,4-6", team.id, player2_id=team.id)
        changes = apply_match_rating(session, match, RatingConfig())

        deltas = {c.user_id: c.delta for c in changes}
        assert deltas[a.id] == pytest.approx(deltas[b.id])
        assert deltas[a.id] > 0
        assert deltas[rated_setup["u1"].id] < 0

    def test_side_without_users_raises(self, session: Session, rated_setup):
        tournament = rated_setup["tournament"]
        ghost = Participant(tournament_id=tournament.id, name="Ghost")
        session.add(ghost)
        session.flush()
        match = rated_setup["make_match"]("6-4,6-4", rated_setup["p1"].id, player2_id=ghost.id)

        with pytest.raises(RatingError):
            apply_match_rating(session, match, RatingConfig())

    def test_rank_recompute_only_touches_affected_letters(self, session: Session, rated_setup):
        outsider = make_user(session, "Outsider", rating=1400.0)
        outsider.rank = 99
        session.add(outsider)
        session.flush()

        match = rated_setup["make_match"]("6-0,6-0", rated_setup["p1"].id)
        apply_match_rating(session, match, RatingConfig())
        session.flush()

        assert session.get(User, outsider.id).rank == 99

    def test_top_category_ranks_inside_its_letter(self, session: Session):
        top = make_user(session, "Top", rating=1620.0)
        upper_a = make_user(session, "Upper A", rating=1460.0)
        lower_a = make_user(session, "Lower A", rating=1360.0)
        assert [top.category, upper_a.category, lower_a.category] == ["A+", "A+", "A-"]
        assert category_letter(top.category) == "A"

        recompute_ranks(session, ["A"])

        assert [top.rank, upper_a.rank, lower_a.rank] == [1, 2, 3]
