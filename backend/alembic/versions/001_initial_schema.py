"""Initial schema: tournaments, stages, groups, participants, bracket and rating tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("rating", sa.Float(), nullable=True),
        sa.Column("category", sa.String(), nullable=False, server_default="D-"),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_email", "user", ["email"])

    op.create_table(
        "tournament",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("tournament_format", sa.String(), nullable=False, server_default="round_robin"),
        sa.Column("participants_per_group", sa.Integer(), nullable=True),
        sa.Column("participants_advance", sa.Integer(), nullable=True),
        sa.Column("bracket_seeding", sa.String(), nullable=False, server_default="seeded"),
        sa.Column("bye_strategy", sa.String(), nullable=False, server_default="direct"),
        sa.Column("allow_withdrawal", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_rated", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("state", sa.String(), nullable=False, server_default="pending"),
        sa.Column("first_place_participant_id", sa.Integer(), nullable=True),
        sa.Column("second_place_participant_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "stage",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("state", sa.String(), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.UniqueConstraint("tournament_id", "order_index", name="uq_tournament_stage_order"),
    )
    op.create_index("ix_stage_tournament_id", "stage", ["tournament_id"])

    op.create_table(
        "group",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("stage_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("group_index", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(), nullable=False, server_default="pending"),
        sa.Column("scheduled_time", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["stage_id"], ["stage.id"]),
        sa.UniqueConstraint("stage_id", "group_index", name="uq_stage_group_index"),
    )
    op.create_index("ix_group_tournament_id", "group", ["tournament_id"])
    op.create_index("ix_group_stage_id", "group", ["stage_id"])

    op.create_table(
        "participant",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("comment", sa.String(), nullable=True),
        sa.Column("user1_id", sa.Integer(), nullable=True),
        sa.Column("user2_id", sa.Integer(), nullable=True),
        sa.Column("is_disqualified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("seed", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["user1_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["user2_id"], ["user.id"]),
    )
    op.create_index("ix_participant_tournament_id", "participant", ["tournament_id"])

    op.create_table(
        "group_participant",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("participant_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["group_id"], ["group.id"]),
        sa.ForeignKeyConstraint(["participant_id"], ["participant.id"]),
        sa.UniqueConstraint("group_id", "participant_id", name="uq_group_participant"),
    )
    op.create_index("ix_group_participant_group_id", "group_participant", ["group_id"])
    op.create_index("ix_group_participant_participant_id", "group_participant", ["participant_id"])

    op.create_table(
        "stage_participant",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("stage_id", sa.Integer(), nullable=False),
        sa.Column("participant_label", sa.String(), nullable=False),
        sa.Column("seed", sa.Integer(), nullable=True),
        sa.Column("participant_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["stage_id"], ["stage.id"]),
        sa.ForeignKeyConstraint(["participant_id"], ["participant.id"]),
        sa.UniqueConstraint("stage_id", "participant_label", name="uq_stage_participant_label"),
        sa.UniqueConstraint("stage_id", "seed", name="uq_stage_participant_seed"),
    )
    op.create_index("ix_stage_participant_stage_id", "stage_participant", ["stage_id"])

    op.create_table(
        "match",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("stage_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=True),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("round_name", sa.String(), nullable=True),
        sa.Column("sequence_in_round", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("identifier", sa.String(), nullable=True),
        sa.Column("state", sa.String(), nullable=False, server_default="pending"),
        sa.Column("player1_id", sa.Integer(), nullable=True),
        sa.Column("player2_id", sa.Integer(), nullable=True),
        sa.Column("stage_player1_id", sa.Integer(), nullable=True),
        sa.Column("stage_player2_id", sa.Integer(), nullable=True),
        sa.Column("player1_prereq_match_id", sa.Integer(), nullable=True),
        sa.Column("player2_prereq_match_id", sa.Integer(), nullable=True),
        sa.Column("scores_csv", sa.String(), nullable=True),
        sa.Column("winner_id", sa.Integer(), nullable=True),
        sa.Column("is_bye", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_final", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rating_applied", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["stage_id"], ["stage.id"]),
        sa.ForeignKeyConstraint(["group_id"], ["group.id"]),
        sa.ForeignKeyConstraint(["player1_id"], ["participant.id"]),
        sa.ForeignKeyConstraint(["player2_id"], ["participant.id"]),
        sa.ForeignKeyConstraint(["stage_player1_id"], ["stage_participant.id"]),
        sa.ForeignKeyConstraint(["stage_player2_id"], ["stage_participant.id"]),
        sa.ForeignKeyConstraint(["player1_prereq_match_id"], ["match.id"]),
        sa.ForeignKeyConstraint(["player2_prereq_match_id"], ["match.id"]),
        sa.ForeignKeyConstraint(["winner_id"], ["participant.id"]),
    )
    op.create_index("ix_match_tournament_id", "match", ["tournament_id"])
    op.create_index("ix_match_stage_id", "match", ["stage_id"])
    op.create_index("ix_match_group_id", "match", ["group_id"])
    op.create_index("ix_match_player1_prereq_match_id", "match", ["player1_prereq_match_id"])
    op.create_index("ix_match_player2_prereq_match_id", "match", ["player2_prereq_match_id"])

    op.create_table(
        "rating_change",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("participant_id", sa.Integer(), nullable=False),
        sa.Column("rating_before", sa.Float(), nullable=False),
        sa.Column("rating_after", sa.Float(), nullable=False),
        sa.Column("delta", sa.Float(), nullable=False),
        sa.Column("category_before", sa.String(), nullable=False),
        sa.Column("category_after", sa.String(), nullable=False),
        sa.Column("k_factor", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["match_id"], ["match.id"]),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["participant_id"], ["participant.id"]),
        sa.UniqueConstraint("user_id", "match_id", name="uq_rating_change_user_match"),
    )
    op.create_index("ix_rating_change_user_id", "rating_change", ["user_id"])
    op.create_index("ix_rating_change_match_id", "rating_change", ["match_id"])

    op.create_table(
        "tournament_placement",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("participant_id", sa.Integer(), nullable=False),
        sa.Column("placement", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["participant_id"], ["participant.id"]),
        sa.UniqueConstraint("tournament_id", "placement", name="uq_tournament_placement"),
    )
    op.create_index("ix_tournament_placement_tournament_id", "tournament_placement", ["tournament_id"])

    op.create_table(
        "activity_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=True),
        sa.Column("actor", sa.String(), nullable=True),
        sa.Column("action_type", sa.String(), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="success"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activity_log_tournament_id", "activity_log", ["tournament_id"])


def downgrade() -> None:
    op.drop_table("activity_log")
    op.drop_table("tournament_placement")
    op.drop_table("rating_change")
    op.drop_table("match")
    op.drop_table("stage_participant")
    op.drop_table("group_participant")
    op.drop_table("participant")
    op.drop_table("group")
    op.drop_table("stage")
    op.drop_table("tournament")
    op.drop_table("user")
