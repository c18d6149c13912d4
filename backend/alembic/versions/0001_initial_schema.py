from alembic import op
import sqlalchemy as sa


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("email", sa.String(255), nullable=False, index=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, server_default="cashier"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_table(
        "coworking_sessions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("client_name", sa.String(255), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=True),
        sa.Column("consumed_extras", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active", index=True),
        sa.Column("total", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(64), nullable=True),
    )
    op.create_table(
        "sales",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, index=True),
        sa.Column("total", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default="efectivo"),
        sa.Column("service", sa.String(20), nullable=False, server_default="cafeteria", index=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("coworking_session_id", sa.String(64), nullable=True, index=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(["coworking_session_id"], ["coworking_sessions.id"], ondelete="SET NULL"),
    )
    op.create_table(
        "expenses",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="otros"),
        sa.Column("description", sa.String(500), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="pagado"),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default="efectivo"),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_expenses_positive_amount"),
    )
    op.create_table(
        "cash_sessions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("opened_at", sa.DateTime(), nullable=False),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("opening_balance", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("counted_cash", sa.Numeric(10, 2), nullable=True),
        sa.Column("expected_closing_balance", sa.Numeric(10, 2), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("opened_by", sa.String(64), nullable=True),
        sa.Column("closed_by", sa.String(64), nullable=True),
        sa.CheckConstraint("opening_balance >= 0", name="ck_cash_sessions_opening_balance"),
    )
    op.create_index(
        "uq_cash_sessions_single_open",
        "cash_sessions",
        ["status"],
        unique=True,
        postgresql_where=sa.text("status = 'open'"),
        sqlite_where=sa.text("status = 'open'"),
    )
    op.create_table(
        "cash_withdrawals",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("cash_session_id", sa.String(64), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("withdrawn_by", sa.String(64), nullable=True),
        sa.Column("withdrawn_at", sa.DateTime(), nullable=False, index=True),
        sa.ForeignKeyConstraint(["cash_session_id"], ["cash_sessions.id"], ondelete="CASCADE"),
        sa.CheckConstraint("amount > 0", name="ck_cash_withdrawals_positive_amount"),
    )
    op.create_table(
        "cash_cut_reports",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("period_start", sa.DateTime(), nullable=False),
        sa.Column("period_end", sa.DateTime(), nullable=False, index=True),
        sa.Column("generated_at", sa.DateTime(), nullable=False, index=True),
        sa.Column("triggered_by", sa.String(20), nullable=False),
        sa.Column("total_sales", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_expenses", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("net_total", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_records", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_expense_records", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("average_ticket", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("breakdowns", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("cash_session_id", sa.String(64), nullable=True, index=True),
        sa.Column("opening_balance", sa.Numeric(12, 2), nullable=True),
        sa.Column("cash_sales", sa.Numeric(12, 2), nullable=True),
        sa.Column("cash_expenses", sa.Numeric(12, 2), nullable=True),
        sa.Column("withdrawals_total", sa.Numeric(12, 2), nullable=True),
        sa.Column("expected_closing_balance", sa.Numeric(12, 2), nullable=True),
        sa.Column("counted_cash", sa.Numeric(12, 2), nullable=True),
        sa.Column("variance", sa.Numeric(12, 2), nullable=True),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false(), index=True),
        sa.Column("archived_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["cash_session_id"], ["cash_sessions.id"], ondelete="SET NULL"),
    )


def downgrade() -> None:
    op.drop_table("cash_cut_reports")
    op.drop_table("cash_withdrawals")
    op.drop_index("uq_cash_sessions_single_open", table_name="cash_sessions")
    op.drop_table("cash_sessions")
    op.drop_table("expenses")
    op.drop_table("sales")
    op.drop_table("coworking_sessions")
    op.drop_table("users")
