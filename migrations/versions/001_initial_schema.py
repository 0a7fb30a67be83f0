"""Initial schema: passengers, drivers and orders.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ORDER_STATUS = sa.Enum(
    "pending",
    "accepted",
    "driver_arrived",
    "in_progress",
    "completed",
    "cancelled",
    "timeout",
    name="orderstatus",
)
ORDER_TYPE = sa.Enum("immediate", "reserved", name="ordertype")
PAY_STATUS = sa.Enum("unpaid", "paid", "refunded", name="paystatus")
DRIVER_STATUS = sa.Enum("offline", "online", "busy", name="driverstatus")
DRIVER_VERIFY_STATUS = sa.Enum(
    "pending", "approved", "rejected", name="driververifystatus"
)


def _money(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Numeric(10, 2), **kwargs)


def upgrade() -> None:
    # ── passengers ────────────────────────────────────────────────────
    op.create_table(
        "passengers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(20), unique=True, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("car_plate", sa.String(50), unique=True, nullable=False),
        sa.Column("status", DRIVER_STATUS, server_default="offline", nullable=False),
        sa.Column(
            "verify_status", DRIVER_VERIFY_STATUS, server_default="pending", nullable=False
        ),
        sa.Column("current_latitude", sa.Float, nullable=True),
        sa.Column("current_longitude", sa.Float, nullable=True),
        sa.Column("h3_cell", sa.String(20), nullable=True),
        sa.Column("last_location_update", sa.DateTime(timezone=True), nullable=True),
        sa.Column("online_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("offline_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rating", sa.Float, server_default=sa.text("5.0"), nullable=False),
        sa.Column("total_orders", sa.Integer, server_default="0", nullable=False),
        sa.Column("completed_orders", sa.Integer, server_default="0", nullable=False),
        sa.Column("cancelled_orders", sa.Integer, server_default="0", nullable=False),
        _money("total_income", server_default="0", nullable=False),
        _money("this_month_income", server_default="0", nullable=False),
        _money("this_week_income", server_default="0", nullable=False),
        _money("today_income", server_default="0", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_drivers_cell", "drivers", ["h3_cell"])
    op.create_index("idx_drivers_dispatch", "drivers", ["status", "verify_status"])

    # ── orders ────────────────────────────────────────────────────────
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("order_no", sa.String(32), unique=True, nullable=False),
        sa.Column(
            "passenger_id", sa.Integer, sa.ForeignKey("passengers.id"), nullable=False
        ),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=True),
        sa.Column("order_type", ORDER_TYPE, server_default="immediate", nullable=False),
        sa.Column("status", ORDER_STATUS, server_default="pending", nullable=False),
        sa.Column("pay_status", PAY_STATUS, server_default="unpaid", nullable=False),
        sa.Column("start_latitude", sa.Float, nullable=False),
        sa.Column("start_longitude", sa.Float, nullable=False),
        sa.Column("start_address", sa.String(200), nullable=False),
        sa.Column("end_latitude", sa.Float, nullable=False),
        sa.Column("end_longitude", sa.Float, nullable=False),
        sa.Column("end_address", sa.String(200), nullable=False),
        _money("estimated_distance", nullable=True),
        sa.Column("estimated_duration", sa.Integer, nullable=True),
        _money("estimated_price", nullable=True),
        _money("actual_distance", nullable=True),
        sa.Column("actual_duration", sa.Integer, nullable=True),
        _money("actual_price", nullable=True),
        _money("base_price", server_default="0", nullable=False),
        _money("distance_price", server_default="0", nullable=False),
        _money("duration_price", server_default="0", nullable=False),
        _money("night_price", server_default="0", nullable=False),
        _money("other_price", server_default="0", nullable=False),
        _money("coupon_discount", server_default="0", nullable=False),
        sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("arrived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.String(50), nullable=True),
        sa.Column("cancelled_by", sa.Integer, nullable=True),
        sa.Column("remark", sa.Text, nullable=True),
        sa.Column("route", sa.JSON, nullable=True),
        sa.Column("passenger_rating", sa.Float, nullable=True),
        sa.Column("passenger_comment", sa.Text, nullable=True),
        sa.Column("driver_rating", sa.Float, nullable=True),
        sa.Column("driver_comment", sa.Text, nullable=True),
        sa.Column("payment_info", sa.JSON, nullable=True),
        sa.Column("version", sa.Integer, server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_orders_status", "orders", ["status"])
    op.create_index("idx_orders_passenger", "orders", ["passenger_id"])
    op.create_index("idx_orders_driver", "orders", ["driver_id"])
    op.create_index("idx_orders_created", "orders", ["created_at"])


def downgrade() -> None:
    op.drop_table("orders")
    op.drop_table("drivers")
    op.drop_table("passengers")
    for name in (
        "orderstatus",
        "ordertype",
        "paystatus",
        "driverstatus",
        "driververifystatus",
    ):
        op.execute(f"DROP TYPE IF EXISTS {name}")
