from sqlalchemy import (
    MetaData, Table, Column, Integer, String, Text, Boolean, Numeric, DateTime,
    Enum, ForeignKey, UniqueConstraint, func,
)

metadata = MetaData()

# Enum dùng chung (PostgreSQL tạo kiểu riêng theo tên)
ACCOUNT_TYPE = Enum("demo", "live", name="account_type")
USER_ROLE = Enum("user", "admin", name="user_role")
USER_STATUS = Enum("pending", "active", "suspended", name="user_status")
TRADE_TYPE = Enum("buy", "sell", name="trade_type")
TXN_STATUS = Enum("pending", "completed", "failed", name="txn_status")
TICKET_PRIORITY = Enum("low", "medium", "high", name="ticket_priority")
TICKET_STATUS = Enum("open", "pending", "resolved", "closed", name="ticket_status")

MONEY = Numeric(15, 2)


def _fk_user():
    return Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)


def _created_at():
    return Column("created_at", DateTime, nullable=False, server_default=func.now())


users = Table(
    "users", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(50), nullable=False, server_default=""),
    Column("last_name", String(50), nullable=False, server_default=""),
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(100), nullable=False, unique=True),
    Column("phone", String(20)),
    Column("country", String(50)),
    Column("password_hash", String(255), nullable=False),
    Column("verification_code", String(10)),
    Column("verification_sent_at", DateTime),
    Column("email_verified", Boolean, nullable=False, default=False),
    Column("role", USER_ROLE, nullable=False, default="user"),
    Column("status", USER_STATUS, nullable=False, default="pending"),
    Column("failed_logins", Integer, nullable=False, default=0),
    Column("last_login_at", DateTime),
    Column("last_login_ip", String(45)),
    _created_at(),
)

user_profiles = Table(
    "user_profiles", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    _fk_user(),
    Column("account_type", ACCOUNT_TYPE, nullable=False, default="demo"),
    _created_at(),
)

trading_accounts = Table(
    "trading_accounts", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    _fk_user(),
    Column("account_number", String(50), nullable=False, unique=True),
    Column("account_type", ACCOUNT_TYPE, nullable=False, default="demo"),
    Column("balance", MONEY, nullable=False, default=0),
    Column("currency", String(3), nullable=False, default="USD"),
    _created_at(),
    # Mỗi user chỉ có 1 tài khoản cho mỗi loại
    UniqueConstraint("user_id", "account_type", name="uq_trading_accounts_user_type"),
)


def _fk_account():
    return Column("account_id", Integer, ForeignKey("trading_accounts.id", ondelete="CASCADE"), nullable=False)


trades = Table(
    "trades", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    _fk_user(),
    _fk_account(),
    Column("asset", String(50), nullable=False),
    Column("asset_name", String(100)),
    Column("quantity", Numeric(20, 8), nullable=False),
    Column("price", MONEY, nullable=False),
    Column("total_amount", MONEY, nullable=False),
    Column("trade_type", TRADE_TYPE, nullable=False),
    Column("status", TXN_STATUS, nullable=False, default="completed"),
    _created_at(),
)

deposits = Table(
    "deposits", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    _fk_user(),
    _fk_account(),
    Column("amount", MONEY, nullable=False),
    Column("currency", String(3), nullable=False, default="USD"),
    Column("payment_method", String(50)),
    Column("reference_number", String(100), nullable=False, unique=True),
    Column("status", TXN_STATUS, nullable=False, default="pending"),
    Column("processed_at", DateTime),
    _created_at(),
)

withdrawals = Table(
    "withdrawals", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    _fk_user(),
    _fk_account(),
    Column("amount", MONEY, nullable=False),
    Column("currency", String(3), nullable=False, default="USD"),
    Column("payment_method", String(50)),
    Column("bank_details", Text),
    Column("reference_number", String(100), nullable=False, unique=True),
    Column("status", TXN_STATUS, nullable=False, default="pending"),
    Column("processed_at", DateTime),
    _created_at(),
)

support_tickets = Table(
    "support_tickets", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    _fk_user(),
    Column("subject", String(200), nullable=False),
    Column("category", String(50), nullable=False, default="general"),
    Column("priority", TICKET_PRIORITY, nullable=False, default="medium"),
    Column("status", TICKET_STATUS, nullable=False, default="open"),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
    _created_at(),
)

support_messages = Table(
    "support_messages", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("ticket_id", Integer, ForeignKey("support_tickets.id", ondelete="CASCADE"), nullable=False, index=True),
    _fk_user(),
    Column("message", Text, nullable=False),
    Column("is_staff", Boolean, nullable=False, default=False),
    _created_at(),
)

kb_articles = Table(
    "kb_articles", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(200), nullable=False),
    Column("slug", String(200), nullable=False, unique=True),
    Column("category", String(50), nullable=False, default="general"),
    Column("content", Text, nullable=False),
    Column("is_published", Boolean, nullable=False, default=True),
    _created_at(),
)

sessions = Table(
    "sessions", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("session_id", String(128), nullable=False, unique=True),
    Column("data", Text, nullable=False),
    Column("expires_at", DateTime, nullable=False, index=True),
    _created_at(),
)
