from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, MetaData, Numeric, String, Table, Text

metadata = MetaData()

incomes = Table(
    "incomes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("month", String(3), nullable=False, index=True),
    Column("name", Text, nullable=False, default="Principal"),
    Column("data", JSON, nullable=False, default=dict),
)

variable_expenses = Table(
    "variable_expenses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("month", String(3), nullable=False, index=True),
    Column("description", Text, nullable=False),
    Column("amount", Numeric(14, 2), nullable=False),
    Column("is_synced", Boolean, nullable=False, default=False),
)

fixed_expenses = Table(
    "fixed_expenses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("month", String(3), nullable=False, default="Jan", index=True),
    Column("name", Text, nullable=False),
    Column("amount", Numeric(14, 2), nullable=False),
    # one derived fixed expense per variable expense at most
    Column(
        "origin_id",
        Integer,
        ForeignKey("variable_expenses.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    ),
)

savings_goals = Table(
    "savings_goals",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("month", String(3), nullable=False, unique=True),
    Column("goal", Numeric(14, 2), nullable=False, default=0),
    Column("saved", Numeric(14, 2), nullable=False, default=0),
)

settings = Table(
    "settings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("key", String(100), nullable=False, unique=True),
    Column("value", JSON, nullable=False),
)

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
)
