from decimal import Decimal

from .log import get_logger
from .persistence import Persistence
from .schemas import (
    FINANCING_SETTING_KEY,
    INCOME_COLUMNS_SETTING_KEY,
    MONTHS,
    FinancingConfig,
    FixedExpenseCreate,
    IncomeColumnsConfig,
    IncomeCreate,
    SavingsGoalCreate,
)

logger = get_logger(__name__)

DEFAULT_INCOME_DATA = {"iFood": "246", "Auxílio": "120"}

DEFAULT_FIXED_EXPENSES = [
    ("Aluguel", "600"),
    ("Celular", "32.50"),
    ("Academia", "89.90"),
    ("Rancho", "550"),
    ("Faculdade", "475"),
    ("Internet", "90.10"),
    ("Água", "64"),
    ("Energia", "65"),
    ("Moto", "640"),
    ("Anel de noivado", "199.90"),
    ("Casamento", "674"),
]

DEFAULT_FINANCING = FinancingConfig(
    title="Financiamento da Moto",
    totalValue=Decimal("21490"),
    entry=Decimal("2000"),
    interestRate=Decimal("1.8"),
    totalInstallments=48,
    installmentValue=Decimal("640"),
)


def seed_defaults(persistence: Persistence) -> bool:
    """Insert the first-run records when the income table is empty.

    Returns True when anything was seeded.
    """
    if persistence.list_incomes():
        return False

    for month in MONTHS:
        persistence.create_income(IncomeCreate(month=month, name="Principal", data=dict(DEFAULT_INCOME_DATA)))
    for name, amount in DEFAULT_FIXED_EXPENSES:
        persistence.create_fixed_expense(FixedExpenseCreate(name=name, amount=Decimal(amount)))
    if persistence.get_setting(FINANCING_SETTING_KEY) is None:
        persistence.upsert_setting(FINANCING_SETTING_KEY, DEFAULT_FINANCING.model_dump(mode="json"))
    if persistence.get_setting(INCOME_COLUMNS_SETTING_KEY) is None:
        persistence.upsert_setting(INCOME_COLUMNS_SETTING_KEY, IncomeColumnsConfig().model_dump(mode="json"))

    logger.info(
        "defaults_seeded",
        incomes=len(MONTHS),
        fixed_expenses=len(DEFAULT_FIXED_EXPENSES),
    )
    return True


def ensure_savings_goals(persistence: Persistence) -> int:
    """Create an empty savings goal for every month that has none."""
    present = {row["month"] for row in persistence.list_savings_goals()}
    missing = [month for month in MONTHS if month not in present]
    for month in missing:
        persistence.create_savings_goal(SavingsGoalCreate(month=month))
    if missing:
        logger.info("savings_goals_created", months=missing)
    return len(missing)
