from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from . import errors


class Month(str, Enum):
    jan = "Jan"
    fev = "Fev"
    mar = "Mar"
    abr = "Abr"
    mai = "Mai"
    jun = "Jun"
    jul = "Jul"
    ago = "Ago"
    set = "Set"
    out = "Out"
    nov = "Nov"
    dez = "Dez"


MONTHS: list[str] = [m.value for m in Month]

MONEY_FIELD = {"max_digits": 14, "decimal_places": 2}
# integer digits allowed by MONEY_FIELD, as a Decimal.adjusted() bound
MONEY_MAX_ADJUSTED = 11


def _normalize_income_data(value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("data must be an object mapping column names to amounts")
    normalized: dict[str, str] = {}
    for key, raw in value.items():
        if raw is None:
            raw = ""
        if isinstance(raw, bool) or not isinstance(raw, (str, int, float, Decimal)):
            raise ValueError(f"amount for column {key!r} must be a number")
        text = str(raw).strip()
        if text:
            try:
                parsed = Decimal(text)
            except InvalidOperation:
                raise ValueError(f"amount for column {key!r} must be a number") from None
            if not parsed.is_finite():
                raise ValueError(f"amount for column {key!r} must be a number")
            if parsed.adjusted() > MONEY_MAX_ADJUSTED:
                raise ValueError(f"amount for column {key!r} is out of range")
        normalized[str(key)] = text
    return normalized


class ErrorResponse(BaseModel):
    message: str
    field: Optional[str] = None


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: str


# Incomes


class IncomeCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    month: Month
    name: str = Field(default="Principal", min_length=1, max_length=120)
    data: dict[str, str] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def validate_data(cls, value: Any) -> dict[str, str]:
        return _normalize_income_data(value)


class IncomeUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    month: Optional[Month] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    data: Optional[dict[str, str]] = None

    @field_validator("data", mode="before")
    @classmethod
    def validate_data(cls, value: Any) -> Optional[dict[str, str]]:
        if value is None:
            return None
        return _normalize_income_data(value)


class IncomeResponse(BaseModel):
    id: int
    month: str
    name: str
    data: dict[str, str]


class IncomeColumnTotalsResponse(BaseModel):
    month: str
    columns: dict[str, Decimal]
    total: Decimal


# Fixed expenses


class FixedExpenseCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    month: Month = Field(default=Month.jan, validate_default=True)
    name: str = Field(min_length=1, max_length=200)
    amount: Decimal = Field(ge=Decimal("0"), **MONEY_FIELD)


class FixedExpenseUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    month: Optional[Month] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(default=None, ge=Decimal("0"), **MONEY_FIELD)


class FixedExpenseResponse(BaseModel):
    id: int
    month: str
    name: str
    amount: Decimal
    originId: Optional[int] = None


class CloneRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    fromMonth: Month
    toMonth: Month


class CloneResponse(BaseModel):
    count: int


# Variable expenses


class VariableExpenseCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    month: Month
    description: str = Field(min_length=1, max_length=200)
    amount: Decimal = Field(ge=Decimal("0"), **MONEY_FIELD)


class VariableExpenseUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    month: Optional[Month] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(default=None, ge=Decimal("0"), **MONEY_FIELD)


class VariableExpenseResponse(BaseModel):
    id: int
    month: str
    description: str
    amount: Decimal
    isSynced: bool


class SyncResponse(BaseModel):
    success: bool = True
    created: bool
    fixedExpense: FixedExpenseResponse


# Savings goals


class SavingsGoalCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    month: Month
    goal: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), **MONEY_FIELD)
    saved: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), **MONEY_FIELD)


class SavingsGoalUpdate(BaseModel):
    goal: Optional[Decimal] = Field(default=None, ge=Decimal("0"), **MONEY_FIELD)
    saved: Optional[Decimal] = Field(default=None, ge=Decimal("0"), **MONEY_FIELD)


class SavingsGoalResponse(BaseModel):
    id: int
    month: str
    goal: Decimal
    saved: Decimal
    progress: Decimal


# Settings


class FinancingConfig(BaseModel):
    """Parameters of the financed item, stored under the ``moto`` key."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(default="Financiamento da Moto", min_length=1, max_length=200)
    totalValue: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))
    entry: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))
    interestRate: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))
    totalInstallments: int = Field(default=1, ge=1)
    installmentValue: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))


DEFAULT_INCOME_COLUMNS = ["CLT", "App", "iFood", "Auxílio"]


class IncomeColumnsConfig(BaseModel):
    """Ordered labels of the income columns, stored under ``incomeColumns``."""

    model_config = ConfigDict(extra="ignore")

    columns: list[str] = Field(default_factory=lambda: list(DEFAULT_INCOME_COLUMNS))

    @field_validator("columns")
    @classmethod
    def validate_columns(cls, value: list[str]) -> list[str]:
        cleaned: list[str] = []
        for label in value:
            label = label.strip()
            if not label:
                raise ValueError("column names must not be blank")
            if label in cleaned:
                raise ValueError(f"duplicate column name: {label}")
            cleaned.append(label)
        return cleaned


FINANCING_SETTING_KEY = "moto"
INCOME_COLUMNS_SETTING_KEY = "incomeColumns"

TYPED_SETTINGS: dict[str, type[BaseModel]] = {
    FINANCING_SETTING_KEY: FinancingConfig,
    INCOME_COLUMNS_SETTING_KEY: IncomeColumnsConfig,
}


def validate_setting_value(key: str, value: Any) -> Any:
    if value is None:
        raise errors.ValidationError("value is required", field="value")
    model = TYPED_SETTINGS.get(key)
    if model is None:
        return value
    try:
        return model.model_validate(value).model_dump(mode="json")
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(item) for item in first.get("loc", ()))
        raise errors.ValidationError(first.get("msg", "invalid value"), field=f"value.{loc}" if loc else "value") from exc


class SettingUpsert(BaseModel):
    value: Any = None


class SettingResponse(BaseModel):
    id: int
    key: str
    value: Any


# Dashboard


class MonthTotalsResponse(BaseModel):
    month: str
    incomeTotal: Decimal
    fixedTotal: Decimal
    variableTotal: Decimal
    expenseTotal: Decimal
    balance: Decimal


class AnnualTotalsResponse(BaseModel):
    incomeTotal: Decimal
    fixedTotal: Decimal
    variableTotal: Decimal
    expenseTotal: Decimal
    balance: Decimal


class SummaryResponse(BaseModel):
    months: list[MonthTotalsResponse]
    annual: AnnualTotalsResponse


# Financing


class InstallmentRequest(BaseModel):
    totalValue: Decimal = Field(ge=Decimal("0"))
    entry: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))
    interestRate: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))
    totalInstallments: int = Field(ge=1, le=1200)


class InstallmentQuote(BaseModel):
    financedAmount: Decimal
    installmentValue: Decimal
    totalFinanced: Decimal
    totalPaid: Decimal
    totalInterest: Decimal


class FinancingSummaryResponse(InstallmentQuote):
    title: str
    totalValue: Decimal
    entry: Decimal
    interestRate: Decimal
    totalInstallments: int


# Travel planning


class TravelCostItem(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    value: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))


class TravelComparisonRequest(BaseModel):
    packageCost: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))
    packageExtras: list[TravelCostItem] = Field(default_factory=list)
    manualCosts: list[TravelCostItem] = Field(default_factory=list)
    startDate: Optional[date] = None
    endDate: Optional[date] = None


class TravelComparisonResponse(BaseModel):
    totalManual: Decimal
    totalPackageExtras: Decimal
    totalPackageFinal: Decimal
    difference: Decimal
    isPackageCheaper: bool
    days: int


# Auth


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=8, max_length=128)

    @field_validator("username")
    @classmethod
    def validate_username(cls, value: str) -> str:
        v = value.strip()
        if not v or any(ch.isspace() for ch in v):
            raise ValueError("username must not contain spaces")
        return v


class LoginRequest(BaseModel):
    username: str
    password: str = Field(min_length=1, max_length=128)

    @field_validator("username")
    @classmethod
    def validate_username(cls, value: str) -> str:
        return value.strip()


class UserResponse(BaseModel):
    id: int
    username: str


class AuthResponse(BaseModel):
    token: str
    user: UserResponse
