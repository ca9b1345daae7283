from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import errors
from .auth_utils import new_session_token
from .config import settings
from .log import get_logger
from .persistence import Persistence, get_persistence
from .schemas import (
    FINANCING_SETTING_KEY,
    INCOME_COLUMNS_SETTING_KEY,
    MONTHS,
    AnnualTotalsResponse,
    AuthResponse,
    CloneRequest,
    CloneResponse,
    ErrorResponse,
    FinancingConfig,
    FinancingSummaryResponse,
    FixedExpenseCreate,
    FixedExpenseResponse,
    FixedExpenseUpdate,
    HealthResponse,
    IncomeColumnsConfig,
    IncomeColumnTotalsResponse,
    IncomeCreate,
    IncomeResponse,
    IncomeUpdate,
    InstallmentQuote,
    InstallmentRequest,
    LoginRequest,
    Month,
    MonthTotalsResponse,
    RegisterRequest,
    SavingsGoalCreate,
    SavingsGoalResponse,
    SavingsGoalUpdate,
    SettingResponse,
    SettingUpsert,
    SummaryResponse,
    SyncResponse,
    TravelComparisonRequest,
    TravelComparisonResponse,
    UserResponse,
    VariableExpenseCreate,
    VariableExpenseResponse,
    VariableExpenseUpdate,
    validate_setting_value,
)
from .seed import ensure_savings_goals, seed_defaults
from .services.aggregation import income_column_totals, savings_progress, summarize_months
from .services.financing import compute_installment, financing_summary
from .services.travel import compare_travel_costs

logger = get_logger(__name__)

PUBLIC_PATHS = {"/api/health", "/api/register", "/api/login"}

router = APIRouter(prefix="/api")


def get_store(request: Request) -> Persistence:
    return request.app.state.persistence


def _extract_token_from_request(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth:
        parts = auth.split(" ", 1)
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1].strip()
    return request.cookies.get(settings.session_cookie_name)


def _session_expired(app: FastAPI, session: dict[str, Any], now: datetime) -> bool:
    timeout_minutes = app.state.session_timeout_minutes
    return bool(timeout_minutes) and now - session["last_seen"] > timedelta(minutes=timeout_minutes)


def _session_user_id(request: Request) -> int | None:
    token = _extract_token_from_request(request)
    if not token:
        return None
    sessions = request.app.state.sessions
    session = sessions.get(token)
    if session is None:
        return None
    now = datetime.now(timezone.utc)
    if _session_expired(request.app, session, now):
        del sessions[token]
        return None
    session["last_seen"] = now
    return session["user_id"]


def _start_session(request: Request, response: Response, user: dict[str, Any]) -> AuthResponse:
    sessions = request.app.state.sessions
    now = datetime.now(timezone.utc)
    for stale in [token for token, session in sessions.items() if _session_expired(request.app, session, now)]:
        del sessions[stale]
    token = new_session_token()
    sessions[token] = {"user_id": user["id"], "last_seen": now}
    response.set_cookie(settings.session_cookie_name, token, httponly=True, samesite="lax", secure=False)
    return AuthResponse(token=token, user=UserResponse(**user))


def _error(status_code: int, message: str, field: str | None = None) -> JSONResponse:
    payload = ErrorResponse(message=message, field=field)
    return JSONResponse(status_code=status_code, content=payload.model_dump(exclude_none=True))


def _income(row: dict[str, Any]) -> IncomeResponse:
    data = row.get("data") or {}
    return IncomeResponse(
        id=row["id"],
        month=row["month"],
        name=row["name"],
        data={str(k): "" if v is None else str(v) for k, v in data.items()},
    )


def _fixed(row: dict[str, Any]) -> FixedExpenseResponse:
    return FixedExpenseResponse(
        id=row["id"],
        month=row["month"],
        name=row["name"],
        amount=row["amount"],
        originId=row.get("origin_id"),
    )


def _variable(row: dict[str, Any]) -> VariableExpenseResponse:
    return VariableExpenseResponse(
        id=row["id"],
        month=row["month"],
        description=row["description"],
        amount=row["amount"],
        isSynced=bool(row.get("is_synced")),
    )


def _savings(row: dict[str, Any]) -> SavingsGoalResponse:
    return SavingsGoalResponse(
        id=row["id"],
        month=row["month"],
        goal=row["goal"],
        saved=row["saved"],
        progress=savings_progress(row["goal"], row["saved"]),
    )


def _setting(row: dict[str, Any]) -> SettingResponse:
    return SettingResponse(id=row["id"], key=row["key"], value=row["value"])


def _income_columns(persistence: Persistence) -> list[str]:
    row = persistence.get_setting(INCOME_COLUMNS_SETTING_KEY)
    if row is None:
        return IncomeColumnsConfig().columns
    return IncomeColumnsConfig.model_validate(row["value"]).columns


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok")


# Auth


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(payload: RegisterRequest, request: Request, response: Response, persistence: Persistence = Depends(get_store)) -> AuthResponse:
    user = persistence.register_user(payload.username, payload.password)
    logger.info("user_registered", user_id=user["id"])
    return _start_session(request, response, user)


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginRequest, request: Request, response: Response, persistence: Persistence = Depends(get_store)) -> AuthResponse:
    user = persistence.authenticate_user(payload.username, payload.password)
    if user is None:
        raise errors.AuthError("invalid username or password")
    return _start_session(request, response, user)


@router.post("/logout")
async def logout(request: Request, response: Response) -> dict[str, bool]:
    token = _extract_token_from_request(request)
    if token:
        request.app.state.sessions.pop(token, None)
    response.delete_cookie(settings.session_cookie_name)
    return {"ok": True}


@router.get("/user", response_model=UserResponse)
async def current_user(request: Request, persistence: Persistence = Depends(get_store)) -> UserResponse:
    user_id = _session_user_id(request)
    user = persistence.get_user_by_id(user_id) if user_id is not None else None
    if user is None:
        raise errors.AuthError("authentication required")
    return UserResponse(**user)


# Incomes


@router.get("/incomes", response_model=list[IncomeResponse])
async def list_incomes(persistence: Persistence = Depends(get_store)) -> list[IncomeResponse]:
    return [_income(row) for row in persistence.list_incomes()]


@router.post("/incomes", response_model=IncomeResponse, status_code=201)
async def create_income(payload: IncomeCreate, persistence: Persistence = Depends(get_store)) -> IncomeResponse:
    return _income(persistence.create_income(payload))


@router.get("/incomes/totals", response_model=IncomeColumnTotalsResponse)
async def income_totals(month: Month, persistence: Persistence = Depends(get_store)) -> IncomeColumnTotalsResponse:
    columns = _income_columns(persistence)
    subtotals, total = income_column_totals(persistence.list_incomes(), columns, month.value)
    return IncomeColumnTotalsResponse(month=month.value, columns=subtotals, total=total)


@router.put("/incomes/{income_id}", response_model=IncomeResponse)
async def update_income(income_id: int, payload: IncomeUpdate, persistence: Persistence = Depends(get_store)) -> IncomeResponse:
    return _income(persistence.update_income(income_id, payload))


@router.delete("/incomes/{income_id}", status_code=204)
async def delete_income(income_id: int, persistence: Persistence = Depends(get_store)) -> Response:
    persistence.delete_income(income_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Fixed expenses


@router.get("/fixed-expenses", response_model=list[FixedExpenseResponse])
async def list_fixed_expenses(persistence: Persistence = Depends(get_store)) -> list[FixedExpenseResponse]:
    return [_fixed(row) for row in persistence.list_fixed_expenses()]


@router.post("/fixed-expenses", response_model=FixedExpenseResponse, status_code=201)
async def create_fixed_expense(payload: FixedExpenseCreate, persistence: Persistence = Depends(get_store)) -> FixedExpenseResponse:
    return _fixed(persistence.create_fixed_expense(payload))


@router.post("/fixed-expenses/clone", response_model=CloneResponse, status_code=201)
async def clone_fixed_expenses(payload: CloneRequest, persistence: Persistence = Depends(get_store)) -> CloneResponse:
    count = persistence.clone_fixed_expenses(payload.fromMonth, payload.toMonth)
    logger.info("fixed_expenses_cloned", from_month=payload.fromMonth, to_month=payload.toMonth, count=count)
    return CloneResponse(count=count)


@router.put("/fixed-expenses/{expense_id}", response_model=FixedExpenseResponse)
async def update_fixed_expense(expense_id: int, payload: FixedExpenseUpdate, persistence: Persistence = Depends(get_store)) -> FixedExpenseResponse:
    return _fixed(persistence.update_fixed_expense(expense_id, payload))


@router.delete("/fixed-expenses/{expense_id}", status_code=204)
async def delete_fixed_expense(expense_id: int, persistence: Persistence = Depends(get_store)) -> Response:
    persistence.delete_fixed_expense(expense_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Variable expenses


@router.get("/variable-expenses", response_model=list[VariableExpenseResponse])
async def list_variable_expenses(persistence: Persistence = Depends(get_store)) -> list[VariableExpenseResponse]:
    return [_variable(row) for row in persistence.list_variable_expenses()]


@router.post("/variable-expenses", response_model=VariableExpenseResponse, status_code=201)
async def create_variable_expense(payload: VariableExpenseCreate, persistence: Persistence = Depends(get_store)) -> VariableExpenseResponse:
    return _variable(persistence.create_variable_expense(payload))


@router.put("/variable-expenses/{expense_id}", response_model=VariableExpenseResponse)
async def update_variable_expense(expense_id: int, payload: VariableExpenseUpdate, persistence: Persistence = Depends(get_store)) -> VariableExpenseResponse:
    return _variable(persistence.update_variable_expense(expense_id, payload))


@router.delete("/variable-expenses/{expense_id}", status_code=204)
async def delete_variable_expense(expense_id: int, persistence: Persistence = Depends(get_store)) -> Response:
    persistence.delete_variable_expense(expense_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/variable-expenses/{expense_id}/sync", response_model=SyncResponse)
async def sync_variable_expense(expense_id: int, persistence: Persistence = Depends(get_store)) -> SyncResponse:
    result = persistence.sync_variable_to_fixed(expense_id)
    logger.info(
        "variable_expense_synced",
        variable_id=expense_id,
        fixed_expense_id=result.fixed_expense["id"],
        created=result.created,
    )
    return SyncResponse(created=result.created, fixedExpense=_fixed(result.fixed_expense))


# Savings goals


@router.get("/savings-goals", response_model=list[SavingsGoalResponse])
async def list_savings_goals(persistence: Persistence = Depends(get_store)) -> list[SavingsGoalResponse]:
    rows = sorted(
        persistence.list_savings_goals(),
        key=lambda row: MONTHS.index(row["month"]) if row["month"] in MONTHS else len(MONTHS),
    )
    return [_savings(row) for row in rows]


@router.post("/savings-goals", response_model=SavingsGoalResponse, status_code=201)
async def create_savings_goal(payload: SavingsGoalCreate, persistence: Persistence = Depends(get_store)) -> SavingsGoalResponse:
    return _savings(persistence.create_savings_goal(payload))


@router.put("/savings-goals/{goal_id}", response_model=SavingsGoalResponse)
async def update_savings_goal(goal_id: int, payload: SavingsGoalUpdate, persistence: Persistence = Depends(get_store)) -> SavingsGoalResponse:
    return _savings(persistence.update_savings_goal(goal_id, payload))


# Settings


@router.get("/settings/{key}", response_model=SettingResponse)
async def get_setting(key: str, persistence: Persistence = Depends(get_store)) -> SettingResponse:
    row = persistence.get_setting(key)
    if row is None:
        raise errors.NotFound(f"setting not found: {key}")
    return _setting(row)


@router.post("/settings/{key}", response_model=SettingResponse)
async def upsert_setting(key: str, payload: SettingUpsert, persistence: Persistence = Depends(get_store)) -> SettingResponse:
    value = validate_setting_value(key, payload.value)
    return _setting(persistence.upsert_setting(key, value))


# Dashboard


@router.get("/summary", response_model=SummaryResponse)
async def summary(persistence: Persistence = Depends(get_store)) -> SummaryResponse:
    result = summarize_months(
        persistence.list_incomes(),
        persistence.list_fixed_expenses(),
        persistence.list_variable_expenses(),
    )
    return SummaryResponse(
        months=[
            MonthTotalsResponse(
                month=totals.month,
                incomeTotal=totals.income_total,
                fixedTotal=totals.fixed_total,
                variableTotal=totals.variable_total,
                expenseTotal=totals.expense_total,
                balance=totals.balance,
            )
            for totals in result.months
        ],
        annual=AnnualTotalsResponse(
            incomeTotal=result.annual.income_total,
            fixedTotal=result.annual.fixed_total,
            variableTotal=result.annual.variable_total,
            expenseTotal=result.annual.expense_total,
            balance=result.annual.balance,
        ),
    )


# Financing


@router.post("/financing/installment", response_model=InstallmentQuote)
async def quote_installment(payload: InstallmentRequest) -> InstallmentQuote:
    installment = compute_installment(payload.totalValue, payload.entry, payload.interestRate, payload.totalInstallments)
    figures = financing_summary(payload.totalValue, payload.entry, installment, payload.totalInstallments)
    return InstallmentQuote(
        financedAmount=figures.financed_amount,
        installmentValue=figures.installment,
        totalFinanced=figures.total_financed,
        totalPaid=figures.total_paid,
        totalInterest=figures.total_interest,
    )


@router.get("/financing/summary", response_model=FinancingSummaryResponse)
async def financing_overview(persistence: Persistence = Depends(get_store)) -> FinancingSummaryResponse:
    row = persistence.get_setting(FINANCING_SETTING_KEY)
    if row is None:
        raise errors.NotFound(f"setting not found: {FINANCING_SETTING_KEY}")
    config = FinancingConfig.model_validate(row["value"])
    figures = financing_summary(config.totalValue, config.entry, config.installmentValue, config.totalInstallments)
    return FinancingSummaryResponse(
        title=config.title,
        totalValue=config.totalValue,
        entry=config.entry,
        interestRate=config.interestRate,
        totalInstallments=config.totalInstallments,
        financedAmount=figures.financed_amount,
        installmentValue=figures.installment,
        totalFinanced=figures.total_financed,
        totalPaid=figures.total_paid,
        totalInterest=figures.total_interest,
    )


# Travel planning


@router.post("/travel/compare", response_model=TravelComparisonResponse)
async def compare_travel(payload: TravelComparisonRequest) -> TravelComparisonResponse:
    result = compare_travel_costs(
        payload.packageCost,
        (item.value for item in payload.packageExtras),
        (item.value for item in payload.manualCosts),
        payload.startDate,
        payload.endDate,
    )
    return TravelComparisonResponse(
        totalManual=result.total_manual,
        totalPackageExtras=result.total_package_extras,
        totalPackageFinal=result.total_package_final,
        difference=result.difference,
        isPackageCheaper=result.is_package_cheaper,
        days=result.days,
    )


def create_app(
    persistence: Persistence | None = None,
    *,
    auth_required: bool | None = None,
    seed: bool | None = None,
    session_timeout_minutes: int | None = None,
) -> FastAPI:
    app = FastAPI(
        title="Finance Tracker API",
        version="0.1.0",
        description="Monthly incomes, fixed and variable expenses, savings goals and a financing calculator.",
    )
    app.state.persistence = persistence or get_persistence()
    app.state.sessions = {}
    app.state.session_timeout_minutes = (
        settings.session_timeout_minutes if session_timeout_minutes is None else session_timeout_minutes
    )
    app.state.auth_required = settings.auth_required if auth_required is None else auth_required

    @app.exception_handler(errors.FinanceError)
    async def finance_error_handler(request: Request, exc: errors.FinanceError) -> JSONResponse:
        if isinstance(exc, errors.InternalError):
            logger.error("internal_error", path=request.url.path, detail=exc.message)
            return _error(exc.status_code, errors.InternalError.public_message)
        return _error(exc.status_code, exc.message, exc.field)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        loc = ".".join(str(item) for item in first.get("loc", []) if item not in ("body", "query", "path"))
        return _error(status.HTTP_400_BAD_REQUEST, first.get("msg", "invalid request"), loc or None)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error", path=request.url.path)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, errors.InternalError.public_message)

    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        path = request.url.path
        if app.state.auth_required and path.startswith("/api") and path not in PUBLIC_PATHS:
            if _session_user_id(request) is None:
                return _error(status.HTTP_401_UNAUTHORIZED, "authentication required")
        return await call_next(request)

    app.include_router(router)

    if settings.seed_on_startup if seed is None else seed:
        seed_defaults(app.state.persistence)
        ensure_savings_goals(app.state.persistence)

    return app


app = create_app()
