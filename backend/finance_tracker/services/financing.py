"""Amortized-loan (Price / French system) installment projection."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext

from .. import errors

CENT = Decimal("0.01")


class FinancingError(errors.ValidationError):
    pass


@dataclass
class FinancingSummary:
    financed_amount: Decimal
    installment: Decimal
    total_financed: Decimal
    total_paid: Decimal
    total_interest: Decimal


def compute_installment(
    principal: Decimal,
    entry: Decimal,
    monthly_rate_percent: Decimal,
    term_months: int,
) -> Decimal:
    """Fixed monthly installment for ``principal - entry`` over ``term_months``.

    ``monthly_rate_percent`` is the monthly rate as a percentage (1.8 means
    1.8% a month). A zero rate falls back to straight-line division. The
    result is rounded half-up to cents.
    """
    principal = Decimal(principal)
    entry = Decimal(entry)
    rate_percent = Decimal(monthly_rate_percent)
    financed = principal - entry
    if financed <= 0:
        raise FinancingError("financed amount must be greater than zero", field="entry")
    if term_months <= 0:
        raise FinancingError("term must be at least one month", field="totalInstallments")
    if rate_percent < 0:
        raise FinancingError("interest rate must not be negative", field="interestRate")

    with localcontext() as ctx:
        ctx.prec = 40
        if rate_percent == 0:
            installment = financed / term_months
        else:
            rate = rate_percent / 100
            growth = (1 + rate) ** term_months
            installment = financed * (rate * growth) / (growth - 1)
        return installment.quantize(CENT, rounding=ROUND_HALF_UP)


def financing_summary(principal: Decimal, entry: Decimal, installment: Decimal, term_months: int) -> FinancingSummary:
    principal = Decimal(principal)
    entry = Decimal(entry)
    installment = Decimal(installment)
    total_financed = installment * term_months
    total_paid = total_financed + entry
    return FinancingSummary(
        financed_amount=principal - entry,
        installment=installment,
        total_financed=total_financed,
        total_paid=total_paid,
        total_interest=total_paid - principal,
    )
