"""
Finance computation library.

Pure functions over floats and lists of floats. Nothing here knows about
the AST, runtime values or scopes; the interpreter coerces its arguments
before calling in. Vector work goes through numpy, but every function
returns plain Python floats.

Scalar formulas divide by the rate directly, so a zero rate raises
ZeroDivisionError rather than returning inf.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

DEFAULT_Z_SCORES = {0.95: 1.65, 0.99: 2.33}


def _discount_factors(rate: float, count: int, first_period: int = 1) -> np.ndarray:
    periods = np.arange(first_period, first_period + count, dtype=float)
    return np.power(1.0 + rate, -periods)


def npv(rate: float, flows: Sequence[float]) -> float:
    """Net present value; flows[0] is discounted one full period."""
    if len(flows) == 0:
        return 0.0
    if rate == -1.0:
        raise ZeroDivisionError("rate of -1 discounts by zero")
    values = np.asarray(flows, dtype=float)
    return float(np.sum(values * _discount_factors(rate, len(values))))


def _npv_derivative(rate: float, flows: np.ndarray) -> float:
    periods = np.arange(1, len(flows) + 1, dtype=float)
    return float(np.sum(-periods * flows / np.power(1.0 + rate, periods + 1)))


def irr(flows: Sequence[float], guess: float = 0.1, iterations: int = 100) -> float:
    """
    Internal rate of return by Newton-Raphson on npv(rate, flows) = 0.

    Runs a fixed number of iterations with no convergence test; stops early
    only when the derivative vanishes. Pathological sign patterns may not
    converge.
    """
    values = np.asarray(flows, dtype=float)
    rate = float(guess)
    with np.errstate(all="ignore"):
        for _ in range(iterations):
            derivative = _npv_derivative(rate, values)
            if derivative == 0 or not math.isfinite(derivative):
                break
            rate = rate - npv(rate, values) / derivative
    return rate


def _growth(rate: float, periods: float) -> float:
    """Compound growth factor (1 + rate) ** periods, kept real."""
    base = 1.0 + rate
    if base < 0 and not float(periods).is_integer():
        raise ValueError(f"rate {rate} compounds to a complex value over {periods} periods")
    return base ** periods


def pv(rate: float, periods: float, payment: float = 0.0, future_value: float = 0.0) -> float:
    """Present value of an annuity plus a discounted lump sum."""
    growth = _growth(rate, periods)
    return payment * (1.0 - 1.0 / growth) / rate - future_value / growth


def fv(rate: float, periods: float, payment: float = 0.0, present_value: float = 0.0) -> float:
    """Future value of a lump sum plus an annuity."""
    growth = _growth(rate, periods)
    return present_value * growth + payment * (growth - 1.0) / rate


def wacc(equity_weight: float, debt_weight: float, cost_equity: float,
         cost_debt: float, tax_rate: float) -> float:
    """Weighted average cost of capital."""
    return equity_weight * cost_equity + debt_weight * cost_debt * (1.0 - tax_rate)


def capm(risk_free: float, beta: float, market_return: float) -> float:
    """Expected return under the capital asset pricing model."""
    return risk_free + beta * (market_return - risk_free)


def value_at_risk(series: Sequence[float], confidence: float,
                  z_scores: Optional[Dict[float, float]] = None,
                  default_z: float = 1.0) -> float:
    """
    Parametric VaR: z * population standard deviation of the series.

    The z-score comes from a small fixed table (0.95 -> 1.65, 0.99 -> 2.33)
    with `default_z` for any other confidence level.
    """
    if len(series) == 0:
        raise ValueError("VAR needs at least one observation")
    table = DEFAULT_Z_SCORES if z_scores is None else z_scores
    z = table.get(confidence, default_z)
    return float(z * np.std(np.asarray(series, dtype=float)))


def sma(values: Sequence[float], period: int) -> List[float]:
    """Fixed-window moving average; output has len(values) - period + 1 items."""
    if period < 1:
        raise ValueError("SMA period must be at least 1")
    if period > len(values):
        return []
    data = np.asarray(values, dtype=float)
    window = np.ones(period) / period
    return [float(x) for x in np.convolve(data, window, mode="valid")]


def ema(values: Sequence[float], period: int) -> List[float]:
    """Exponential moving average, k = 2 / (period + 1), seeded by values[0]."""
    if period < 1:
        raise ValueError("EMA period must be at least 1")
    if len(values) == 0:
        return []
    k = 2.0 / (period + 1)
    result = [float(values[0])]
    for x in values[1:]:
        result.append(x * k + result[-1] * (1.0 - k))
    return result


def rolling_mean(values: Sequence[float], window: int) -> List[float]:
    """Trailing mean whose window grows from 1 up to `window`, then slides."""
    if window < 1:
        raise ValueError("window must be at least 1")
    data = np.asarray(values, dtype=float)
    sums = np.concatenate(([0.0], np.cumsum(data)))
    result = []
    for i in range(len(data)):
        lo = max(0, i + 1 - window)
        result.append(float((sums[i + 1] - sums[lo]) / (i + 1 - lo)))
    return result


@dataclass(frozen=True)
class AmortizationRow:
    payment: float
    interest: float
    principal: float
    balance: float


def amortize(principal: float, rate: float, periods: int) -> List[AmortizationRow]:
    """Level-payment amortization schedule, one row per period."""
    if periods < 1:
        raise ValueError("AMORTIZE needs at least one period")
    payment = principal * rate / (1.0 - (1.0 + rate) ** -periods)
    balance = principal
    schedule = []
    for _ in range(periods):
        interest = balance * rate
        principal_part = payment - interest
        balance -= principal_part
        schedule.append(AmortizationRow(payment, interest, principal_part, balance))
    return schedule


def simple_returns(values: Sequence[float]) -> List[float]:
    """Period-over-period returns (b - a) / a."""
    return [(b - a) / a for a, b in zip(values, values[1:])]


def volatility(returns: Sequence[float]) -> float:
    """Root mean square of a return series."""
    if len(returns) == 0:
        raise ValueError("volatility needs at least one return")
    data = np.asarray(returns, dtype=float)
    return float(np.sqrt(np.mean(data * data)))
