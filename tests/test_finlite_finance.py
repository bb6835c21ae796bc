"""
Tests for the finance library and the finance expressions that use it.
"""

import io
import math
import textwrap

import pytest

from finlite import execute
from finlite.config import FinLiteConfig
from finlite.runtime import finance
from finlite.runtime import ValueKind


def run(source: str, **kwargs):
    return execute(textwrap.dedent(source), output=io.StringIO(), **kwargs)


def numbers(value):
    """Unwrap a list Value of numbers."""
    assert value.kind == ValueKind.LIST
    return [item.data for item in value.data]


class TestDiscounting:
    """NPV, IRR, PV and FV."""

    def test_npv_discounts_first_flow(self):
        assert finance.npv(0.1, [110]) == pytest.approx(100.0)
        assert finance.npv(0.1, [110, 121]) == pytest.approx(200.0)

    def test_npv_empty(self):
        assert finance.npv(0.05, []) == 0.0

    def test_npv_rate_minus_one(self):
        with pytest.raises(ZeroDivisionError):
            finance.npv(-1.0, [1, 2])

    def test_irr_zeroes_npv(self):
        flows = [-1000, 300, 300, 300, 300]
        rate = finance.irr(flows)
        assert rate == pytest.approx(0.0771, abs=1e-3)
        assert finance.npv(rate, flows) == pytest.approx(0.0, abs=1e-6)

    def test_pv_annuity(self):
        expected = 100 * (1 - 1.05 ** -10) / 0.05
        assert finance.pv(0.05, 10, 100) == pytest.approx(expected)

    def test_pv_with_future_value(self):
        assert finance.pv(0.1, 1, 0, 110) == pytest.approx(-100.0)

    def test_pv_zero_rate(self):
        with pytest.raises(ZeroDivisionError):
            finance.pv(0.0, 10, 100)

    def test_fv(self):
        assert finance.fv(0.05, 10, 0, 1000) == pytest.approx(1000 * 1.05 ** 10)
        assert finance.fv(0.1, 2, 100) == pytest.approx(210.0)

    def test_negative_base_with_fractional_periods(self):
        with pytest.raises(ValueError):
            finance.pv(-2, 0.5, 100)
        with pytest.raises(ValueError):
            finance.fv(-2, 0.5, 100)
        assert finance.fv(-2, 2, 0, 1) == pytest.approx(1.0)


class TestRates:
    """WACC, CAPM and VaR."""

    def test_wacc(self):
        assert finance.wacc(0.6, 0.4, 0.10, 0.05, 0.30) == pytest.approx(0.074)

    def test_capm(self):
        assert finance.capm(0.02, 1.5, 0.08) == pytest.approx(0.11)

    def test_value_at_risk(self):
        series = [1, 2, 3, 4, 5]
        assert finance.value_at_risk(series, 0.95) == pytest.approx(1.65 * math.sqrt(2))
        assert finance.value_at_risk(series, 0.99) == pytest.approx(2.33 * math.sqrt(2))

    def test_value_at_risk_unknown_confidence(self):
        assert finance.value_at_risk([1, 3], 0.5) == pytest.approx(1.0)
        assert finance.value_at_risk([1, 3], 0.5, default_z=2.0) == pytest.approx(2.0)

    def test_value_at_risk_empty(self):
        with pytest.raises(ValueError):
            finance.value_at_risk([], 0.95)


class TestSeries:
    """Moving averages and returns."""

    def test_sma(self):
        assert finance.sma([1, 2, 3, 4, 5], 3) == pytest.approx([2.0, 3.0, 4.0])
        assert finance.sma([1, 2], 3) == []

    def test_sma_bad_period(self):
        with pytest.raises(ValueError):
            finance.sma([1, 2, 3], 0)

    def test_ema(self):
        result = finance.ema([1, 2, 3], 2)
        assert result[0] == 1.0
        assert result == pytest.approx([1.0, 5 / 3, 23 / 9])

    def test_ema_empty(self):
        assert finance.ema([], 3) == []

    def test_rolling_mean_grows_then_slides(self):
        assert finance.rolling_mean([1, 2, 3, 4], 2) == pytest.approx([1.0, 1.5, 2.5, 3.5])
        assert finance.rolling_mean([2, 4, 6], 5) == pytest.approx([2.0, 3.0, 4.0])

    def test_simple_returns_and_volatility(self):
        returns = finance.simple_returns([100, 110, 99])
        assert returns == pytest.approx([0.1, -0.1])
        assert finance.volatility(returns) == pytest.approx(0.1)


class TestAmortize:
    """Level-payment schedules."""

    def test_schedule_pays_off_principal(self):
        rows = finance.amortize(1000, 0.01, 12)
        assert len(rows) == 12
        assert rows[-1].balance == pytest.approx(0.0, abs=1e-6)
        assert math.fsum(r.principal for r in rows) == pytest.approx(1000.0)
        for row in rows:
            assert row.payment == pytest.approx(row.interest + row.principal)

    def test_first_row(self):
        first = finance.amortize(1000, 0.01, 12)[0]
        assert first.interest == pytest.approx(10.0)

    def test_needs_a_period(self):
        with pytest.raises(ValueError):
            finance.amortize(1000, 0.01, 0)


class TestFinanceExpressions:
    """Finance calls evaluated by the interpreter."""

    def test_npv_of_cashflow_literal(self):
        result = run("""
            LET c = CASHFLOW
                DEBIT 110
                DEBIT 121
            END
            NPV(c, 0.1)
        """)
        assert result.value.data == pytest.approx(200.0)

    def test_credit_entries_are_negative(self):
        result = run("""
            LET c = CASHFLOW
                CREDIT 1000
                DEBIT 600
            END
            c.flows
        """)
        assert numbers(result.value) == [-1000.0, 600.0]

    def test_npv_of_combined_cashflows(self):
        result = run("""
            LET a = [100, 100, 100]
            LET b = [10, 10]
            NPV(a - b, 0)
        """)
        assert result.value.data == pytest.approx(180.0)

    def test_irr_expression(self):
        result = run("LET r = IRR([-1000, 300, 300, 300, 300])\nNPV([-1000, 300, 300, 300, 300], r)")
        assert result.value.data == pytest.approx(0.0, abs=1e-6)

    def test_pv_fv_optional_arguments(self):
        assert run("PV(0.1, 1, 0, 110)").value.data == pytest.approx(-100.0)
        assert run("FV(0.1, 2, 100)").value.data == pytest.approx(210.0)

    def test_pv_zero_rate_is_division_by_zero(self):
        assert run("PV(0, 10, 100)").error.diagnostic.code == "E403"

    def test_complex_growth_is_a_runtime_error(self):
        for source in ("PRINT PV(-2, 0.5, 100)", "PRINT FV(-2, 0.5, 100)"):
            result = run(source)
            assert not result.success
            assert result.error.diagnostic.code == "E409"
            assert "complex value" in result.error_message

    def test_wacc_expression(self):
        assert run("WACC(0.6, 0.4, 0.1, 0.05, 0.3)").value.data == pytest.approx(0.074)

    def test_capm_number_and_list(self):
        assert run("CAPM(1.5, 0.02, 0.06)").value.data == pytest.approx(0.11)
        assert numbers(run("CAPM([1, 2], 0.02, 0.06)").value) == pytest.approx([0.08, 0.14])

    def test_capm_bad_beta(self):
        assert run('CAPM("x", 0.02, 0.06)').error.diagnostic.code == "E402"

    def test_var_uses_configured_z_scores(self):
        config = FinLiteConfig(var_z_scores={0.9: 1.28})
        result = run("VAR([1, 3], 0.9)", config=config)
        assert result.value.data == pytest.approx(1.28)

    def test_var_of_portfolio(self):
        result = run("""
            LET p = PORTFOLIO
                [100, 300]
                [0.5, 0.5]
            END
            VAR(p, 0.95)
        """)
        # weighted holdings are [50, 150], population std 50
        assert result.value.data == pytest.approx(1.65 * 50)

    def test_sma_ema_expressions(self):
        assert numbers(run("SMA([1, 2, 3, 4], 2)").value) == pytest.approx([1.5, 2.5, 3.5])
        assert numbers(run("EMA([1, 2, 3], 2)").value) == pytest.approx([1.0, 5 / 3, 23 / 9])

    def test_timeseries(self):
        assert numbers(run("timeseries([1, 2, 3, 4], 2)").value) == \
            pytest.approx([1.0, 1.5, 2.5, 3.5])
        assert run("timeseries([1, 2], 0)").error.diagnostic.code == "E404"

    def test_amortize_table(self):
        result = run("""
            LET t = AMORTIZE(1000, 0.01, 12)
            PRINT len(t)
            PRINT columns(t)
            t.balance[11]
        """)
        assert result.output == ["12", "[payment, interest, principal, balance]"]
        assert result.value.data == pytest.approx(0.0, abs=1e-6)

    def test_table_literal_requires_numbers(self):
        result = run('TABLE(a: [1, "x"])')
        assert result.error.diagnostic.code == "E402"
        assert "TABLE column 'a' element at index 1 must be numeric" in result.error_message

    def test_table_columns_must_match(self):
        assert run("TABLE(a: [1, 2], b: [1])").error.diagnostic.code == "E407"

    def test_portfolio_weights_must_sum_to_one(self):
        result = run("""
            LET p = PORTFOLIO
                [100, 200]
                [0.5, 0.6]
            END
        """)
        assert result.error.diagnostic.code == "E407"

    def test_finance_arity_is_a_parse_error(self):
        result = run("PRINT IRR([1], 2)")
        assert not result.success
        assert result.diagnostics[0].code == "E104"
