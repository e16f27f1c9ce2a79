from __future__ import annotations

import pytest

from vnfpsa.engine.config.psa import (
    DEFAULT_ACCEPT_INCOMPARABLE,
    DEFAULT_ACCEPT_WORSE,
    DEFAULT_CONSTANTS,
    DEFAULT_P_NEW_INSTANCE,
    DEFAULT_P_REASSIGN_VNF,
    compile_formulas,
)
from vnfpsa.foundation.exceptions import FormulaError
from vnfpsa.foundation.formulas import FormulaContext, compile_formula, evaluate_constants


def _ctx(**kwargs) -> FormulaContext:
    base = dict(t=25.0, i=0, n=10, better=5, incomp=4, number_of_temperature_levels=14, tmax=50.0, tmin=1.0, rho=0.75)
    base.update(kwargs)
    return FormulaContext(**base)


def test_arithmetic_and_context_names():
    f = compile_formula("accept_worse", "t / tmax * 1.1 * (better / n)")
    assert f(_ctx()) == pytest.approx(0.275)


def test_division_by_zero_yields_zero():
    f = compile_formula("accept_incomparable", "t / tmax * 1.2 * (better / incomp)")
    assert f(_ctx(incomp=0)) == 0.0
    assert compile_formula("x", "1 % 0")(_ctx()) == 0.0


def test_functions_conditionals_and_aliases():
    assert compile_formula("x", "max(1, min(3, 2))")(_ctx()) == 2.0
    assert compile_formula("x", "Math.sqrt(16)")(_ctx()) == 4.0
    assert compile_formula("x", "1 if i < L / 2 else 0")(_ctx(i=3)) == 1.0
    assert compile_formula("x", "numberOfTemperatureLevels")(_ctx()) == 14.0


def test_constants_and_extras():
    f = compile_formula("p", "a * p_reassign_vnf", {"a": 0.5}, extras=frozenset({"p_reassign_vnf"}))
    assert f(_ctx(extra={"p_reassign_vnf": 0.8})) == pytest.approx(0.4)


def test_numbers_and_callables_pass_through():
    assert compile_formula("x", 0.3)(_ctx()) == 0.3

    def custom(ctx):
        return ctx.t

    assert compile_formula("x", custom) is custom


@pytest.mark.parametrize(
    "expression",
    [
        "__import__('os')",
        "t.real",
        "unknown_name + 1",
        "[1, 2]",
        "lambda: 1",
        "t +",
        "",
    ],
)
def test_rejected_expressions_name_the_parameter(expression):
    with pytest.raises(FormulaError) as info:
        compile_formula("accept_worse", expression)
    assert info.value.parameter == "accept_worse"


def test_constants_are_resolved_in_declaration_order():
    resolved = evaluate_constants({"i1": "0.2 * L", "i2": "i1 * 4"}, {"number_of_temperature_levels": 10.0})
    assert resolved == pytest.approx({"i1": 2.0, "i2": 8.0})


class TestDefaultReassignProbability:
    @pytest.fixture
    def formulas(self):
        return compile_formulas(50.0, 1.0, 0.75, DEFAULT_CONSTANTS, _default_expressions())

    def test_levels(self, formulas):
        assert formulas.number_of_levels == 14

    def test_plateaus_and_bounds(self, formulas):
        levels = formulas.number_of_levels
        values = [formulas.p_reassign_vnf(_ctx(i=i)) for i in range(levels + 3)]
        i1, i2 = 0.2 * levels, 0.8 * levels
        for i, p in enumerate(values):
            assert 0.2 - 1e-12 <= p <= 0.8 + 1e-12
            if i <= i1:
                assert p == pytest.approx(0.8)
            if i >= i2:
                assert p == pytest.approx(0.2)
        assert all(a >= b for a, b in zip(values, values[1:]))

    def test_new_instance_is_half_of_reassign(self, formulas):
        ctx = _ctx(i=5, extra={"p_reassign_vnf": 0.6})
        assert formulas.p_new_instance(ctx) == pytest.approx(0.3)


def _default_expressions():
    return {
        "p_reassign_vnf": DEFAULT_P_REASSIGN_VNF,
        "p_new_instance": DEFAULT_P_NEW_INSTANCE,
        "accept_worse": DEFAULT_ACCEPT_WORSE,
        "accept_incomparable": DEFAULT_ACCEPT_INCOMPARABLE,
    }
