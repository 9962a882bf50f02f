"""
Tests for analysis repository operations: default-flag exclusivity per
(calculator, type), counters across moves, investment links and
server-generated results.
"""

import pytest
from pydantic import ValidationError
from sqlalchemy.orm import Session

from telem.crud import crud_analysis
from telem.db.core import AnalysisDB, AnalysisType, NotFoundError, ConflictError
from telem.models.analysis import AnalysisCreate, AnalysisUpdate

MORTGAGE_PARAMS = {"loanAmount": 140000, "interestRate": 4.5, "loanTerm": 25, "loanType": "cyprus"}
YIELD_PARAMS = {"purchasePrice": 200000, "monthlyRent": 1000, "vacancyRate": 5, "expenseRate": 10}


def _create(db: Session, calculator, analysis_type=AnalysisType.YIELD, parameters=None, **overrides):
    data = {
        "calculator_id": calculator.id,
        "name": f"{analysis_type.value} analysis",
        "type": analysis_type,
        "parameters": parameters if parameters is not None else (
            MORTGAGE_PARAMS if analysis_type == AnalysisType.MORTGAGE else YIELD_PARAMS
        ),
    }
    data.update(overrides)
    return crud_analysis.create_db_analysis(db, AnalysisCreate(**data))


def _defaults(db: Session, calculator_id: int, analysis_type: AnalysisType):
    return db.query(AnalysisDB).filter(
        AnalysisDB.calculator_id == calculator_id,
        AnalysisDB.type == analysis_type,
        AnalysisDB.is_default.is_(True),
    ).all()


class TestCreateAnalysis:

    def test_denormalizes_names_and_bumps_counter(self, db_session, calculator, make_investment):
        investment = make_investment(calculator, name="Option A")
        analysis = _create(db_session, calculator, investment_id=investment.id)

        assert analysis.calculator_name == calculator.name
        assert analysis.investment_name == "Option A"
        db_session.refresh(calculator)
        assert calculator.analyses_count == 1

    def test_unknown_investment_is_left_unlinked(self, db_session, calculator):
        analysis = _create(db_session, calculator, investment_id=404)
        assert analysis.investment_id is None
        assert analysis.investment_name is None

    def test_investment_from_another_calculator_is_left_unlinked(self, db_session, make_calculator, make_investment):
        home = make_calculator("Home")
        foreign = make_investment(make_calculator("Elsewhere"))

        analysis = _create(db_session, home, investment_id=foreign.id)
        assert analysis.investment_id is None

    def test_unknown_calculator(self, db_session):
        with pytest.raises(NotFoundError):
            crud_analysis.create_db_analysis(db_session, AnalysisCreate(
                calculator_id=404, name="x", type=AnalysisType.YIELD, parameters=YIELD_PARAMS
            ))

    def test_default_is_exclusive_per_type(self, db_session, calculator):
        first = _create(db_session, calculator, is_default=True)
        mortgage = _create(db_session, calculator, AnalysisType.MORTGAGE, is_default=True)
        second = _create(db_session, calculator, is_default=True)

        assert [a.id for a in _defaults(db_session, calculator.id, AnalysisType.YIELD)] == [second.id]
        # A default of another type is not affected
        assert [a.id for a in _defaults(db_session, calculator.id, AnalysisType.MORTGAGE)] == [mortgage.id]
        db_session.refresh(first)
        assert first.is_default is False

    def test_default_is_exclusive_per_calculator(self, db_session, make_calculator):
        a = make_calculator("A")
        b = make_calculator("B")
        _create(db_session, a, is_default=True)
        _create(db_session, b, is_default=True)

        assert len(_defaults(db_session, a.id, AnalysisType.YIELD)) == 1
        assert len(_defaults(db_session, b.id, AnalysisType.YIELD)) == 1

    def test_invalid_parameters_rolls_back(self, db_session, calculator):
        with pytest.raises(ValidationError):
            _create(db_session, calculator, AnalysisType.MORTGAGE, parameters={"loanAmount": -5})

        db_session.refresh(calculator)
        assert calculator.analyses_count == 0
        assert db_session.query(AnalysisDB).count() == 0


class TestGeneratedResults:

    def test_mortgage_results(self, db_session, calculator, make_investment):
        investment = make_investment(calculator)  # effective price 200000
        analysis = _create(db_session, calculator, AnalysisType.MORTGAGE, investment_id=investment.id)

        results = analysis.results
        assert results["monthlyPayment"] == pytest.approx(778.17, abs=0.02)
        assert results["totalPayments"] == pytest.approx(results["monthlyPayment"] * 300)
        assert results["loanType"] == "cyprus"
        assert results["ltv"] == pytest.approx(70.0)
        assert len(results["amortizationSchedule"]) == 300

    def test_mortgage_without_investment_has_no_ltv(self, db_session, calculator):
        assert _create(db_session, calculator, AnalysisType.MORTGAGE).results["ltv"] is None

    def test_yield_results(self, db_session, calculator):
        results = _create(db_session, calculator).results

        assert results["annualRent"] == pytest.approx(12000)
        assert results["grossYield"] == pytest.approx(6.0)
        assert results["effectiveRent"] == pytest.approx(11400)
        assert results["expenses"] == pytest.approx(1140)
        assert results["netIncome"] == pytest.approx(10260)
        assert results["netYield"] == pytest.approx(5.13)

    def test_cashflow_results(self, db_session, calculator):
        params = {"period": 3, "initialInvestment": 30000, "monthlyRent": 1000, "mortgagePayment": 600,
                  "managementFee": 100, "annualRentIncrease": 10}
        results = _create(db_session, calculator, AnalysisType.CASHFLOW, parameters=params).results

        assert results["monthlyCashflow"] == pytest.approx(300)
        assert results["annualCashflow"] == pytest.approx(3600)
        assert results["roi"] == pytest.approx(12.0)
        assert results["paybackPeriod"] == pytest.approx(30000 / 3600)
        projection = results["cashflowProjection"]
        assert [row["year"] for row in projection] == [1, 2, 3]
        assert projection[1]["monthlyRent"] == pytest.approx(1100)

    def test_sensitivity_results(self, db_session, calculator):
        params = {"baseParameter": "rent", "baseValue": 1000, "rangePercentage": 20, "steps": 4,
                  "affectedParameter": "yield", "purchasePrice": 200000}
        results = _create(db_session, calculator, AnalysisType.SENSITIVITY, parameters=params).results

        data = results["sensitivityData"]
        assert [p["percentage"] for p in data] == pytest.approx([-20, -10, 0, 10, 20])
        assert [p["result"] for p in data] == pytest.approx([4.8, 5.4, 6.0, 6.6, 7.2])
        assert results["baseResult"] == pytest.approx(6.0)

    def test_comparison_results(self, db_session, calculator, make_investment, make_property):
        a = make_investment(calculator, make_property(price="200000", rent="1000"))
        b = make_investment(calculator, make_property(price="100000", rent="700"))
        params = {"investmentIds": [a.id, b.id], "parameters": ["price", "yield"]}

        rows = _create(db_session, calculator, AnalysisType.COMPARISON, parameters=params).results["comparisonData"]["data"]

        assert [row["investmentId"] for row in rows] == [a.id, b.id]
        assert rows[0]["yield"] == pytest.approx(6.0)
        assert rows[1]["yield"] == pytest.approx(8.4)
        assert "roi" not in rows[0]

    def test_comparison_rejects_foreign_investments(self, db_session, make_calculator, make_investment):
        home = make_calculator("Home")
        mine = make_investment(home)
        foreign = make_investment(make_calculator("Elsewhere"))

        with pytest.raises(NotFoundError):
            _create(db_session, home, AnalysisType.COMPARISON,
                    parameters={"investmentIds": [mine.id, foreign.id], "parameters": ["price"]})

    def test_parameters_are_normalized(self, db_session, calculator):
        analysis = _create(db_session, calculator, parameters={"purchasePrice": 200000, "monthlyRent": 1000})
        assert analysis.parameters["closingCosts"] == 0
        assert analysis.parameters["vacancyRate"] == 0


class TestUpdateAnalysis:

    def test_setting_default_clears_siblings(self, db_session, calculator):
        first = _create(db_session, calculator, is_default=True)
        second = _create(db_session, calculator)

        crud_analysis.update_db_analysis(db_session, second.id, AnalysisUpdate(is_default=True))

        assert [a.id for a in _defaults(db_session, calculator.id, AnalysisType.YIELD)] == [second.id]
        db_session.refresh(first)
        assert first.is_default is False

    def test_move_between_calculators(self, db_session, make_calculator):
        source = make_calculator("Source")
        target = make_calculator("Target")
        analysis = _create(db_session, source)

        crud_analysis.update_db_analysis(db_session, analysis.id, AnalysisUpdate(calculator_id=target.id))

        db_session.refresh(source)
        db_session.refresh(target)
        db_session.refresh(analysis)
        assert source.analyses_count == 0
        assert target.analyses_count == 1
        assert analysis.calculator_name == "Target"

    def test_move_drops_link_to_old_calculators_investment(self, db_session, make_calculator, make_investment):
        source = make_calculator("Source")
        target = make_calculator("Target")
        investment = make_investment(source)
        analysis = _create(db_session, source, investment_id=investment.id)

        updated = crud_analysis.update_db_analysis(db_session, analysis.id, AnalysisUpdate(calculator_id=target.id))

        assert updated.investment_id is None
        assert updated.investment_name is None

    def test_default_moved_into_new_scope_clears_that_scope(self, db_session, make_calculator):
        source = make_calculator("Source")
        target = make_calculator("Target")
        resident = _create(db_session, target, is_default=True)
        mover = _create(db_session, source, is_default=True)

        crud_analysis.update_db_analysis(db_session, mover.id, AnalysisUpdate(calculator_id=target.id))

        assert [a.id for a in _defaults(db_session, target.id, AnalysisType.YIELD)] == [mover.id]
        db_session.refresh(resident)
        assert resident.is_default is False

    def test_relink_and_unlink_investment(self, db_session, calculator, make_investment):
        investment = make_investment(calculator, name="Option B")
        analysis = _create(db_session, calculator)

        linked = crud_analysis.update_db_analysis(db_session, analysis.id, AnalysisUpdate(investment_id=investment.id))
        assert linked.investment_name == "Option B"

        unlinked = crud_analysis.update_db_analysis(db_session, analysis.id, AnalysisUpdate(investment_id=None))
        assert unlinked.investment_id is None
        assert unlinked.investment_name is None

    def test_new_parameters_regenerate_results(self, db_session, calculator):
        analysis = _create(db_session, calculator)
        updated = crud_analysis.update_db_analysis(
            db_session, analysis.id, AnalysisUpdate(parameters={"purchasePrice": 100000, "monthlyRent": 1000})
        )
        assert updated.results["grossYield"] == pytest.approx(12.0)

    def test_changing_type_requires_matching_parameters(self, db_session, calculator):
        analysis = _create(db_session, calculator)
        with pytest.raises(ValidationError):
            crud_analysis.update_db_analysis(db_session, analysis.id, AnalysisUpdate(type=AnalysisType.MORTGAGE))

        db_session.refresh(analysis)
        assert analysis.type == AnalysisType.YIELD

    def test_unknown_analysis(self, db_session):
        with pytest.raises(NotFoundError):
            crud_analysis.update_db_analysis(db_session, 404, AnalysisUpdate(name="x"))


class TestDeleteAnalysis:

    def test_decrements_counter(self, db_session, calculator):
        keep = _create(db_session, calculator)
        drop = _create(db_session, calculator)

        crud_analysis.delete_db_analysis(db_session, drop.id)

        db_session.refresh(calculator)
        assert calculator.analyses_count == 1
        assert db_session.query(AnalysisDB).one().id == keep.id

    def test_unknown_analysis(self, db_session):
        with pytest.raises(NotFoundError):
            crud_analysis.delete_db_analysis(db_session, 404)


def _stale_parent_once(monkeypatch, stale_id: int):
    """The first parent lookup returns stale_id, as if a move committed right after the read."""
    real = crud_analysis._calculator_id_of
    calls = {"n": 0}

    def _lookup(db, analysis_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return stale_id
        return real(db, analysis_id)

    monkeypatch.setattr(crud_analysis, "_calculator_id_of", _lookup)
    return calls


def _live_count(db: Session, calculator_id: int) -> int:
    return db.query(AnalysisDB).filter(AnalysisDB.calculator_id == calculator_id).count()


class TestMovedWhileLocking:

    def test_delete_decrements_the_current_parent(self, db_session, monkeypatch, make_calculator):
        source = make_calculator("Source")
        target = make_calculator("Target")
        analysis = _create(db_session, source)
        crud_analysis.update_db_analysis(db_session, analysis.id, AnalysisUpdate(calculator_id=target.id))

        calls = _stale_parent_once(monkeypatch, source.id)
        crud_analysis.delete_db_analysis(db_session, analysis.id)

        assert calls["n"] == 2
        db_session.refresh(source)
        db_session.refresh(target)
        assert source.analyses_count == _live_count(db_session, source.id) == 0
        assert target.analyses_count == _live_count(db_session, target.id) == 0

    def test_move_counts_against_the_current_parent(self, db_session, monkeypatch, make_calculator):
        first = make_calculator("First")
        second = make_calculator("Second")
        third = make_calculator("Third")
        analysis = _create(db_session, first)
        crud_analysis.update_db_analysis(db_session, analysis.id, AnalysisUpdate(calculator_id=second.id))

        _stale_parent_once(monkeypatch, first.id)
        updated = crud_analysis.update_db_analysis(db_session, analysis.id, AnalysisUpdate(calculator_id=third.id))

        assert updated.calculator_id == third.id
        for calc in (first, second, third):
            db_session.refresh(calc)
            assert calc.analyses_count == _live_count(db_session, calc.id)
        assert (first.analyses_count, second.analyses_count, third.analyses_count) == (0, 0, 1)

    def test_gives_up_when_the_parent_keeps_moving(self, db_session, monkeypatch, make_calculator):
        source = make_calculator("Source")
        target = make_calculator("Target")
        analysis = _create(db_session, source)
        crud_analysis.update_db_analysis(db_session, analysis.id, AnalysisUpdate(calculator_id=target.id))

        monkeypatch.setattr(crud_analysis, "_calculator_id_of", lambda db, analysis_id: source.id)

        with pytest.raises(ConflictError):
            crud_analysis.delete_db_analysis(db_session, analysis.id)

        db_session.refresh(target)
        assert target.analyses_count == 1
        assert db_session.query(AnalysisDB).count() == 1
