"""
Testes das métricas, da pontuação de objetivos e das restrições.
"""

import numpy as np
import pytest

from profilecut.models import Constraints, CostModel, ObjectiveType
from profilecut.packing import Bin
from profilecut.scoring import (
    ConstraintValidator, ObjectiveScorer, measure_layout, metrics_matrix,
)


@pytest.fixture
def two_piece_layout(make_pieces, make_stock):
    """Uma barra de 6000 com duas peças de 2000 (kerf 3, margens 5/5)."""
    return [Bin(stock=make_stock(6000, cost_per_stock=150.0), pieces=make_pieces([2000, 2000]))]


@pytest.fixture
def metrics(two_piece_layout, shop_constraints):
    return measure_layout(two_piece_layout, shop_constraints, CostModel())


def test_layout_metrics(metrics):
    used = 2000 + 2000 + 3 + 10
    assert metrics.stock_count == 1
    assert metrics.segment_count == 2
    assert metrics.used_length == used
    assert metrics.total_waste == 6000 - used
    assert metrics.kerf_loss == 3
    assert metrics.safety_reserve == 10
    assert metrics.efficiency == pytest.approx(used / 6000 * 100)
    assert metrics.waste_percentage == pytest.approx((6000 - used) / 6000 * 100)
    assert metrics.stock_utilization == pytest.approx(4000 / 6000 * 100)
    assert metrics.cutting_accuracy == 100


def test_quality_score_formula(metrics):
    expected = 100 * (0.5 * metrics.efficiency / 100 + 0.3 * 1.0 + 0.2 * metrics.stock_utilization / 100)
    assert metrics.quality_score == pytest.approx(expected)


def test_time_estimate(metrics):
    # 5 min de preparação por barra + 2 min por peça
    assert metrics.total_time == 5 + 2 * 2


def test_cost_breakdown(two_piece_layout, shop_constraints):
    model = CostModel(
        material_cost=10, labor_cost=60, waste_cost=5, setup_cost=2, transport_cost=1, overhead_cost=10,
    )
    cost = measure_layout(two_piece_layout, shop_constraints, model).cost

    assert cost.stock_cost == 150
    assert cost.material_cost == pytest.approx(60)
    assert cost.labor_cost == pytest.approx(9)
    assert cost.waste_cost == pytest.approx(1.987 * 5)
    assert cost.setup_cost == 2
    assert cost.transport_cost == 1
    subtotal = 150 + 60 + 9 + 1.987 * 5 + 2 + 1
    assert cost.overhead_cost == pytest.approx(subtotal * 0.1)
    assert cost.total_cost == pytest.approx(subtotal * 1.1)


def test_empty_layout_has_zero_metrics(shop_constraints):
    empty = measure_layout([], shop_constraints, CostModel())
    assert empty.efficiency == 0
    assert empty.waste_percentage == 0
    assert empty.quality_score == 0


def test_scores_are_normalized(metrics):
    scores = ObjectiveScorer.objective_scores(metrics)
    assert set(scores) == set(ObjectiveType)
    assert all(0 <= value <= 1 for value in scores.values())
    assert scores[ObjectiveType.MINIMIZE_WASTE] == pytest.approx(1 - metrics.waste_percentage / 100)
    assert scores[ObjectiveType.MINIMIZE_COST] == pytest.approx(1 - 150 / 10150)
    assert scores[ObjectiveType.MINIMIZE_TIME] == pytest.approx(1 - 9 / 69)


def test_batch_score_matches_scalar(metrics, default_weights):
    scorer = ObjectiveScorer(default_weights)
    matrix = metrics_matrix([metrics, metrics])
    assert np.allclose(scorer.score_batch(matrix), [scorer.score(metrics)] * 2)


def test_feasible_layout_has_no_penalty(metrics, shop_constraints):
    validator = ConstraintValidator(shop_constraints)
    assert validator.violations(metrics) == []
    assert validator.penalty(metrics) == 0


def test_waste_limit_violation_is_penalized(metrics):
    validator = ConstraintValidator(Constraints(max_waste_percentage=10))
    violations = validator.violations(metrics)

    assert len(violations) == 1
    assert violations[0].startswith("maxWastePercentage")
    excess = (metrics.waste_percentage - 10) / 100
    assert validator.penalty(metrics) == pytest.approx(1 + excess)


def test_quality_floor_violation(metrics):
    validator = ConstraintValidator(Constraints(min_quality_score=99))
    assert validator.violations(metrics)[0].startswith("minQualityScore")
    assert validator.penalty(metrics) > 1


def test_cut_count_violation(make_pieces, make_stock):
    constraints = Constraints(kerf_width=0, start_safety=0, end_safety=0, max_cuts_per_stock=2)
    layout = [Bin(stock=make_stock(6000), pieces=make_pieces([100, 100, 100]))]
    metrics = measure_layout(layout, constraints, CostModel())
    validator = ConstraintValidator(constraints)

    assert metrics.cutting_accuracy == 0
    assert validator.violations(metrics)[0].startswith("maxCutsPerStock")
    assert validator.penalty(metrics) == pytest.approx(1.5)


def test_pool_validator_ignores_plan_limits(metrics, make_pieces, make_stock):
    pool = ConstraintValidator(Constraints(max_waste_percentage=10, min_quality_score=99), plan_limits=False)
    assert pool.violations(metrics) == []
    assert pool.penalty(metrics) == 0

    constraints = Constraints(kerf_width=0, start_safety=0, end_safety=0, max_cuts_per_stock=2, max_waste_percentage=1)
    crowded = measure_layout(
        [Bin(stock=make_stock(6000), pieces=make_pieces([100, 100, 100]))], constraints, CostModel()
    )
    pool = ConstraintValidator(constraints, plan_limits=False)
    assert [v.split(":")[0] for v in pool.violations(crowded)] == ["maxCutsPerStock"]
    assert pool.penalty(crowded) == pytest.approx(1.5)


def test_violating_layout_scores_below_any_feasible(metrics, default_weights):
    scorer = ObjectiveScorer(default_weights)
    strict = ConstraintValidator(Constraints(max_waste_percentage=10))
    assert scorer.score(metrics) - strict.penalty(metrics) < 0 <= scorer.score(metrics)
