"""
Testes de ponta a ponta do ProfileCutOptimizer.
"""

from collections import Counter

import pytest

from profilecut.exceptions import ErrorCode
from profilecut.models import AlgorithmType, Constraints

BARE = Constraints(kerf_width=0, start_safety=0, end_safety=0)


def lengths_per_cut(result):
    return sorted(sorted((s.length for s in cut.segments), reverse=True) for cut in result.cuts)


# ---------------------------------------------------------------------------
# Cenários de referência
# ---------------------------------------------------------------------------

def test_exact_packing_with_first_fit(optimizer, make_request):
    result = optimizer.optimize(make_request(
        items=[("W1", "P1", 1000, 1), ("W1", "P1", 900, 1), ("W1", "P1", 800, 1), ("W1", "P1", 700, 1)],
        stocks=[("P1", 1700)],
        constraints=BARE,
        algorithm=AlgorithmType.FFD,
    ))

    assert result.success
    assert result.stock_count == 2
    assert result.total_waste == pytest.approx(0)
    assert lengths_per_cut(result) == [[900, 800], [1000, 700]]
    assert result.efficiency == pytest.approx(100)


@pytest.mark.parametrize("algorithm", [AlgorithmType.BFD, AlgorithmType.POOLING, AlgorithmType.PATTERN_EXACT])
def test_exact_packing_other_algorithms(algorithm, optimizer, make_request):
    result = optimizer.optimize(make_request(
        items=[("W1", "P1", 1000, 1), ("W1", "P1", 900, 1), ("W1", "P1", 800, 1), ("W1", "P1", 700, 1)],
        stocks=[("P1", 1700)],
        constraints=BARE,
        algorithm=algorithm,
    ))
    assert result.stock_count == 2
    assert result.total_waste == pytest.approx(0)


def test_uniform_fill(optimizer, make_request):
    result = optimizer.optimize(make_request(
        items=[("W1", "P1", 2000, 3)],
        stocks=[("P1", 6000)],
        constraints=BARE,
    ))

    assert result.success
    assert len(result.cuts) == 1
    assert result.cuts[0].segment_count == 3
    assert result.total_waste == pytest.approx(0)
    assert result.waste_distribution.minimal == 1


@pytest.mark.parametrize("algorithm", list(AlgorithmType))
def test_piece_longer_than_any_stock_is_infeasible(algorithm, optimizer, make_request):
    result = optimizer.optimize(make_request(
        items=[("W1", "P1", 1000, 2), ("W9", "P1", 7000, 1)],
        stocks=[("P1", 6000)],
        algorithm=algorithm,
    ))

    assert not result.success
    assert result.error_code == ErrorCode.INFEASIBLE_REQUEST
    assert "7000" in result.error_message
    assert result.infeasible_piece == {
        "workOrderId": "W9", "profileType": "P1", "length": 7000, "itemIndex": 1,
    }
    assert result.cuts == []


# ---------------------------------------------------------------------------
# Invariantes para todos os algoritmos
# ---------------------------------------------------------------------------

@pytest.fixture(params=list(AlgorithmType), ids=lambda a: a.value)
def solved(request, optimizer, mixed_request):
    mixed_request.algorithm = request.param
    return mixed_request, optimizer.optimize(mixed_request)


def test_every_requested_piece_is_cut_once(solved):
    request, result = solved
    assert result.success, result.error_message

    produced = Counter(s.item_index for cut in result.cuts for s in cut.segments)
    assert produced == {index: item.quantity for index, item in enumerate(request.items)}
    for cut in result.cuts:
        for segment in cut.segments:
            item = request.items[segment.item_index]
            assert segment.length == item.length
            assert segment.work_order_id == item.work_order_id
            assert segment.profile_type == cut.profile_type


def test_cuts_fit_their_stock(solved):
    request, result = solved
    kerf = request.constraints.kerf_width
    margins = request.constraints.start_safety + request.constraints.end_safety

    for cut in result.cuts:
        pieces = sum(s.length for s in cut.segments)
        assert pieces + kerf * (cut.segment_count - 1) + margins <= cut.stock_length + 1e-6
        assert cut.segment_count <= request.constraints.max_cuts_per_stock
        assert cut.remaining_length >= -1e-6
        assert cut.segments[-1].end_position <= cut.stock_length - request.constraints.end_safety + 1e-6


def test_aggregate_metrics_are_bounded(solved):
    _, result = solved
    assert 0 <= result.waste_percentage <= 100
    assert 0 < result.efficiency <= 100
    assert result.efficiency + result.waste_percentage == pytest.approx(100)
    assert result.stock_count == len(result.cuts)
    assert result.total_segments == 21
    assert result.total_waste == pytest.approx(sum(c.remaining_length for c in result.cuts))
    assert result.algorithm_metadata.algorithm == result.algorithm


def test_cut_indices_are_sequential(solved):
    _, result = solved
    assert [c.index for c in result.cuts] == list(range(len(result.cuts)))


# ---------------------------------------------------------------------------
# Determinismo
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("algorithm", list(AlgorithmType))
def test_same_request_same_plan(algorithm, optimizer, mixed_request):
    mixed_request.algorithm = algorithm
    first = optimizer.optimize(mixed_request)
    second = optimizer.optimize(mixed_request)

    assert [c.model_dump() for c in first.cuts] == [c.model_dump() for c in second.cuts]
    assert first.efficiency == second.efficiency


def test_genetic_metadata(optimizer, mixed_request):
    mixed_request.algorithm = AlgorithmType.GENETIC
    metadata = optimizer.optimize(mixed_request).algorithm_metadata

    assert metadata.seed == 7
    assert metadata.population_size == 12
    assert metadata.evaluator == "batched"
    assert metadata.generations >= 1
    assert metadata.convergence_reason in ("converged", "max_generations", "time_budget")
    assert [p["profileType"] for p in metadata.pools] == ["AL-40", "AL-20"]


def test_pattern_exact_metadata(optimizer, mixed_request):
    mixed_request.algorithm = AlgorithmType.PATTERN_EXACT
    metadata = optimizer.optimize(mixed_request).algorithm_metadata

    assert metadata.exact
    assert metadata.solver_status == "OPTIMAL"
    assert [p["solverStatus"] for p in metadata.pools] == ["OPTIMAL", "OPTIMAL"]
    assert metadata.nodes >= 0
    assert metadata.fallback is None


# ---------------------------------------------------------------------------
# Restrições rígidas e falhas
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("algorithm", [AlgorithmType.FFD, AlgorithmType.BFD, AlgorithmType.POOLING])
def test_waste_limit_rejects_plan(algorithm, optimizer, make_request):
    result = optimizer.optimize(make_request(
        items=[("W1", "P1", 1000, 1)],
        stocks=[("P1", 6000)],
        constraints=Constraints(max_waste_percentage=10),
        algorithm=algorithm,
    ))

    assert not result.success
    assert result.error_code == ErrorCode.INFEASIBLE_REQUEST
    assert "maxWastePercentage" in result.error_message


@pytest.mark.parametrize("algorithm", list(AlgorithmType))
def test_waste_limit_applies_to_whole_plan(algorithm, optimizer, make_request, fast_performance):
    # O perfil A sozinho desperdiça 90%; o plano completo, 900/7000
    result = optimizer.optimize(make_request(
        items=[("W1", "A", 100, 1), ("W1", "B", 1000, 6)],
        stocks=[("A", 1000), ("B", 6000)],
        constraints=Constraints(kerf_width=0, start_safety=0, end_safety=0, max_waste_percentage=50),
        algorithm=algorithm,
        performance=fast_performance,
    ))

    assert result.success, result.error_message
    assert result.waste_percentage == pytest.approx(900 / 7000 * 100)
    assert result.stock_count == 2


def test_exhausted_stock_is_infeasible(optimizer, make_request):
    result = optimizer.optimize(make_request(
        items=[("W1", "P1", 4000, 3)],
        stocks=[("P1", 6000, 2)],
        constraints=BARE,
    ))
    assert not result.success
    assert result.error_code == ErrorCode.INFEASIBLE_REQUEST


def test_empty_request_is_rejected(optimizer, make_request):
    result = optimizer.optimize(make_request(items=[], stocks=[("P1", 6000)]))
    assert not result.success
    assert result.error_code == ErrorCode.NO_ITEMS


def test_unexpected_error_is_reported(optimizer, make_request):
    def broken(pool, context):
        raise RuntimeError("falha simulada")

    optimizer.algorithms[AlgorithmType.BFD] = broken
    result = optimizer.optimize(make_request(items=[("W1", "P1", 1000, 1)], stocks=[("P1", 6000)]))

    assert not result.success
    assert result.error_code == ErrorCode.OPTIMIZATION_ERROR
    assert "falha simulada" in result.error_message
    assert result.execution_time >= 0


def test_algorithm_info_lists_every_algorithm(optimizer):
    info = optimizer.get_algorithm_info()
    assert set(info) == {a.value for a in AlgorithmType}
    assert info["genetic"]["evaluator"] == "batched"
