"""
Testes da enumeração de padrões e da busca por padrões (CP-SAT).
"""

import time

import pytest

from profilecut.config import EngineSettings
from profilecut.packing import best_fit_decreasing, first_fit_decreasing, layout_signature
from profilecut.pattern_search import PatternSearch
from profilecut.models import Constraints, CostModel, ObjectiveType
from profilecut.patterns import Pattern, demand_of, enumerate_patterns, fit_to_demand, realize_patterns

# FFD e BFD usam 3 barras; o ótimo usa 2 ({600,400,200} e {500,400,300})
HARD_LENGTHS = [600, 500, 400, 400, 300, 200]


def piece_indices(bins):
    return sorted(p.index for b in bins for p in b.pieces)


# ---------------------------------------------------------------------------
# Enumeração
# ---------------------------------------------------------------------------

def test_enumerated_patterns_are_maximal(make_pieces, make_stock, bare_constraints):
    demand = demand_of(make_pieces(HARD_LENGTHS))
    patterns, truncated = enumerate_patterns(demand, make_stock(1200), bare_constraints, must_include=600)

    assert patterns and not truncated
    for pattern in patterns:
        assert 600 in pattern.lengths
        assert pattern.waste >= 0
        used = dict(pattern.counts)
        for length, n in demand.items():
            if used.get(length, 0) < n:
                assert length > pattern.waste


def test_patterns_sorted_by_waste(make_pieces, make_stock, bare_constraints):
    demand = demand_of(make_pieces(HARD_LENGTHS))
    patterns, _ = enumerate_patterns(demand, make_stock(1200), bare_constraints)

    wastes = [p.waste for p in patterns]
    assert wastes == sorted(wastes)
    assert wastes[0] == 0


def test_pattern_limit_marks_truncation(make_pieces, make_stock, bare_constraints):
    demand = demand_of(make_pieces(HARD_LENGTHS))
    patterns, truncated = enumerate_patterns(demand, make_stock(1200), bare_constraints, limit=1)
    assert len(patterns) == 1
    assert truncated


def test_pattern_load_includes_kerf(make_pieces, make_stock, shop_constraints):
    demand = demand_of(make_pieces([1000, 1000]))
    patterns, _ = enumerate_patterns(demand, make_stock(3000), shop_constraints)
    assert patterns[0].counts == ((1000.0, 2),)
    assert patterns[0].load == 2003
    assert patterns[0].waste == 2990 - 2003


def test_realize_keeps_insertion_order_per_length(make_pieces, make_stock):
    pieces = make_pieces([500] * 4, work_order_id="W1") + make_pieces([500] * 2, work_order_id="W2", start=4)
    stock = make_stock(2000)
    patterns = [
        Pattern(stock=stock, counts=((500.0, 4),), load=2000, waste=0),
        Pattern(stock=stock, counts=((500.0, 2),), load=1000, waste=1000),
    ]

    bins = realize_patterns(patterns, pieces)

    assert [p.work_order_id for p in bins[0].pieces] == ["W1"] * 4
    assert [p.work_order_id for p in bins[1].pieces] == ["W2"] * 2


# ---------------------------------------------------------------------------
# Busca
# ---------------------------------------------------------------------------

def test_search_finds_optimum_ffd_misses(make_pieces, make_stock, bare_constraints):
    pieces = make_pieces(HARD_LENGTHS)
    stocks = [make_stock(1200)]
    assert len(first_fit_decreasing(pieces, stocks, bare_constraints)) == 3

    bins, meta = PatternSearch().solve(pieces, stocks, bare_constraints)

    assert len(bins) == 2
    assert all(b.remaining(bare_constraints) == 0 for b in bins)
    assert piece_indices(bins) == list(range(len(pieces)))
    assert meta["exact"] is True
    assert meta["time_bounded"] is False


def test_search_minimizes_total_stock_length(make_pieces, make_stock, bare_constraints):
    # BFD abre a barra de 2500 para as duas peças; duas barras de 1000 consomem menos
    pieces = make_pieces([1000, 1000])
    stocks = [make_stock(1000), make_stock(2500)]

    bins, meta = PatternSearch().solve(pieces, stocks, bare_constraints)

    assert [b.stock.length for b in bins] == [1000, 1000]
    assert meta["exact"] is True


def test_search_respects_availability(make_pieces, make_stock, bare_constraints):
    pieces = make_pieces([1000, 1000])
    stocks = [make_stock(1000, availability=1), make_stock(2500)]

    bins, _ = PatternSearch().solve(pieces, stocks, bare_constraints)
    assert sum(1 for b in bins if b.stock.length == 1000) <= 1
    assert piece_indices(bins) == [0, 1]


def test_large_pool_falls_back_to_bfd(make_pieces, make_stock, shop_constraints):
    pieces = make_pieces([1200, 800, 800, 600, 450])
    stocks = [make_stock(6000)]
    search = PatternSearch(EngineSettings(pattern_max_pieces=3))

    bins, meta = search.solve(pieces, stocks, shop_constraints)

    assert meta["fallback"] == "bfd"
    assert meta["exact"] is False
    assert layout_signature(bins) == layout_signature(best_fit_decreasing(pieces, stocks, shop_constraints))


def test_optimal_solver_status_is_reported(make_pieces, make_stock, bare_constraints):
    bins, meta = PatternSearch().solve(make_pieces(HARD_LENGTHS), [make_stock(1200)], bare_constraints)

    assert meta["solver_status"] == "OPTIMAL"
    assert meta["nodes"] >= 0
    assert len(bins) == 2


def test_truncated_pattern_set_is_not_exact(make_pieces, make_stock, bare_constraints):
    pieces = make_pieces(HARD_LENGTHS)
    search = PatternSearch(EngineSettings(pattern_limit=1))

    bins, meta = search.solve(pieces, [make_stock(1200)], bare_constraints)

    assert meta["exact"] is False
    assert meta["time_bounded"] is False
    assert piece_indices(bins) == list(range(len(pieces)))


def test_surplus_coverage_is_trimmed(make_pieces, make_stock, bare_constraints):
    # Padrões maximais produzem 4 peças de 2000 para uma demanda de 3
    pieces = make_pieces([2000, 2000, 2000])
    bins, meta = PatternSearch().solve(pieces, [make_stock(4000)], bare_constraints)

    assert meta["exact"] is True
    assert piece_indices(bins) == [0, 1, 2]
    assert sorted(len(b.pieces) for b in bins) == [1, 2]


def test_fit_to_demand_drops_empty_bars(make_stock, bare_constraints):
    stock = make_stock(4000)
    pattern = Pattern(stock=stock, counts=((2000.0, 2),), load=4000, waste=0)

    fitted = fit_to_demand([pattern, pattern, pattern], {2000.0: 3}, bare_constraints)

    assert [p.counts for p in fitted] == [((2000.0, 2),), ((2000.0, 1),)]
    assert fitted[1].waste == 2000


TRADE_OFF_LENGTHS = [3000, 3000, 2000, 2000, 2000]


def test_weighted_search_follows_cost(make_pieces, make_stock, bare_constraints):
    pieces = make_pieces(TRADE_OFF_LENGTHS)
    stocks = [make_stock(6000, cost_per_stock=100), make_stock(4000, cost_per_stock=30)]

    bins, _ = PatternSearch().solve(
        pieces, stocks, bare_constraints, weights={ObjectiveType.MINIMIZE_COST: 1.0}, cost_model=CostModel(),
    )

    assert [b.stock.length for b in bins] == [4000] * 4
    assert piece_indices(bins) == list(range(5))


def test_weighted_search_follows_efficiency(make_pieces, make_stock, bare_constraints):
    pieces = make_pieces(TRADE_OFF_LENGTHS)
    stocks = [make_stock(6000, cost_per_stock=100), make_stock(4000, cost_per_stock=30)]

    bins, _ = PatternSearch().solve(
        pieces, stocks, bare_constraints, weights={ObjectiveType.MAXIMIZE_EFFICIENCY: 1.0},
    )

    assert [b.stock.length for b in bins] == [6000, 6000]
    assert all(b.remaining(bare_constraints) == 0 for b in bins)


def test_expired_deadline_returns_incumbent(make_pieces, make_stock, bare_constraints):
    pieces = make_pieces(HARD_LENGTHS)
    stocks = [make_stock(1200)]

    bins, meta = PatternSearch().solve(pieces, stocks, bare_constraints, deadline=time.monotonic() - 1)

    assert meta["time_bounded"] is True
    assert len(bins) == len(best_fit_decreasing(pieces, stocks, bare_constraints))


@pytest.mark.parametrize("kerf", [0, 3])
def test_search_never_worse_than_bfd(kerf, make_pieces, make_stock):
    constraints = Constraints(kerf_width=kerf, start_safety=5, end_safety=5)
    pieces = make_pieces([1500, 1500, 1200, 900, 900, 700, 650, 400, 400, 300])
    stocks = [make_stock(3000), make_stock(2000)]

    bins, _ = PatternSearch().solve(pieces, stocks, constraints)
    incumbent = best_fit_decreasing(pieces, stocks, constraints)

    assert sum(b.stock.length for b in bins) <= sum(b.stock.length for b in incumbent)
    for b in bins:
        assert b.remaining(constraints) >= -1e-6
