"""
Fixtures compartilhadas dos testes do ProfileCut.
"""

import pytest

from profilecut import EngineSettings, ProfileCutOptimizer
from profilecut.evaluators import FitnessProblem
from profilecut.models import (
    Constraints, CostModel, MaterialStockLength, Objective, ObjectiveType,
    OptimizationItem, OptimizationRequest, PerformanceSettings, Priority,
)
from profilecut.packing import StockOption, UnitPiece
from profilecut.scoring import ConstraintValidator, ObjectiveScorer


# ---------------------------------------------------------------------------
# Restrições
# ---------------------------------------------------------------------------

@pytest.fixture
def bare_constraints():
    """Sem kerf e sem margens: capacidade = comprimento da barra."""
    return Constraints(kerf_width=0, start_safety=0, end_safety=0)


@pytest.fixture
def shop_constraints():
    """Valores padrão de oficina: kerf 3, margens 5/5."""
    return Constraints()


# ---------------------------------------------------------------------------
# Peças e barras internas
# ---------------------------------------------------------------------------

@pytest.fixture
def make_pieces():
    """Fábrica de peças unitárias; índices seguem a ordem da lista."""
    def factory(lengths, profile_type="P1", work_order_id="W1", start=0, item_index=None):
        return [
            UnitPiece(
                index=start + i,
                item_index=i if item_index is None else item_index,
                profile_type=profile_type,
                length=float(length),
                work_order_id=work_order_id,
            )
            for i, length in enumerate(lengths)
        ]
    return factory


@pytest.fixture
def make_stock():
    def factory(length, profile_type="P1", availability=None, cost_per_stock=0.0):
        return StockOption(
            profile_type=profile_type,
            length=float(length),
            availability=availability,
            cost_per_stock=cost_per_stock,
        )
    return factory


@pytest.fixture
def default_weights():
    return {
        ObjectiveType.MAXIMIZE_EFFICIENCY: 0.5,
        ObjectiveType.MINIMIZE_WASTE: 0.3,
        ObjectiveType.MINIMIZE_COST: 0.2,
    }


@pytest.fixture
def make_problem(default_weights):
    """Fábrica de FitnessProblem para o algoritmo genético."""
    def factory(pieces, stocks, constraints, rule=None):
        kwargs = {} if rule is None else {"rule": rule}
        return FitnessProblem(
            pieces=pieces,
            stocks=stocks,
            constraints=constraints,
            cost_model=CostModel(),
            scorer=ObjectiveScorer(default_weights),
            validator=ConstraintValidator(constraints),
            **kwargs,
        )
    return factory


# ---------------------------------------------------------------------------
# Requisições
# ---------------------------------------------------------------------------

@pytest.fixture
def make_request():
    """
    Fábrica de requisições.

    items: lista de (work_order_id, profile_type, length, quantity)
    stocks: lista de (profile_type, stock_length) ou (profile_type, stock_length, availability)
    """
    def factory(items, stocks, constraints=None, **kwargs):
        return OptimizationRequest(
            items=[
                OptimizationItem(work_order_id=wo, profile_type=pt, length=length, quantity=qty)
                for wo, pt, length, qty in items
            ],
            material_stock_lengths=[
                MaterialStockLength(
                    profile_type=s[0],
                    stock_length=s[1],
                    availability=s[2] if len(s) > 2 else None,
                )
                for s in stocks
            ],
            constraints=constraints or Constraints(),
            **kwargs,
        )
    return factory


@pytest.fixture
def fast_performance():
    """Parâmetros pequenos para o algoritmo genético nos testes."""
    return PerformanceSettings(population_size=12, generations=8, deterministic_seed=7)


@pytest.fixture
def mixed_request(make_request, fast_performance):
    """Dois perfis, duas ordens, dois comprimentos de barra."""
    return make_request(
        items=[
            ("OS-1", "AL-40", 1200, 3),
            ("OS-1", "AL-40", 800, 5),
            ("OS-2", "AL-40", 600, 6),
            ("OS-2", "AL-20", 450, 7),
        ],
        stocks=[("AL-40", 6000), ("AL-40", 4000), ("AL-20", 3000)],
        performance=fast_performance,
    )


@pytest.fixture
def all_objectives():
    return [
        Objective(type=ObjectiveType.MAXIMIZE_EFFICIENCY, weight=0.4, priority=Priority.HIGH),
        Objective(type=ObjectiveType.MINIMIZE_COST, weight=0.3),
        Objective(type=ObjectiveType.MINIMIZE_TIME, weight=0.3, priority=Priority.LOW),
    ]


@pytest.fixture
def optimizer():
    return ProfileCutOptimizer(EngineSettings(max_workers=2))
