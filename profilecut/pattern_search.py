"""
Busca por padrões para pools pequenos (seleção de padrões com OR-Tools CP-SAT)
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ortools.sat.python import cp_model

from .config import (
    CUT_MINUTES_PER_SEGMENT, EngineSettings, SETUP_MINUTES_PER_STOCK,
)
from .exceptions import OptimizationFailure
from .models import Constraints, CostModel, ObjectiveType
from .packing import Layout, StockLedger, StockOption, UnitPiece, best_fit_decreasing, downsize_bins
from .patterns import Pattern, demand_of, enumerate_patterns, fit_to_demand, realize_patterns
from .scoring import calculate_cost

logger = logging.getLogger(__name__)

# Comprimentos entram no modelo em décimos de milímetro
LENGTH_SCALE = 10
# Resolução da soma ponderada no modo multiobjetivo
WEIGHT_SCALE = 10000


def _units(length: float) -> int:
    return int(round(length * LENGTH_SCALE))


def _layout_key(bins: Layout) -> Tuple[float, int]:
    return sum(b.stock.length for b in bins), len(bins)


class PatternSearch:
    """
    Escolhe quantas vezes cortar cada padrão maximal

    Variável inteira por padrão, cobertura da demanda de cada comprimento e
    limite de disponibilidade por barra. Sem pesos, minimiza o comprimento
    total de barras e, no empate, o número de barras. A solução BFD é a
    incumbente e o resultado de reserva.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    def applies(self, pieces: Sequence[UnitPiece]) -> bool:
        return (
            len(pieces) <= self.settings.pattern_max_pieces
            and len({p.length for p in pieces}) <= self.settings.pattern_max_lengths
        )

    def candidate_patterns(
        self, demand: Dict[float, int], stocks: Sequence[StockOption], constraints: Constraints
    ) -> Tuple[List[Pattern], bool]:
        """
        Padrões maximais de cada barra: os de menor sobra e, para cada
        comprimento, os que o contêm

        Returns:
            (padrões sem repetição, se alguma enumeração foi truncada)
        """
        found: Dict[Pattern, None] = {}
        truncated = False
        limit = self.settings.pattern_limit
        for stock in stocks:
            if stock.availability == 0:
                continue
            batches = [enumerate_patterns(demand, stock, constraints, limit=limit)]
            for length in sorted(demand, reverse=True):
                batches.append(enumerate_patterns(demand, stock, constraints, must_include=length, limit=limit))
            for patterns, clipped in batches:
                truncated = truncated or clipped
                found.update(dict.fromkeys(patterns))
        return list(found), truncated

    def solve(
        self,
        pieces: Sequence[UnitPiece],
        stocks: Sequence[StockOption],
        constraints: Constraints,
        deadline: Optional[float] = None,
        weights: Optional[Dict[ObjectiveType, float]] = None,
        cost_model: Optional[CostModel] = None,
    ) -> Tuple[Layout, Dict[str, Any]]:
        """
        Args:
            pieces: Peças do pool
            stocks: Opções de estoque do perfil
            constraints: Restrições de corte
            deadline: Instante (time.monotonic) limite da busca
            weights: Pesos dos objetivos; None usa o objetivo exato de comprimento
            cost_model: Modelo de custos usado pelo objetivo de custo

        Returns:
            (plano, metadados com exact, time_bounded, nodes e solver_status)
        """
        incumbent = best_fit_decreasing(pieces, stocks, constraints)
        if not self.applies(pieces):
            logger.info(
                "Busca por padrões indisponível para %d peças (%d comprimentos); usando BFD",
                len(pieces), len({p.length for p in pieces}),
            )
            return incumbent, {"fallback": "bfd", "exact": False, "time_bounded": False}

        time_limit = self.settings.pattern_time_limit
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.info("Prazo esgotado antes da busca por padrões; mantendo BFD")
                return incumbent, {
                    "exact": False, "time_bounded": True, "nodes": 0, "solver_status": "UNKNOWN",
                }
            time_limit = min(time_limit, remaining)

        demand = demand_of(pieces)
        patterns, truncated = self.candidate_patterns(demand, stocks, constraints)
        if not patterns:
            return incumbent, {"exact": False, "time_bounded": False, "nodes": 0, "solver_status": "INFEASIBLE"}

        model = cp_model.CpModel()
        upper = len(pieces)
        counts = [model.NewIntVar(0, upper, f"padrao_{i}") for i in range(len(patterns))]

        for length, needed in demand.items():
            model.Add(sum(
                n * counts[i] for i, pattern in enumerate(patterns)
                for piece_length, n in pattern.counts if piece_length == length
            ) >= needed)
        for stock in stocks:
            if stock.availability is not None:
                model.Add(sum(
                    counts[i] for i, pattern in enumerate(patterns) if pattern.stock == stock
                ) <= stock.availability)
        model.Add(sum(counts) <= upper)

        if weights:
            coefficients = self.weighted_coefficients(patterns, weights, cost_model or CostModel(), upper)
        else:
            # Comprimento total primeiro; o número de barras (< upper + 1) só desempata
            coefficients = [_units(p.stock.length) * (upper + 1) + 1 for p in patterns]
        model.Minimize(sum(c * x for c, x in zip(coefficients, counts)))

        solver = cp_model.CpSolver()
        solver.parameters.max_time_in_seconds = float(time_limit)
        solver.parameters.num_workers = 1
        status = solver.Solve(model)
        status_name = solver.StatusName(status)
        nodes = int(solver.NumBranches())

        if status == cp_model.MODEL_INVALID:
            raise OptimizationFailure(f"Modelo de padrões inválido: {model.Validate()}")

        if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            logger.info("CP-SAT sem solução (%s); mantendo BFD", status_name)
            return incumbent, {
                "exact": False,
                "time_bounded": status == cp_model.UNKNOWN,
                "nodes": nodes,
                "solver_status": status_name,
            }

        chosen: List[Pattern] = []
        for pattern, var in zip(patterns, counts):
            chosen.extend([pattern] * solver.Value(var))
        chosen.sort(key=lambda p: (-p.stock.length, p.waste))
        layout = realize_patterns(fit_to_demand(chosen, demand, constraints), pieces)
        ledger = StockLedger(stocks)
        for b in layout:
            ledger.take(b.stock)
        downsize_bins(layout, ledger, constraints)

        if not weights and _layout_key(incumbent) < _layout_key(layout):
            layout = incumbent

        exact = status == cp_model.OPTIMAL and not truncated
        logger.debug(
            "Busca por padrões: %s, %d padrões, %d ramificações, %d barras, exata=%s",
            status_name, len(patterns), nodes, len(layout), exact,
        )
        return layout, {
            "exact": exact,
            "time_bounded": status == cp_model.FEASIBLE,
            "nodes": nodes,
            "solver_status": status_name,
        }

    @staticmethod
    def weighted_coefficients(
        patterns: Sequence[Pattern],
        weights: Dict[ObjectiveType, float],
        cost_model: CostModel,
        upper: int,
    ) -> List[int]:
        """
        Custo inteiro de cada padrão para a soma ponderada dos objetivos

        Cada termo é normalizado pelo maior valor entre os padrões. O
        comprimento da barra desempata padrões de mesmo custo ponderado.
        """
        def bar_cost(p: Pattern) -> float:
            stock_cost = p.stock.cost_per_stock + p.stock.cost_per_mm * p.stock.length
            minutes = SETUP_MINUTES_PER_STOCK + p.piece_count * CUT_MINUTES_PER_SEGMENT
            return calculate_cost(stock_cost, p.stock.length, p.waste, minutes, 1, cost_model).total_cost

        terms = {
            ObjectiveType.MAXIMIZE_EFFICIENCY: [p.stock.length for p in patterns],
            ObjectiveType.MINIMIZE_WASTE: [p.stock.length for p in patterns],
            ObjectiveType.MAXIMIZE_QUALITY: [p.stock.length for p in patterns],
            ObjectiveType.MINIMIZE_COST: [bar_cost(p) for p in patterns],
            ObjectiveType.MINIMIZE_TIME: [float(SETUP_MINUTES_PER_STOCK)] * len(patterns),
        }
        tie = upper * max(_units(p.stock.length) for p in patterns) + 1

        coefficients = []
        for i, pattern in enumerate(patterns):
            primary = 0.0
            for kind, weight in weights.items():
                values = terms[kind]
                top = max(values)
                if top > 0:
                    primary += weight * values[i] / top
            coefficients.append(int(round(WEIGHT_SCALE * primary)) * tie + _units(pattern.stock.length))
        return coefficients
