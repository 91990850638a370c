"""
Avaliadores de fitness do algoritmo genético

A implementação é escolhida uma única vez, na construção do otimizador,
a partir de ``EngineSettings.evaluator``. Quem chama só conhece a
interface ``FitnessEvaluator``.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .config import EngineSettings
from .exceptions import InfeasibleRequest
from .models import Constraints, CostModel, DecodeRule
from .packing import Layout, StockOption, UnitPiece, pack_sequence
from .scoring import ConstraintValidator, LayoutMetrics, ObjectiveScorer, measure_layout, metrics_matrix

logger = logging.getLogger(__name__)


@dataclass
class FitnessProblem:
    """Tudo o que é necessário para decodificar e pontuar um cromossomo"""
    pieces: Sequence[UnitPiece]
    stocks: Sequence[StockOption]
    constraints: Constraints
    cost_model: CostModel
    scorer: ObjectiveScorer
    validator: ConstraintValidator
    rule: DecodeRule = DecodeRule.FIRST_FIT

    def decode(self, chromosome: np.ndarray) -> Optional[Layout]:
        """Cromossomo -> barras; None quando a ordem esgota o estoque"""
        ordered = [self.pieces[i] for i in chromosome]
        try:
            return pack_sequence(ordered, self.stocks, self.constraints, self.rule)
        except InfeasibleRequest:
            return None

    def measure(self, layout: Layout) -> LayoutMetrics:
        return measure_layout(layout, self.constraints, self.cost_model)


@dataclass
class Evaluation:
    """Resultado da avaliação de uma população"""
    fitness: np.ndarray
    feasible: np.ndarray
    layouts: List[Optional[Layout]]
    metrics: List[Optional[LayoutMetrics]]


class FitnessEvaluator(ABC):
    """Interface comum dos avaliadores"""

    name = "base"

    @abstractmethod
    def evaluate(self, population: Sequence[np.ndarray], problem: FitnessProblem) -> Evaluation:
        """Decodifica e pontua todos os indivíduos, preservando a ordem"""


class CpuFitnessEvaluator(FitnessEvaluator):
    """Pontua indivíduo a indivíduo, opcionalmente em um pool de threads"""

    name = "cpu"

    def __init__(self, max_workers: int = 1):
        self.max_workers = max(1, max_workers)

    def _evaluate_one(self, chromosome: np.ndarray, problem: FitnessProblem):
        layout = problem.decode(chromosome)
        if layout is None:
            return None, None, -np.inf, False
        metrics = problem.measure(layout)
        penalty = problem.validator.penalty(metrics)
        return layout, metrics, problem.scorer.score(metrics) - penalty, penalty == 0

    def evaluate(self, population: Sequence[np.ndarray], problem: FitnessProblem) -> Evaluation:
        if self.max_workers > 1 and len(population) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                rows = list(executor.map(lambda c: self._evaluate_one(c, problem), population))
        else:
            rows = [self._evaluate_one(c, problem) for c in population]

        return Evaluation(
            fitness=np.array([r[2] for r in rows], dtype=float),
            feasible=np.array([r[3] for r in rows], dtype=bool),
            layouts=[r[0] for r in rows],
            metrics=[r[1] for r in rows],
        )


class BatchedFitnessEvaluator(FitnessEvaluator):
    """Decodifica todos e pontua a população em uma única operação vetorizada"""

    name = "batched"

    def evaluate(self, population: Sequence[np.ndarray], problem: FitnessProblem) -> Evaluation:
        layouts = [problem.decode(c) for c in population]
        metrics = [problem.measure(layout) if layout is not None else None for layout in layouts]

        decoded = [i for i, m in enumerate(metrics) if m is not None]
        fitness = np.full(len(population), -np.inf)
        feasible = np.zeros(len(population), dtype=bool)
        if decoded:
            matrix = metrics_matrix([metrics[i] for i in decoded])
            penalties = problem.validator.penalty_batch(matrix)
            fitness[decoded] = problem.scorer.score_batch(matrix) - penalties
            feasible[decoded] = penalties == 0

        return Evaluation(fitness=fitness, feasible=feasible, layouts=layouts, metrics=metrics)


EVALUATORS = {
    CpuFitnessEvaluator.name: CpuFitnessEvaluator,
    BatchedFitnessEvaluator.name: BatchedFitnessEvaluator,
}


def create_fitness_evaluator(settings: Optional[EngineSettings] = None) -> FitnessEvaluator:
    """Instancia o avaliador configurado"""
    settings = settings or EngineSettings()
    if settings.evaluator not in EVALUATORS:
        raise ValueError(
            f"Avaliador desconhecido: {settings.evaluator!r} (opções: {', '.join(EVALUATORS)})"
        )
    if settings.evaluator == CpuFitnessEvaluator.name:
        evaluator: FitnessEvaluator = CpuFitnessEvaluator(settings.max_workers)
    else:
        evaluator = BatchedFitnessEvaluator()
    logger.debug("Avaliador de fitness: %s", evaluator.name)
    return evaluator
