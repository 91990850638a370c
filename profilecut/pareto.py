"""
Fronteira de Pareto e seleção do ponto de joelho (modo avançado)
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import EngineSettings
from .exceptions import InfeasibleRequest
from .models import ObjectiveType, ParetoPoint
from .normalizer import WeightedObjective
from .scoring import LayoutMetrics, Solution

logger = logging.getLogger(__name__)

Weights = Dict[ObjectiveType, float]
SolveFn = Callable[[Weights, int], Solution]
RefineFn = Callable[[Weights, int, Solution], Solution]

MAXIMIZED = (ObjectiveType.MAXIMIZE_EFFICIENCY, ObjectiveType.MAXIMIZE_QUALITY)


def objective_value(kind: ObjectiveType, metrics: LayoutMetrics) -> float:
    """Valor do objetivo na forma minimizada"""
    if kind == ObjectiveType.MINIMIZE_WASTE:
        return metrics.waste_percentage
    if kind == ObjectiveType.MAXIMIZE_EFFICIENCY:
        return -metrics.efficiency
    if kind == ObjectiveType.MINIMIZE_COST:
        return metrics.total_cost
    if kind == ObjectiveType.MINIMIZE_TIME:
        return metrics.total_time
    return -metrics.quality_score


def dominates(a: np.ndarray, b: np.ndarray) -> bool:
    return bool(np.all(a <= b) and np.any(a < b))


def non_dominated(vectors: np.ndarray) -> List[int]:
    """Índices das linhas não dominadas, na ordem original"""
    keep = []
    for i in range(len(vectors)):
        if not any(dominates(vectors[j], vectors[i]) for j in range(len(vectors)) if j != i):
            keep.append(i)
    return keep


def knee_index(vectors: np.ndarray) -> int:
    """
    Ponto de joelho: menor distância euclidiana ao ponto ideal após
    normalização min-max de cada objetivo (objetivo constante => 0).
    Empates: menor valor no objetivo de maior prioridade (coluna 0),
    depois a primeira linha.
    """
    vectors = np.asarray(vectors, dtype=float)
    low = vectors.min(axis=0)
    span = vectors.max(axis=0) - low
    scaled = np.divide(vectors - low, span, out=np.zeros_like(vectors), where=span > 0)
    distance = np.sqrt((scaled ** 2).sum(axis=1))
    tied = np.nonzero(distance <= distance.min() + 1e-12)[0]
    return int(min(tied, key=lambda i: (vectors[i, 0], i)))


def simplex_lattice(dimensions: int, divisions: int) -> List[Tuple[float, ...]]:
    """Vetores de pesos da grade simplex, ordem lexicográfica decrescente"""
    points: List[Tuple[float, ...]] = []

    def fill(prefix: List[int], left: int) -> None:
        if len(prefix) == dimensions - 1:
            points.append(tuple(v / divisions for v in prefix + [left]))
            return
        for value in range(left, -1, -1):
            fill(prefix + [value], left - value)

    if dimensions > 0:
        fill([], divisions)
    return points


@dataclass
class FrontMember:
    run: int
    weights: Weights
    solution: Solution
    vector: np.ndarray


class ParetoFrontManager:
    """Executa a busca com vários vetores de pesos e filtra a fronteira"""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    def weight_vectors(self, objectives: Sequence[WeightedObjective]) -> List[Weights]:
        kinds = [o.type for o in objectives]
        requested = {o.type: o.weight for o in objectives}
        vectors = [requested]
        signatures = {tuple(round(requested[k], 9) for k in kinds)}
        for point in simplex_lattice(len(kinds), self.settings.pareto_divisions):
            if len(vectors) >= self.settings.pareto_max_runs:
                break
            signature = tuple(round(w, 9) for w in point)
            if signature in signatures:
                continue
            signatures.add(signature)
            vectors.append(dict(zip(kinds, point)))
        return vectors

    def explore(
        self,
        objectives: Sequence[WeightedObjective],
        solve: SolveFn,
        seed: int,
        refine: Optional[RefineFn] = None,
    ) -> Tuple[List[FrontMember], int]:
        """
        Args:
            objectives: Objetivos ativos, em ordem de prioridade
            solve: Executa uma busca com (pesos, semente)
            seed: Semente base; a execução r usa seed + r
            refine: Busca ponderada a partir do plano da execução 0, usada
                nas demais execuções; sem ela todas usam ``solve``

        Returns:
            (membros da fronteira em ordem de execução, índice do joelho)
        """
        kinds = [o.type for o in objectives]
        vectors = self.weight_vectors(objectives)
        logger.info("Modo avançado: %d execuções", len(vectors))

        outcomes: List[Optional[Solution]] = []
        base: Optional[Solution] = None
        if refine is not None:
            base = self._attempt(0, lambda: solve(vectors[0], seed))
            outcomes.append(base)

        with ThreadPoolExecutor(max_workers=max(1, self.settings.max_workers)) as executor:
            futures = []
            for run in range(len(outcomes), len(vectors)):
                if refine is not None and base is not None:
                    futures.append(executor.submit(refine, vectors[run], seed + run, base))
                else:
                    futures.append(executor.submit(solve, vectors[run], seed + run))
            for future in futures:
                outcomes.append(self._attempt(len(outcomes), future.result))

        candidates: List[FrontMember] = []
        seen = set()
        for run, (weights, solution) in enumerate(zip(vectors, outcomes)):
            if solution is None:
                continue
            vector = np.array([objective_value(k, solution.metrics) for k in kinds], dtype=float)
            signature = tuple(np.round(vector, 9))
            if signature in seen:
                continue
            seen.add(signature)
            candidates.append(FrontMember(run, weights, solution, vector))

        if not candidates:
            raise InfeasibleRequest("Nenhuma execução produziu um plano que atenda às restrições rígidas")

        matrix = np.vstack([c.vector for c in candidates])
        front = [candidates[i] for i in non_dominated(matrix)]
        knee = knee_index(np.vstack([m.vector for m in front]))
        logger.info("Fronteira de Pareto com %d soluções; joelho na execução %d", len(front), front[knee].run)
        return front, knee

    @staticmethod
    def _attempt(run: int, call: Callable[[], Solution]) -> Optional[Solution]:
        """Executa uma rodada; planos que violam restrições rígidas são descartados"""
        try:
            return call()
        except InfeasibleRequest as exc:
            logger.debug("Execução %d descartada: %s", run, exc.message)
            return None


def to_points(front: Sequence[FrontMember], knee: int) -> List[ParetoPoint]:
    """Converte os membros da fronteira para o modelo de resposta"""
    points = []
    for position, member in enumerate(front):
        metrics = member.solution.metrics
        points.append(ParetoPoint(
            run=member.run,
            weights={k.value: w for k, w in member.weights.items()},
            # Objetivos de maximização voltam ao sinal natural
            objectives={
                k.value: -v if k in MAXIMIZED else v
                for k, v in zip(member.weights, member.vector.tolist())
            },
            efficiency=metrics.efficiency,
            waste_percentage=metrics.waste_percentage,
            total_cost=metrics.total_cost,
            quality_score=metrics.quality_score,
            stock_count=metrics.stock_count,
            is_knee=position == knee,
        ))
    return points
