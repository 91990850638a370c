"""
Núcleo do sistema ProfileCut: orquestra normalização, estratégias por pool,
pontuação e montagem do resultado
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from .assembler import ResultAssembler
from .config import EngineSettings, budget_seconds
from .evaluators import FitnessEvaluator, FitnessProblem, create_fitness_evaluator
from .exceptions import ErrorCode, InfeasibleRequest, OptimizationError
from .genetic import GeneticOptimizer
from .models import (
    AlgorithmMode, AlgorithmType, ObjectiveType, OptimizationRequest, OptimizationResult,
)
from .normalizer import NormalizedRequest, RequestNormalizer
from .packing import Layout, best_fit_decreasing, first_fit_decreasing
from .pareto import ParetoFrontManager, to_points
from .pattern_search import PatternSearch
from .pooling import ProfilePool, aggregate_pools, cover_with_patterns
from .scoring import ConstraintValidator, ObjectiveScorer, Solution, measure_layout

logger = logging.getLogger(__name__)

COMPLEXITY = {
    AlgorithmType.FFD: "O(n²)",
    AlgorithmType.BFD: "O(n²)",
    AlgorithmType.POOLING: "O(k·P)",
    AlgorithmType.PATTERN_EXACT: "exponencial (CP-SAT sobre padrões)",
}


@dataclass
class SearchContext:
    """Parâmetros de uma execução de busca"""
    normalized: NormalizedRequest
    scorer: ObjectiveScorer
    validator: ConstraintValidator
    seed: int
    deadline: Optional[float]
    weights: Dict[ObjectiveType, float]
    base: Optional[Solution] = None


Strategy = Callable[[ProfilePool, SearchContext], Tuple[Layout, Dict[str, Any]]]


class ProfileCutOptimizer:
    """
    Sistema principal de otimização de cortes de perfis
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        evaluator: Optional[FitnessEvaluator] = None,
    ):
        """
        Inicializa o otimizador

        Args:
            settings: Parâmetros do motor (padrão: EngineSettings())
            evaluator: Avaliador de fitness; se omitido, vem de settings.evaluator
        """
        self.settings = settings or EngineSettings()
        self.evaluator = evaluator or create_fitness_evaluator(self.settings)
        self.normalizer = RequestNormalizer()
        self.pattern_search = PatternSearch(self.settings)
        self.genetic = GeneticOptimizer(self.evaluator)
        self.pareto = ParetoFrontManager(self.settings)
        self.assembler = ResultAssembler(self.settings)
        self.algorithms: Dict[AlgorithmType, Strategy] = {
            AlgorithmType.FFD: self._first_fit,
            AlgorithmType.BFD: self._best_fit,
            AlgorithmType.GENETIC: self._genetic,
            AlgorithmType.POOLING: self._pooling,
            AlgorithmType.PATTERN_EXACT: self._pattern_exact,
        }

    def optimize(self, request: OptimizationRequest) -> OptimizationResult:
        """
        Otimiza o plano de corte

        Args:
            request: Requisição de otimização

        Returns:
            Resultado da otimização; falhas viram success=False com errorCode
        """
        start_time = time.time()

        try:
            normalized = self.normalizer.normalize(request)
            budget = budget_seconds(
                normalized.constraints.max_processing_time, normalized.performance.timeout
            )
            deadline = time.monotonic() + budget if budget is not None else None
            seed = normalized.performance.deterministic_seed

            pareto_front = None
            if request.algorithm_mode == AlgorithmMode.ADVANCED:
                refine = None
                if request.algorithm != AlgorithmType.GENETIC:
                    # Heurísticas determinísticas ignoram os pesos; as demais
                    # execuções partem do plano base e seguem o vetor de pesos
                    def refine(weights, run_seed, base):
                        return self.solve(normalized, request.algorithm, weights, run_seed, deadline, base=base)

                front, knee = self.pareto.explore(
                    normalized.objectives,
                    lambda weights, run_seed: self.solve(normalized, request.algorithm, weights, run_seed, deadline),
                    seed,
                    refine=refine,
                )
                solution = front[knee].solution
                pareto_front = to_points(front, knee)
            else:
                solution = self.solve(normalized, request.algorithm, normalized.weights, seed, deadline)

            processing_time = (time.time() - start_time) * 1000
            solution.metadata["elapsed_ms"] = processing_time
            result = self.assembler.assemble(
                normalized, solution, request.algorithm, request.algorithm_mode,
                processing_time, pareto_front,
            )
            logger.info(
                "Otimização %s/%s: %d barras, eficiência %.2f%% em %.1f ms",
                request.algorithm.value, request.algorithm_mode.value,
                result.stock_count, result.efficiency, processing_time,
            )
            return result

        except OptimizationError as e:
            logger.warning("Otimização rejeitada [%s]: %s", e.code, e.message)
            return self._failure(request, e.code, e.message, start_time, getattr(e, "piece", None))

        except Exception as e:
            logger.exception("Erro inesperado na otimização")
            return self._failure(request, ErrorCode.OPTIMIZATION_ERROR, str(e), start_time)

    def solve(
        self,
        normalized: NormalizedRequest,
        algorithm: AlgorithmType,
        weights: Dict[ObjectiveType, float],
        seed: int,
        deadline: Optional[float] = None,
        base: Optional[Solution] = None,
    ) -> Solution:
        """
        Executa a estratégia em cada pool e valida o plano completo

        Args:
            base: Plano de referência; quando presente, cada pool é refeito
                pela busca ponderada em vez da estratégia do algoritmo

        Raises:
            InfeasibleRequest: estoque insuficiente ou restrições rígidas violadas
        """
        context = SearchContext(
            normalized=normalized,
            scorer=ObjectiveScorer(weights),
            validator=ConstraintValidator(normalized.constraints),
            seed=seed,
            deadline=deadline,
            weights=dict(weights),
            base=base,
        )
        strategy = self._weighted if base is not None else self.algorithms[algorithm]

        bins: Layout = []
        per_pool: List[Dict[str, Any]] = []
        for pool in aggregate_pools(normalized):
            layout, meta = strategy(pool, context)
            bins.extend(layout)
            per_pool.append(meta)

        metrics = measure_layout(bins, normalized.constraints, normalized.cost_model)
        violations = context.validator.violations(metrics)
        if violations:
            raise InfeasibleRequest("Nenhum plano atende às restrições rígidas: " + "; ".join(violations))

        metadata = self._merge_metadata(algorithm, per_pool)
        if algorithm == AlgorithmType.GENETIC:
            metadata["best_fitness"] = context.scorer.score(metrics) - context.validator.penalty(metrics)
        return Solution(bins=bins, metrics=metrics, metadata=metadata, weights=dict(weights))

    # ------------------------------------------------------------------
    # Estratégias por pool
    # ------------------------------------------------------------------

    def _first_fit(self, pool: ProfilePool, context: SearchContext) -> Tuple[Layout, Dict[str, Any]]:
        """Algoritmo First Fit Decreasing"""
        layout = first_fit_decreasing(pool.pieces, pool.stocks, context.normalized.constraints)
        return layout, {"pool": pool.summary()}

    def _best_fit(self, pool: ProfilePool, context: SearchContext) -> Tuple[Layout, Dict[str, Any]]:
        """Algoritmo Best Fit Decreasing"""
        layout = best_fit_decreasing(pool.pieces, pool.stocks, context.normalized.constraints)
        return layout, {"pool": pool.summary()}

    def _pooling(self, pool: ProfilePool, context: SearchContext) -> Tuple[Layout, Dict[str, Any]]:
        """Cobertura por padrões com peças de várias ordens"""
        layout, extra = cover_with_patterns(
            pool, context.normalized.constraints, self.settings.pattern_limit
        )
        return layout, {"pool": {**pool.summary(), **extra}}

    def _pattern_exact(self, pool: ProfilePool, context: SearchContext) -> Tuple[Layout, Dict[str, Any]]:
        """Busca por padrões (CP-SAT)"""
        layout, meta = self.pattern_search.solve(
            pool.pieces, pool.stocks, context.normalized.constraints, context.deadline
        )
        return layout, {**meta, "pool": self._search_summary(pool, meta)}

    def _genetic(self, pool: ProfilePool, context: SearchContext) -> Tuple[Layout, Dict[str, Any]]:
        """Algoritmo Genético"""
        normalized = context.normalized
        problem = FitnessProblem(
            pieces=pool.pieces,
            stocks=pool.stocks,
            constraints=normalized.constraints,
            cost_model=normalized.cost_model,
            scorer=context.scorer,
            # Desperdício e qualidade são conferidos no plano completo
            validator=ConstraintValidator(normalized.constraints, plan_limits=False),
            rule=normalized.performance.decode_rule,
        )
        layout, meta = self.genetic.run(
            problem, normalized.performance, context.seed, context.deadline,
            seed_orders=self._base_orders(pool, context.base),
        )
        summary = pool.summary()
        summary["generations"] = meta["generations"]
        return layout, {**meta, "pool": summary}

    def _weighted(self, pool: ProfilePool, context: SearchContext) -> Tuple[Layout, Dict[str, Any]]:
        """
        Busca guiada pelo vetor de pesos (modo avançado)

        Pools pequenos usam a seleção de padrões com objetivo ponderado; os
        demais usam o algoritmo genético semeado com a ordem do plano base.
        """
        normalized = context.normalized
        if not self.pattern_search.applies(pool.pieces):
            return self._genetic(pool, context)
        layout, meta = self.pattern_search.solve(
            pool.pieces, pool.stocks, normalized.constraints, context.deadline,
            weights=context.weights, cost_model=normalized.cost_model,
        )
        return layout, {**meta, "pool": self._search_summary(pool, meta)}

    @staticmethod
    def _search_summary(pool: ProfilePool, meta: Dict[str, Any]) -> Dict[str, Any]:
        summary = pool.summary()
        if "nodes" in meta:
            summary["nodes"] = meta["nodes"]
        if meta.get("solver_status"):
            summary["solverStatus"] = meta["solver_status"]
        return summary

    @staticmethod
    def _base_orders(pool: ProfilePool, base: Optional[Solution]) -> Optional[List[np.ndarray]]:
        """Ordem das peças do pool no plano base, em posições locais do pool"""
        if base is None:
            return None
        position = {piece.index: i for i, piece in enumerate(pool.pieces)}
        order = [
            position[piece.index]
            for b in base.bins if b.stock.profile_type == pool.profile_type
            for piece in b.pieces if piece.index in position
        ]
        if len(order) != len(pool.pieces):
            return None
        return [np.array(order, dtype=np.int64)]

    # ------------------------------------------------------------------

    @staticmethod
    def _merge_metadata(algorithm: AlgorithmType, per_pool: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Combina os metadados de cada pool em um único registro"""
        merged: Dict[str, Any] = {
            "complexity": COMPLEXITY.get(algorithm, ""),
            "pools": [meta["pool"] for meta in per_pool],
            "time_bounded": any(meta.get("time_bounded") for meta in per_pool),
        }

        # No modo avançado um mesmo plano mistura pools de padrões e do GA
        searched = [meta for meta in per_pool if "exact" in meta]
        if searched:
            merged["nodes"] = sum(meta.get("nodes", 0) for meta in searched)
            statuses = [meta["solver_status"] for meta in searched if meta.get("solver_status")]
            if statuses:
                merged["solver_status"] = next((s for s in statuses if s != "OPTIMAL"), "OPTIMAL")

        if algorithm == AlgorithmType.PATTERN_EXACT:
            merged["exact"] = all(meta.get("exact") for meta in per_pool)
            fallbacks = [meta["fallback"] for meta in per_pool if meta.get("fallback")]
            merged["fallback"] = fallbacks[0] if fallbacks else None

        evolved = [meta for meta in per_pool if "convergence_reason" in meta]
        if evolved:
            first = evolved[0]
            reasons = [meta["convergence_reason"] for meta in evolved]
            if "time_budget" in reasons:
                reason = "time_budget"
            elif all(r == "converged" for r in reasons):
                reason = "converged"
            else:
                reason = "max_generations"
            merged.update(
                generations=max(meta["generations"] for meta in evolved),
                convergence_reason=reason,
                seed=first["seed"],
                population_size=first["population_size"],
                evaluator=first["evaluator"],
                decode_rule=first["decode_rule"],
            )
            if algorithm == AlgorithmType.GENETIC:
                merged["complexity"] = first["complexity"]
        return merged

    @staticmethod
    def _failure(
        request: OptimizationRequest,
        code: str,
        message: str,
        start_time: float,
        piece: Optional[dict] = None,
    ) -> OptimizationResult:
        return OptimizationResult(
            success=False,
            algorithm=request.algorithm,
            algorithm_mode=request.algorithm_mode,
            execution_time=(time.time() - start_time) * 1000,
            error_code=code,
            error_message=message,
            infeasible_piece=piece,
        )

    def get_algorithm_info(self) -> Dict[str, Dict[str, Any]]:
        """Descrição das estratégias disponíveis (usada pela API)"""
        return {
            AlgorithmType.FFD.value: {
                "name": "First Fit Decreasing",
                "description": "Cada peça, da maior para a menor, vai para a primeira barra aberta onde cabe",
                "complexity": COMPLEXITY[AlgorithmType.FFD],
                "deterministic": True,
            },
            AlgorithmType.BFD.value: {
                "name": "Best Fit Decreasing",
                "description": "Cada peça vai para a barra que fica com a menor sobra",
                "complexity": COMPLEXITY[AlgorithmType.BFD],
                "deterministic": True,
            },
            AlgorithmType.GENETIC.value: {
                "name": "Algoritmo Genético",
                "description": "Busca sobre a ordem das peças com semente determinística",
                "complexity": "O(g·p·n²)",
                "deterministic": True,
                "evaluator": self.evaluator.name,
            },
            AlgorithmType.POOLING.value: {
                "name": "Pooling de perfis",
                "description": "Agrupa peças do mesmo perfil entre ordens e cobre a demanda com padrões",
                "complexity": COMPLEXITY[AlgorithmType.POOLING],
                "deterministic": True,
            },
            AlgorithmType.PATTERN_EXACT.value: {
                "name": "Busca exata por padrões",
                "description": (
                    f"Seleção de padrões com CP-SAT até {self.settings.pattern_max_pieces} peças e "
                    f"{self.settings.pattern_max_lengths} comprimentos por perfil; acima disso usa BFD"
                ),
                "complexity": COMPLEXITY[AlgorithmType.PATTERN_EXACT],
                "deterministic": True,
            },
        }
