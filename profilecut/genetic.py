"""
Algoritmo genético sobre a ordem de posicionamento das peças
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import GA_ELITE_RATIO, GA_TOURNAMENT_SIZE
from .evaluators import BatchedFitnessEvaluator, Evaluation, FitnessEvaluator, FitnessProblem
from .exceptions import InfeasibleRequest
from .models import PerformanceSettings
from .packing import Layout

logger = logging.getLogger(__name__)

COMPLEXITY = "O(g·p·n²)"


def tournament(rng: np.random.Generator, fitness: np.ndarray) -> int:
    """Seleção por torneio: vence o de maior fitness entre os sorteados"""
    drawn = rng.integers(0, len(fitness), size=GA_TOURNAMENT_SIZE)
    return int(drawn[np.argmax(fitness[drawn])])


def order_crossover(rng: np.random.Generator, first: np.ndarray, second: np.ndarray) -> np.ndarray:
    """
    Crossover de ordem (OX1)

    Copia um trecho do primeiro pai e completa as posições restantes,
    a partir do fim do trecho, com os genes do segundo pai na ordem em que
    aparecem.
    """
    n = len(first)
    if n < 2:
        return first.copy()
    start, end = sorted(int(x) for x in rng.integers(0, n, size=2))

    child = np.full(n, -1, dtype=first.dtype)
    child[start:end + 1] = first[start:end + 1]
    taken = np.zeros(n, dtype=bool)
    taken[first[start:end + 1]] = True

    donor = np.roll(second, -(end + 1))
    fill = donor[~taken[donor]]
    positions = (np.arange(len(fill)) + end + 1) % n
    child[positions] = fill
    return child


def swap_mutation(rng: np.random.Generator, chromosome: np.ndarray, rate: float) -> np.ndarray:
    """Com probabilidade ``rate``, troca um par de posições distintas"""
    n = len(chromosome)
    if n < 2 or rng.random() >= rate:
        return chromosome
    i, j = (int(x) for x in rng.choice(n, size=2, replace=False))
    chromosome[i], chromosome[j] = chromosome[j], chromosome[i]
    return chromosome


class GeneticOptimizer:
    """
    Algoritmo genético determinístico por semente

    O filho ``i`` da geração ``g`` tira toda a sua aleatoriedade de
    ``default_rng([seed, g, i])``; o resultado não depende da ordem de
    avaliação nem do paralelismo do avaliador.
    """

    def __init__(self, evaluator: Optional[FitnessEvaluator] = None):
        self.evaluator = evaluator or BatchedFitnessEvaluator()

    @staticmethod
    def generation_cap(performance: PerformanceSettings) -> int:
        if performance.generations is not None:
            return performance.generations
        return max(1, performance.max_iterations // performance.population_size)

    @staticmethod
    def initial_population(
        problem: FitnessProblem,
        size: int,
        seed: int,
        seed_orders: Optional[Sequence[np.ndarray]] = None,
    ) -> List[np.ndarray]:
        """
        Indivíduo 0 é a ordem decrescente; em seguida as ordens semeadas
        (por exemplo, a ordem de um plano já conhecido) e o restante aleatório
        """
        n = len(problem.pieces)
        # Empate no comprimento: ordem de inserção
        decreasing = np.array(
            sorted(range(n), key=lambda i: (-problem.pieces[i].length, problem.pieces[i].index)),
            dtype=np.int64,
        )
        population = [decreasing]
        for order in seed_orders or []:
            if len(population) < size:
                population.append(np.asarray(order, dtype=np.int64).copy())
        for i in range(len(population), size):
            rng = np.random.default_rng([seed, 0, i])
            population.append(rng.permutation(n).astype(np.int64))
        return population

    def run(
        self,
        problem: FitnessProblem,
        performance: PerformanceSettings,
        seed: int,
        deadline: Optional[float] = None,
        seed_orders: Optional[Sequence[np.ndarray]] = None,
    ) -> Tuple[Layout, Dict[str, Any]]:
        """
        Executa a busca para um pool

        Returns:
            (melhor plano, metadados da execução)

        Raises:
            InfeasibleRequest: se toda a população final viola restrições rígidas
        """
        started = time.time()
        size = performance.population_size
        elite = max(1, int(round(GA_ELITE_RATIO * size)))
        cap = self.generation_cap(performance)

        population = self.initial_population(problem, size, seed, seed_orders)
        evaluation = self.evaluator.evaluate(population, problem)
        history = [float(np.max(evaluation.fitness))]

        reason = "max_generations"
        generations = 0
        for generation in range(1, cap + 1):
            if deadline is not None and time.monotonic() >= deadline:
                reason = "time_budget"
                break

            population, evaluation = self._next_generation(
                problem, performance, seed, generation, population, evaluation, elite
            )
            generations = generation
            history.append(float(np.max(evaluation.fitness)))

            window = performance.convergence_window
            if len(history) > window and np.isfinite(history[-1 - window]):
                if history[-1] - history[-1 - window] < performance.convergence_epsilon:
                    reason = "converged"
                    break

        if not evaluation.feasible.any():
            raise InfeasibleRequest(
                "Nenhum indivíduo da população final atende às restrições rígidas"
            )

        best = int(np.argmax(np.where(evaluation.feasible, evaluation.fitness, -np.inf)))
        logger.debug(
            "GA: %d gerações (%s), melhor fitness %.6f", generations, reason, evaluation.fitness[best]
        )
        return evaluation.layouts[best], {
            "complexity": COMPLEXITY,
            "generations": generations,
            "convergence_reason": reason,
            "best_fitness": float(evaluation.fitness[best]),
            "seed": seed,
            "population_size": size,
            "evaluator": self.evaluator.name,
            "decode_rule": problem.rule,
            "elapsed_ms": (time.time() - started) * 1000,
        }

    def _next_generation(
        self,
        problem: FitnessProblem,
        performance: PerformanceSettings,
        seed: int,
        generation: int,
        population: List[np.ndarray],
        evaluation: Evaluation,
        elite: int,
    ) -> Tuple[List[np.ndarray], Evaluation]:
        size = len(population)
        ranking = np.argsort(-evaluation.fitness, kind="stable")
        survivors = [int(i) for i in ranking[:elite]]

        children = []
        for i in range(elite, size):
            rng = np.random.default_rng([seed, generation, i])
            first = population[tournament(rng, evaluation.fitness)]
            second = population[tournament(rng, evaluation.fitness)]
            if rng.random() < performance.crossover_rate:
                child = order_crossover(rng, first, second)
            else:
                child = first.copy()
            children.append(swap_mutation(rng, child, performance.mutation_rate))

        offspring = self.evaluator.evaluate(children, problem)
        # Elite mantém a avaliação já feita
        merged = Evaluation(
            fitness=np.concatenate([evaluation.fitness[survivors], offspring.fitness]),
            feasible=np.concatenate([evaluation.feasible[survivors], offspring.feasible]),
            layouts=[evaluation.layouts[i] for i in survivors] + offspring.layouts,
            metrics=[evaluation.metrics[i] for i in survivors] + offspring.metrics,
        )
        return [population[i] for i in survivors] + children, merged
