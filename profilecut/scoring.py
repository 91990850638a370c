"""
Métricas, pontuação de objetivos e validação de restrições
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .config import (
    COST_BASELINE, CUT_MINUTES_PER_SEGMENT, CUT_TOLERANCE_MM, QUALITY_WEIGHTS,
    SETUP_MINUTES_PER_STOCK, TIME_BASELINE_MINUTES,
)
from .models import Constraints, CostBreakdown, CostModel, ObjectiveType
from .packing import Layout

logger = logging.getLogger(__name__)

# Colunas da matriz de métricas usada na avaliação vetorizada
METRIC_COLUMNS = (
    "efficiency",
    "waste_percentage",
    "total_cost",
    "total_time",
    "quality_score",
    "max_segments",
)
COLUMN = {name: i for i, name in enumerate(METRIC_COLUMNS)}


@dataclass(frozen=True)
class LayoutMetrics:
    """Métricas derivadas de um plano de corte"""
    stock_count: int
    segment_count: int
    total_stock_length: float
    used_length: float
    piece_length: float
    total_waste: float
    kerf_loss: float
    safety_reserve: float
    efficiency: float
    waste_percentage: float
    stock_utilization: float
    cutting_accuracy: float
    quality_score: float
    total_time: float
    max_segments: int
    cost: CostBreakdown

    @property
    def total_cost(self) -> float:
        return self.cost.total_cost

    def as_row(self) -> List[float]:
        return [float(getattr(self, name)) for name in METRIC_COLUMNS]


def cut_is_accurate(load: float, stock_length: float, segments: int, constraints: Constraints) -> bool:
    """Barra dentro da tolerância: capacidade respeitada e peças dentro do limite"""
    consumed = load + constraints.start_safety + constraints.end_safety
    return consumed <= stock_length + CUT_TOLERANCE_MM and segments <= constraints.max_cuts_per_stock


def measure_layout(bins: Layout, constraints: Constraints, cost_model: CostModel) -> LayoutMetrics:
    """Calcula as métricas de um plano"""
    kerf = constraints.kerf_width
    margins = constraints.start_safety + constraints.end_safety

    total_stock = 0.0
    used = 0.0
    pieces_total = 0.0
    kerf_loss = 0.0
    segments = 0
    accurate = 0
    max_segments = 0
    stock_cost = 0.0

    for b in bins:
        count = len(b.pieces)
        load = b.load(kerf)
        total_stock += b.stock.length
        used += load + margins
        pieces_total += sum(p.length for p in b.pieces)
        kerf_loss += kerf * max(count - 1, 0)
        segments += count
        max_segments = max(max_segments, count)
        stock_cost += b.stock.cost_per_stock + b.stock.cost_per_mm * b.stock.length
        if cut_is_accurate(load, b.stock.length, count, constraints):
            accurate += 1

    stock_count = len(bins)
    waste = max(total_stock - used, 0.0)
    if total_stock > 0:
        efficiency = used / total_stock * 100
        waste_percentage = min(max(waste / total_stock * 100, 0.0), 100.0)
        utilization = pieces_total / total_stock * 100
    else:
        efficiency = waste_percentage = utilization = 0.0
    accuracy = accurate / stock_count * 100 if stock_count else 0.0

    quality = 100 * (
        QUALITY_WEIGHTS["efficiency"] * efficiency / 100
        + QUALITY_WEIGHTS["accuracy"] * accuracy / 100
        + QUALITY_WEIGHTS["utilization"] * utilization / 100
    )
    quality = min(max(quality, 0.0), 100.0)

    total_time = stock_count * SETUP_MINUTES_PER_STOCK + segments * CUT_MINUTES_PER_SEGMENT
    cost = calculate_cost(stock_cost, total_stock, waste, total_time, stock_count, cost_model)

    return LayoutMetrics(
        stock_count=stock_count,
        segment_count=segments,
        total_stock_length=total_stock,
        used_length=used,
        piece_length=pieces_total,
        total_waste=waste,
        kerf_loss=kerf_loss,
        safety_reserve=margins * stock_count,
        efficiency=efficiency,
        waste_percentage=waste_percentage,
        stock_utilization=utilization,
        cutting_accuracy=accuracy,
        quality_score=quality,
        total_time=total_time,
        max_segments=max_segments,
        cost=cost,
    )


def calculate_cost(
    stock_cost: float,
    total_stock: float,
    total_waste: float,
    total_minutes: float,
    stock_count: int,
    cost_model: CostModel,
) -> CostBreakdown:
    """Composição de custos: barras, material, mão de obra, desperdício, preparação, transporte e indiretos"""
    material = cost_model.material_cost * total_stock / 1000
    labor = cost_model.labor_cost * total_minutes / 60
    waste = cost_model.waste_cost * total_waste / 1000
    setup = cost_model.setup_cost * stock_count
    transport = cost_model.transport_cost * stock_count
    subtotal = stock_cost + material + labor + waste + setup + transport
    overhead = subtotal * cost_model.overhead_cost / 100
    return CostBreakdown(
        stock_cost=stock_cost,
        material_cost=material,
        labor_cost=labor,
        waste_cost=waste,
        setup_cost=setup,
        transport_cost=transport,
        overhead_cost=overhead,
        total_cost=subtotal + overhead,
    )


def metrics_matrix(metrics: Sequence[LayoutMetrics]) -> np.ndarray:
    return np.array([m.as_row() for m in metrics], dtype=float).reshape(len(metrics), len(METRIC_COLUMNS))


class ObjectiveScorer:
    """Converte métricas em pontuações normalizadas [0, 1] e soma ponderada"""

    def __init__(self, weights: Dict[ObjectiveType, float]):
        self.weights = dict(weights)

    @staticmethod
    def objective_scores(metrics: LayoutMetrics) -> Dict[ObjectiveType, float]:
        cost = metrics.total_cost
        time = metrics.total_time
        return {
            ObjectiveType.MAXIMIZE_EFFICIENCY: metrics.efficiency / 100,
            ObjectiveType.MINIMIZE_WASTE: 1 - metrics.waste_percentage / 100,
            ObjectiveType.MINIMIZE_COST: 1 - cost / (cost + COST_BASELINE),
            ObjectiveType.MINIMIZE_TIME: 1 - time / (time + TIME_BASELINE_MINUTES),
            ObjectiveType.MAXIMIZE_QUALITY: metrics.quality_score / 100,
        }

    def score(self, metrics: LayoutMetrics) -> float:
        scores = self.objective_scores(metrics)
        return float(sum(weight * scores[kind] for kind, weight in self.weights.items()))

    def score_batch(self, matrix: np.ndarray) -> np.ndarray:
        """Mesma soma ponderada, avaliada para toda a população de uma vez"""
        cost = matrix[:, COLUMN["total_cost"]]
        time = matrix[:, COLUMN["total_time"]]
        columns = {
            ObjectiveType.MAXIMIZE_EFFICIENCY: matrix[:, COLUMN["efficiency"]] / 100,
            ObjectiveType.MINIMIZE_WASTE: 1 - matrix[:, COLUMN["waste_percentage"]] / 100,
            ObjectiveType.MINIMIZE_COST: 1 - cost / (cost + COST_BASELINE),
            ObjectiveType.MINIMIZE_TIME: 1 - time / (time + TIME_BASELINE_MINUTES),
            ObjectiveType.MAXIMIZE_QUALITY: matrix[:, COLUMN["quality_score"]] / 100,
        }
        total = np.zeros(matrix.shape[0], dtype=float)
        for kind, weight in self.weights.items():
            total = total + weight * columns[kind]
        return total


class ConstraintValidator:
    """
    Restrições rígidas (rejeição/penalidade) e flexíveis (reclassificação)

    Com ``plan_limits=False`` só o limite de peças por barra é avaliado:
    desperdício e qualidade máximos valem para o plano completo, e um pool
    isolado não os representa.
    """

    def __init__(self, constraints: Constraints, plan_limits: bool = True):
        self.constraints = constraints
        self.plan_limits = plan_limits

    def violations(self, metrics: LayoutMetrics) -> List[str]:
        c = self.constraints
        found = []
        if self.plan_limits and metrics.waste_percentage > c.max_waste_percentage + 1e-9:
            found.append(
                f"maxWastePercentage: desperdício de {metrics.waste_percentage:.2f}% "
                f"acima do limite de {c.max_waste_percentage:g}%"
            )
        if metrics.max_segments > c.max_cuts_per_stock:
            found.append(
                f"maxCutsPerStock: barra com {metrics.max_segments} peças "
                f"acima do limite de {c.max_cuts_per_stock}"
            )
        if self.plan_limits and c.min_quality_score is not None and metrics.quality_score < c.min_quality_score - 1e-9:
            found.append(
                f"minQualityScore: índice de qualidade {metrics.quality_score:.2f} "
                f"abaixo do mínimo de {c.min_quality_score:g}"
            )
        return found

    def is_feasible(self, metrics: LayoutMetrics) -> bool:
        return not self.violations(metrics)

    def penalty(self, metrics: LayoutMetrics) -> float:
        return float(self.penalty_batch(metrics_matrix([metrics]))[0])

    def penalty_batch(self, matrix: np.ndarray) -> np.ndarray:
        """Zero quando viável; 1 + excesso normalizado caso contrário"""
        c = self.constraints
        waste_excess = np.maximum(matrix[:, COLUMN["waste_percentage"]] - c.max_waste_percentage, 0.0) / 100
        if not self.plan_limits:
            waste_excess = np.zeros_like(waste_excess)
        cuts_excess = np.maximum(matrix[:, COLUMN["max_segments"]] - c.max_cuts_per_stock, 0.0) / c.max_cuts_per_stock
        excess = waste_excess + cuts_excess
        violated = (waste_excess > 1e-11) | (cuts_excess > 0)
        if self.plan_limits and c.min_quality_score is not None:
            quality_gap = np.maximum(c.min_quality_score - matrix[:, COLUMN["quality_score"]], 0.0) / 100
            excess = excess + quality_gap
            violated = violated | (quality_gap > 1e-11)
        return np.where(violated, 1.0 + excess, 0.0)


def fitness(scorer: ObjectiveScorer, validator: ConstraintValidator, metrics: LayoutMetrics) -> float:
    return scorer.score(metrics) - validator.penalty(metrics)


@dataclass
class Solution:
    """Plano candidato com métricas e metadados do algoritmo"""
    bins: Layout
    metrics: LayoutMetrics
    metadata: Dict[str, Any] = field(default_factory=dict)
    weights: Optional[Dict[ObjectiveType, float]] = None
