"""
Montagem do resultado: cortes com posições, resumos e recomendações
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Tuple

from .config import EngineSettings, HIGH_WASTE_STOCK_PERCENT, LOW_EFFICIENCY_PERCENT
from .exceptions import OptimizationFailure
from .models import (
    AlgorithmMetadata, AlgorithmMode, AlgorithmType, Cut, OptimizationResult, ParetoPoint,
    Priority, Recommendation, Segment, StockSummary, WasteCategory, WasteDistribution,
    WorkOrderShare, WorkOrderSummary,
)
from .normalizer import NormalizedRequest
from .packing import Bin
from .scoring import Solution

logger = logging.getLogger(__name__)

HEURISTICS = (AlgorithmType.FFD, AlgorithmType.BFD, AlgorithmType.POOLING)


def efficiency_category(efficiency: float) -> str:
    if efficiency >= 95:
        return "excellent"
    if efficiency >= 85:
        return "good"
    if efficiency >= 70:
        return "average"
    return "poor"


class ResultAssembler:
    """Transforma uma solução interna no ``OptimizationResult``"""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    def waste_category(self, remaining: float) -> WasteCategory:
        thresholds = self.settings.waste_thresholds
        if remaining < thresholds["minimal"]:
            return WasteCategory.MINIMAL
        if remaining < thresholds["small"]:
            return WasteCategory.SMALL
        if remaining < thresholds["medium"]:
            return WasteCategory.MEDIUM
        if remaining < thresholds["large"]:
            return WasteCategory.LARGE
        return WasteCategory.EXCESSIVE

    def assemble(
        self,
        normalized: NormalizedRequest,
        solution: Solution,
        algorithm: AlgorithmType,
        mode: AlgorithmMode,
        execution_time: float,
        pareto_front: Optional[List[ParetoPoint]] = None,
    ) -> OptimizationResult:
        """
        Args:
            normalized: Requisição normalizada
            solution: Plano escolhido
            algorithm: Algoritmo executado
            mode: Modo de execução
            execution_time: Tempo total (ms)
            pareto_front: Fronteira (apenas no modo avançado)

        Raises:
            OptimizationFailure: se o plano não preserva as quantidades pedidas
        """
        cuts = [self.build_cut(index, b, normalized) for index, b in enumerate(solution.bins)]
        self.check_conservation(cuts, normalized)

        metrics = solution.metrics
        metadata = AlgorithmMetadata(algorithm=algorithm, **solution.metadata)
        distribution = self.waste_distribution(cuts)
        summary = self.stock_summary(cuts)

        result = OptimizationResult(
            success=True,
            algorithm=algorithm,
            algorithm_mode=mode,
            cuts=cuts,
            efficiency=metrics.efficiency,
            waste_percentage=metrics.waste_percentage,
            total_cost=metrics.total_cost,
            total_waste=metrics.total_waste,
            execution_time=execution_time,
            quality_score=metrics.quality_score,
            stock_utilization=metrics.stock_utilization,
            cutting_accuracy=metrics.cutting_accuracy,
            stock_count=metrics.stock_count,
            total_segments=metrics.segment_count,
            total_kerf_loss=metrics.kerf_loss,
            total_safety_reserve=metrics.safety_reserve,
            efficiency_category=efficiency_category(metrics.efficiency),
            algorithm_metadata=metadata,
            recommendations=self.recommendations(normalized, algorithm, metrics.efficiency, metadata, summary, distribution),
            waste_distribution=distribution,
            cost_breakdown=metrics.cost,
            stock_summary=summary,
            work_orders=self.work_order_summary(cuts),
        )
        if pareto_front is not None:
            result.pareto_front = pareto_front
            result.front_size = len(pareto_front)
            result.recommended_solution = next((p for p in pareto_front if p.is_knee), None)
        return result

    def build_cut(self, index: int, current: Bin, normalized: NormalizedRequest) -> Cut:
        constraints = normalized.constraints
        kerf = constraints.kerf_width
        margins = constraints.start_safety + constraints.end_safety

        segments = []
        position = constraints.start_safety
        for sequence, piece in enumerate(current.pieces, start=1):
            end = position + piece.length
            segments.append(Segment(
                sequence=sequence,
                position=position,
                end_position=end,
                length=piece.length,
                profile_type=piece.profile_type,
                work_order_id=piece.work_order_id,
                item_index=piece.item_index,
            ))
            position = end + kerf

        count = len(segments)
        used = current.load(kerf) + margins
        remaining = current.stock.length - used
        shares = Counter(p.work_order_id for p in current.pieces)
        # Counter preserva a ordem de primeira aparição
        breakdown = [WorkOrderShare(work_order_id=wo, count=n) for wo, n in shares.items()]

        return Cut(
            index=index,
            profile_type=current.stock.profile_type,
            stock_length=current.stock.length,
            material_grade=current.stock.material_grade,
            segments=segments,
            segment_count=count,
            used_length=used,
            remaining_length=remaining,
            kerf_loss=kerf * max(count - 1, 0),
            safety_reserve=margins,
            waste_category=self.waste_category(remaining),
            is_reclaimable=remaining >= constraints.min_scrap_length,
            work_order_breakdown=breakdown,
            is_mixed=len(breakdown) > 1,
        )

    @staticmethod
    def check_conservation(cuts: List[Cut], normalized: NormalizedRequest) -> None:
        produced = Counter(s.item_index for cut in cuts for s in cut.segments)
        for item_index, quantity in normalized.quantities.items():
            if produced.get(item_index, 0) != quantity:
                raise OptimizationFailure(
                    f"Plano inconsistente: item {item_index} pedido {quantity}x, "
                    f"produzido {produced.get(item_index, 0)}x"
                )
        extra = set(produced) - set(normalized.quantities)
        if extra:
            raise OptimizationFailure(f"Plano inconsistente: itens desconhecidos {sorted(extra)}")

    @staticmethod
    def waste_distribution(cuts: List[Cut]) -> WasteDistribution:
        distribution = WasteDistribution(total_pieces=len(cuts))
        for cut in cuts:
            bucket = cut.waste_category.value
            setattr(distribution, bucket, getattr(distribution, bucket) + 1)
            if cut.is_reclaimable:
                distribution.reclaimable += 1
        return distribution

    @staticmethod
    def stock_summary(cuts: List[Cut]) -> List[StockSummary]:
        groups: Dict[Tuple[str, float], List[Cut]] = {}
        for cut in cuts:
            groups.setdefault((cut.profile_type, cut.stock_length), []).append(cut)

        summary = []
        for (profile_type, stock_length), members in groups.items():
            waste = sum(c.remaining_length for c in members)
            used = sum(c.used_length for c in members)
            summary.append(StockSummary(
                profile_type=profile_type,
                stock_length=stock_length,
                cut_count=len(members),
                total_waste=waste,
                average_waste=waste / len(members),
                efficiency=used / (stock_length * len(members)) * 100,
            ))
        return summary

    @staticmethod
    def work_order_summary(cuts: List[Cut]) -> List[WorkOrderSummary]:
        orders: Dict[str, WorkOrderSummary] = {}
        for cut in cuts:
            for segment in cut.segments:
                entry = orders.get(segment.work_order_id)
                if entry is None:
                    entry = WorkOrderSummary(
                        work_order_id=segment.work_order_id, piece_count=0, total_length=0.0, cut_indices=[]
                    )
                    orders[segment.work_order_id] = entry
                entry.piece_count += 1
                entry.total_length += segment.length
                if cut.index not in entry.cut_indices:
                    entry.cut_indices.append(cut.index)
        return list(orders.values())

    def recommendations(
        self,
        normalized: NormalizedRequest,
        algorithm: AlgorithmType,
        efficiency: float,
        metadata: AlgorithmMetadata,
        summary: List[StockSummary],
        distribution: WasteDistribution,
    ) -> List[Recommendation]:
        found: List[Recommendation] = []

        for entry in summary:
            average_percent = entry.average_waste / entry.stock_length * 100
            if average_percent < HIGH_WASTE_STOCK_PERCENT:
                continue
            shorter = [
                s.length for s in normalized.stocks.get(entry.profile_type, [])
                if s.length < entry.stock_length
            ]
            if shorter:
                advice = f"considere barras de {max(shorter):g} mm"
            else:
                advice = "considere cadastrar um comprimento de barra menor"
            found.append(Recommendation(
                priority=Priority.HIGH,
                category="stock-length",
                message=(
                    f"Barras de {entry.stock_length:g} mm do perfil {entry.profile_type} "
                    f"desperdiçam em média {average_percent:.1f}%; {advice}"
                ),
                profile_type=entry.profile_type,
                stock_length=entry.stock_length,
            ))

        if efficiency < LOW_EFFICIENCY_PERCENT and algorithm in HEURISTICS:
            found.append(Recommendation(
                priority=Priority.MEDIUM,
                category="algorithm",
                message=(
                    f"Eficiência de {efficiency:.1f}%; tente os algoritmos "
                    f"'{AlgorithmType.PATTERN_EXACT.value}' ou '{AlgorithmType.GENETIC.value}'"
                ),
            ))

        if distribution.reclaimable:
            found.append(Recommendation(
                priority=Priority.MEDIUM,
                category="offcuts",
                message=(
                    f"{distribution.reclaimable} retalho(s) com pelo menos "
                    f"{normalized.constraints.min_scrap_length:g} mm podem ser estocados para reaproveitamento"
                ),
            ))

        if metadata.time_bounded or metadata.convergence_reason == "time_budget":
            found.append(Recommendation(
                priority=Priority.LOW,
                category="time-budget",
                message="A busca parou pelo limite de tempo; aumente o timeout para resultados melhores",
            ))

        if metadata.fallback:
            found.append(Recommendation(
                priority=Priority.LOW,
                category="fallback",
                message=(
                    f"Instância grande demais para a busca por padrões; "
                    f"resultado obtido com '{metadata.fallback}'"
                ),
            ))

        logger.debug("%d recomendações geradas", len(found))
        return found
