"""
Validação e normalização das requisições de otimização
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

from .config import LENGTH_EPSILON
from .exceptions import ErrorCode, InfeasibleRequest, RequestValidationError
from .models import (
    Constraints, CostModel, MaterialStockLength, Objective, ObjectiveType,
    OptimizationRequest, PerformanceSettings, Priority,
)
from .packing import StockOption, UnitPiece

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


@dataclass(frozen=True)
class WeightedObjective:
    type: ObjectiveType
    weight: float
    priority: Priority


@dataclass
class NormalizedRequest:
    """Requisição validada, com peças expandidas e pesos normalizados"""
    pieces: List[UnitPiece]
    stocks: Dict[str, List[StockOption]]
    objectives: List[WeightedObjective]
    constraints: Constraints
    performance: PerformanceSettings
    cost_model: CostModel
    quantities: Dict[int, int]

    @property
    def weights(self) -> Dict[ObjectiveType, float]:
        return {o.type: o.weight for o in self.objectives}


class RequestNormalizer:
    """Valida a requisição e a converte para a forma interna"""

    def normalize(self, request: OptimizationRequest) -> NormalizedRequest:
        if not request.items:
            raise RequestValidationError("A lista de peças está vazia", code=ErrorCode.NO_ITEMS)
        if not request.objectives:
            raise RequestValidationError("Pelo menos um objetivo é obrigatório", code=ErrorCode.NO_OBJECTIVES)

        constraints = request.constraints
        self._validate_constraints(constraints, request.material_stock_lengths)
        objectives = self.normalize_objectives(request.objectives)
        stocks = self._collect_stocks(request.material_stock_lengths)

        pieces: List[UnitPiece] = []
        quantities: Dict[int, int] = {}
        for item_index, item in enumerate(request.items):
            options = stocks.get(item.profile_type)
            reference = {
                "workOrderId": item.work_order_id,
                "profileType": item.profile_type,
                "length": item.length,
                "itemIndex": item_index,
            }
            if not options:
                raise InfeasibleRequest(
                    f"Nenhuma barra de estoque para o perfil {item.profile_type} "
                    f"(ordem {item.work_order_id}, peça de {item.length:g} mm)",
                    piece=reference,
                )
            largest = max(s.usable_length(constraints) for s in options)
            if item.length > largest + LENGTH_EPSILON:
                raise InfeasibleRequest(
                    f"Peça de {item.length:g} mm (perfil {item.profile_type}, ordem "
                    f"{item.work_order_id}) excede o maior comprimento útil disponível ({largest:g} mm)",
                    piece=reference,
                )
            quantities[item_index] = item.quantity
            for _ in range(item.quantity):
                pieces.append(UnitPiece(
                    index=len(pieces),
                    item_index=item_index,
                    profile_type=item.profile_type,
                    length=round(item.length, 2),
                    work_order_id=item.work_order_id,
                ))

        logger.debug(
            "Requisição normalizada: %d itens, %d peças unitárias, %d perfis",
            len(request.items), len(pieces), len(stocks),
        )
        return NormalizedRequest(
            pieces=pieces,
            stocks=stocks,
            objectives=objectives,
            constraints=constraints,
            performance=request.performance,
            cost_model=request.cost_model,
            quantities=quantities,
        )

    @staticmethod
    def normalize_objectives(objectives: List[Objective]) -> List[WeightedObjective]:
        """Normaliza os pesos para soma 1 e ordena por prioridade"""
        seen = set()
        for objective in objectives:
            if objective.type in seen:
                raise RequestValidationError(f"Objetivo duplicado: {objective.type.value}")
            seen.add(objective.type)

        total = sum(o.weight for o in objectives)
        ordered = sorted(enumerate(objectives), key=lambda pair: (PRIORITY_ORDER[pair[1].priority], pair[0]))
        return [WeightedObjective(o.type, o.weight / total, o.priority) for _, o in ordered]

    @staticmethod
    def _validate_constraints(constraints: Constraints, stock_lengths: List[MaterialStockLength]) -> None:
        margins = constraints.start_safety + constraints.end_safety
        for stock in stock_lengths:
            if margins >= stock.stock_length:
                raise RequestValidationError(
                    f"Margens de segurança ({margins:g} mm) não cabem na barra de "
                    f"{stock.stock_length:g} mm do perfil {stock.profile_type}"
                )
        if constraints.max_processing_time is not None and constraints.max_processing_time <= 0:
            raise RequestValidationError("maxProcessingTime deve ser positivo")

    @staticmethod
    def _collect_stocks(stock_lengths: List[MaterialStockLength]) -> Dict[str, List[StockOption]]:
        """Agrupa as barras por perfil, unindo comprimentos repetidos"""
        merged: Dict[Tuple[str, float], MaterialStockLength] = {}
        availability: Dict[Tuple[str, float], object] = {}
        for stock in stock_lengths:
            key = (stock.profile_type, round(stock.stock_length, 2))
            if key not in merged:
                merged[key] = stock
                availability[key] = stock.availability
            elif availability[key] is None or stock.availability is None:
                availability[key] = None
            else:
                availability[key] += stock.availability

        stocks: Dict[str, List[StockOption]] = {}
        for (profile_type, length), stock in merged.items():
            stocks.setdefault(profile_type, []).append(StockOption(
                profile_type=profile_type,
                length=length,
                availability=availability[(profile_type, length)],
                cost_per_mm=stock.cost_per_mm,
                cost_per_stock=stock.cost_per_stock,
                material_grade=stock.material_grade,
            ))
        for options in stocks.values():
            options.sort(key=lambda s: s.length)
        return stocks
