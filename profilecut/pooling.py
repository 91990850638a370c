"""
Agrupamento de peças por perfil entre ordens de serviço e estratégia de
cobertura gulosa por padrões
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import InfeasibleRequest
from .models import Constraints
from .normalizer import NormalizedRequest
from .packing import Layout, StockOption, UnitPiece, piece_reference, sort_decreasing
from .patterns import Pattern, demand_of, enumerate_patterns, realize_patterns

logger = logging.getLogger(__name__)


@dataclass
class ProfilePool:
    """Peças de um mesmo perfil, vindas de todas as ordens de serviço"""
    profile_type: str
    stocks: List[StockOption]
    pieces: List[UnitPiece] = field(default_factory=list)
    work_orders: List[str] = field(default_factory=list)

    def add(self, piece: UnitPiece) -> None:
        self.pieces.append(piece)
        if piece.work_order_id not in self.work_orders:
            self.work_orders.append(piece.work_order_id)

    def summary(self) -> Dict[str, Any]:
        return {
            "profileType": self.profile_type,
            "pieceCount": len(self.pieces),
            "distinctLengths": len({p.length for p in self.pieces}),
            "workOrders": list(self.work_orders),
        }


def aggregate_pools(normalized: NormalizedRequest) -> List[ProfilePool]:
    """Agrupa as peças unitárias por perfil, na ordem de primeira aparição"""
    pools: Dict[str, ProfilePool] = {}
    for piece in normalized.pieces:
        pool = pools.get(piece.profile_type)
        if pool is None:
            pool = ProfilePool(piece.profile_type, normalized.stocks[piece.profile_type])
            pools[piece.profile_type] = pool
        pool.add(piece)

    logger.debug(
        "%d pools: %s", len(pools),
        ", ".join(f"{p.profile_type}={len(p.pieces)}" for p in pools.values()),
    )
    return list(pools.values())


def mixed_ratio(bins: Layout) -> float:
    """Fração das barras com peças de mais de uma ordem de serviço"""
    if not bins:
        return 0.0
    mixed = sum(1 for b in bins if len({p.work_order_id for p in b.pieces}) > 1)
    return mixed / len(bins)


def cover_with_patterns(
    pool: ProfilePool, constraints: Constraints, limit: int = 40
) -> Tuple[Layout, Dict[str, Any]]:
    """
    Cobre a demanda do pool escolhendo repetidamente o padrão de maior
    aproveitamento entre as barras disponíveis

    Returns:
        (barras, metadados do pool)
    """
    demand = demand_of(pool.pieces)
    used: Dict[StockOption, int] = {s: 0 for s in pool.stocks}
    chosen: List[Pattern] = []
    truncated = False

    while any(demand.values()):
        best: Optional[Pattern] = None
        best_key = None
        for stock in pool.stocks:
            if stock.availability is not None and used[stock] >= stock.availability:
                continue
            patterns, clipped = enumerate_patterns(demand, stock, constraints, limit=limit)
            truncated = truncated or clipped
            if not patterns:
                continue
            # Maior aproveitamento; empate => barra mais longa (menos barras)
            key = (-patterns[0].utilization, -stock.length)
            if best_key is None or key < best_key:
                best, best_key = patterns[0], key

        if best is None:
            leftover = [p for p in sort_decreasing(pool.pieces) if demand.get(p.length, 0) > 0]
            piece = leftover[0]
            raise InfeasibleRequest(
                f"Estoque insuficiente para o perfil {pool.profile_type}: "
                f"a peça de {piece.length:g} mm (ordem {piece.work_order_id}) não tem barra disponível",
                piece=piece_reference(piece),
            )

        times = best.repetitions(demand)
        if best.stock.availability is not None:
            times = min(times, best.stock.availability - used[best.stock])
        for length, n in best.counts:
            demand[length] -= n * times
        used[best.stock] += times
        chosen.extend([best] * times)

    bins = realize_patterns(chosen, pool.pieces)
    ratio = mixed_ratio(bins)
    logger.debug(
        "Pool %s: %d padrões aplicados, %.0f%% de barras mistas",
        pool.profile_type, len(chosen), ratio * 100,
    )
    return bins, {
        "mixedRatio": ratio,
        "distinctPatterns": len(set(chosen)),
        "patternTruncated": truncated,
    }
