"""
Primitivas de barras e heurísticas First Fit / Best Fit Decreasing
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .config import LENGTH_EPSILON
from .exceptions import InfeasibleRequest
from .models import Constraints, DecodeRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnitPiece:
    """Peça unitária (quantidade 1) com a origem preservada"""
    index: int
    item_index: int
    profile_type: str
    length: float
    work_order_id: str


@dataclass(frozen=True)
class StockOption:
    """Barra de estoque disponível para um tipo de perfil"""
    profile_type: str
    length: float
    availability: Optional[int] = None
    cost_per_mm: float = 0.0
    cost_per_stock: float = 0.0
    material_grade: str = "standard"

    def usable_length(self, constraints: Constraints) -> float:
        return self.length - constraints.start_safety - constraints.end_safety


@dataclass
class Bin:
    """Uma barra consumida com as peças na ordem de corte"""
    stock: StockOption
    pieces: List[UnitPiece] = field(default_factory=list)

    def load(self, kerf: float) -> float:
        """Comprimento ocupado por peças e kerf (sem margens)"""
        if not self.pieces:
            return 0.0
        return sum(p.length for p in self.pieces) + kerf * (len(self.pieces) - 1)

    def remaining(self, constraints: Constraints) -> float:
        return self.stock.usable_length(constraints) - self.load(constraints.kerf_width)

    def accepts(self, piece: UnitPiece, constraints: Constraints) -> bool:
        if len(self.pieces) >= constraints.max_cuts_per_stock:
            return False
        extra = piece.length + (constraints.kerf_width if self.pieces else 0.0)
        return extra <= self.remaining(constraints) + LENGTH_EPSILON

    def remaining_after(self, piece: UnitPiece, constraints: Constraints) -> float:
        extra = piece.length + (constraints.kerf_width if self.pieces else 0.0)
        return self.remaining(constraints) - extra


Layout = List[Bin]


class StockLedger:
    """Controla o consumo de barras por opção de estoque"""

    def __init__(self, stocks: Sequence[StockOption]):
        # Mais longas primeiro: novas barras abrem na maior opção disponível
        self.stocks = sorted(stocks, key=lambda s: s.length, reverse=True)
        self.used: Dict[StockOption, int] = {s: 0 for s in self.stocks}

    def available(self, stock: StockOption) -> bool:
        return stock.availability is None or self.used[stock] < stock.availability

    def take(self, stock: StockOption) -> None:
        self.used[stock] += 1

    def release(self, stock: StockOption) -> None:
        self.used[stock] -= 1

    def open_for(self, piece: UnitPiece, constraints: Constraints) -> StockOption:
        """Escolhe a barra mais longa disponível que comporta a peça sozinha"""
        for stock in self.stocks:
            if not self.available(stock):
                continue
            if piece.length <= stock.usable_length(constraints) + LENGTH_EPSILON:
                self.take(stock)
                return stock
        raise InfeasibleRequest(
            f"Estoque insuficiente para a peça de {piece.length:g} mm "
            f"(perfil {piece.profile_type}, ordem {piece.work_order_id})",
            piece=piece_reference(piece),
        )


def piece_reference(piece: UnitPiece) -> dict:
    return {
        "workOrderId": piece.work_order_id,
        "profileType": piece.profile_type,
        "length": piece.length,
        "itemIndex": piece.item_index,
    }


def sort_decreasing(pieces: Sequence[UnitPiece]) -> List[UnitPiece]:
    """Ordena por comprimento decrescente; empates pela ordem de inserção"""
    return sorted(pieces, key=lambda p: (-p.length, p.index))


def pack_sequence(
    pieces: Sequence[UnitPiece],
    stocks: Sequence[StockOption],
    constraints: Constraints,
    rule: DecodeRule = DecodeRule.FIRST_FIT,
) -> Layout:
    """
    Posiciona as peças na ordem recebida

    Args:
        pieces: Peças na ordem de posicionamento
        stocks: Opções de estoque do perfil
        constraints: Restrições de corte
        rule: First fit (primeira barra que cabe) ou best fit (menor sobra)

    Returns:
        Lista de barras já reduzidas ao menor estoque que comporta cada uma
    """
    ledger = StockLedger(stocks)
    bins: Layout = []

    for piece in pieces:
        target = None
        if rule == DecodeRule.FIRST_FIT:
            for candidate in bins:
                if candidate.accepts(piece, constraints):
                    target = candidate
                    break
        else:
            best_remaining = float("inf")
            for candidate in bins:
                if not candidate.accepts(piece, constraints):
                    continue
                remaining = candidate.remaining_after(piece, constraints)
                # Empates ficam com o menor índice (comparação estrita)
                if remaining < best_remaining - LENGTH_EPSILON:
                    best_remaining = remaining
                    target = candidate

        if target is None:
            target = Bin(stock=ledger.open_for(piece, constraints))
            bins.append(target)
        target.pieces.append(piece)

    downsize_bins(bins, ledger, constraints)
    return bins


def downsize_bins(bins: Layout, ledger: StockLedger, constraints: Constraints) -> None:
    """Troca cada barra pela menor opção de estoque que ainda comporta a carga"""
    shortest_first = list(reversed(ledger.stocks))
    for current in bins:
        load = current.load(constraints.kerf_width)
        for stock in shortest_first:
            if stock.length >= current.stock.length:
                break
            if not ledger.available(stock):
                continue
            if load <= stock.usable_length(constraints) + LENGTH_EPSILON:
                ledger.release(current.stock)
                ledger.take(stock)
                current.stock = stock
                break


def first_fit_decreasing(
    pieces: Sequence[UnitPiece], stocks: Sequence[StockOption], constraints: Constraints
) -> Layout:
    """Algoritmo First Fit Decreasing"""
    return pack_sequence(sort_decreasing(pieces), stocks, constraints, DecodeRule.FIRST_FIT)


def best_fit_decreasing(
    pieces: Sequence[UnitPiece], stocks: Sequence[StockOption], constraints: Constraints
) -> Layout:
    """Algoritmo Best Fit Decreasing"""
    return pack_sequence(sort_decreasing(pieces), stocks, constraints, DecodeRule.BEST_FIT)


def layout_signature(bins: Layout) -> Tuple:
    """Assinatura estável de um plano (para comparações e deduplicação)"""
    return tuple((b.stock.length, tuple(p.index for p in b.pieces)) for b in bins)
