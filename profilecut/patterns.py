"""
Padrões de corte: enumeração de padrões maximais e realização em barras
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from .config import LENGTH_EPSILON
from .models import Constraints
from .packing import Bin, Layout, StockOption, UnitPiece

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pattern:
    """
    Multiconjunto de comprimentos cortados de uma barra

    Attributes:
        stock: Opção de estoque usada
        counts: Pares (comprimento, quantidade), comprimentos decrescentes
        load: Peças + kerf entre elas (mm)
        waste: Sobra útil da barra após o padrão (mm)
    """
    stock: StockOption
    counts: Tuple[Tuple[float, int], ...]
    load: float
    waste: float

    @property
    def piece_count(self) -> int:
        return sum(n for _, n in self.counts)

    @property
    def lengths(self) -> Tuple[float, ...]:
        return tuple(length for length, n in self.counts for _ in range(n))

    @property
    def utilization(self) -> float:
        """Fração da barra consumida (peças, kerf e margens)"""
        return (self.stock.length - self.waste) / self.stock.length

    def repetitions(self, demand: Dict[float, int]) -> int:
        """Quantas vezes o padrão cabe na demanda restante"""
        return min(demand.get(length, 0) // n for length, n in self.counts)


def demand_of(pieces: Sequence[UnitPiece]) -> Dict[float, int]:
    demand: Dict[float, int] = {}
    for piece in pieces:
        demand[piece.length] = demand.get(piece.length, 0) + 1
    return demand


def enumerate_patterns(
    demand: Dict[float, int],
    stock: StockOption,
    constraints: Constraints,
    must_include: Optional[float] = None,
    limit: int = 40,
    node_cap: int = 20000,
) -> Tuple[List[Pattern], bool]:
    """
    Enumera padrões maximais de uma barra para a demanda restante

    Um padrão é maximal quando nenhuma peça com demanda restante ainda cabe
    na sobra (respeitando o máximo de peças por barra).

    Args:
        demand: Comprimento -> quantidade restante
        stock: Barra considerada
        constraints: Restrições de corte
        must_include: Comprimento que deve aparecer no padrão
        limit: Máximo de padrões retornados (menor sobra primeiro)
        node_cap: Máximo de nós visitados na enumeração

    Returns:
        (padrões ordenados por sobra, se a enumeração foi truncada)
    """
    kerf = constraints.kerf_width
    usable = stock.usable_length(constraints)
    # Cada peça consome comprimento + kerf; a última não precisa do kerf
    capacity = usable + kerf
    max_pieces = constraints.max_cuts_per_stock

    lengths = sorted((length for length, n in demand.items() if n > 0), reverse=True)
    if not lengths:
        return [], False
    if must_include is not None and must_include > usable + LENGTH_EPSILON:
        return [], False

    counts = [0] * len(lengths)
    found: List[Pattern] = []
    state = {"nodes": 0, "truncated": False}

    def extendable(room: float, pieces: int) -> bool:
        if pieces >= max_pieces:
            return False
        for i, length in enumerate(lengths):
            if counts[i] < demand[length] and length + kerf <= room + LENGTH_EPSILON:
                return True
        return False

    def visit(position: int, room: float, pieces: int) -> None:
        if state["truncated"]:
            return
        state["nodes"] += 1
        if state["nodes"] > node_cap:
            state["truncated"] = True
            return
        if position == len(lengths):
            if pieces and not extendable(room, pieces):
                found.append(_build_pattern(stock, lengths, counts, kerf, usable))
            return

        length = lengths[position]
        fit = int((room + LENGTH_EPSILON) // (length + kerf))
        most = min(demand[length], fit, max_pieces - pieces)
        least = 1 if must_include is not None and length == must_include else 0
        for n in range(most, least - 1, -1):
            counts[position] = n
            visit(position + 1, room - n * (length + kerf), pieces + n)
        counts[position] = 0

    visit(0, capacity, 0)

    found.sort(key=lambda p: (p.waste, -p.piece_count, tuple(-length for length in p.lengths)))
    truncated = state["truncated"] or len(found) > limit
    if state["truncated"]:
        logger.debug(
            "Enumeração de padrões truncada em %d nós (barra %g mm)", node_cap, stock.length
        )
    return found[:limit], truncated


def _build_pattern(
    stock: StockOption, lengths: List[float], counts: List[int], kerf: float, usable: float
) -> Pattern:
    pairs = tuple((length, n) for length, n in zip(lengths, counts) if n > 0)
    pieces = sum(n for _, n in pairs)
    load = sum(length * n for length, n in pairs) + kerf * (pieces - 1)
    return Pattern(stock=stock, counts=pairs, load=load, waste=usable - load)


def fit_to_demand(
    patterns: Sequence[Pattern], demand: Dict[float, int], constraints: Constraints
) -> List[Pattern]:
    """
    Remove as peças excedentes de uma cobertura (produção >= demanda)

    Os padrões são percorridos em ordem; cada comprimento é retirado até
    esgotar a demanda. Barras que ficam vazias são descartadas.
    """
    kerf = constraints.kerf_width
    left = dict(demand)
    fitted: List[Pattern] = []
    for pattern in patterns:
        counts = []
        for length, n in pattern.counts:
            take = min(n, left.get(length, 0))
            if take:
                counts.append((length, take))
                left[length] -= take
        if not counts:
            continue
        if len(counts) == len(pattern.counts) and all(a == b for a, b in zip(counts, pattern.counts)):
            fitted.append(pattern)
            continue
        usable = pattern.stock.usable_length(constraints)
        lengths = [length for length, _ in counts]
        fitted.append(_build_pattern(pattern.stock, lengths, [n for _, n in counts], kerf, usable))
    return fitted


def realize_patterns(patterns: Sequence[Pattern], pieces: Sequence[UnitPiece]) -> Layout:
    """
    Converte padrões em barras retirando as peças de cada comprimento na
    ordem de inserção (peças da mesma ordem de serviço ficam juntas)
    """
    queues: Dict[float, Deque[UnitPiece]] = {}
    for piece in sorted(pieces, key=lambda p: p.index):
        queues.setdefault(piece.length, deque()).append(piece)

    bins: Layout = []
    for pattern in patterns:
        current = Bin(stock=pattern.stock)
        for length, n in pattern.counts:
            for _ in range(n):
                current.pieces.append(queues[length].popleft())
        bins.append(current)
    return bins
