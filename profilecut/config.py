"""
Configuração e constantes do ProfileCut
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Dict, Optional


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Tolerância numérica para comparações de comprimento (mm)
LENGTH_EPSILON = 1e-6

# Tolerância de corte usada na precisão de corte (mm)
CUT_TOLERANCE_MM = 0.5

# Estimativas de tempo de produção (minutos)
SETUP_MINUTES_PER_STOCK = 5.0
CUT_MINUTES_PER_SEGMENT = 2.0

# Referências de normalização dos objetivos
COST_BASELINE = 10000.0
TIME_BASELINE_MINUTES = 60.0

# Pesos do índice de qualidade
QUALITY_WEIGHTS = {
    "efficiency": 0.5,
    "accuracy": 0.3,
    "utilization": 0.2,
}

# Algoritmo genético
GA_TOURNAMENT_SIZE = 3
GA_ELITE_RATIO = 0.1
DEFAULT_SEED = 12345

# Faixas de desperdício por barra (mm): abaixo do limite => categoria
DEFAULT_WASTE_THRESHOLDS = {
    "minimal": 50.0,
    "small": 100.0,
    "medium": 200.0,
    "large": 500.0,
}

# Limites para recomendações
HIGH_WASTE_STOCK_PERCENT = 15.0
LOW_EFFICIENCY_PERCENT = 85.0


def configure_logging(level: str = "INFO") -> None:
    """Configura o logging padrão da aplicação"""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


@dataclass(frozen=True)
class EngineSettings:
    """
    Parâmetros do motor que não fazem parte da requisição.

    Attributes:
        evaluator:           "batched" (numpy vetorizado) ou "cpu".
        max_workers:         Threads para avaliação de fitness e execuções Pareto.
        pattern_max_pieces:  Acima disso a busca por padrões delega ao BFD.
        pattern_max_lengths: Máximo de comprimentos distintos na busca por padrões.
        pattern_time_limit:  Tempo máximo (s) do CP-SAT quando a requisição não define prazo.
        pattern_limit:       Padrões candidatos por barra (e por comprimento obrigatório).
        pareto_divisions:    Divisões da grade simplex de pesos.
        pareto_max_runs:     Máximo de execuções no modo avançado.
        waste_thresholds:    Limites das categorias de desperdício (mm).
        log_level:           Nível de log das entradas (CLI/API).
    """
    evaluator: str = "batched"
    max_workers: int = 4
    pattern_max_pieces: int = 120
    pattern_max_lengths: int = 20
    pattern_time_limit: float = 10.0
    pattern_limit: int = 60
    pareto_divisions: int = 4
    pareto_max_runs: int = 12
    waste_thresholds: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_WASTE_THRESHOLDS)
    )
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, prefix: str = "PROFILECUT_") -> "EngineSettings":
        """Lê as configurações das variáveis de ambiente PROFILECUT_*"""
        defaults = cls()
        return cls(
            evaluator=os.environ.get(f"{prefix}EVALUATOR", defaults.evaluator).lower(),
            max_workers=_env_int(f"{prefix}MAX_WORKERS", defaults.max_workers),
            pattern_max_pieces=_env_int(f"{prefix}PATTERN_MAX_PIECES", defaults.pattern_max_pieces),
            pattern_max_lengths=_env_int(f"{prefix}PATTERN_MAX_LENGTHS", defaults.pattern_max_lengths),
            pattern_time_limit=_env_float(f"{prefix}PATTERN_TIME_LIMIT", defaults.pattern_time_limit),
            pattern_limit=_env_int(f"{prefix}PATTERN_LIMIT", defaults.pattern_limit),
            pareto_divisions=_env_int(f"{prefix}PARETO_DIVISIONS", defaults.pareto_divisions),
            pareto_max_runs=_env_int(f"{prefix}PARETO_MAX_RUNS", defaults.pareto_max_runs),
            log_level=os.environ.get(f"{prefix}LOG_LEVEL", defaults.log_level),
        )


def budget_seconds(max_processing_time: Optional[float], timeout: Optional[float]) -> Optional[float]:
    """Orçamento de tempo (s) a partir dos limites em milissegundos"""
    limits = [value for value in (max_processing_time, timeout) if value is not None and value > 0]
    if not limits:
        return None
    return min(limits) / 1000.0
