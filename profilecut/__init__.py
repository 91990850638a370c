"""
ProfileCut - Otimização de Cortes de Perfis

Transforma as peças pedidas pelas ordens de serviço em um plano de corte de
barras com mínimo desperdício, considerando custos, kerf e margens de segurança.
"""

from .config import EngineSettings, configure_logging
from .core import ProfileCutOptimizer
from .exceptions import ErrorCode, InfeasibleRequest, OptimizationError, RequestValidationError
from .models import (
    AlgorithmMode, AlgorithmType, Constraints, CostModel, MaterialStockLength, Objective,
    ObjectiveType, OptimizationItem, OptimizationRequest, OptimizationResult,
    PerformanceSettings, Priority,
)

__version__ = "1.0.0"
__author__ = "ProfileCut Team"

__all__ = [
    "ProfileCutOptimizer",
    "EngineSettings",
    "configure_logging",
    "ErrorCode",
    "OptimizationError",
    "RequestValidationError",
    "InfeasibleRequest",
    "AlgorithmType",
    "AlgorithmMode",
    "ObjectiveType",
    "Priority",
    "OptimizationItem",
    "MaterialStockLength",
    "Constraints",
    "Objective",
    "PerformanceSettings",
    "CostModel",
    "OptimizationRequest",
    "OptimizationResult",
]
