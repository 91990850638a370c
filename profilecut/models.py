"""
Modelos de dados para o sistema ProfileCut
"""

from typing import List, Optional, Dict, Any
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class AlgorithmType(str, Enum):
    """Estratégias de otimização disponíveis"""
    FFD = "ffd"                       # First Fit Decreasing
    BFD = "bfd"                       # Best Fit Decreasing
    GENETIC = "genetic"               # Algoritmo genético
    POOLING = "pooling"               # Agrupamento de perfis entre ordens
    PATTERN_EXACT = "pattern-exact"   # Busca exata por padrões


class AlgorithmMode(str, Enum):
    """Modo de execução"""
    STANDARD = "standard"   # Uma solução
    ADVANCED = "advanced"   # Fronteira de Pareto + ponto de joelho


class ObjectiveType(str, Enum):
    """Objetivos de otimização"""
    MINIMIZE_WASTE = "minimize-waste"
    MAXIMIZE_EFFICIENCY = "maximize-efficiency"
    MINIMIZE_COST = "minimize-cost"
    MINIMIZE_TIME = "minimize-time"
    MAXIMIZE_QUALITY = "maximize-quality"


class Priority(str, Enum):
    """Prioridade de objetivos e recomendações"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DecodeRule(str, Enum):
    """Regra de decodificação do cromossomo em barras"""
    FIRST_FIT = "first-fit"
    BEST_FIT = "best-fit"


class WasteCategory(str, Enum):
    """Categorias de desperdício por barra"""
    MINIMAL = "minimal"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    EXCESSIVE = "excessive"


class ApiModel(BaseModel):
    """Base: snake_case em Python, camelCase no JSON"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Requisição
# ---------------------------------------------------------------------------

class OptimizationItem(ApiModel):
    """Representa uma peça a ser cortada"""
    work_order_id: str = Field(..., description="Ordem de serviço de origem")
    profile_type: str = Field(..., description="Tipo de perfil")
    length: float = Field(..., gt=0, description="Comprimento (mm)")
    quantity: int = Field(..., ge=1, description="Quantidade necessária")

    @field_validator("work_order_id", "profile_type", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class MaterialStockLength(ApiModel):
    """Representa uma barra disponível em estoque"""
    profile_type: str = Field(..., description="Tipo de perfil")
    stock_length: float = Field(..., gt=0, description="Comprimento nominal (mm)")
    availability: Optional[int] = Field(None, ge=0, description="Quantidade disponível (None = ilimitado)")
    cost_per_mm: float = Field(0.0, ge=0, description="Custo por mm")
    cost_per_stock: float = Field(0.0, ge=0, description="Custo por barra")
    material_grade: str = Field("standard", description="Qualidade do material")


class Constraints(ApiModel):
    """Restrições aplicadas a todas as barras da solução"""
    kerf_width: float = Field(3.0, ge=0, description="Espessura do corte (mm)")
    start_safety: float = Field(5.0, ge=0, description="Margem de segurança inicial (mm)")
    end_safety: float = Field(5.0, ge=0, description="Margem de segurança final (mm)")
    min_scrap_length: float = Field(50.0, ge=0, description="Retalho mínimo reaproveitável (mm)")
    max_waste_percentage: float = Field(100.0, ge=0, le=100, description="Desperdício máximo (%)")
    max_cuts_per_stock: int = Field(50, ge=1, description="Máximo de peças por barra")
    max_processing_time: Optional[float] = Field(None, description="Tempo máximo de processamento (ms)")
    min_quality_score: Optional[float] = Field(None, ge=0, le=100, description="Índice de qualidade mínimo")


class Objective(ApiModel):
    """Objetivo de otimização com peso e prioridade"""
    type: ObjectiveType
    weight: float = Field(..., gt=0)
    priority: Priority = Priority.MEDIUM


class PerformanceSettings(ApiModel):
    """Parâmetros de desempenho da busca"""
    max_iterations: int = Field(5000, ge=1, description="Máximo de avaliações")
    population_size: int = Field(50, ge=4, le=500, description="Tamanho da população")
    generations: Optional[int] = Field(None, ge=1, description="Limite explícito de gerações")
    mutation_rate: float = Field(0.15, ge=0, le=1)
    crossover_rate: float = Field(0.8, ge=0, le=1)
    timeout: float = Field(30000.0, gt=0, description="Tempo limite (ms)")
    deterministic_seed: int = Field(12345, ge=0, description="Semente do gerador pseudoaleatório")
    convergence_window: int = Field(15, ge=1)
    convergence_epsilon: float = Field(1e-4, ge=0)
    decode_rule: DecodeRule = DecodeRule.FIRST_FIT


class CostModel(ApiModel):
    """Modelo de custos"""
    material_cost: float = Field(0.0, ge=0, description="Custo por metro de barra")
    labor_cost: float = Field(0.0, ge=0, description="Custo por hora de trabalho")
    waste_cost: float = Field(0.0, ge=0, description="Custo por metro de desperdício")
    setup_cost: float = Field(0.0, ge=0, description="Custo de preparação por barra")
    transport_cost: float = Field(0.0, ge=0, description="Custo de transporte por barra")
    overhead_cost: float = Field(0.0, ge=0, description="Custos indiretos (% do subtotal)")


def default_objectives() -> List[Objective]:
    return [
        Objective(type=ObjectiveType.MAXIMIZE_EFFICIENCY, weight=0.5, priority=Priority.HIGH),
        Objective(type=ObjectiveType.MINIMIZE_WASTE, weight=0.3, priority=Priority.MEDIUM),
        Objective(type=ObjectiveType.MINIMIZE_COST, weight=0.2, priority=Priority.MEDIUM),
    ]


class OptimizationRequest(ApiModel):
    """Requisição para otimização"""
    items: List[OptimizationItem] = Field(default_factory=list, description="Peças a cortar")
    algorithm: AlgorithmType = Field(AlgorithmType.BFD, description="Algoritmo de otimização")
    algorithm_mode: AlgorithmMode = Field(AlgorithmMode.STANDARD)
    objectives: List[Objective] = Field(default_factory=default_objectives)
    constraints: Constraints = Field(default_factory=Constraints)
    material_stock_lengths: List[MaterialStockLength] = Field(default_factory=list)
    performance: PerformanceSettings = Field(default_factory=PerformanceSettings)
    cost_model: CostModel = Field(default_factory=CostModel)


# ---------------------------------------------------------------------------
# Resposta
# ---------------------------------------------------------------------------

class Segment(ApiModel):
    """Peça posicionada dentro de uma barra"""
    sequence: int = Field(..., description="Ordem do corte na barra")
    position: float = Field(..., description="Posição inicial (mm)")
    end_position: float = Field(..., description="Posição final (mm)")
    length: float = Field(..., description="Comprimento da peça")
    quantity: int = Field(1, description="Sempre 1: peça unitária")
    profile_type: str
    work_order_id: str
    item_index: int = Field(..., description="Índice do item na requisição")


class WorkOrderShare(ApiModel):
    work_order_id: str
    count: int


class Cut(ApiModel):
    """Uma barra consumida e suas peças"""
    index: int
    profile_type: str
    stock_length: float
    material_grade: str = "standard"
    segments: List[Segment]
    segment_count: int
    used_length: float = Field(..., description="Peças + kerf + margens (mm)")
    remaining_length: float = Field(..., description="Sobra da barra (mm)")
    kerf_loss: float
    safety_reserve: float
    waste_category: WasteCategory
    is_reclaimable: bool
    work_order_breakdown: List[WorkOrderShare] = Field(default_factory=list)
    is_mixed: bool = False


class CostBreakdown(ApiModel):
    stock_cost: float = 0.0
    material_cost: float = 0.0
    labor_cost: float = 0.0
    waste_cost: float = 0.0
    setup_cost: float = 0.0
    transport_cost: float = 0.0
    overhead_cost: float = 0.0
    total_cost: float = 0.0


class WasteDistribution(ApiModel):
    minimal: int = 0
    small: int = 0
    medium: int = 0
    large: int = 0
    excessive: int = 0
    reclaimable: int = 0
    total_pieces: int = 0


class StockSummary(ApiModel):
    profile_type: str
    stock_length: float
    cut_count: int
    total_waste: float
    average_waste: float
    efficiency: float


class WorkOrderSummary(ApiModel):
    work_order_id: str
    piece_count: int
    total_length: float
    cut_indices: List[int]


class Recommendation(ApiModel):
    priority: Priority
    category: str
    message: str
    profile_type: Optional[str] = None
    stock_length: Optional[float] = None


class AlgorithmMetadata(ApiModel):
    """Metadados da execução do algoritmo"""
    algorithm: AlgorithmType
    complexity: str
    seed: Optional[int] = None
    generations: Optional[int] = None
    population_size: Optional[int] = None
    convergence_reason: Optional[str] = None
    best_fitness: Optional[float] = None
    elapsed_ms: float = 0.0
    evaluator: Optional[str] = None
    exact: Optional[bool] = None
    time_bounded: bool = False
    fallback: Optional[str] = None
    nodes: Optional[int] = None
    solver_status: Optional[str] = None
    decode_rule: Optional[DecodeRule] = None
    pools: List[Dict[str, Any]] = Field(default_factory=list)


class ParetoPoint(ApiModel):
    """Solução não dominada da fronteira"""
    run: int
    weights: Dict[str, float]
    objectives: Dict[str, float]
    efficiency: float
    waste_percentage: float
    total_cost: float
    quality_score: float
    stock_count: int
    is_knee: bool = False


class OptimizationResult(ApiModel):
    """Resultado completo da otimização"""
    success: bool = Field(..., description="Se a otimização foi bem-sucedida")
    algorithm: AlgorithmType
    algorithm_mode: AlgorithmMode = AlgorithmMode.STANDARD
    cuts: List[Cut] = Field(default_factory=list)
    efficiency: float = 0.0
    waste_percentage: float = 0.0
    total_cost: float = 0.0
    total_waste: float = 0.0
    execution_time: float = Field(0.0, description="Tempo de processamento (ms)")
    quality_score: float = 0.0
    stock_utilization: float = 0.0
    cutting_accuracy: float = 0.0
    stock_count: int = 0
    total_segments: int = 0
    total_kerf_loss: float = 0.0
    total_safety_reserve: float = 0.0
    efficiency_category: Optional[str] = None
    algorithm_metadata: Optional[AlgorithmMetadata] = None
    recommendations: List[Recommendation] = Field(default_factory=list)
    waste_distribution: WasteDistribution = Field(default_factory=WasteDistribution)
    cost_breakdown: CostBreakdown = Field(default_factory=CostBreakdown)
    stock_summary: List[StockSummary] = Field(default_factory=list)
    work_orders: List[WorkOrderSummary] = Field(default_factory=list)
    pareto_front: Optional[List[ParetoPoint]] = None
    front_size: Optional[int] = None
    recommended_solution: Optional[ParetoPoint] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    infeasible_piece: Optional[Dict[str, Any]] = Field(None, description="Peça que tornou a requisição inviável")

    @model_validator(mode="after")
    def check_failure_fields(self):
        if not self.success and not self.error_code:
            raise ValueError("Resultado sem sucesso exige error_code")
        return self
