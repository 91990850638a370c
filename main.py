"""
Servidor FastAPI principal para o ProfileCut
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError as BodyValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from profilecut import EngineSettings, ProfileCutOptimizer, __version__, configure_logging
from profilecut.exceptions import ErrorCode
from profilecut.models import OptimizationRequest, OptimizationResult

settings = EngineSettings.from_env()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

# Configuração do FastAPI
app = FastAPI(
    title="ProfileCut API",
    description="API para otimização de cortes de perfis a partir de barras de estoque",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configuração de CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Instância global do otimizador (sem estado entre requisições)
optimizer = ProfileCutOptimizer(settings)

# Código de falha -> status HTTP
STATUS_BY_CODE = {
    ErrorCode.NO_ITEMS: 400,
    ErrorCode.NO_OBJECTIVES: 400,
    ErrorCode.INVALID_CONSTRAINTS: 400,
    ErrorCode.INFEASIBLE_REQUEST: 422,
    ErrorCode.OPTIMIZATION_ERROR: 500,
}


def result_response(result: OptimizationResult) -> JSONResponse:
    status = 200 if result.success else STATUS_BY_CODE.get(result.error_code, 500)
    return JSONResponse(
        status_code=status,
        content=result.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@app.exception_handler(BodyValidationError)
async def body_validation_handler(request: Request, exc: BodyValidationError):
    """Corpo inválido segue o mesmo contrato de erro da otimização"""
    logger.info("Requisição inválida em %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "errorCode": ErrorCode.INVALID_CONSTRAINTS,
            "errorMessage": "Corpo da requisição inválido",
            "details": jsonable_encoder(exc.errors()),
        },
    )


@app.get("/")
async def root():
    """Página inicial da API - redireciona para documentação"""
    return {
        "message": "ProfileCut API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health")
async def health_check():
    """Verificação de saúde da API"""
    return {
        "status": "healthy",
        "service": "ProfileCut API",
        "version": __version__,
        "evaluator": optimizer.evaluator.name,
    }


@app.post("/optimize")
def optimize(request: OptimizationRequest):
    """
    Otimização do plano de corte

    Args:
        request: Requisição de otimização

    Returns:
        200 com o resultado; 400 para requisição inválida, 422 quando não
        existe plano viável e 500 para falhas internas
    """
    result = optimizer.optimize(request)
    if not result.success:
        logger.info("Otimização sem sucesso: %s", result.error_code)
    return result_response(result)


@app.get("/algorithms")
async def get_algorithms():
    """Retorna lista de algoritmos disponíveis"""
    return {
        "algorithms": optimizer.get_algorithm_info(),
        "modes": ["standard", "advanced"],
        "default": "bfd",
    }


@app.get("/examples")
async def get_example():
    """Retorna exemplo de requisição"""
    return {
        "items": [
            {"workOrderId": "OS-101", "profileType": "AL-40x40", "length": 1200, "quantity": 6},
            {"workOrderId": "OS-101", "profileType": "AL-40x40", "length": 800, "quantity": 8},
            {"workOrderId": "OS-102", "profileType": "AL-40x40", "length": 600, "quantity": 10},
            {"workOrderId": "OS-102", "profileType": "AL-20x20", "length": 450, "quantity": 12},
        ],
        "algorithm": "bfd",
        "algorithmMode": "standard",
        "objectives": [
            {"type": "maximize-efficiency", "weight": 0.5, "priority": "high"},
            {"type": "minimize-waste", "weight": 0.3, "priority": "medium"},
            {"type": "minimize-cost", "weight": 0.2, "priority": "medium"},
        ],
        "constraints": {"kerfWidth": 3, "startSafety": 5, "endSafety": 5, "minScrapLength": 50},
        "materialStockLengths": [
            {"profileType": "AL-40x40", "stockLength": 6000, "costPerStock": 150.0},
            {"profileType": "AL-40x40", "stockLength": 4000, "costPerStock": 110.0},
            {"profileType": "AL-20x20", "stockLength": 3000, "availability": 5, "costPerStock": 45.0},
        ],
        "performance": {"populationSize": 40, "generations": 60, "deterministicSeed": 12345},
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower()
    )
