"""
Exceções do núcleo de otimização do ProfileCut
"""

from typing import Optional


class ErrorCode:
    """Códigos de falha visíveis para o chamador"""
    NO_ITEMS = "NO_ITEMS"
    NO_OBJECTIVES = "NO_OBJECTIVES"
    INVALID_CONSTRAINTS = "INVALID_CONSTRAINTS"
    INFEASIBLE_REQUEST = "InfeasibleRequest"
    OPTIMIZATION_ERROR = "OPTIMIZATION_ERROR"


class OptimizationError(Exception):
    """Erro base: carrega um código estável e uma mensagem descritiva"""

    code = ErrorCode.OPTIMIZATION_ERROR

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class RequestValidationError(OptimizationError):
    """Requisição rejeitada antes de qualquer algoritmo rodar"""

    code = ErrorCode.INVALID_CONSTRAINTS


class InfeasibleRequest(OptimizationError):
    """Nenhum plano viável existe para a requisição"""

    code = ErrorCode.INFEASIBLE_REQUEST

    def __init__(self, message: str, piece: Optional[dict] = None):
        super().__init__(message)
        self.piece = piece


class OptimizationFailure(OptimizationError):
    """Falha interna durante a busca, pontuação ou montagem do resultado"""

    code = ErrorCode.OPTIMIZATION_ERROR
