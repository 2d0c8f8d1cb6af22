from __future__ import annotations


class HmlvError(Exception):
    """Base para os erros do hmlvsim."""


class ConfigurationError(HmlvError, ValueError):
    """Parâmetros ou configuração de execução inválidos (fatal, antes da simulação)."""


class CalibrationError(HmlvError, ValueError):
    """Dados de processo insuficientes para calibrar."""


class InternalInvariantViolation(HmlvError, AssertionError):
    """Fila de eventos vazia com jobs não concluídos: bug de roteamento ou do escalonador."""
