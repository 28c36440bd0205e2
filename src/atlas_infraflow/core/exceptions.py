"""
Atlas InfraFlow — Canonical Exceptions (v1)

Este módulo define as exceções tipadas internas do Atlas InfraFlow.

Objetivo:
- Permitir que graph builder, planner e executor levantem exceções semânticas tipadas
- Facilitar o mapeamento determinístico para AtlasErrorPayload
- Separar erros de configuração (fatais antes de qualquer chamada remota)
  de erros de adapter (isolados na subárvore do recurso afetado)

Taxonomia:
- ConfigurationError: ciclo, referência não resolvida, conflito de plano,
  kind sem adapter, plano obsoleto. Nada é mutado.
- PlanRejected: operador recusou o plano revisado. No-op.
- AdapterTransientError: elegível para retry conforme política configurada.
- AdapterPermanentError: falha do Step; dependentes são pulados.

Regras:
- Exceções carregam apenas dados estruturados (serializáveis) em `details`.
- Nenhuma exceção dispara rollback de StateRecords já gravados.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AtlasException(Exception):
    """Base class para exceções internas do Atlas.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Não embedar stack trace em payloads de erro
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None
    decision_required: bool = False

    def __str__(self) -> str:  # pragma: no cover
        return self.message


# ---------------------------------------------------------------------------
# Configuração (fatal antes de qualquer chamada remota)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConfigurationError(AtlasException):
    """Declarações ou plano inconsistentes; nenhuma chamada remota é feita."""


@dataclass(frozen=True)
class InvalidDeclarationError(ConfigurationError):
    """Declaração malformada (kind/name/attributes inválidos ou fonte ilegível)."""


@dataclass(frozen=True)
class DuplicateResourceError(ConfigurationError):
    """Dois recursos declarados com o mesmo par (kind, name)."""


@dataclass(frozen=True)
class UnresolvedReferenceError(ConfigurationError):
    """Referência aponta para um recurso (ou atributo de saída) inexistente."""


@dataclass(frozen=True)
class CycleError(ConfigurationError):
    """Referências formam um ciclo; `details["cycle"]` lista os recursos envolvidos."""


@dataclass(frozen=True)
class PlanConflictError(ConfigurationError):
    """Recurso marcado para remoção ainda é requerido por um dependente sobrevivente."""


@dataclass(frozen=True)
class UnknownResourceKindError(ConfigurationError):
    """Nenhum Provider Adapter registrado para o kind."""


@dataclass(frozen=True)
class StalePlanError(ConfigurationError):
    """O State Store mudou desde que o plano foi calculado."""


@dataclass(frozen=True)
class EngineConfigurationError(ConfigurationError):
    """Configuração inválida ou inconsistente para execução."""


# ---------------------------------------------------------------------------
# Revisão do plano
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PlanRejected(AtlasException):
    """Operador recusou o plano revisado; nada foi executado."""


# ---------------------------------------------------------------------------
# Provider Adapters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AdapterError(AtlasException):
    """Falha reportada por um Provider Adapter."""


@dataclass(frozen=True)
class AdapterTransientError(AdapterError):
    """Falha transitória (throttling, timeout); elegível para retry."""


@dataclass(frozen=True)
class AdapterPermanentError(AdapterError):
    """Falha permanente (atributo inválido, quota); requer intervenção do operador."""


# ---------------------------------------------------------------------------
# Engine / Execução
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EngineExecutionError(AtlasException):
    """Erro inesperado durante execução do Engine (encapsulado)."""
