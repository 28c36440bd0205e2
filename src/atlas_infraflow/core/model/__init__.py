"""
Modelo de recursos do Atlas InfraFlow.

Este pacote define a descrição tipada e imutável dos recursos desejados:

- **types**
  - `ResourceKey`, `Reference`, `LiteralValue`, `DeferredValue`
  - `ResourceDeclaration`: declaração imutável de um recurso
  - `Action`, `StepStatus`: enums canônicos de plano e execução

- **registry**
  - `DeclarationRegistry`: unicidade de (kind, name) e ordem de declaração

- **loader**
  - `parse_declarations` / `load_declarations`: fonte de declarações (YAML, JSON, dicts)

Limites explícitos:
- Não constrói o grafo de dependências
- Não conhece schemas de kinds concretos
"""

from .types import (
    Action,
    DeferredValue,
    LiteralValue,
    Reference,
    ResourceDeclaration,
    ResourceKey,
    StepStatus,
    ValueState,
    resolve_value,
)
from .registry import DeclarationRegistry
from .loader import load_declarations, parse_attribute, parse_declarations

__all__ = [
    "Action",
    "DeclarationRegistry",
    "DeferredValue",
    "LiteralValue",
    "Reference",
    "ResourceDeclaration",
    "ResourceKey",
    "StepStatus",
    "ValueState",
    "load_declarations",
    "parse_attribute",
    "parse_declarations",
    "resolve_value",
]
