# src/atlas_infraflow/core/model/registry.py
"""
Registro estrutural de declarações de recursos.

Este módulo define o `DeclarationRegistry`, responsável por registrar
declarações e validar a unicidade de identidade antes de qualquer
construção de grafo ou planejamento.

O registry atua como uma camada de proteção antecipada, garantindo que:
    - cada declaração possua kind e name válidos
    - não existam pares (kind, name) duplicados
    - todo literal seja representável em JSON (o State Store grava JSON)
    - a ordem de declaração seja preservada explicitamente

Tudo isso é verificado antes de qualquer chamada remota: um recurso criado
cujo registro não pode ser gravado seria recriado a cada run.

Invariantes:
    - Cada declaração registrada possui um `ResourceKey` único
    - `kind` e `name` servem como componentes de caminho
      (`<kind>/<name>.json` no backend em diretório)
    - Literais sobrevivem a um round-trip JSON sem mudar de valor
    - A lista de declarações reflete exatamente a ordem de registro

Limites explícitos:
    - Não resolve referências (responsabilidade do graph builder)
    - Não planeja nem executa
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping

from atlas_infraflow.core.exceptions import DuplicateResourceError, InvalidDeclarationError

from .types import LiteralValue, Reference, ResourceDeclaration, ResourceKey

FORBIDDEN_IDENTIFIER_CHARS = (".", "/", "\\", "\x00")

_JSON_SCALARS = (str, bool, int, float, type(None))


def check_identifier(label: str, value: Any, **context: Any) -> str:
    """
    Valida `kind` ou `name` de um recurso.

    Aceita apenas strings não vazias sem `.` (separador de `kind.name.attr`)
    e sem separadores de caminho.

    Raises:
        InvalidDeclarationError: Valor ausente, vazio ou com caractere proibido.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidDeclarationError(
            message=f"Resource {label} must be a non-empty string",
            details={**context, label: value},
        )
    found = [c for c in FORBIDDEN_IDENTIFIER_CHARS if c in value]
    if found:
        raise InvalidDeclarationError(
            message=f"Resource {label} {value!r} must not contain {', '.join(repr(c) for c in found)}",
            details={**context, label: value},
            hint="kind e name viram componentes de caminho no State Store; prefira letras, dígitos, '-' e '_'.",
        )
    return value


def check_literal(value: Any, *, resource: str, attribute: str) -> None:
    """
    Garante que um valor de atributo é JSON puro (referências à parte).

    Rejeita tipos que o YAML produz mas o JSON não guarda (ex.: `date`),
    chaves não-string e floats não finitos.

    Raises:
        InvalidDeclarationError: Valor não representável no State Store.
    """
    if isinstance(value, Reference):
        return
    if isinstance(value, LiteralValue):
        check_literal(value.value, resource=resource, attribute=attribute)
        return
    if isinstance(value, Mapping):
        for k, v in value.items():
            if not isinstance(k, str):
                raise InvalidDeclarationError(
                    message=f"Resource {resource}: keys in '{attribute}' must be strings",
                    details={"resource": resource, "attribute": attribute, "key": repr(k)},
                )
            check_literal(v, resource=resource, attribute=attribute)
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            check_literal(item, resource=resource, attribute=attribute)
        return
    if not isinstance(value, _JSON_SCALARS):
        raise InvalidDeclarationError(
            message=(
                f"Resource {resource}: attribute '{attribute}' has unsupported type "
                f"{type(value).__name__}"
            ),
            details={"resource": resource, "attribute": attribute, "type": type(value).__name__},
            hint="Atributos aceitam apenas string, número, booleano, null, lista e mapa; datas devem vir entre aspas.",
        )
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidDeclarationError(
            message=f"Resource {resource}: attribute '{attribute}' must be a finite number",
            details={"resource": resource, "attribute": attribute, "value": repr(value)},
        )


@dataclass
class DeclarationRegistry:
    """Registro canônico de declarações para validação estrutural pré-grafo."""

    _declarations: Dict[ResourceKey, ResourceDeclaration] = field(default_factory=dict, init=False, repr=False)
    _order: List[ResourceKey] = field(default_factory=list, init=False, repr=False)

    @classmethod
    def of(cls, declarations: Iterable[ResourceDeclaration]) -> "DeclarationRegistry":
        registry = cls()
        for decl in declarations:
            registry.add(decl)
        return registry

    def add(self, declaration: ResourceDeclaration) -> None:
        for field_name in ("kind", "name"):
            check_identifier(field_name, getattr(declaration, field_name, None))

        key = declaration.key
        for attr, value in declaration.attributes.items():
            if not isinstance(attr, str):
                raise InvalidDeclarationError(
                    message=f"Resource {key}: attribute names must be strings",
                    details={"resource": str(key), "attribute": repr(attr)},
                )
            check_literal(value, resource=str(key), attribute=attr)

        if key in self._declarations:
            raise DuplicateResourceError(
                message=f"Duplicate resource: {key}",
                details={"resource": str(key)},
                hint="Cada par (kind, name) deve ser declarado uma única vez.",
            )

        self._declarations[key] = declaration
        self._order.append(key)

    def get(self, key: ResourceKey) -> ResourceDeclaration:
        return self._declarations[key]

    def __contains__(self, key: object) -> bool:
        return key in self._declarations

    def __len__(self) -> int:
        return len(self._order)

    def keys(self) -> List[ResourceKey]:
        return list(self._order)

    def list(self) -> List[ResourceDeclaration]:
        return [self._declarations[k] for k in self._order]
