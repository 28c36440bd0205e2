# src/atlas_infraflow/core/model/loader.py
"""
Fonte de declarações do Atlas InfraFlow.

Este módulo converte dados simples (dicts/listas vindos de YAML, JSON ou
de uma API) em `ResourceDeclaration` imutáveis. O engine é agnóstico à
origem: `parse_declarations` aceita estruturas já em memória e
`load_declarations` apenas lê o arquivo antes de delegar.

Formato aceito (v1):

    resources:
      - kind: vpc
        name: main
        attributes:
          cidr_block: 10.0.0.0/16
      - kind: subnet
        name: public_a
        attributes:
          vpc_id: {$ref: vpc.main.id}

Uma referência é sempre um mapa com a chave única `$ref` e o valor
`kind.name.attribute`. Não existe interpolação de strings nem linguagem
de expressões: qualquer outro valor é literal, e literais precisam ser
JSON puro (uma data YAML sem aspas, ex.: `2024-01-01`, é rejeitada).

Limites explícitos:
    - Não valida schema de kinds concretos
    - Não verifica se o alvo de uma referência existe (graph builder)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple, Union

import yaml  # PyYAML

from atlas_infraflow.core.exceptions import InvalidDeclarationError

from .registry import DeclarationRegistry, check_identifier
from .types import LiteralValue, Reference, ResourceDeclaration

REF_MARKER = "$ref"


def _parse_nested(raw: Any) -> Any:
    if isinstance(raw, Mapping):
        if set(raw) == {REF_MARKER}:
            target = raw[REF_MARKER]
            if not isinstance(target, str):
                raise InvalidDeclarationError(
                    message="Reference target must be a 'kind.name.attribute' string",
                    details={"value": repr(target)},
                )
            try:
                return Reference.parse(target)
            except ValueError as e:
                raise InvalidDeclarationError(message=str(e), details={"value": target}) from e
        return {str(k): _parse_nested(v) for k, v in raw.items()}
    if isinstance(raw, (list, tuple)):
        return [_parse_nested(v) for v in raw]
    return raw


def parse_attribute(raw: Any) -> Any:
    """Converte um valor simples em `Reference` ou `LiteralValue` (com referências aninhadas)."""
    parsed = _parse_nested(raw)
    if isinstance(parsed, Reference):
        return parsed
    return LiteralValue(parsed)


def _parse_one(index: int, item: Any) -> ResourceDeclaration:
    if not isinstance(item, Mapping):
        raise InvalidDeclarationError(
            message=f"Resource #{index} must be a mapping",
            details={"index": index, "received": type(item).__name__},
        )

    kind = item.get("kind")
    name = item.get("name")
    for label, value in (("kind", kind), ("name", name)):
        check_identifier(label, value, index=index)

    attributes = item.get("attributes") or {}
    if not isinstance(attributes, Mapping):
        raise InvalidDeclarationError(
            message=f"Resource {kind}.{name}: 'attributes' must be a mapping",
            details={"resource": f"{kind}.{name}"},
        )

    return ResourceDeclaration(
        kind=kind,
        name=name,
        attributes={str(k): parse_attribute(v) for k, v in attributes.items()},
    )


def parse_declarations(data: Union[Mapping[str, Any], List[Any]]) -> Tuple[ResourceDeclaration, ...]:
    """
    Converte dados simples em uma tupla ordenada de declarações.

    Aceita `{"resources": [...]}` ou diretamente a lista de recursos.

    Raises:
        InvalidDeclarationError: Estrutura malformada.
        DuplicateResourceError: Par (kind, name) repetido.
    """
    if isinstance(data, Mapping):
        items = data.get("resources", [])
    else:
        items = data

    if items is None:
        items = []
    if not isinstance(items, list):
        raise InvalidDeclarationError(
            message="'resources' must be a list",
            details={"received": type(items).__name__},
        )

    registry = DeclarationRegistry.of(_parse_one(i, item) for i, item in enumerate(items))
    return tuple(registry.list())


def _read_file(path: Path) -> Union[Dict[str, Any], List[Any]]:
    if not path.exists():
        raise InvalidDeclarationError(
            message=f"Declaration file not found: {path}",
            details={"path": str(path)},
        )

    suffix = path.suffix.lower()
    try:
        if suffix in {".yaml", ".yml"}:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        elif suffix == ".json":
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        else:
            raise InvalidDeclarationError(
                message=f"Unsupported declaration format: {path.suffix}",
                details={"path": str(path)},
            )
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise InvalidDeclarationError(
            message=f"Invalid declaration file: {path}",
            details={"path": str(path), "error": str(e)},
        ) from e

    if data is None:
        data = {}
    if not isinstance(data, (dict, list)):
        raise InvalidDeclarationError(
            message=f"Declaration root must be a mapping or list, got {type(data).__name__}",
            details={"path": str(path)},
        )
    return data


def load_declarations(path: Union[str, Path]) -> Tuple[ResourceDeclaration, ...]:
    """Lê um arquivo YAML/JSON de declarações e o converte via `parse_declarations`."""
    return parse_declarations(_read_file(Path(path)))
