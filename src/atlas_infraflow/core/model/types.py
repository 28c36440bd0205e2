# src/atlas_infraflow/core/model/types.py
"""
Tipos canônicos do modelo de recursos do Atlas InfraFlow.

Este módulo define as estruturas e enums fundamentais que padronizam a
comunicação entre declarações, graph builder, planner e executor.

Os tipos aqui definidos representam:
    - identidade lógica de um recurso (kind, name)
    - valores de atributo literais ou referências a saídas de outros recursos
    - valores diferidos em duas fases (pending → resolved)
    - a declaração imutável de um recurso desejado
    - ações de plano e estados de execução de Steps

Componentes principais:
    - ResourceKey         → identidade (kind, name) ordenável e estável
    - LiteralValue        → valor literal (escalar, lista ou mapa)
    - Reference           → referência (kind, name, attribute) ainda não resolvida
    - DeferredValue       → valor explícito em duas fases
    - ResourceDeclaration → declaração imutável de um recurso
    - Action / StepStatus → enums canônicos de plano e execução

Princípios fundamentais:
    - Tipos são imutáveis e serializáveis
    - Referências nunca são avaliadas implicitamente
    - Nenhuma lógica de execução vive neste módulo

Invariantes:
    - O conjunto de dependências de uma declaração é exatamente o conjunto
      de (kind, name) que aparece em alguma referência de seus atributos
    - Uma declaração nunca é alterada após criada

Limites explícitos:
    - Não implementa linguagem de expressões ou templates
    - Não conhece o schema de nenhum kind concreto
    - Não planeja nem executa

Este módulo existe para garantir consistência,
interoperabilidade e clareza semântica no modelo de recursos.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterator, List, Mapping, Set, Tuple

from atlas_infraflow.core.exceptions import UnresolvedReferenceError


@dataclass(frozen=True, order=True)
class ResourceKey:
    """
    Identidade lógica de um recurso: o par (kind, name).

    A chave é ordenável (primeiro por `kind`, depois por `name`), o que
    permite desempates determinísticos em ordenações topológicas, e é
    representada textualmente como `kind.name`.
    """

    kind: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind}.{self.name}"

    @classmethod
    def parse(cls, text: str) -> "ResourceKey":
        kind, sep, name = text.partition(".")
        if not sep or not kind or not name:
            raise ValueError(f"Invalid resource key: {text!r}")
        return cls(kind=kind, name=name)


@dataclass(frozen=True)
class Reference:
    """
    Referência a um atributo de saída de outro recurso.

    Representa a metade *pendente* de um valor em duas fases: o valor
    referenciado só é conhecido depois que o recurso alvo foi aplicado.
    Textualmente: `kind.name.attribute`.
    """

    target_kind: str
    target_name: str
    target_attribute: str

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.target_kind, self.target_name)

    def __str__(self) -> str:
        return f"{self.target_kind}.{self.target_name}.{self.target_attribute}"

    @classmethod
    def parse(cls, text: str) -> "Reference":
        parts = text.split(".")
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Reference must be 'kind.name.attribute', got {text!r}")
        return cls(*parts)


@dataclass(frozen=True)
class LiteralValue:
    """
    Valor literal de atributo: escalar, lista ou mapa.

    Listas e mapas podem conter referências aninhadas (ex.: lista de ids
    de security groups); nesse caso o atributo como um todo é tratado
    como dependente de referência e fica fora do diff literal.
    """

    value: Any

    def references(self) -> List[Reference]:
        return list(iter_references(self.value))


AttributeValue = Any  # LiteralValue | Reference


class ValueState(str, Enum):
    """Fases de um valor diferido."""
    PENDING = "pending"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class DeferredValue:
    """
    Valor explícito em duas fases (pending → resolved).

    Um `DeferredValue` nasce pendente, carregando apenas a `Reference`.
    A resolução acontece estritamente depois que o Step do recurso alvo
    concluiu com sucesso e produz uma **nova** instância resolvida; a
    instância pendente nunca é mutada.

    Decisões arquiteturais:
        - Não existe avaliação preguiçosa implícita
        - Ler `value` de um valor pendente é erro de programação

    Invariantes:
        - state == RESOLVED ⇔ `value` foi obtido das saídas do alvo
    """

    reference: Reference
    state: ValueState = ValueState.PENDING
    _value: Any = field(default=None, repr=False, compare=False)

    @classmethod
    def pending(cls, reference: Reference) -> "DeferredValue":
        return cls(reference=reference)

    @property
    def is_resolved(self) -> bool:
        return self.state == ValueState.RESOLVED

    @property
    def value(self) -> Any:
        if not self.is_resolved:
            raise RuntimeError(f"Reference {self.reference} is still pending")
        return self._value

    def resolve(self, outputs: Mapping[str, Any]) -> "DeferredValue":
        attr = self.reference.target_attribute
        if attr not in outputs:
            raise UnresolvedReferenceError(
                message=f"Output attribute '{attr}' not available on {self.reference.key}",
                details={
                    "reference": str(self.reference),
                    "available": sorted(outputs),
                },
                hint="Verifique se o Provider Adapter do recurso alvo expõe este atributo de saída.",
            )
        return DeferredValue(reference=self.reference, state=ValueState.RESOLVED, _value=outputs[attr])


class Action(str, Enum):
    """
    Ação planejada para um recurso.

    - CREATE: não existe StateRecord
    - UPDATE: atributos literais divergem do último estado aplicado
    - REPLACE: a mudança exige destruir e recriar (decidido pelo adapter)
    - DELETE: existe StateRecord, mas a declaração não existe mais
    - NOOP: nada a fazer
    """
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "noop"


class StepStatus(str, Enum):
    """
    Estados de execução de um Step.

    PENDING e RUNNING são transitórios; SUCCEEDED, FAILED e SKIPPED são
    terminais. Todo recurso do plano termina uma run em um estado terminal.
    """
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.SUCCEEDED, StepStatus.FAILED, StepStatus.SKIPPED)


def iter_references(value: Any) -> Iterator[Reference]:
    """Percorre recursivamente um valor e produz todas as referências encontradas."""
    if isinstance(value, Reference):
        yield value
    elif isinstance(value, LiteralValue):
        yield from iter_references(value.value)
    elif isinstance(value, Mapping):
        for k in sorted(value, key=str):
            yield from iter_references(value[k])
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_references(item)


def has_references(value: Any) -> bool:
    return next(iter_references(value), None) is not None


def to_plain(value: Any) -> Any:
    """Remove o envelope `LiteralValue` (recursivamente) sem tocar em referências."""
    if isinstance(value, LiteralValue):
        return to_plain(value.value)
    if isinstance(value, Mapping):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


def resolve_value(value: Any, outputs_by_key: Mapping[ResourceKey, Mapping[str, Any]]) -> Any:
    """
    Substitui referências por valores resolvidos a partir das saídas das dependências.

    Cada referência passa pelas duas fases explícitas de `DeferredValue`.

    Raises:
        UnresolvedReferenceError: Se o recurso alvo não tiver saídas
            disponíveis ou não expuser o atributo referenciado.
    """
    if isinstance(value, Reference):
        outputs = outputs_by_key.get(value.key)
        if outputs is None:
            raise UnresolvedReferenceError(
                message=f"No outputs available for {value.key}",
                details={"reference": str(value)},
            )
        return DeferredValue.pending(value).resolve(outputs).value
    if isinstance(value, LiteralValue):
        return resolve_value(value.value, outputs_by_key)
    if isinstance(value, Mapping):
        return {k: resolve_value(v, outputs_by_key) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_value(v, outputs_by_key) for v in value]
    return value


def render_value(value: Any) -> Any:
    """Representação serializável de um valor de atributo (referências como `${kind.name.attr}`)."""
    if isinstance(value, Reference):
        return "${" + str(value) + "}"
    if isinstance(value, LiteralValue):
        return render_value(value.value)
    if isinstance(value, Mapping):
        return {k: render_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [render_value(v) for v in value]
    return value


@dataclass(frozen=True)
class ResourceDeclaration:
    """
    Declaração imutável de um recurso desejado.

    Esta classe representa o estado desejado de um recurso: seu kind, seu
    nome lógico (único dentro do kind) e seus atributos, cada um literal
    ou referência.

    Campos:
        - kind: tipo do recurso (ex.: vpc, subnet, instance)
        - name: nome lógico, único dentro do kind
        - attributes: mapa somente-leitura atributo → valor

    Decisões arquiteturais:
        - `attributes` é exposto como MappingProxyType (somente leitura)
        - Dependências são derivadas das referências, nunca declaradas à parte
        - Atributos que contêm referências ficam fora do diff literal

    Invariantes:
        - `dependencies` é exatamente o conjunto de (kind, name) referenciados
        - A declaração não muda durante a run

    Limites explícitos:
        - Não valida schema do kind (responsabilidade do adapter)
        - Não resolve referências
    """

    kind: str
    name: str
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.kind, self.name)

    @property
    def dependencies(self) -> FrozenSet[ResourceKey]:
        return frozenset(ref.key for ref in self.references())

    def references(self) -> List[Reference]:
        refs: List[Reference] = []
        for attr in sorted(self.attributes):
            refs.extend(iter_references(self.attributes[attr]))
        return refs

    def references_by_attribute(self) -> Dict[str, List[Reference]]:
        return {
            attr: list(iter_references(value))
            for attr, value in self.attributes.items()
            if has_references(value)
        }

    def literal_attributes(self) -> Dict[str, Any]:
        """Atributos sem nenhuma referência, já sem o envelope LiteralValue."""
        return {
            attr: to_plain(value)
            for attr, value in self.attributes.items()
            if not has_references(value)
        }

    def reference_attributes(self) -> Set[str]:
        return set(self.references_by_attribute())

    def rendered_attributes(self) -> Dict[str, Any]:
        return {attr: render_value(value) for attr, value in self.attributes.items()}

    def __hash__(self) -> int:
        return hash(self.key)


DiffEntry = Tuple[Any, Any]

