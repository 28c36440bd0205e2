"""Contrato de Provider Adapter e registro por kind.

Um Provider Adapter é o colaborador externo que implementa CRUD de um kind
de recurso contra a API remota. O core não conhece schemas concretos (VPC,
instância, banco gerenciado...): ele apenas invoca o adapter com atributos
totalmente resolvidos.

Contrato (por kind):
- `create(attributes) -> (provider_id, outputs)`
- `update(provider_id, diff) -> outputs`, com `diff: attr -> (old, new)`
- `delete(provider_id) -> None`
- opcional: `requires_replacement(diff) -> bool`; quando verdadeiro, a
  mudança é aplicada como delete + create no mesmo Step (Replace)

Erros:
- `AdapterTransientError` → elegível para retry pela política do chamador
- `AdapterPermanentError` → fatal para a subárvore do recurso
- qualquer outra exceção é tratada como permanente

Retry de baixo nível (ex.: dentro do SDK) é preocupação do adapter; o
Executor aplica apenas a política configurada sobre erros transitórios.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Protocol, Tuple, runtime_checkable

from atlas_infraflow.core.exceptions import UnknownResourceKindError


Diff = Mapping[str, Tuple[Any, Any]]


@runtime_checkable
class ProviderAdapter(Protocol):
    """Interface mínima de CRUD para um kind de recurso."""

    def create(self, attributes: Mapping[str, Any]) -> Tuple[str, Dict[str, Any]]:
        ...

    def update(self, provider_id: str, diff: Diff) -> Dict[str, Any]:
        ...

    def delete(self, provider_id: str) -> None:
        ...


class ProviderRegistry:
    """Mapa kind → Provider Adapter."""

    def __init__(self, adapters: Mapping[str, ProviderAdapter] | None = None):
        self._adapters: Dict[str, ProviderAdapter] = {}
        for kind, adapter in (adapters or {}).items():
            self.register(kind, adapter)

    def register(self, kind: str, adapter: ProviderAdapter) -> None:
        if not isinstance(kind, str) or not kind.strip():
            raise ValueError("kind must be a non-empty string")
        if not isinstance(adapter, ProviderAdapter):
            raise TypeError(f"Adapter for '{kind}' must implement create/update/delete")
        self._adapters[kind] = adapter

    def __contains__(self, kind: object) -> bool:
        return kind in self._adapters

    def kinds(self) -> List[str]:
        return sorted(self._adapters)

    def get(self, kind: str) -> ProviderAdapter:
        try:
            return self._adapters[kind]
        except KeyError:
            raise UnknownResourceKindError(
                message=f"No provider adapter registered for kind '{kind}'",
                details={"kind": kind, "registered": self.kinds()},
                hint="Registre um Provider Adapter para este kind antes de planejar/aplicar.",
            ) from None

    def require_kinds(self, kinds: Iterable[str]) -> None:
        """Valida, antes de qualquer chamada remota, que todos os kinds têm adapter."""
        for kind in sorted(set(kinds)):
            self.get(kind)

    def requires_replacement(self, kind: str, diff: Diff) -> bool:
        check = getattr(self.get(kind), "requires_replacement", None)
        if check is None:
            return False
        return bool(check(diff))
