"""Persistência canônica do estado aplicado (State Store v1).

O State Store é a única entidade durável do Atlas InfraFlow e a única fonte
de verdade sobre "o que existe hoje". Cada recurso criado com sucesso tem
exatamente um `StateRecord`; a ausência de registro significa "ainda não
criado".

Decisões (v1):
- Superfície chave-valor indexada por (kind, name): read-all, upsert, delete
- Escrita atômica por chave (arquivo temporário + `os.replace`)
- Sem locking distribuído: semântica de operador único, run única
- Last-writer-wins por recurso; nenhum Step escreve a chave de outro

Este módulo implementa a Store sem acoplamento com planner ou executor: o
handle é passado explicitamente (não existe singleton de estado global).

Limites explícitos:
- Não executa chamadas remotas
- Não decide quando gravar (apenas o Executor grava, após sucesso confirmado)
- Não faz rollback/compensação
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Protocol, Union

from atlas_infraflow.core.config.hashing import compute_config_hash
from atlas_infraflow.core.config.settings import resolve_state_path
from atlas_infraflow.core.model.types import ResourceKey


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class StateRecord:
    """Registro durável do último estado aplicado com sucesso de um recurso."""

    kind: str
    name: str
    last_applied_attributes: Dict[str, Any]
    provider_id: str
    outputs: Dict[str, Any] = field(default_factory=dict)
    dependencies: FrozenSet[ResourceKey] = frozenset()
    updated_at: Optional[str] = None

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.kind, self.name)

    def resolved_outputs(self) -> Dict[str, Any]:
        """Valores disponíveis para referências: atributos aplicados, saídas e `id`."""
        merged: Dict[str, Any] = dict(self.last_applied_attributes)
        merged.update(self.outputs)
        merged["id"] = self.provider_id
        return merged

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "provider_id": self.provider_id,
            "last_applied_attributes": dict(self.last_applied_attributes),
            "outputs": dict(self.outputs),
            "dependencies": sorted(str(k) for k in self.dependencies),
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StateRecord":
        return cls(
            kind=data["kind"],
            name=data["name"],
            provider_id=str(data["provider_id"]),
            last_applied_attributes=dict(data.get("last_applied_attributes", {}) or {}),
            outputs=dict(data.get("outputs", {}) or {}),
            dependencies=frozenset(ResourceKey.parse(k) for k in (data.get("dependencies", []) or [])),
            updated_at=data.get("updated_at"),
        )


class StateBackend(Protocol):
    """Fronteira de persistência: superfície chave-valor por (kind, name)."""

    def read_all(self) -> Dict[ResourceKey, Dict[str, Any]]:
        ...

    def upsert(self, key: ResourceKey, payload: Dict[str, Any]) -> None:
        ...

    def delete(self, key: ResourceKey) -> None:
        ...


class InMemoryStateBackend:
    """Backend volátil (testes e execuções efêmeras)."""

    def __init__(self, initial: Optional[Mapping[ResourceKey, Dict[str, Any]]] = None):
        self._lock = threading.Lock()
        self._data: Dict[ResourceKey, str] = {}
        for key, payload in (initial or {}).items():
            self._data[key] = json.dumps(payload, sort_keys=True)

    def read_all(self) -> Dict[ResourceKey, Dict[str, Any]]:
        with self._lock:
            return {k: json.loads(v) for k, v in self._data.items()}

    def upsert(self, key: ResourceKey, payload: Dict[str, Any]) -> None:
        raw = json.dumps(payload, sort_keys=True)
        with self._lock:
            self._data[key] = raw

    def delete(self, key: ResourceKey) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonDirectoryStateBackend:
    """Backend durável: um arquivo JSON por recurso em `root/<kind>/<name>.json`."""

    def __init__(self, *, root: Union[str, Path]):
        self.root = Path(root)

    def record_path(self, key: ResourceKey) -> Path:
        return self.root / key.kind / f"{key.name}.json"

    def read_all(self) -> Dict[ResourceKey, Dict[str, Any]]:
        records: Dict[ResourceKey, Dict[str, Any]] = {}
        if not self.root.exists():
            return records
        for path in sorted(self.root.glob("*/*.json")):
            key = ResourceKey(kind=path.parent.name, name=path.stem)
            records[key] = json.loads(path.read_text(encoding="utf-8"))
        return records

    def upsert(self, key: ResourceKey, payload: Dict[str, Any]) -> None:
        path = self.record_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{key.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def delete(self, key: ResourceKey) -> None:
        path = self.record_path(key)
        if path.exists():
            path.unlink()


class StateStore:
    """Handle explícito do estado aplicado, passado a planner e executor."""

    def __init__(self, backend: Optional[StateBackend] = None):
        self.backend: StateBackend = backend if backend is not None else InMemoryStateBackend()

    @classmethod
    def in_directory(cls, root: Union[str, Path]) -> "StateStore":
        return cls(JsonDirectoryStateBackend(root=root))

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "StateStore":
        """Store em diretório quando `state.path` está definido; em memória caso contrário."""
        path = resolve_state_path(config)
        return cls.in_directory(path) if path is not None else cls()

    # ------------------------------------------------------------------
    # Leitura
    # ------------------------------------------------------------------
    def all(self) -> Dict[ResourceKey, StateRecord]:
        return {k: StateRecord.from_dict(v) for k, v in sorted(self.backend.read_all().items())}

    def get(self, key: ResourceKey) -> Optional[StateRecord]:
        return self.all().get(key)

    def keys(self) -> List[ResourceKey]:
        return list(self.all())

    def __contains__(self, key: object) -> bool:
        return key in self.backend.read_all()

    def fingerprint(self) -> str:
        """Hash canônico de todos os registros (detecção de plano obsoleto)."""
        snapshot = {str(k): v for k, v in self.backend.read_all().items()}
        return compute_config_hash(snapshot)

    # ------------------------------------------------------------------
    # Escrita (apenas o Executor, após sucesso confirmado pelo provider)
    # ------------------------------------------------------------------
    def put(self, record: StateRecord) -> StateRecord:
        if record.updated_at is None:
            record = StateRecord(
                kind=record.kind,
                name=record.name,
                last_applied_attributes=record.last_applied_attributes,
                provider_id=record.provider_id,
                outputs=record.outputs,
                dependencies=record.dependencies,
                updated_at=_utc_now_iso(),
            )
        self.backend.upsert(record.key, record.to_dict())
        return record

    def remove(self, key: ResourceKey) -> None:
        self.backend.delete(key)

    def put_many(self, records: Iterable[StateRecord]) -> None:
        for record in records:
            self.put(record)
