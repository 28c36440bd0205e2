# src/atlas_infraflow/core/config/hashing.py
"""
Hashing canônico do Atlas InfraFlow.

Este módulo implementa a geração de hash determinístico de estruturas
serializáveis. O mesmo algoritmo identifica:
    - a configuração efetiva de uma run (`compute_config_hash`)
    - o relatório de um plano (`plan_id`)
    - o snapshot do State Store (fingerprint para detecção de plano obsoleto)

Política de hashing (v1):
    - Serialização JSON canônica (chaves ordenadas, separadores compactos)
    - Codificação UTF-8
    - SHA-256, hexadecimal de 64 caracteres

Limites explícitos:
    - Não carrega nem persiste nada
    - Não inclui informações de ambiente ou runtime
"""


import json
import hashlib
from typing import Any, Dict


def canonical_hash(data: Any) -> str:
    """Hash SHA-256 da serialização JSON canônica de `data`."""
    canonical_json = json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()


def compute_config_hash(config: Dict[str, Any]) -> str:
    """
    Gera um hash determinístico de uma configuração (ou snapshot) em dicionário.

    Invariantes:
        - Estruturas equivalentes produzem o mesmo hash
        - O hash é independente da ordem original das chaves

    Raises:
        TypeError: Se o objeto fornecido não for um dicionário.
    """

    if not isinstance(config, dict):
        raise TypeError(
            f"Config para hashing deve ser dict, recebido: {type(config).__name__}"
        )

    return canonical_hash(config)
