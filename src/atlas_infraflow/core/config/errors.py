# src/atlas_infraflow/core/config/errors.py
"""
Exceções canônicas da camada de configuração do Atlas InfraFlow.

Este módulo define a hierarquia oficial de exceções utilizadas durante
o carregamento, validação estrutural e resolução da configuração do engine.

Princípios fundamentais:
    - Exceções são tipadas e semânticas
    - Erros estruturais são tratados como falhas fatais
    - Mensagens de erro são claras e direcionadas ao operador

Invariantes:
    - Todas as exceções de configuração herdam de `ConfigError`
    - Nenhuma exceção aqui representa falha de Provider Adapter

Limites explícitos:
    - Não realiza fallback ou recovery
    - Não depende de Engine, Planner ou Executor
"""


class ConfigError(Exception):
    """
    Exceção base para erros relacionados à configuração do Atlas InfraFlow.

    Esta hierarquia permite:
        - captura genérica de erros de configuração
        - distinção clara entre falhas de configuração e falhas de execução
    """


class ConfigFileNotFoundError(ConfigError):
    """
    Exceção levantada quando um arquivo de configuração explicitamente
    informado não existe.

    Decisões arquiteturais:
        - Um caminho explícito ausente é erro; não há busca implícita
        - Overrides locais ausentes são simplesmente ignorados
    """


class UnsupportedConfigFormatError(ConfigError):
    """
    Exceção levantada quando o formato do arquivo de configuração
    não é suportado pelo loader.

    Formatos suportados (v1):
        - YAML (.yaml, .yml)
        - JSON (.json)
    """


class InvalidConfigRootTypeError(ConfigError):
    """
    Exceção levantada quando o conteúdo raiz da configuração
    não é um dicionário (`dict`).
    """


class ConfigTypeConflictError(ConfigError):
    """
    Exceção levantada quando ocorre conflito de tipos durante o deep-merge.

    Exemplo de conflito:
        - base:     {"engine": {"retry": {"max_attempts": 3}}}
        - override: {"engine": {"retry": "aggressive"}}

    Decisões arquiteturais:
        - O deep-merge é estritamente tipado por chave
        - Nenhum merge parcial é produzido em caso de conflito
    """


class InvalidEngineSettingsError(ConfigError):
    """
    Exceção levantada quando valores de `engine.*` são inválidos
    (ex.: `max_workers` < 1, `max_attempts` < 1, backoff negativo).
    """
