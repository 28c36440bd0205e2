# src/atlas_infraflow/__init__.py
"""
Atlas InfraFlow — engine declarativo de reconciliação de grafos de recursos de cloud.

Este pacote raiz define o namespace público do Atlas InfraFlow. A partir
de declarações tipadas de recursos (cujos atributos são literais ou
referências a saídas de outros recursos), o engine:

    - constrói o grafo de dependências (DAG)
    - calcula um plano (Create / Update / Replace / Delete / NoOp)
      comparando declarações com o State Store
    - aplica o plano aceito via Provider Adapters plugáveis, com
      paralelismo limitado e gravação incremental de estado

Arquitetura em alto nível:
    - core.model        → declarações, referências e valores diferidos
    - core.graph        → graph builder
    - core.engine       → planner, revisão, retry e executor
    - core.config       → carregamento, merge e hashing de configuração
    - core.traceability → Run Manifest e Event Log
    - persistence       → State Store (memória ou diretório JSON)
    - providers         → contrato de Provider Adapter e registro por kind

Limites explícitos:
    - Não define schemas concretos (VPC, instância, banco...)
    - Não implementa linguagem de expressões ou templates
    - Não faz locking distribuído de estado
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
