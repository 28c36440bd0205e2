# src/atlas_infraflow/core/__init__.py
"""
Core do Atlas InfraFlow.

Este pacote contém a implementação canônica e independente de providers
do Atlas InfraFlow: modelo de recursos, grafo de dependências,
planejamento, execução e rastreabilidade.

O core é projetado para ser:
    - determinístico
    - testável de forma isolada (adapters falsos, State Store em memória)
    - livre de schemas concretos de cloud

Componentes principais:
    - model        → declarações, referências e valores diferidos
    - graph        → DAG de recursos e detecção de ciclos
    - engine       → planner, revisão, retry e executor
    - config       → resolução de configuração (merge, defaults, hashing)
    - traceability → Run Manifest e Event Log para auditoria

Limites explícitos:
    - Não conhece schemas de kinds concretos
    - Não adquire credenciais
    - Não faz parsing de argumentos de CLI
"""
