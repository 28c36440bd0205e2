"""
Graph Builder do Atlas InfraFlow.

Resolve referências entre declarações em arestas explícitas e produz um
DAG de `ResourceNode`s (`ResourceGraph`). Ciclos e referências a recursos
inexistentes são erros de configuração fatais.
"""

from .builder import ResourceGraph, ResourceNode, build_graph

__all__ = ["ResourceGraph", "ResourceNode", "build_graph"]
