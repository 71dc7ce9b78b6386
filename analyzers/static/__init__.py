"""
静态分析模块初始化
"""

from .ast_nodes import Node, NodeKind, LiteralKind
from .catalog import Catalog, CatalogEntry, CatalogError, Confidence, Role
from .rules import TaintRule, BUILTIN_RULES, RULES_BY_ID, select_rules
from .scope import ScopeResolver
from .taint import TaintAnalyzer, TaintEngine, TaintState, Violation, ViolationCollector

__all__ = [
    'Node',
    'NodeKind',
    'LiteralKind',
    'Catalog',
    'CatalogEntry',
    'CatalogError',
    'Confidence',
    'Role',
    'TaintRule',
    'BUILTIN_RULES',
    'RULES_BY_ID',
    'select_rules',
    'ScopeResolver',
    'TaintAnalyzer',
    'TaintEngine',
    'TaintState',
    'Violation',
    'ViolationCollector'
]
