"""
分析器模块初始化
"""

from .static import TaintAnalyzer, TaintEngine

__all__ = [
    'TaintAnalyzer',
    'TaintEngine'
]
