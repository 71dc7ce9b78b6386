"""
核心模块初始化
"""

from .config import Config
from .scanner import CodeScanner
from .report import ReportGenerator

__all__ = ['Config', 'CodeScanner', 'ReportGenerator']
