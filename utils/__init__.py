"""
工具模块初始化
"""

from .logger import setup_logger, get_logger
from .helpers import (
    detect_language,
    get_files_by_language,
    read_file_content,
    get_line_content,
    LANGUAGE_EXTENSIONS,
    EXTENSION_TO_LANGUAGE
)

__all__ = [
    'setup_logger',
    'get_logger',
    'detect_language',
    'get_files_by_language',
    'read_file_content',
    'get_line_content',
    'LANGUAGE_EXTENSIONS',
    'EXTENSION_TO_LANGUAGE'
]
