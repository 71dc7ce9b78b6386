"""
工具函数模块
"""

import os
from pathlib import Path
from typing import List, Dict, Optional

# 支持的文件扩展名映射
LANGUAGE_EXTENSIONS = {
    'python': ['.py', '.pyw'],
    'apex': ['.cls'],
    'java': ['.java'],
}

# 反向映射：扩展名 -> 语言
EXTENSION_TO_LANGUAGE = {}
for lang, exts in LANGUAGE_EXTENSIONS.items():
    for ext in exts:
        EXTENSION_TO_LANGUAGE[ext] = lang

# 遍历目录时跳过的目录
SKIPPED_DIRS = ['node_modules', 'venv', 'env', '__pycache__', 'build', 'dist', 'target']

def detect_language(file_path: str) -> Optional[str]:
    """根据文件扩展名检测编程语言"""
    ext = Path(file_path).suffix.lower()
    return EXTENSION_TO_LANGUAGE.get(ext)

def get_files_by_language(directory: str, language: str = 'auto') -> List[str]:
    """获取指定语言的所有源代码文件"""
    files = []
    directory = Path(directory)

    if language == 'auto':
        extensions = set()
        for exts in LANGUAGE_EXTENSIONS.values():
            extensions.update(exts)
    else:
        extensions = set(LANGUAGE_EXTENSIONS.get(language, []))

    # 处理单个文件情况
    if directory.is_file():
        if directory.suffix.lower() in extensions:
            return [str(directory)]
        return []

    for root, dirs, filenames in os.walk(directory):
        # 跳过隐藏目录和常见的非源码目录
        dirs[:] = sorted(d for d in dirs if not d.startswith('.') and d not in SKIPPED_DIRS)

        for filename in sorted(filenames):
            ext = Path(filename).suffix.lower()
            if ext in extensions:
                files.append(os.path.join(root, filename))

    return files

def read_file_content(file_path: str, encoding: str = 'utf-8') -> str:
    """读取文件内容"""
    try:
        with open(file_path, 'r', encoding=encoding) as f:
            return f.read()
    except UnicodeDecodeError:
        # 尝试其他编码
        for enc in ['gbk', 'latin-1']:
            try:
                with open(file_path, 'r', encoding=enc) as f:
                    return f.read()
            except UnicodeDecodeError:
                continue
        return ""

def get_line_content(file_path: str, line_number: int, context_lines: int = 3) -> Dict:
    """获取指定行及其上下文"""
    try:
        with open(file_path, 'r', encoding='utf-8', errors='replace') as f:
            lines = f.readlines()
    except OSError:
        return {'line': '', 'context': []}

    if line_number < 1 or line_number > len(lines):
        return {'line': '', 'context': []}

    start = max(0, line_number - context_lines - 1)
    end = min(len(lines), line_number + context_lines)

    context = []
    for i in range(start, end):
        context.append({
            'line_number': i + 1,
            'content': lines[i].rstrip(),
            'is_target': i + 1 == line_number
        })

    return {
        'line': lines[line_number - 1].rstrip(),
        'context': context
    }
