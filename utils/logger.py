"""
日志工具模块
"""

import logging
import sys
from colorama import Fore, Style

LOGGER_NAME = 'Taintline'

class ColoredFormatter(logging.Formatter):
    """带颜色的日志格式化器"""

    COLORS = {
        'DEBUG': Fore.BLUE,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.RED + Style.BRIGHT
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        # 复制一份再着色, 不影响同一记录的其他处理器
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{Style.RESET_ALL}"
        record.msg = f"{color}{record.getMessage()}{Style.RESET_ALL}"
        record.args = None
        return super().format(record)

def setup_logger(level='INFO'):
    """设置日志器"""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))

    # 控制台处理器
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, level.upper()))

    # 格式化器
    formatter = ColoredFormatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)

    # 避免重复添加处理器
    if not logger.handlers:
        logger.addHandler(console_handler)
    else:
        for handler in logger.handlers:
            handler.setLevel(getattr(logging, level.upper()))

    return logger

def get_logger():
    """获取日志器"""
    return logging.getLogger(LOGGER_NAME)
