"""
程序横幅模块
"""

from colorama import Fore, Style

def get_banner():
    """获取程序横幅"""
    # 使用 r 前缀处理 ASCII 艺术中的反斜杠
    content = rf"""
{Fore.CYAN}
  _____     _       _   _ _
 |_   _|_ _(_)_ __ | |_| (_)_ __   ___
   | |/ _` | | '_ \| __| | | '_ \ / _ \
   | | (_| | | | | | |_| | | | | |  __/
   |_|\__,_|_|_| |_|\__|_|_|_| |_|\___|
{Style.RESET_ALL}
{Fore.YELLOW}  Taintline 污点传播安全检查工具{Style.RESET_ALL}
{Fore.GREEN}  支持语言: Python, Apex, Java{Style.RESET_ALL}
{Fore.WHITE}  ============================================{Style.RESET_ALL}
"""
    return content
