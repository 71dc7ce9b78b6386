"""
Taintline - 污点传播安全检查工具
主入口文件
"""

import argparse
import sys
from pathlib import Path

from core.scanner import CodeScanner
from core.config import Config
from core.report import ReportGenerator
from analyzers.static.catalog import CatalogError
from analyzers.static.rules import RULES_BY_ID
from utils.helpers import LANGUAGE_EXTENSIONS
from utils.logger import setup_logger
from utils.banner import get_banner
from colorama import init, Fore, Style

# 初始化colorama
init()

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_FINDINGS = 2

def print_banner():
    """打印程序横幅"""
    print(get_banner())

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='taintline',
        description='Taintline - 污点传播安全检查工具',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='内置规则: ' + ', '.join(RULES_BY_ID)
    )

    parser.add_argument(
        'target',
        nargs='?',
        help='要扫描的目标路径（文件或目录）'
    )

    parser.add_argument(
        '-c', '--config',
        default=None,
        help='配置文件路径（默认: 当前目录下的 taintline.yaml / config.yaml）'
    )

    parser.add_argument(
        '-o', '--output',
        default=None,
        help='报告输出目录（默认: ./reports）'
    )

    parser.add_argument(
        '-f', '--format',
        choices=list(ReportGenerator.FORMATS),
        default='html',
        help='报告格式（默认: html）'
    )

    parser.add_argument(
        '--language',
        choices=list(LANGUAGE_EXTENSIONS) + ['auto'],
        default='auto',
        help='指定源代码语言（默认: auto自动检测）'
    )

    parser.add_argument(
        '--rules',
        nargs='+',
        metavar='RULE_ID',
        help='只运行指定的规则'
    )

    parser.add_argument(
        '--workers',
        type=int,
        default=None,
        help='并行分析单元的线程数'
    )

    parser.add_argument(
        '--min-confidence',
        choices=['low', 'medium', 'high'],
        default=None,
        help='只报告不低于该置信度的发现'
    )

    parser.add_argument(
        '--fail-on-findings',
        action='store_true',
        help='存在发现时以状态码 2 退出'
    )

    parser.add_argument(
        '-q', '--quiet',
        action='store_true',
        help='不显示横幅'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='显示详细输出'
    )

    return parser

def main(argv=None) -> int:
    """主函数"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.quiet:
        print_banner()

    # 设置日志
    log_level = 'DEBUG' if args.verbose else 'INFO'
    logger = setup_logger(log_level)

    # 检查目标参数
    if not args.target:
        parser.print_help()
        print(f"\n{Fore.RED}错误: 请指定要扫描的目标路径{Style.RESET_ALL}")
        return EXIT_USAGE

    # 检查目标是否存在
    target_path = Path(args.target)
    if not target_path.exists():
        print(f"{Fore.RED}错误: 目标路径不存在: {args.target}{Style.RESET_ALL}")
        return EXIT_USAGE

    if args.workers is not None and args.workers < 1:
        print(f"{Fore.RED}错误: --workers 必须大于 0{Style.RESET_ALL}")
        return EXIT_USAGE

    # 加载配置, 命令行参数优先
    config = Config(args.config)
    if args.rules:
        config.set('static_analysis.taint_analysis.rules', args.rules)
    if args.workers is not None:
        config.set('system.workers', args.workers)
    if args.min_confidence:
        config.set('report.min_confidence', args.min_confidence)
    if not args.verbose:
        logger = setup_logger(config.get('system.log_level', 'INFO'))
    output_dir = args.output or config.output_dir

    try:
        scanner = CodeScanner(config)
    except (CatalogError, ValueError) as e:
        logger.error(f"配置错误: {e}")
        return EXIT_USAGE

    print(f"\n{Fore.CYAN}[*] 开始扫描: {args.target}{Style.RESET_ALL}")
    results = scanner.scan(str(target_path), language=args.language)

    # 生成报告
    print(f"\n{Fore.CYAN}[*] 生成报告...{Style.RESET_ALL}")
    report_gen = ReportGenerator(config)
    report_path = report_gen.generate(results, output_dir, args.format)

    # 打印摘要
    print_summary(results)

    print(f"\n{Fore.GREEN}[+] 报告已保存到: {report_path}{Style.RESET_ALL}")

    if args.fail_on_findings and results.get('findings'):
        return EXIT_FINDINGS
    return EXIT_OK

def print_summary(results):
    """打印扫描结果摘要"""
    print(f"\n{Fore.WHITE}{'='*60}{Style.RESET_ALL}")
    print(f"{Fore.YELLOW}扫描结果摘要{Style.RESET_ALL}")
    print(f"{Fore.WHITE}{'='*60}{Style.RESET_ALL}")

    findings = results.get('findings', [])
    critical = sum(1 for r in findings if r.get('severity', '').lower() == 'critical')
    high = sum(1 for r in findings if r.get('severity', '').lower() == 'high')
    medium = sum(1 for r in findings if r.get('severity', '').lower() == 'medium')
    low = sum(1 for r in findings if r.get('severity', '').lower() == 'low')

    print(f"  扫描文件数: {results.get('files_scanned', 0)}")
    print(f"  扫描时间: {results.get('scan_time', 0):.2f}秒")
    print(f"\n  {Fore.RED}严重 (Critical): {critical}{Style.RESET_ALL}")
    print(f"  {Fore.MAGENTA}高危 (High): {high}{Style.RESET_ALL}")
    print(f"  {Fore.YELLOW}中危 (Medium): {medium}{Style.RESET_ALL}")
    print(f"  {Fore.BLUE}低危 (Low): {low}{Style.RESET_ALL}")

    by_rule = results.get('summary', {}).get('by_rule', {})
    for rule_id, count in sorted(by_rule.items()):
        print(f"  {rule_id}: {count}")

    total = len(findings)
    if total > 0:
        print(f"\n  {Fore.RED}[!] 共发现 {total} 个污点流问题{Style.RESET_ALL}")
    else:
        print(f"\n  {Fore.GREEN}[OK] 未发现污点流问题{Style.RESET_ALL}")

if __name__ == '__main__':
    sys.exit(main())
