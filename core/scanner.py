"""
代码扫描器核心模块
收集目标文件, 运行静态分析器并汇总结果
"""

import time
from typing import Dict, List, Any
from datetime import datetime

from utils.helpers import get_files_by_language
from utils.logger import get_logger
from .config import Config


CONFIDENCE_LEVELS = ['low', 'medium', 'high']


class CodeScanner:
    """代码扫描器主类"""

    def __init__(self, config: Config):
        self.config = config
        self.logger = get_logger()
        self._static_analyzers = {}
        self._init_analyzers()

    def _init_analyzers(self):
        """初始化分析器"""
        # 延迟导入，避免循环依赖
        from analyzers.static import TaintAnalyzer

        if self.config.taint_analysis_enabled:
            self._static_analyzers['taint'] = TaintAnalyzer(self.config)

    def scan(self, target: str, language: str = 'auto') -> Dict[str, Any]:
        """
        执行代码扫描

        Args:
            target: 目标文件或目录路径
            language: 指定语言或auto自动检测

        Returns:
            扫描结果字典
        """
        start_time = time.time()

        results = {
            'target': target,
            'scan_time': 0,
            'scan_date': datetime.now().isoformat(),
            'files_scanned': 0,
            'findings': [],
            'static_analysis': {},
            'summary': self._calculate_summary([])
        }

        files = self._collect_files(target, language)
        results['files_scanned'] = len(files)

        self.logger.info(f"找到 {len(files)} 个源代码文件")

        if not files:
            self.logger.warning("未找到任何源代码文件")
            return results

        if self.config.static_analysis_enabled:
            self.logger.info("开始静态分析...")
            static_results = self._run_static_analysis(files)
            results['static_analysis'] = static_results
            results['findings'].extend(self._filter_confidence(static_results.get('findings', [])))

        results['findings'].sort(key=lambda f: (f.get('file', ''), f.get('line', 0), f.get('column', 0)))

        # 计算统计信息
        results['scan_time'] = time.time() - start_time
        results['summary'] = self._calculate_summary(results['findings'])

        self.logger.info(f"扫描完成，耗时 {results['scan_time']:.2f} 秒")

        return results

    def _collect_files(self, target: str, language: str) -> List[str]:
        languages = self.config.supported_languages
        if language != 'auto':
            return get_files_by_language(target, language)
        files = []
        for lang in languages:
            files.extend(get_files_by_language(target, lang))
        return sorted(set(files))

    def _run_static_analysis(self, files: List[str]) -> Dict[str, Any]:
        """执行静态分析"""
        results = {
            'findings': [],
            'analyzers': {}
        }

        for name, analyzer in self._static_analyzers.items():
            self.logger.info(f"  运行 {name} 分析器...")
            try:
                analyzer_results = analyzer.analyze(files)
                findings_count = len(analyzer_results.get('findings', []))
                self.logger.info(f"  {name} 分析器完成，发现数量: {findings_count}")
                results['analyzers'][name] = analyzer_results
                results['findings'].extend(analyzer_results.get('findings', []))
            except Exception as e:
                self.logger.error(f"  {name} 分析器出错: {e}")
                results['analyzers'][name] = {'error': str(e)}

        return results

    def _filter_confidence(self, findings: List[Dict]) -> List[Dict]:
        """按 report.min_confidence 过滤"""
        minimum = str(self.config.get('report.min_confidence', 'low')).lower()
        if minimum not in CONFIDENCE_LEVELS:
            self.logger.warning(f"未知的置信度阈值: {minimum}, 使用 low")
            minimum = 'low'
        floor = CONFIDENCE_LEVELS.index(minimum)
        return [
            f for f in findings
            if CONFIDENCE_LEVELS.index(f.get('confidence', 'high')) >= floor
        ]

    def _calculate_summary(self, findings: List[Dict]) -> Dict[str, Any]:
        """计算扫描结果摘要"""
        severity_counts = {
            'critical': 0,
            'high': 0,
            'medium': 0,
            'low': 0,
            'info': 0
        }

        rule_counts = {}
        confidence_counts = {level: 0 for level in CONFIDENCE_LEVELS}

        for finding in findings:
            severity = finding.get('severity', 'info').lower()
            rule_id = finding.get('id', 'unknown')
            confidence = finding.get('confidence', 'high')

            severity_counts[severity] = severity_counts.get(severity, 0) + 1
            rule_counts[rule_id] = rule_counts.get(rule_id, 0) + 1
            confidence_counts[confidence] = confidence_counts.get(confidence, 0) + 1

        return {
            'total_findings': len(findings),
            'by_severity': severity_counts,
            'by_rule': rule_counts,
            'by_confidence': confidence_counts
        }
