"""
报告生成模块
支持HTML、JSON、TXT格式的报告输出
"""

import os
import json
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, List
from jinja2 import Environment

from .config import Config
from utils.logger import get_logger


SEVERITY_LABELS = {'critical': '严重', 'high': '高危', 'medium': '中危', 'low': '低危', 'info': '提示'}

CONFIDENCE_LABELS = {'high': '高', 'medium': '中', 'low': '低'}


class ReportGenerator:
    """报告生成器"""

    FORMATS = ('html', 'json', 'txt', 'all')

    def __init__(self, config: Config):
        self.config = config
        self.logger = get_logger()

    def generate(self, results: Dict[str, Any], output_dir: str,
                 format: str = 'html') -> str:
        """
        生成扫描报告

        Args:
            results: 扫描结果
            output_dir: 输出目录
            format: 报告格式 (html/json/txt/all)

        Returns:
            报告文件路径 (all 时返回 HTML 报告路径)
        """
        if format not in self.FORMATS:
            raise ValueError(f"unsupported report format: {format}")

        # 确保输出目录存在
        Path(output_dir).mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        base_name = f"report_{timestamp}"

        if format == 'all':
            self._generate_json(results, output_dir, base_name)
            self._generate_txt(results, output_dir, base_name)
            return self._generate_html(results, output_dir, base_name)
        elif format == 'json':
            return self._generate_json(results, output_dir, base_name)
        elif format == 'txt':
            return self._generate_txt(results, output_dir, base_name)
        return self._generate_html(results, output_dir, base_name)

    def _view_findings(self, findings: List[Dict]) -> List[Dict]:
        """渲染用的副本, 不修改扫描结果本身"""
        view = []
        for finding in findings:
            item = dict(finding)
            severity = str(item.get('severity', 'low')).lower()
            item['severity'] = severity
            item['severity_label'] = SEVERITY_LABELS.get(severity, severity.upper())
            item['confidence_label'] = CONFIDENCE_LABELS.get(item.get('confidence', 'high'), '')
            view.append(item)
        return view

    def _generate_html(self, results: Dict, output_dir: str, base_name: str) -> str:
        """生成HTML报告"""
        # 启用自动转义以防止HTML注入 (描述和代码片段来自被扫描的源码)
        env = Environment(autoescape=True)
        template = env.from_string(self._get_html_template())

        html_content = template.render(
            title="Taintline 污点分析报告",
            target=results.get('target', 'Unknown'),
            scan_date=results.get('scan_date') or datetime.now().isoformat(),
            scan_time=results.get('scan_time', 0),
            files_scanned=results.get('files_scanned', 0),
            summary=results.get('summary', {}),
            findings=self._view_findings(results.get('findings', []))
        )

        output_path = os.path.join(output_dir, f"{base_name}.html")
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(html_content)

        self.logger.debug(f"HTML 报告: {output_path}")
        return output_path

    def _get_html_template(self) -> str:
        """获取HTML模板"""
        return '''<!DOCTYPE html>
<html lang="zh-CN">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{{ title }}</title>
    <style>
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body { font-family: 'Inter', -apple-system, sans-serif; background-color: #f8fafc; color: #1e293b; line-height: 1.5; }
        .container { max-width: 1100px; margin: 0 auto; padding: 30px 20px; }
        .header { background: linear-gradient(135deg, #0f172a 0%, #1e293b 100%); color: #f8fafc; padding: 40px; border-radius: 16px; margin-bottom: 24px; }
        .header h1 { font-size: 2rem; font-weight: 800; margin-bottom: 12px; }
        .header .meta { display: flex; flex-wrap: wrap; gap: 24px; opacity: 0.9; font-size: 0.875rem; }
        .header code { background: rgba(255,255,255,0.15); padding: 2px 8px; border-radius: 6px; font-family: monospace; }

        .stats { display: grid; grid-template-columns: repeat(auto-fit, minmax(140px, 1fr)); gap: 16px; margin-bottom: 24px; }
        .stat-card { background: white; padding: 20px; border-radius: 12px; text-align: center; border: 1px solid #e2e8f0; }
        .stat-card .number { font-size: 1.875rem; font-weight: 800; display: block; }
        .stat-card .label { font-size: 0.75rem; font-weight: 600; color: #64748b; text-transform: uppercase; }
        .critical .number { color: #ef4444; }
        .high .number { color: #f97316; }
        .medium .number { color: #eab308; }
        .low .number { color: #06b6d4; }

        .rules { background: white; border-radius: 16px; border: 1px solid #e2e8f0; padding: 20px 24px; margin-bottom: 24px; font-size: 0.875rem; }
        .rules span { display: inline-block; margin-right: 16px; }

        .findings { background: white; border-radius: 16px; border: 1px solid #e2e8f0; }
        .findings-header { padding: 20px 24px; background: #f8fafc; border-bottom: 1px solid #e2e8f0; font-weight: 800; font-size: 1.1rem; }
        .finding { padding: 32px 24px; border-bottom: 1px solid #f1f5f9; }
        .finding-header { display: flex; justify-content: space-between; align-items: flex-start; margin-bottom: 16px; }
        .finding-title { font-size: 1.2rem; font-weight: 700; color: #0f172a; }
        .rule-tag { padding: 4px 10px; border-radius: 6px; font-size: 0.7rem; font-weight: 800; background: #dbeafe; color: #1e40af; margin-right: 8px; }
        .severity-badge { padding: 4px 12px; border-radius: 20px; font-size: 0.7rem; font-weight: 800; }
        .severity-badge.critical { background: #ef4444; color: white; }
        .severity-badge.high { background: #f97316; color: white; }
        .severity-badge.medium { background: #facc15; color: #854d0e; }
        .severity-badge.low { background: #22d3ee; color: #164e63; }
        .finding-meta { display: flex; flex-wrap: wrap; gap: 16px; margin-bottom: 16px; font-size: 0.85rem; color: #64748b; }
        .finding-meta b { color: #475569; }
        .finding-desc { margin-bottom: 20px; color: #334155; font-size: 0.95rem; }
        .finding-code { background: #0f172a; border-radius: 12px; padding: 20px; margin-bottom: 20px; color: #e2e8f0; font-family: 'Fira Code', monospace; font-size: 0.85rem; overflow-x: auto; }
        .recommendation { background: #f0fdf4; border: 1px solid #dcfce7; padding: 16px 20px; border-radius: 10px; color: #166534; font-size: 0.9rem; }
        .no-findings { padding: 80px 40px; text-align: center; color: #64748b; }
        .no-findings h2 { color: #0f172a; margin-bottom: 8px; }
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>{{ title }}</h1>
            <div class="meta">
                <span>目标: <code>{{ target }}</code></span>
                <span>时间: {{ scan_date }}</span>
                <span>耗时: {{ "%.2f"|format(scan_time) }}s</span>
                <span>文件: {{ files_scanned }}</span>
            </div>
        </div>

        <div class="stats">
            {% for level in ['critical', 'high', 'medium', 'low'] %}
            <div class="stat-card {{ level }}">
                <span class="number">{{ summary.by_severity[level]|default(0) if summary.by_severity else 0 }}</span>
                <span class="label">{{ level }}</span>
            </div>
            {% endfor %}
            <div class="stat-card" style="background:#f1f5f9">
                <span class="number">{{ summary.total_findings|default(0) }}</span>
                <span class="label">总计</span>
            </div>
        </div>

        {% if summary.by_rule %}
        <div class="rules">
            {% for rule_id, count in summary.by_rule|dictsort %}
            <span><b>{{ rule_id }}</b>: {{ count }}</span>
            {% endfor %}
        </div>
        {% endif %}

        <div class="findings">
            <div class="findings-header">发现列表</div>
            {% for finding in findings %}
            <div class="finding" data-severity="{{ finding.severity }}" data-rule="{{ finding.id }}">
                <div class="finding-header">
                    <div class="finding-title"><span class="rule-tag">{{ finding.id }}</span>{{ finding.title }}</div>
                    <span class="severity-badge {{ finding.severity }}">{{ finding.severity_label }}</span>
                </div>
                <div class="finding-meta">
                    {% if finding.file %}<span><b>文件:</b> {{ finding.file }}</span>{% endif %}
                    {% if finding.line %}<span><b>行号:</b> {{ finding.line }}</span>{% endif %}
                    {% if finding.sink %}<span><b>汇聚点:</b> {{ finding.sink }}</span>{% endif %}
                    <span><b>置信度:</b> {{ finding.confidence_label }}</span>
                </div>
                <div class="finding-desc">{{ finding.description }}</div>
                {% if finding.code_snippet %}
                <div class="finding-code"><pre><code>{{ finding.code_snippet }}</code></pre></div>
                {% endif %}
                {% if finding.recommendation %}
                <div class="recommendation"><b>修复方案:</b> {{ finding.recommendation }}</div>
                {% endif %}
            </div>
            {% else %}
            <div class="no-findings">
                <h2>未发现问题</h2>
                <p>没有检测到未经净化的污点流。</p>
            </div>
            {% endfor %}
        </div>
    </div>
</body>
</html>'''

    def _generate_json(self, results: Dict, output_dir: str, base_name: str) -> str:
        """生成JSON报告"""
        output_path = os.path.join(output_dir, f"{base_name}.json")
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(results, f, ensure_ascii=False, indent=2, default=str)
        return output_path

    def _generate_txt(self, results: Dict, output_dir: str, base_name: str) -> str:
        """生成文本报告"""
        lines = []
        lines.append("=" * 70)
        lines.append("Taintline 污点分析报告")
        lines.append("=" * 70)
        lines.append(f"\n扫描目标: {results.get('target', '')}")
        lines.append(f"扫描时间: {results.get('scan_date', '')}")
        lines.append(f"扫描耗时: {results.get('scan_time', 0):.2f} 秒")
        lines.append(f"扫描文件: {results.get('files_scanned', 0)} 个")

        summary = results.get('summary', {})
        lines.append(f"\n{'=' * 70}")
        lines.append("扫描结果摘要")
        lines.append("=" * 70)
        lines.append(f"总发现数: {summary.get('total_findings', 0)}")

        by_severity = summary.get('by_severity', {})
        lines.append(f"  严重: {by_severity.get('critical', 0)}")
        lines.append(f"  高危: {by_severity.get('high', 0)}")
        lines.append(f"  中危: {by_severity.get('medium', 0)}")
        lines.append(f"  低危: {by_severity.get('low', 0)}")

        for rule_id, count in sorted(summary.get('by_rule', {}).items()):
            lines.append(f"  {rule_id}: {count}")

        findings = results.get('findings', [])
        if findings:
            lines.append(f"\n{'=' * 70}")
            lines.append("详细发现")
            lines.append("=" * 70)

            for i, finding in enumerate(findings, 1):
                lines.append(f"\n[{i}] [{finding.get('id', '')}] {finding.get('title', 'Unknown')}")
                lines.append(f"    严重程度: {finding.get('severity', 'unknown')}")
                lines.append(f"    置信度: {finding.get('confidence', 'high')}")
                lines.append(f"    文件: {finding.get('file', '')}")
                lines.append(f"    行号: {finding.get('line', 0)}")
                lines.append(f"    描述: {finding.get('description', '')}")
                if finding.get('recommendation'):
                    lines.append(f"    建议: {finding.get('recommendation')}")

        output_path = os.path.join(output_dir, f"{base_name}.txt")
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write('\n'.join(lines) + '\n')

        return output_path
