"""
污点分析器
跟踪外部输入在程序中的传播路径

每个分析单元 (一个类或一个模块) 依次执行三个阶段:
    播种 (Seeding) -> 传播 (Propagation) -> 汇聚点检查 (Sink-Check)
污点状态是单元内的局部值, 单元之间互不影响。
"""

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Set

from utils.helpers import read_file_content, detect_language, get_line_content
from utils.logger import get_logger
from core.ast_engine import ASTEngine

from .ast_nodes import (
    Node, NodeKind, LiteralKind, ASSIGNMENT_KINDS,
    assignment_target, assignment_value, declared_name, is_constant,
)
from .catalog import CatalogMatch, Confidence, Role, entries_from_triples
from .rules import TaintRule, SENSITIVE_KEYWORDS, select_rules
from .scope import ScopeResolver
from .python_frontend import PythonFrontend
from .java_frontend import JavaFrontend


_CONFIDENCE_ORDER = [Confidence.LOW, Confidence.MEDIUM, Confidence.HIGH]

SECRET_PATTERNS = [
    re.compile(r'^(bearer|basic|token)\s+\S{8,}', re.IGNORECASE),
    re.compile(r'^(sk|pk|rk)_(live|test)_[0-9a-zA-Z]{8,}'),
    re.compile(r'^AKIA[0-9A-Z]{16}$'),
    re.compile(r'^gh[pousr]_[0-9A-Za-z]{20,}'),
    re.compile(r'^xox[baprs]-[0-9A-Za-z-]{10,}'),
    re.compile(r'-----BEGIN [A-Z ]*PRIVATE KEY-----'),
    re.compile(r'^eyJ[0-9A-Za-z_-]+\.[0-9A-Za-z_-]+\.'),
]

# 形如随机令牌的长字符串: 无空白, 同时含字母和数字
_TOKEN_SHAPE = re.compile(r'^(?=.*[A-Za-z])(?=.*\d)[A-Za-z0-9+/=_\-]{20,}$')


def weakest(*levels: Confidence) -> Confidence:
    return min(levels, key=_CONFIDENCE_ORDER.index)


def looks_like_secret(text: Optional[str]) -> bool:
    """字面量本身是否像凭据"""
    if not text:
        return False
    value = text.strip()
    if any(p.search(value) for p in SECRET_PATTERNS):
        return True
    return bool(_TOKEN_SHAPE.match(value)) and '://' not in value


def has_sensitive_name(name: Optional[str], keywords=SENSITIVE_KEYWORDS) -> bool:
    if not name:
        return False
    lowered = name.lower()
    return any(k in lowered for k in keywords)


@dataclass
class TaintedValue:
    """污点值的来源信息, 仅用于生成消息"""
    name: str
    source: str
    source_line: int
    confidence: Confidence = Confidence.HIGH
    propagation_path: List[int] = field(default_factory=list)


@dataclass
class TaintState:
    """
    单元内的污点状态

    两个集合只增不减; 检查时净化状态优先于污点状态。
    """
    tainted: Set[str] = field(default_factory=set)
    sanitized: Set[str] = field(default_factory=set)
    origins: Dict[str, TaintedValue] = field(default_factory=dict)

    def taint(self, identity: str, origin: TaintedValue):
        self.tainted.add(identity)
        self.origins.setdefault(identity, origin)

    def sanitize(self, identity: str):
        self.sanitized.add(identity)

    def is_live(self, identity: Optional[str]) -> bool:
        return identity is not None and identity in self.tainted and identity not in self.sanitized

    def clear(self):
        self.tainted.clear()
        self.sanitized.clear()
        self.origins.clear()


@dataclass(frozen=True)
class Violation:
    """一次违规: 锚点节点 + 规则 + 消息"""
    node: Node
    rule_id: str
    message: str
    confidence: Confidence = Confidence.HIGH
    identity: Optional[str] = None
    sink: Optional[str] = None
    sink_category: Optional[str] = None


class ViolationCollector:
    """默认的违规接收端, 按报告顺序收集"""

    def __init__(self):
        self.violations: List[Violation] = []

    def report(self, node: Node, message: str, **details):
        self.violations.append(Violation(node=node, message=message, **details))


class UnitContext:
    """一个分析单元在一次分析中的只读上下文 (作用域解析结果 + 目录匹配缓存)"""

    def __init__(self, unit: Node, rule: TaintRule):
        self.unit = unit
        self.rule = rule
        self.resolver = ScopeResolver(unit)
        self._matches: Dict[int, Optional[CatalogMatch]] = {}
        self._constants: Optional[Set[str]] = None

    def identity(self, node: Node) -> Optional[str]:
        return self.resolver.identity(node)

    def match(self, call: Node) -> Optional[CatalogMatch]:
        key = id(call)
        if key not in self._matches:
            self._matches[key] = self.rule.catalog.match(call, self.resolver.defining_type(call))
        return self._matches[key]

    def role(self, node: Node) -> Optional[Role]:
        if node.kind == NodeKind.CALL:
            match = self.match(node)
            return match.role if match else None
        if node.kind == NodeKind.VARIABLE_REF and node.image:
            match = self.rule.catalog.match_reference(node)
            return match.role if match else None
        return None

    def source_match(self, node: Node) -> Optional[CatalogMatch]:
        """节点本身是否为污点源 (调用, 或属性链形式的输入)"""
        if node.kind == NodeKind.CALL:
            match = self.match(node)
        elif node.kind == NodeKind.VARIABLE_REF and node.image:
            match = self.rule.catalog.match_reference(node)
        else:
            return None
        return match if match and match.role == Role.SOURCE else None

    def pruned(self, node: Node) -> Iterator[Node]:
        """包含自身的先序遍历, 不进入净化函数调用的子树"""
        stack = [node]
        while stack:
            current = stack.pop()
            if current.kind == NodeKind.CALL and self.role(current) == Role.SANITIZER:
                continue
            yield current
            stack.extend(reversed(current.children))

    def refs(self, node: Node) -> Iterator[Node]:
        return (n for n in self.pruned(node) if n.kind == NodeKind.VARIABLE_REF)

    @property
    def constants(self) -> Set[str]:
        """单元内每次赋值都只使用字面量的变量身份"""
        if self._constants is None:
            constant, assigned = set(), set()
            for node in self.unit.descendants(*ASSIGNMENT_KINDS):
                identity = self.identity(node)
                value = assignment_value(node)
                if identity is None or value is None:
                    continue
                (constant if is_constant(value) else assigned).add(identity)
            for node in self.unit.descendants(NodeKind.PARAMETER):
                assigned.add(self.identity(node))
            self._constants = constant - assigned
        return self._constants


class TaintEngine:
    """
    三阶段污点引擎

    引擎本身不保存任何单元状态, 同一个实例可以被多个线程同时使用。
    """

    def __init__(self, rule: TaintRule):
        self.rule = rule
        self.logger = get_logger()

    def context(self, unit: Node) -> UnitContext:
        return UnitContext(unit, self.rule)

    def analyze(self, unit: Node, reporter=None) -> List[Violation]:
        """对一个单元执行 播种 -> 传播 -> 检查, 返回本次产生的违规"""
        collector = reporter if reporter is not None else ViolationCollector()
        ctx = self.context(unit)
        state = self.seed(ctx)
        self.propagate(ctx, state)
        before = len(getattr(collector, 'violations', []))
        self.check_sinks(ctx, state, collector)
        self.logger.debug(
            f"[{self.rule.rule_id}] {unit.name}: tainted={len(state.tainted)} "
            f"sanitized={len(state.sanitized)}"
        )
        violations = getattr(collector, 'violations', [])
        return violations[before:]

    # --- 阶段一: 播种 ---

    def seed(self, ctx: UnitContext) -> TaintState:
        state = TaintState()
        rule = self.rule
        for node in ctx.unit.walk():
            if node.kind == NodeKind.ROUTINE:
                if rule.seed_parameters and self.is_entry_point(node):
                    for param in node.parameters:
                        identity = ctx.identity(param)
                        if identity:
                            state.taint(identity, TaintedValue(
                                param.name or '', f"parameter of {node.name}()", param.line,
                                propagation_path=[param.line],
                            ))
                continue

            if node.kind == NodeKind.PARAMETER or node.kind in ASSIGNMENT_KINDS:
                self._seed_sensitive_declaration(ctx, state, node)

            if node.kind not in ASSIGNMENT_KINDS:
                continue
            identity = ctx.identity(node)
            value = assignment_value(node)
            if identity is None or value is None:
                continue

            source = self._first_source(ctx, value)
            if source is not None:
                src_node, match = source
                state.taint(identity, TaintedValue(
                    declared_name(node) or '', src_node.text, node.line,
                    confidence=match.confidence, propagation_path=[node.line],
                ))
            elif rule.seed_secret_literals and self._is_secret_assignment(node, value):
                state.taint(identity, TaintedValue(
                    declared_name(node) or '', f"literal '{value.value}'", node.line,
                    confidence=Confidence.MEDIUM, propagation_path=[node.line],
                ))
        return state

    def is_entry_point(self, routine: Node) -> bool:
        return routine.is_public or routine.has_annotation(self.rule.entry_annotations)

    def _seed_sensitive_declaration(self, ctx: UnitContext, state: TaintState, node: Node):
        rule = self.rule
        identity = ctx.identity(node)
        if identity is None:
            return
        name = declared_name(node)
        if rule.seed_sensitive_names and has_sensitive_name(name, rule.seed_sensitive_names):
            state.taint(identity, TaintedValue(
                name or '', f"sensitive name '{name}'", node.line, confidence=Confidence.LOW,
            ))
        # 泛型参数也参与匹配: List<Contact>
        declared = node.full_type or node.type_name
        type_name = (declared or '').lower()
        if rule.sensitive_types and type_name and any(t in type_name for t in rule.sensitive_types):
            state.taint(identity, TaintedValue(
                name or '', f"sensitive type '{declared}'", node.line, confidence=Confidence.MEDIUM,
            ))

    def _first_source(self, ctx: UnitContext, value: Node):
        for node in ctx.pruned(value):
            match = ctx.source_match(node)
            if match is not None:
                return node, match
        return None

    def _is_secret_assignment(self, node: Node, value: Node) -> bool:
        if value.kind != NodeKind.LITERAL or value.literal_kind != LiteralKind.STRING:
            return False
        text = (value.value or '').strip()
        if not text or text.lower().startswith('callout:'):
            return False
        return has_sensitive_name(declared_name(node)) or looks_like_secret(text)

    # --- 阶段二: 传播 ---

    def propagate(self, ctx: UnitContext, state: TaintState):
        kinds = ASSIGNMENT_KINDS + (NodeKind.CALL,)
        for node in ctx.unit.descendants(*kinds):
            if node.kind == NodeKind.CALL:
                if ctx.role(node) == Role.VALIDATOR:
                    for arg in node.arguments:
                        for ref in ctx.refs(arg):
                            identity = ctx.identity(ref)
                            if identity:
                                state.sanitize(identity)
                continue
            identity = ctx.identity(node)
            value = assignment_value(node)
            if identity is None or value is None:
                continue
            self._propagate_assignment(ctx, state, node, identity, value)

    def _propagate_assignment(self, ctx: UnitContext, state: TaintState,
                              node: Node, identity: str, value: Node):
        # 类型转换等单子节点包装不影响判断
        while value.kind == NodeKind.OTHER and len(value.children) == 1:
            value = value.children[0]

        # 1. 净化函数优先
        if value.kind == NodeKind.CALL and ctx.role(value) == Role.SANITIZER:
            state.sanitize(identity)
            return

        # 2/3. 调用或拼接表达式中含有污点引用
        if value.kind in (NodeKind.CALL, NodeKind.BINARY):
            for ref in ctx.refs(value):
                if self._inherit(ctx, state, ref, identity, node):
                    return
            return

        # 4. 直接引用 (或包装后的第一个引用) 为污点
        first_ref = next(ctx.refs(value), None)
        if first_ref is not None:
            if self._inherit(ctx, state, first_ref, identity, node):
                return

        # 5. 纯字面量
        if self.rule.literals_sanitize and is_constant(value):
            state.sanitize(identity)

    def _inherit(self, ctx: UnitContext, state: TaintState, ref: Node, identity: str, node: Node) -> bool:
        ref_identity = ctx.identity(ref)
        if not state.is_live(ref_identity):
            return False
        parent = state.origins.get(ref_identity)
        if parent is None:
            origin = TaintedValue(declared_name(node) or '', ref.text, node.line)
        else:
            origin = TaintedValue(
                declared_name(node) or '', parent.source, parent.source_line,
                confidence=parent.confidence,
                propagation_path=parent.propagation_path + [node.line],
            )
        state.taint(identity, origin)
        return True

    # --- 阶段三: 汇聚点检查 ---

    def check_sinks(self, ctx: UnitContext, state: TaintState, reporter):
        for call in ctx.unit.descendants(NodeKind.CALL):
            match = ctx.match(call)
            if match is None or match.role != Role.SINK:
                continue
            for arg in self._inspected_arguments(call, match):
                self._check_argument(ctx, state, reporter, call, match, arg)

    def _inspected_arguments(self, call: Node, match: CatalogMatch):
        args = call.arguments
        index = match.entry.argument
        if index is None:
            return args
        return args[index:index + 1]

    def _check_argument(self, ctx: UnitContext, state: TaintState, reporter,
                        call: Node, match: CatalogMatch, arg: Node):
        rule = self.rule
        category = match.entry.category or rule.category

        def emit(anchor: Node, confidence: Confidence, identity: Optional[str] = None):
            reporter.report(
                anchor,
                rule.format_message(anchor.text, call.text, category),
                rule_id=rule.rule_id,
                confidence=weakest(confidence, match.confidence),
                identity=identity,
                sink=call.text,
                sink_category=category,
            )

        stack = [arg]
        while stack:
            node = stack.pop()
            if node.kind == NodeKind.CALL and ctx.role(node) == Role.SANITIZER:
                continue
            source = ctx.source_match(node)
            if source is not None:
                # 未绑定到变量的污点源, 就地报告, 不再深入其子树
                emit(node, source.confidence)
                continue
            if node.kind == NodeKind.VARIABLE_REF:
                identity = ctx.identity(node)
                if state.is_live(identity):
                    emit(node, state.origins[identity].confidence, identity)
            elif node.kind == NodeKind.LITERAL and rule.flag_secret_literals:
                if self._is_leaked_literal(ctx, node, arg, category):
                    emit(node, Confidence.MEDIUM)
            stack.extend(reversed(node.children))

        if rule.check_concatenation:
            for binary in self._outermost_binaries(ctx, arg):
                if not self._provably_safe(ctx, state, binary):
                    emit(binary, Confidence.MEDIUM)

    def _is_leaked_literal(self, ctx: UnitContext, literal: Node, arg: Node, category: str) -> bool:
        if literal.literal_kind != LiteralKind.STRING:
            return False
        if looks_like_secret(literal.value):
            return True
        # Apex 的端点应当使用 Named Credential (callout:)
        if category == 'endpoint' and ctx.unit.language == 'apex' and literal is self._leading_literal(arg):
            return not (literal.value or '').strip().lower().startswith('callout:')
        return False

    def _leading_literal(self, node: Node) -> Optional[Node]:
        while node.kind == NodeKind.BINARY and node.children:
            node = node.children[0]
        return node if node.kind == NodeKind.LITERAL else None

    def _outermost_binaries(self, ctx: UnitContext, arg: Node) -> List[Node]:
        found = []
        stack = [arg]
        while stack:
            node = stack.pop()
            if node.kind == NodeKind.CALL and ctx.role(node) == Role.SANITIZER:
                continue
            if node.kind == NodeKind.BINARY:
                found.append(node)
                continue
            stack.extend(reversed(node.children))
        return found

    def _provably_safe(self, ctx: UnitContext, state: TaintState, node: Node) -> bool:
        """拼接表达式是否只由字面量、净化结果、已净化变量和常量变量构成"""
        if node.kind == NodeKind.LITERAL:
            return True
        if node.kind == NodeKind.CALL:
            return ctx.role(node) == Role.SANITIZER
        if node.kind == NodeKind.VARIABLE_REF:
            identity = ctx.identity(node)
            return identity in state.sanitized or identity in ctx.constants
        if node.kind in (NodeKind.BINARY, NodeKind.OTHER) and node.children:
            return all(self._provably_safe(ctx, state, c) for c in node.children)
        return False


class TaintAnalyzer:
    """污点分析器 - 把文件解析为分析单元, 对每个单元运行所有启用的规则"""

    def __init__(self, config):
        self.config = config
        self.logger = get_logger()
        self.ast_engine = ASTEngine()

        rule_ids = config.get('static_analysis.taint_analysis.rules', None)
        extra = entries_from_triples(config.get('static_analysis.taint_analysis.extra_entries', []) or [])
        per_rule = config.get('static_analysis.taint_analysis.rule_entries', {}) or {}

        self.rules: List[TaintRule] = []
        for rule in select_rules(rule_ids):
            own = entries_from_triples(per_rule.get(rule.rule_id, []) or [])
            self.rules.append(rule.with_entries(own + extra))
        self.engines = [TaintEngine(rule) for rule in self.rules]

        self.skip_test_units = config.get('static_analysis.taint_analysis.skip_test_units', True)
        self.workers = max(1, int(config.get('system.workers', 1) or 1))

        # 语言 -> 前端
        self.frontends = {
            'python': PythonFrontend(),
            'apex': JavaFrontend(self.ast_engine, language='apex'),
            'java': JavaFrontend(self.ast_engine, language='java'),
        }

    def analyze(self, files: List[str]) -> Dict[str, Any]:
        """分析文件列表"""
        findings = []
        files_analyzed = 0
        units_analyzed = 0

        for file_path in files:
            units = self.parse_file(file_path)
            if units is None:
                continue
            files_analyzed += 1
            units = [u for u in units if not (self.skip_test_units and u.is_test)]
            units_analyzed += len(units)
            for violations in self._run_units(units):
                findings.extend(self._to_finding(v, file_path) for v in violations)

        return {
            'analyzer': 'TaintAnalyzer',
            'files_analyzed': files_analyzed,
            'units_analyzed': units_analyzed,
            'rules': [rule.rule_id for rule in self.rules],
            'findings': findings
        }

    def parse_file(self, file_path: str) -> Optional[List[Node]]:
        """解析单个文件为分析单元列表, 无法处理时返回 None"""
        language = detect_language(file_path)
        frontend = self.frontends.get(language or '')
        if frontend is None:
            return None
        if not frontend.available:
            # 缺少 tree-sitter 时跳过该文件
            self.ast_engine.warn_unavailable()
            return None

        content = read_file_content(file_path)
        if not content:
            return None

        try:
            return frontend.parse(content, file_path)
        except SyntaxError as e:
            self.logger.debug(f"语法错误 {file_path}: {e}")
        except Exception as e:
            self.logger.error(f"分析文件 {file_path} 时出错: {e}")
        return None

    def analyze_unit(self, unit: Node) -> List[Violation]:
        """对一个单元运行所有规则"""
        collector = ViolationCollector()
        for engine in self.engines:
            try:
                engine.analyze(unit, collector)
            except Exception as e:
                # 单个单元出错不影响其他单元
                self.logger.error(f"[{engine.rule.rule_id}] 分析单元 {unit.name} 时出错: {e}")
        return collector.violations

    def _run_units(self, units: List[Node]) -> List[List[Violation]]:
        if self.workers <= 1 or len(units) <= 1:
            return [self.analyze_unit(u) for u in units]
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            return list(pool.map(self.analyze_unit, units))

    def _to_finding(self, violation: Violation, file_path: str) -> Dict:
        rule = next(r for r in self.rules if r.rule_id == violation.rule_id)
        line = violation.node.line
        context = get_line_content(file_path, line, 3)
        code_snippet = '\n'.join(
            f"{c['line_number']:4d} | {c['content']}"
            for c in context.get('context', [])
        )
        return {
            'id': rule.rule_id,
            'title': rule.name,
            'severity': rule.severity,
            'category': 'taint_analysis',
            'description': violation.message,
            'recommendation': rule.hint,
            'file': file_path,
            'line': line,
            'column': violation.node.column,
            'code_snippet': code_snippet,
            'tainted_variable': violation.node.text,
            'identity': violation.identity,
            'sink': violation.sink,
            'sink_category': violation.sink_category,
            'confidence': violation.confidence.value,
            'analyzer': 'TaintAnalyzer'
        }
