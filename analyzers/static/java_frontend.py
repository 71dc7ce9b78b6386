"""
Apex / Java 前端
使用 tree-sitter 的 Java 语法解析源码, 转换为统一语法树节点

Apex 与 Java 语法足够接近: 解析前先做一次保持行号不变的预处理,
把 Apex 特有的写法 (单引号字符串、内联 SOQL、global、sharing 声明) 改写成合法的 Java。
"""

import re
from typing import List, Optional, Tuple

from utils.logger import get_logger

from .ast_nodes import Node, NodeKind, LiteralKind


CLASS_TYPES = ('class_declaration', 'interface_declaration', 'enum_declaration')

ROUTINE_TYPES = ('method_declaration', 'constructor_declaration')

ARITHMETIC_OPERATORS = ('+', '-', '*', '/', '%')

NUMBER_TYPES = (
    'decimal_integer_literal', 'hex_integer_literal', 'octal_integer_literal',
    'binary_integer_literal', 'decimal_floating_point_literal', 'hex_floating_point_literal',
)

SKIPPED_TYPES = (
    'line_comment', 'block_comment', 'comment', 'modifiers', 'type_identifier',
    'generic_type', 'scoped_type_identifier', 'array_type', 'integral_type',
    'floating_point_type', 'boolean_type', 'void_type', 'type_arguments',
    'type_parameters', 'dimensions', 'superclass', 'super_interfaces',
    'package_declaration', 'import_declaration', 'break_statement', 'continue_statement',
)

_SINGLE_QUOTED = re.compile(r"'((?:\\.|[^'\\\n])*)'")
_INLINE_QUERY = re.compile(r'\[\s*(SELECT|FIND)\b[^\]]*\]', re.IGNORECASE)
_SHARING = re.compile(r'\b(with|without|inherited)\s+sharing\b', re.IGNORECASE)
_APEX_ONLY_MODIFIERS = re.compile(r'\b(override|virtual)\b', re.IGNORECASE)


def _blank(match) -> str:
    return ' ' * len(match.group(0))


def _double_quote(match) -> str:
    return '"' + match.group(1).replace('"', "'") + '"'


def _query_literal(match) -> str:
    text = match.group(0)
    inner = text[1:-1].replace('"', "'")
    newlines = inner.count('\n')
    # 字符串字面量不能跨行, 把换行移到字面量之后以保持后续行号
    return '"' + ' '.join(inner.split()) + '"' + '\n' * newlines


def preprocess_apex(source: str) -> str:
    """把 Apex 源码改写为 tree-sitter Java 语法可以解析的形式, 行号保持不变"""
    code = _SINGLE_QUOTED.sub(_double_quote, source)
    code = _INLINE_QUERY.sub(_query_literal, code)
    code = _SHARING.sub(_blank, code)
    code = _APEX_ONLY_MODIFIERS.sub(_blank, code)
    code = re.sub(r'\bglobal\b', 'public', code, flags=re.IGNORECASE)
    code = re.sub(r'\btestMethod\b', '@isTest   ', code, flags=re.IGNORECASE)
    code = re.sub(r'\bwebservice\b', '@WebService', code, flags=re.IGNORECASE)
    return code


class JavaFrontend:
    """Apex / Java 源码 -> 分析单元"""

    def __init__(self, ast_engine, language: str = 'apex'):
        self.ast_engine = ast_engine
        self.language = language
        self.logger = get_logger()

    @property
    def available(self) -> bool:
        return self.ast_engine.available

    def parse(self, source: str, path: str = '<string>') -> List[Node]:
        if not self.available:
            self.ast_engine.warn_unavailable()
            return []
        code = preprocess_apex(source) if self.language == 'apex' else source
        source_bytes = code.encode('utf-8')
        tree = self.ast_engine.parse_code(source_bytes, self.language)
        if tree is None:
            return []
        if tree.root_node.has_error:
            self.logger.debug(f"{path}: 部分语法无法识别, 已跳过出错的片段")
        converter = _Converter(self.ast_engine, source_bytes, path, self.language)
        return converter.units(tree.root_node)


class _Converter:

    def __init__(self, ast_engine, source_bytes: bytes, path: str, language: str):
        self.ast_engine = ast_engine
        self.source_bytes = source_bytes
        self.path = path
        self.language = language

    def text(self, node) -> str:
        return self.ast_engine.get_node_text(node, self.source_bytes)

    def units(self, root) -> List[Node]:
        units = []
        for node in self._top_level_classes(root):
            modifiers, annotations = self._modifiers(node)
            name_node = node.child_by_field_name('name')
            units.append(Node(
                NodeKind.UNIT, tuple(self._class_body(node)),
                name=self.text(name_node) if name_node else '<anonymous>',
                modifiers=modifiers, annotations=annotations,
                line=node.start_point[0] + 1, column=node.start_point[1] + 1,
                language=self.language,
                is_test=any(a.lower() == 'istest' for a in annotations),
                path=self.path,
            ))
        return units

    def _top_level_classes(self, root) -> List:
        found = []
        for child in root.children:
            if child.type in CLASS_TYPES:
                found.append(child)
            elif child.type == 'ERROR':
                found.extend(self._top_level_classes(child))
        return found

    # --- 声明 ---

    def _modifiers(self, node) -> Tuple[frozenset, Tuple[str, ...]]:
        keywords = set()
        annotations = []
        for child in node.children:
            if child.type != 'modifiers':
                continue
            for mod in child.children:
                if mod.type in ('marker_annotation', 'annotation'):
                    name_node = mod.child_by_field_name('name')
                    name = self.text(name_node) if name_node else self.text(mod).lstrip('@')
                    annotations.append(name.split('.')[-1])
                else:
                    keywords.add(self.text(mod).lower())
        return frozenset(keywords), tuple(annotations)

    def _class_body(self, node) -> List[Node]:
        body = node.child_by_field_name('body')
        if body is None:
            return []
        members = []
        for child in body.named_children:
            if child.type == 'enum_body_declarations':
                for inner in child.named_children:
                    members.extend(self._member(inner))
            else:
                members.extend(self._member(child))
        return members

    def _member(self, node) -> List[Node]:
        if node.type == 'field_declaration':
            return self._declarators(node, NodeKind.FIELD_DECL)
        if node.type in ROUTINE_TYPES:
            return [self._routine(node)]
        if node.type in CLASS_TYPES:
            # 内部类并入外层单元
            return [Node(NodeKind.OTHER, tuple(self._class_body(node)),
                         name=self._name(node), line=node.start_point[0] + 1,
                         column=node.start_point[1] + 1)]
        # 初始化块、无法识别的成员 (ERROR) 等
        return self._convert(node)

    def _routine(self, node) -> Node:
        modifiers, annotations = self._modifiers(node)
        children = []
        params = node.child_by_field_name('parameters')
        if params is not None:
            for param in params.named_children:
                parameter = self._parameter(param)
                if parameter is not None:
                    children.append(parameter)
        body = node.child_by_field_name('body')
        if body is not None:
            for stmt in body.named_children:
                children.extend(self._convert(stmt))
        return Node(
            NodeKind.ROUTINE, tuple(children), name=self._name(node),
            modifiers=modifiers, annotations=annotations,
            line=node.start_point[0] + 1, column=node.start_point[1] + 1,
        )

    def _parameter(self, param) -> Optional[Node]:
        if param.type not in ('formal_parameter', 'spread_parameter', 'catch_formal_parameter'):
            return None
        name_node = param.child_by_field_name('name')
        if name_node is None:
            declarator = next((c for c in param.named_children if c.type == 'variable_declarator'), None)
            name_node = declarator.child_by_field_name('name') if declarator else None
        if name_node is None:
            return None
        type_node = param.child_by_field_name('type')
        return Node(
            NodeKind.PARAMETER, name=self.text(name_node),
            type_name=self._type_name(type_node), full_type=self._full_type(type_node),
            line=name_node.start_point[0] + 1, column=name_node.start_point[1] + 1,
        )

    def _declarators(self, node, kind: NodeKind) -> List[Node]:
        """字段 / 局部变量声明, 每个 declarator 一个节点"""
        type_node = node.child_by_field_name('type')
        type_name, full_type = self._type_name(type_node), self._full_type(type_node)
        modifiers, annotations = self._modifiers(node)
        decls = []
        for declarator in node.children_by_field_name('declarator'):
            name_node = declarator.child_by_field_name('name')
            if name_node is None:
                continue
            children = [self._ref_for(name_node)]
            value = declarator.child_by_field_name('value')
            if value is not None:
                children.append(self._expr(value))
            decls.append(Node(
                kind, tuple(children), type_name=type_name, full_type=full_type,
                modifiers=modifiers, annotations=annotations,
                line=declarator.start_point[0] + 1, column=declarator.start_point[1] + 1,
            ))
        return decls

    def _name(self, node) -> Optional[str]:
        name_node = node.child_by_field_name('name')
        return self.text(name_node) if name_node else None

    def _type_name(self, type_node) -> Optional[str]:
        """声明类型, 去掉泛型参数: List<Account> -> List"""
        if type_node is None:
            return None
        return self.text(type_node).split('<', 1)[0].strip()

    def _full_type(self, type_node) -> Optional[str]:
        if type_node is None:
            return None
        return ' '.join(self.text(type_node).split())

    # --- 语句与表达式 ---

    def _convert(self, node) -> List[Node]:
        """把一个 tree-sitter 节点转换为零个或多个统一节点"""
        t = node.type
        line, column = node.start_point[0] + 1, node.start_point[1] + 1

        if t in SKIPPED_TYPES or not node.is_named:
            return []

        if t == 'ERROR':
            nodes = []
            for child in node.named_children:
                nodes.extend(self._convert(child))
            return nodes

        if t in ('block', 'static_initializer', 'constructor_body'):
            children = []
            for child in node.named_children:
                children.extend(self._convert(child))
            return [Node(NodeKind.BLOCK, tuple(children), line=line, column=column)]

        if t == 'local_variable_declaration':
            return self._declarators(node, NodeKind.VARIABLE_DECL)

        if t == 'enhanced_for_statement':
            name_node = node.child_by_field_name('name')
            children = []
            if name_node is not None:
                children.append(Node(
                    NodeKind.VARIABLE_DECL,
                    (self._ref_for(name_node), self._expr(node.child_by_field_name('value'))),
                    type_name=self._type_name(node.child_by_field_name('type')),
                    full_type=self._full_type(node.child_by_field_name('type')),
                    line=name_node.start_point[0] + 1, column=name_node.start_point[1] + 1,
                ))
            children.extend(self._convert(node.child_by_field_name('body')))
            return [Node(NodeKind.BLOCK, tuple(children), line=line, column=column)]

        if t == 'for_statement':
            children = []
            for child in node.named_children:
                children.extend(self._convert(child))
            return [Node(NodeKind.BLOCK, tuple(children), line=line, column=column)]

        if t == 'catch_clause':
            children = []
            for child in node.named_children:
                if child.type == 'catch_formal_parameter':
                    parameter = self._parameter(child)
                    if parameter is not None:
                        children.append(Node(
                            NodeKind.VARIABLE_DECL, (Node(NodeKind.VARIABLE_REF, name=parameter.name,
                                                          line=parameter.line, column=parameter.column),),
                            type_name=parameter.type_name, full_type=parameter.full_type,
                            line=parameter.line, column=parameter.column,
                        ))
                else:
                    children.extend(self._convert(child))
            return [Node(NodeKind.BLOCK, tuple(children), line=line, column=column)]

        if t in ('expression_statement', 'parenthesized_expression', 'condition'):
            nodes = []
            for child in node.named_children:
                nodes.extend(self._convert(child))
            return nodes

        if t == 'identifier':
            return [self._ref_for(node)]

        if t == 'field_access':
            return [self._field_access(node)]

        if t == 'method_invocation':
            return [self._method_invocation(node)]

        if t == 'object_creation_expression':
            type_node = node.child_by_field_name('type')
            return [Node(
                NodeKind.CALL, tuple(self._arguments(node)),
                name=self._type_name(type_node), image=self.text(node),
                line=line, column=column,
            )]

        if t == 'assignment_expression':
            return [self._assignment(node)]

        if t == 'binary_expression':
            operator = node.child_by_field_name('operator')
            op_text = self.text(operator) if operator is not None else ''
            kind = NodeKind.BINARY if op_text in ARITHMETIC_OPERATORS else NodeKind.OTHER
            children = (self._expr(node.child_by_field_name('left')),
                        self._expr(node.child_by_field_name('right')))
            return [Node(kind, children, operator=op_text, image=self.text(node),
                         line=line, column=column)]

        if t in ('string_literal', 'text_block', 'character_literal'):
            return [self._literal(node, LiteralKind.STRING)]
        if t in NUMBER_TYPES:
            return [self._literal(node, LiteralKind.NUMBER)]
        if t in ('true', 'false'):
            return [self._literal(node, LiteralKind.BOOLEAN)]
        if t == 'null_literal':
            return [self._literal(node, LiteralKind.NULL)]

        if t == 'cast_expression':
            value = node.child_by_field_name('value')
            children = (self._expr(value),) if value is not None else ()
            return [Node(NodeKind.OTHER, children, image=self.text(node), line=line, column=column)]

        if t in CLASS_TYPES:
            return [Node(NodeKind.OTHER, tuple(self._class_body(node)), name=self._name(node),
                         line=line, column=column)]

        # if / while / return / ternary / array_access / lambda ...
        children = []
        for child in node.named_children:
            children.extend(self._convert(child))
        return [Node(NodeKind.OTHER, tuple(children), image=self.text(node) if t.endswith('expression') else None,
                     line=line, column=column)]

    def _expr(self, node) -> Node:
        """表达式位置: 总是返回单个节点"""
        if node is None:
            return Node(NodeKind.OTHER)
        nodes = self._convert(node)
        if len(nodes) == 1:
            return nodes[0]
        return Node(NodeKind.OTHER, tuple(nodes), image=self.text(node),
                    line=node.start_point[0] + 1, column=node.start_point[1] + 1)

    def _ref_for(self, name_node) -> Node:
        return Node(NodeKind.VARIABLE_REF, name=self.text(name_node),
                    line=name_node.start_point[0] + 1, column=name_node.start_point[1] + 1)

    def _chain(self, node) -> Optional[List[str]]:
        """identifier / this / field_access 链的各段, 其他表达式返回 None"""
        if node.type in ('identifier', 'this'):
            return [self.text(node)]
        if node.type == 'field_access':
            base = self._chain(node.child_by_field_name('object'))
            field_node = node.child_by_field_name('field')
            if base is None or field_node is None:
                return None
            return base + [self.text(field_node)]
        return None

    def _field_access(self, node) -> Node:
        line, column = node.start_point[0] + 1, node.start_point[1] + 1
        parts = self._chain(node)
        if parts is None:
            return Node(NodeKind.OTHER, (self._expr(node.child_by_field_name('object')),),
                        image=self.text(node), line=line, column=column)
        dotted = '.'.join(parts)
        if parts[0] == 'this':
            return Node(NodeKind.VARIABLE_REF, name=parts[1], qualifier='this',
                        image=dotted, line=line, column=column)
        return Node(NodeKind.VARIABLE_REF, name=parts[0], image=dotted, line=line, column=column)

    def _method_invocation(self, node) -> Node:
        obj = node.child_by_field_name('object')
        name_node = node.child_by_field_name('name')
        children = []
        target = None
        if obj is not None:
            parts = self._chain(obj)
            target = '.'.join(parts) if parts is not None and parts[0] != 'this' else None
            children.append(self._expr(obj))
        children.extend(self._arguments(node))
        return Node(
            NodeKind.CALL, tuple(children),
            name=self.text(name_node) if name_node else None,
            target=target, has_receiver=obj is not None,
            image=self.text(node),
            line=node.start_point[0] + 1, column=node.start_point[1] + 1,
        )

    def _arguments(self, node) -> List[Node]:
        arguments = node.child_by_field_name('arguments')
        if arguments is None:
            return []
        return [self._expr(arg) for arg in arguments.named_children
                if arg.type not in SKIPPED_TYPES]

    def _assignment(self, node) -> Node:
        line, column = node.start_point[0] + 1, node.start_point[1] + 1
        left = node.child_by_field_name('left')
        right = self._expr(node.child_by_field_name('right'))
        operator = node.child_by_field_name('operator')
        op_text = self.text(operator) if operator is not None else '='

        parts = self._chain(left) if left is not None else None
        if parts is None or len(parts) > 2 or (len(parts) == 2 and parts[0] != 'this'):
            # 数组元素或其他对象字段的写入不产生变量身份
            return Node(NodeKind.OTHER, (self._expr(left), right), image=self.text(node),
                        line=line, column=column)

        def target() -> Node:
            return self._convert(left)[0]

        value = right
        if op_text != '=':
            value = Node(NodeKind.BINARY, (target(), right), operator=op_text.rstrip('='),
                         image=self.text(node), line=line, column=column)
        return Node(NodeKind.ASSIGNMENT, (target(), value), line=line, column=column)

    def _literal(self, node, kind: LiteralKind) -> Node:
        text = self.text(node)
        if kind == LiteralKind.STRING:
            if node.type == 'text_block':
                text = text[3:-3]
            elif len(text) >= 2:
                text = text[1:-1]
        return Node(NodeKind.LITERAL, literal_kind=kind, value=text,
                    line=node.start_point[0] + 1, column=node.start_point[1] + 1)
