"""
Python 前端
使用标准库 ast 把 Python 源码转换为统一语法树节点

每个顶层类是一个分析单元, 其余顶层语句 (函数、全局赋值) 组成一个模块单元。
Python 没有块级作用域, 因此不产生 BLOCK 节点。
"""

import ast
from pathlib import Path
from typing import List, Optional

from .ast_nodes import Node, NodeKind, LiteralKind


FIELD_QUALIFIERS = ('self', 'cls')


def dotted_name(node: ast.AST) -> Optional[str]:
    """Name / Attribute 链的点分文本, 其他表达式返回 None"""
    parts = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    return '.'.join(reversed(parts))


def is_test_file(path: str) -> bool:
    name = Path(path).name
    return name.startswith('test_') or name.endswith('_test.py')


class PythonFrontend:
    """Python 源码 -> 分析单元"""

    language = 'python'
    available = True

    def parse(self, source: str, path: str = '<string>') -> List[Node]:
        """解析源码; 语法错误时抛出 SyntaxError"""
        tree = ast.parse(source, filename=path)
        return _Converter(source, path).units(tree)


class _Converter:

    def __init__(self, source: str, path: str):
        self.source = source
        self.path = path
        self.test_file = is_test_file(path)

    def units(self, module: ast.Module) -> List[Node]:
        units = []
        module_body = []
        for stmt in module.body:
            if isinstance(stmt, ast.ClassDef):
                units.append(self._class_unit(stmt))
            else:
                module_body.extend(self._stmt(stmt, scope='module'))
        if module_body:
            units.insert(0, Node(
                NodeKind.UNIT, tuple(module_body), name=Path(self.path).stem or '<module>',
                line=1, column=1, language='python', is_test=self.test_file, path=self.path,
            ))
        return units

    def _class_unit(self, cls: ast.ClassDef) -> Node:
        body = []
        for stmt in cls.body:
            body.extend(self._stmt(stmt, scope='class'))
        return Node(
            NodeKind.UNIT, tuple(body), name=cls.name,
            annotations=tuple(self._decorators(cls)),
            line=cls.lineno, column=cls.col_offset + 1, language='python',
            is_test=self.test_file or cls.name.startswith('Test'), path=self.path,
        )

    # --- 语句 ---

    def _stmt(self, stmt: ast.stmt, scope: str) -> List[Node]:
        """
        转换一条语句; scope 为 module / class / function,
        决定赋值产生 FIELD_DECL 还是 ASSIGNMENT
        """
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            return [self._routine(stmt, in_class=scope == 'class')]

        if isinstance(stmt, ast.ClassDef):
            # 嵌套类与外层单元共享作用域
            body = []
            for inner in stmt.body:
                body.extend(self._stmt(inner, scope='class'))
            return [self._other(stmt, body, name=stmt.name)]

        if isinstance(stmt, ast.Assign):
            return self._assign(stmt, scope)

        if isinstance(stmt, ast.AnnAssign):
            value = [self._expr(stmt.value)] if stmt.value is not None else []
            target = self._target(stmt.target)
            if target is None:
                return [self._other(stmt, value)]
            kind = NodeKind.VARIABLE_DECL if scope == 'function' else NodeKind.FIELD_DECL
            return [Node(kind, (target,) + tuple(value), type_name=ast.unparse(stmt.annotation),
                         line=stmt.lineno, column=stmt.col_offset + 1)]

        if isinstance(stmt, ast.AugAssign):
            target = self._target(stmt.target)
            value = self._expr(stmt.value)
            if target is None:
                return [self._other(stmt, [self._expr(stmt.target), value])]
            combined = Node(NodeKind.BINARY, (self._target(stmt.target), value),
                            operator=type(stmt.op).__name__, line=stmt.lineno, column=stmt.col_offset + 1)
            return [Node(self._assign_kind(scope), (target, combined),
                         line=stmt.lineno, column=stmt.col_offset + 1)]

        if isinstance(stmt, (ast.For, ast.AsyncFor)):
            children = self._bind(stmt.target, stmt.iter, scope, stmt)
            children += self._body(stmt.body, scope) + self._body(stmt.orelse, scope)
            return [self._other(stmt, children)]

        if isinstance(stmt, (ast.With, ast.AsyncWith)):
            children = []
            for item in stmt.items:
                if item.optional_vars is not None:
                    children += self._bind(item.optional_vars, item.context_expr, scope, stmt)
                else:
                    children.append(self._expr(item.context_expr))
            children += self._body(stmt.body, scope)
            return [self._other(stmt, children)]

        if isinstance(stmt, (ast.If, ast.While)):
            children = [self._expr(stmt.test)]
            children += self._body(stmt.body, scope) + self._body(stmt.orelse, scope)
            return [self._other(stmt, children)]

        if isinstance(stmt, (ast.Try, ast.TryStar)):
            children = self._body(stmt.body, scope)
            for handler in stmt.handlers:
                if handler.type is not None:
                    children.append(self._expr(handler.type))
                children += self._body(handler.body, scope)
            children += self._body(stmt.orelse, scope) + self._body(stmt.finalbody, scope)
            return [self._other(stmt, children)]

        if isinstance(stmt, (ast.Import, ast.ImportFrom, ast.Global, ast.Nonlocal,
                             ast.Pass, ast.Break, ast.Continue)):
            return []

        if isinstance(stmt, ast.Match):
            children = [self._expr(stmt.subject)]
            for case in stmt.cases:
                children += self._body(case.body, scope)
            return [self._other(stmt, children)]

        # Expr / Return / Raise / Assert / Delete ...
        return [self._expr(child) for child in ast.iter_child_nodes(stmt) if isinstance(child, ast.expr)]

    def _body(self, stmts: List[ast.stmt], scope: str) -> List[Node]:
        nodes = []
        for stmt in stmts:
            nodes += self._stmt(stmt, scope)
        return nodes

    def _routine(self, func, in_class: bool) -> Node:
        args = func.args
        params = list(getattr(args, 'posonlyargs', [])) + list(args.args)
        if in_class and params and params[0].arg in FIELD_QUALIFIERS:
            params = params[1:]
        if args.vararg is not None:
            params.append(args.vararg)
        params += list(args.kwonlyargs)
        if args.kwarg is not None:
            params.append(args.kwarg)

        children = [
            Node(NodeKind.PARAMETER, name=p.arg,
                 type_name=ast.unparse(p.annotation) if p.annotation is not None else None,
                 line=p.lineno, column=p.col_offset + 1)
            for p in params
        ]
        children += self._body(func.body, scope='function')

        public = not func.name.startswith('_') or (func.name.startswith('__') and func.name.endswith('__'))
        return Node(
            NodeKind.ROUTINE, tuple(children), name=func.name,
            modifiers=frozenset({'public' if public else 'private'}),
            annotations=tuple(self._decorators(func)),
            line=func.lineno, column=func.col_offset + 1,
        )

    def _decorators(self, node) -> List[str]:
        names = []
        for decorator in node.decorator_list:
            if isinstance(decorator, ast.Call):
                decorator = decorator.func
            if isinstance(decorator, ast.Attribute):
                names.append(decorator.attr)
            elif isinstance(decorator, ast.Name):
                names.append(decorator.id)
        return names

    # --- 赋值 ---

    def _assign_kind(self, scope: str) -> NodeKind:
        return NodeKind.ASSIGNMENT if scope == 'function' else NodeKind.FIELD_DECL

    def _assign(self, stmt: ast.Assign, scope: str) -> List[Node]:
        first, rest = stmt.targets[0], stmt.targets[1:]
        nodes = self._bind(first, stmt.value, scope, stmt)
        # a = b = value: 后续目标从第一个目标取值
        for extra in rest:
            if isinstance(first, (ast.Name, ast.Attribute)) and self._target(first) is not None:
                nodes += self._bind(extra, first, scope, stmt)
            else:
                nodes += self._bind(extra, stmt.value, scope, stmt)
        return nodes

    def _bind(self, target: ast.expr, value: ast.expr, scope: str, stmt: ast.stmt) -> List[Node]:
        """target = value, 元组目标逐项配对"""
        if isinstance(target, (ast.Tuple, ast.List)):
            elements = [e.value if isinstance(e, ast.Starred) else e for e in target.elts]
            if isinstance(value, (ast.Tuple, ast.List)) and len(value.elts) == len(elements):
                nodes = []
                for element, item in zip(elements, value.elts):
                    nodes += self._bind(element, item, scope, stmt)
                return nodes
            nodes = []
            for element in elements:
                nodes += self._bind(element, value, scope, stmt)
            return nodes

        ref = self._target(target)
        if ref is None:
            # 下标或外部对象属性写入: 只保留引用, 不产生变量身份
            return [self._other(stmt, [self._expr(target), self._expr(value)])]
        return [Node(self._assign_kind(scope), (ref, self._expr(value)),
                     line=target.lineno, column=target.col_offset + 1)]

    def _target(self, target: ast.expr) -> Optional[Node]:
        """可以作为变量身份的赋值目标: 名字或 self.x"""
        if isinstance(target, ast.Name):
            return self._ref(target)
        if isinstance(target, ast.Attribute) and isinstance(target.value, ast.Name) \
                and target.value.id in FIELD_QUALIFIERS:
            return self._ref(target)
        return None

    # --- 表达式 ---

    def _expr(self, node: ast.expr) -> Node:
        line, column = node.lineno, node.col_offset + 1

        if isinstance(node, ast.Constant):
            return self._literal(node)

        if isinstance(node, (ast.Name, ast.Attribute)):
            ref = self._ref(node)
            if ref is not None:
                return ref
            return self._other(node, [self._expr(node.value)])

        if isinstance(node, ast.Call):
            return self._call(node)

        if isinstance(node, ast.BinOp):
            return Node(NodeKind.BINARY, (self._expr(node.left), self._expr(node.right)),
                        operator=type(node.op).__name__, image=self._segment(node),
                        line=line, column=column)

        if isinstance(node, ast.JoinedStr):
            parts = []
            for value in node.values:
                if isinstance(value, ast.FormattedValue):
                    parts.append(self._expr(value.value))
                else:
                    parts.append(self._expr(value))
            return Node(NodeKind.BINARY, tuple(parts), operator='Add',
                        image=self._segment(node), line=line, column=column)

        if isinstance(node, (ast.Await, ast.Starred)):
            return self._expr(node.value)

        if isinstance(node, ast.NamedExpr):
            return Node(NodeKind.ASSIGNMENT, (self._ref(node.target), self._expr(node.value)),
                        line=line, column=column)

        if isinstance(node, (ast.ListComp, ast.SetComp, ast.GeneratorExp, ast.DictComp)):
            children = []
            for generator in node.generators:
                children += [self._expr(generator.target), self._expr(generator.iter)]
                children += [self._expr(cond) for cond in generator.ifs]
            if isinstance(node, ast.DictComp):
                children += [self._expr(node.key), self._expr(node.value)]
            else:
                children.append(self._expr(node.elt))
            return self._other(node, children)

        if isinstance(node, ast.Lambda):
            return self._other(node, [self._expr(node.body)])

        # Subscript / Compare / BoolOp / UnaryOp / IfExp / 容器字面量 ...
        children = [self._expr(c) for c in ast.iter_child_nodes(node) if isinstance(c, ast.expr)]
        return self._other(node, children)

    def _ref(self, node: ast.expr) -> Optional[Node]:
        line, column = node.lineno, node.col_offset + 1
        if isinstance(node, ast.Name):
            return Node(NodeKind.VARIABLE_REF, name=node.id, line=line, column=column)
        dotted = dotted_name(node)
        if dotted is None:
            return None
        parts = dotted.split('.')
        if parts[0] in FIELD_QUALIFIERS:
            return Node(NodeKind.VARIABLE_REF, name=parts[1], qualifier=parts[0],
                        image=dotted, line=line, column=column)
        return Node(NodeKind.VARIABLE_REF, name=parts[0], image=dotted, line=line, column=column)

    def _call(self, node: ast.Call) -> Node:
        func = node.func
        children = []
        name = None
        target = None
        has_receiver = False

        if isinstance(func, ast.Attribute):
            name = func.attr
            target = dotted_name(func.value)
            children.append(self._expr(func.value))
            has_receiver = True
        elif isinstance(func, ast.Name):
            name = func.id
        else:
            children.append(self._expr(func))
            has_receiver = True

        children += [self._expr(arg) for arg in node.args]
        children += [self._expr(kw.value) for kw in node.keywords]
        return Node(NodeKind.CALL, tuple(children), name=name, target=target,
                    has_receiver=has_receiver, image=self._segment(node),
                    line=node.lineno, column=node.col_offset + 1)

    def _literal(self, node: ast.Constant) -> Node:
        value = node.value
        if isinstance(value, bool):
            kind = LiteralKind.BOOLEAN
        elif value is None:
            kind = LiteralKind.NULL
        elif isinstance(value, (str, bytes)):
            kind = LiteralKind.STRING
            if isinstance(value, bytes):
                value = value.decode('latin-1')
        else:
            kind = LiteralKind.NUMBER
        return Node(NodeKind.LITERAL, literal_kind=kind,
                    value=value if isinstance(value, str) else repr(value),
                    line=node.lineno, column=node.col_offset + 1)

    def _other(self, node: ast.AST, children: List[Node], name: Optional[str] = None) -> Node:
        return Node(NodeKind.OTHER, tuple(children), name=name,
                    image=self._segment(node) if isinstance(node, ast.expr) else None,
                    line=getattr(node, 'lineno', 0), column=getattr(node, 'col_offset', -1) + 1)

    def _segment(self, node: ast.AST) -> Optional[str]:
        return ast.get_source_segment(self.source, node)
