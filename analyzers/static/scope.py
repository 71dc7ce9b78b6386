"""
作用域解析
为每个变量引用计算稳定的变量身份 (Variable Identity)
"""

from typing import Dict, List, Optional, Set

from .ast_nodes import Node, NodeKind, ASSIGNMENT_KINDS, assignment_target, declared_name


FIELD_QUALIFIERS = ('self', 'this', 'cls')


class _Scope:
    """单个词法作用域"""

    def __init__(self, path: str, kind: NodeKind):
        self.path = path
        self.kind = kind
        self.names: Dict[str, str] = {}
        self.types: Dict[str, Optional[str]] = {}
        self.block_count = 0


class ScopeResolver:
    """
    作用域解析器

    对一个分析单元做一次先序遍历, 记录每个声明所在的作用域,
    并把每个 VARIABLE_REF 节点映射到身份字符串:

        <unit>.<routine>[/<block>...]:<name>    参数与局部变量
        <unit>:<name>                          字段与无法解析的名字

    Apex 标识符大小写不敏感, 身份中统一转为小写。
    """

    def __init__(self, unit: Node):
        self.unit = unit
        self.language = (unit.language or '').lower()
        self._case_insensitive = self.language == 'apex'
        # Python 按函数划分作用域: 首次赋值即声明
        self._declare_on_assign = self.language == 'python'
        self._identities: Dict[int, str] = {}
        self._types: Dict[str, Optional[str]] = {}
        self._routine_paths: Set[str] = set()
        self._unit_scope = _Scope(self.norm(unit.name or '<unit>'), NodeKind.UNIT)
        self._collect_fields()
        self._visit(unit, [self._unit_scope])

    def norm(self, name: str) -> str:
        return name.lower() if self._case_insensitive else name

    # --- 查询 ---

    def identity(self, node: Node) -> Optional[str]:
        """引用或声明节点的身份; 不是变量节点时返回 None"""
        if node.kind == NodeKind.PARAMETER or node.kind in ASSIGNMENT_KINDS:
            target = node if node.kind == NodeKind.PARAMETER else assignment_target(node)
            if target is None:
                return None
            return self._identities.get(id(target))
        return self._identities.get(id(node))

    def declared_type(self, identity: str) -> Optional[str]:
        return self._types.get(identity)

    def defining_type(self, call: Node) -> Optional[str]:
        """
        解析调用的定义类型:
        接收者变量的声明类型 > 接收者的点分文本 > None
        """
        receiver = call.receiver
        if receiver is not None and receiver.kind == NodeKind.VARIABLE_REF and not receiver.image:
            identity = self._identities.get(id(receiver))
            declared = self._types.get(identity) if identity else None
            if declared:
                return declared
        return call.target

    # --- 构建 ---

    def _collect_fields(self):
        """预先登记字段声明, 使方法体中先于声明出现的引用也能解析"""
        for node in self.unit.descendants(NodeKind.FIELD_DECL):
            name = declared_name(node)
            if name:
                self._declare(self._unit_scope, name, node.type_name)

    def _declare(self, scope: _Scope, name: str, type_name: Optional[str] = None) -> str:
        key = self.norm(name)
        identity = f"{scope.path}:{key}"
        scope.names[key] = identity
        if type_name or identity not in self._types:
            self._types[identity] = type_name
        return identity

    def _lookup(self, scopes: List[_Scope], name: str, qualifier: Optional[str]) -> Optional[str]:
        key = self.norm(name)
        if qualifier and qualifier.lower() in FIELD_QUALIFIERS:
            return self._unit_scope.names.get(key)
        for scope in reversed(scopes):
            if key in scope.names:
                return scope.names[key]
        return None

    def _resolve_ref(self, node: Node, scopes: List[_Scope]) -> str:
        identity = self._lookup(scopes, node.name or '', node.qualifier)
        if identity is None:
            identity = f"{self._unit_scope.path}:{self.norm(node.name or '')}"
        self._identities[id(node)] = identity
        return identity

    def _innermost_routine(self, scopes: List[_Scope]) -> Optional[_Scope]:
        for scope in reversed(scopes):
            if scope.kind == NodeKind.ROUTINE:
                return scope
        return None

    def _visit(self, node: Node, scopes: List[_Scope]):
        for child in node.children:
            self._visit_one(child, scopes)

    def _visit_one(self, node: Node, scopes: List[_Scope]):
        kind = node.kind
        if kind == NodeKind.ROUTINE:
            parent = scopes[-1]
            path = f"{parent.path}.{self.norm(node.name or '<anonymous>')}"
            if path in self._routine_paths:
                # 重载方法以行号区分
                path = f"{path}@{node.line}"
            self._routine_paths.add(path)
            self._visit(node, scopes + [_Scope(path, NodeKind.ROUTINE)])
        elif kind == NodeKind.BLOCK:
            parent = scopes[-1]
            parent.block_count += 1
            scope = _Scope(f"{parent.path}/{parent.block_count}", NodeKind.BLOCK)
            self._visit(node, scopes + [scope])
        elif kind == NodeKind.PARAMETER:
            self._identities[id(node)] = self._declare(scopes[-1], node.name or '', node.type_name)
        elif kind in ASSIGNMENT_KINDS:
            self._visit_assignment(node, scopes)
        elif kind == NodeKind.VARIABLE_REF:
            self._resolve_ref(node, scopes)
            self._visit(node, scopes)
        else:
            # 嵌套单元 (内部类) 与外层单元共享作用域链
            self._visit(node, scopes)

    def _visit_assignment(self, node: Node, scopes: List[_Scope]):
        target = assignment_target(node)
        # 先解析右值, 使 "x = x + 1" 中右侧的 x 指向旧的声明
        for child in node.children[1:]:
            self._visit_one(child, scopes)
        if target is None:
            return
        name = target.name or ''
        if node.kind == NodeKind.FIELD_DECL:
            identity = self._unit_scope.names.get(self.norm(name)) or self._declare(self._unit_scope, name, node.type_name)
        elif node.kind == NodeKind.VARIABLE_DECL:
            identity = self._declare(scopes[-1], name, node.type_name)
        else:
            identity = self._lookup(scopes, name, target.qualifier)
            if identity is None:
                routine = self._innermost_routine(scopes)
                if self._declare_on_assign and routine is not None and not target.qualifier:
                    identity = self._declare(routine, name)
                else:
                    identity = self._declare(self._unit_scope, name)
        self._identities[id(target)] = identity
