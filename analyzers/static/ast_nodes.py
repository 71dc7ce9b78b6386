"""
统一语法树节点
各语言前端把解析结果转换为同一套带类型的节点, 污点引擎只面向这套节点工作
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterator, List, Optional, Tuple


class NodeKind(Enum):
    """节点类型 (封闭枚举)"""
    UNIT = "unit"
    ROUTINE = "routine"
    PARAMETER = "parameter"
    BLOCK = "block"
    FIELD_DECL = "field_decl"
    VARIABLE_DECL = "variable_decl"
    ASSIGNMENT = "assignment"
    CALL = "call"
    BINARY = "binary"
    LITERAL = "literal"
    VARIABLE_REF = "variable_ref"
    OTHER = "other"


class LiteralKind(Enum):
    """字面量类型"""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"


# 赋值类节点: 声明带初始化、普通赋值、字段声明带初始化
ASSIGNMENT_KINDS = (NodeKind.VARIABLE_DECL, NodeKind.ASSIGNMENT, NodeKind.FIELD_DECL)


@dataclass(frozen=True, eq=False)
class Node:
    """
    语法树节点

    节点创建后不可变, 按对象身份比较 (同一位置的两个节点永远不相等)。
    并非所有字段对所有类型都有意义, 未使用的字段保持默认值。
    """
    kind: NodeKind
    children: Tuple['Node', ...] = ()
    name: Optional[str] = None
    target: Optional[str] = None
    has_receiver: bool = False
    qualifier: Optional[str] = None
    type_name: Optional[str] = None
    # 声明类型的完整文本, 保留泛型参数
    full_type: Optional[str] = None
    literal_kind: Optional[LiteralKind] = None
    value: Optional[str] = None
    image: Optional[str] = None
    operator: Optional[str] = None
    modifiers: FrozenSet[str] = frozenset()
    annotations: Tuple[str, ...] = ()
    line: int = 0
    column: int = 0
    # 仅 UNIT 使用
    language: Optional[str] = None
    is_test: bool = False
    path: Optional[str] = None

    # --- 遍历 ---

    def children_of(self, kind: NodeKind) -> List['Node']:
        return [c for c in self.children if c.kind == kind]

    def first_child(self, kind: NodeKind) -> Optional['Node']:
        for child in self.children:
            if child.kind == kind:
                return child
        return None

    def descendants(self, *kinds: NodeKind) -> Iterator['Node']:
        """深度优先 (先序) 遍历所有后代, 顺序与源码顺序一致, 不包含自身"""
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            if not kinds or node.kind in kinds:
                yield node
            stack.extend(reversed(node.children))

    def first_descendant(self, kind: NodeKind) -> Optional['Node']:
        return next(self.descendants(kind), None)

    def walk(self) -> Iterator['Node']:
        """包含自身的先序遍历"""
        yield self
        yield from self.descendants()

    # --- 调用节点 ---

    @property
    def receiver(self) -> Optional['Node']:
        if self.kind == NodeKind.CALL and self.has_receiver and self.children:
            return self.children[0]
        return None

    @property
    def arguments(self) -> Tuple['Node', ...]:
        if self.kind != NodeKind.CALL:
            return ()
        return self.children[1:] if self.has_receiver else self.children

    # --- 例程节点 ---

    @property
    def parameters(self) -> List['Node']:
        return self.children_of(NodeKind.PARAMETER)

    @property
    def is_public(self) -> bool:
        return bool({'public', 'global'} & {m.lower() for m in self.modifiers})

    def has_annotation(self, names) -> bool:
        wanted = {n.lower() for n in names}
        return any(a.lower() in wanted for a in self.annotations)

    @property
    def text(self) -> str:
        """用于消息的简短文本"""
        if self.image:
            return self.image
        if self.kind == NodeKind.LITERAL:
            return self.value or ''
        if self.kind == NodeKind.CALL:
            prefix = f"{self.target}." if self.target else ''
            return f"{prefix}{self.name or ''}(...)"
        return self.name or self.kind.value

    def __repr__(self):
        label = self.name or self.value or ''
        return f"<Node {self.kind.value} {label!r} @{self.line}:{self.column}>"


def assignment_target(node: Node) -> Optional[Node]:
    """赋值类节点的左值 (缺失时返回 None)"""
    if node.kind not in ASSIGNMENT_KINDS or not node.children:
        return None
    first = node.children[0]
    return first if first.kind == NodeKind.VARIABLE_REF else None


def assignment_value(node: Node) -> Optional[Node]:
    """赋值类节点的右值 (缺失时返回 None)"""
    if node.kind not in ASSIGNMENT_KINDS or len(node.children) < 2:
        return None
    return node.children[1]


def declared_name(node: Node) -> Optional[str]:
    """声明节点引入的变量名"""
    if node.kind == NodeKind.PARAMETER:
        return node.name
    target = assignment_target(node)
    return target.name if target is not None else None


def is_constant(node: Node) -> bool:
    """表达式是否完全由字面量构成"""
    if node.kind == NodeKind.LITERAL:
        return True
    if node.kind in (NodeKind.BINARY, NodeKind.OTHER) and node.children:
        return all(is_constant(c) for c in node.children)
    return False
