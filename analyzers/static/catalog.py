"""
污点源 / 汇聚点 / 净化函数目录
声明式的 (定义类型, 操作名) -> 角色 映射表, 以及在精确匹配失败时使用的关键字启发式
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .ast_nodes import Node


class Role(Enum):
    """目录条目的角色"""
    SOURCE = "source"
    SINK = "sink"
    SANITIZER = "sanitizer"
    VALIDATOR = "validator"


class Confidence(Enum):
    """匹配置信度"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CatalogError(ValueError):
    """目录配置错误"""


WILDCARD = '*'


@dataclass(frozen=True)
class CatalogEntry:
    """
    目录条目

    defining_type 为 None 时匹配任意类型 (仅按操作名);
    operation 为 None 时匹配该类型的所有操作;
    argument 只对汇聚点有意义, 指定后只检查该位置的参数。
    """
    defining_type: Optional[str]
    operation: Optional[str]
    role: Role
    category: str = ''
    argument: Optional[int] = None

    @property
    def label(self) -> str:
        return '.'.join(p for p in (self.defining_type, self.operation) if p) or WILDCARD


@dataclass(frozen=True)
class CatalogMatch:
    entry: CatalogEntry
    confidence: Confidence

    @property
    def role(self) -> Role:
        return self.entry.role


def _key(value: Optional[str]) -> Optional[str]:
    if value is None or value == WILDCARD or value == '':
        return None
    return value.lower()


def parse_role(value) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        raise CatalogError(f"unknown catalog role: {value!r}") from None


def entries_from_triples(triples: Iterable[Sequence]) -> List[CatalogEntry]:
    """
    把宿主提供的三元组列表转换为目录条目

    每项为 (类型, 操作, 角色) 或 (类型, 操作, 角色, 类别); 类型和操作可为 None 或 "*"
    """
    entries = []
    for item in triples or []:
        if len(item) not in (3, 4):
            raise CatalogError(f"catalog entry must have 3 or 4 items: {item!r}")
        defining_type, operation, role = item[0], item[1], item[2]
        category = item[3] if len(item) == 4 else ''
        if _key(defining_type) is None and _key(operation) is None:
            raise CatalogError(f"catalog entry needs a type or an operation: {item!r}")
        entries.append(CatalogEntry(
            None if _key(defining_type) is None else defining_type,
            None if _key(operation) is None else operation,
            parse_role(role),
            category or '',
        ))
    return entries


class Catalog:
    """
    只读目录

    初始化后不再修改, 可在并发分析的多个单元之间共享。
    """

    def __init__(self, entries: Iterable[CatalogEntry] = (),
                 heuristics: Iterable[Tuple[str, Role]] = ()):
        self.entries: Tuple[CatalogEntry, ...] = tuple(entries)
        self.heuristics: Tuple[Tuple[str, Role], ...] = tuple(
            (keyword.lower(), parse_role(role)) for keyword, role in heuristics
        )
        self._exact: Dict[Tuple[Optional[str], Optional[str]], CatalogEntry] = {}
        self._by_operation: Dict[str, CatalogEntry] = {}
        for entry in self.entries:
            key = (_key(entry.defining_type), _key(entry.operation))
            # 先登记的条目优先
            self._exact.setdefault(key, entry)
            if key[1] is not None:
                self._by_operation.setdefault(key[1], entry)

    def extended(self, entries: Iterable[CatalogEntry]) -> 'Catalog':
        """返回追加了条目的新目录"""
        return Catalog(list(self.entries) + list(entries), self.heuristics)

    def match(self, call: Node, defining_type: Optional[str] = None) -> Optional[CatalogMatch]:
        """按精确匹配 > 仅操作名 > 源码文本 > 关键字启发式 的顺序查找调用"""
        operation = _key(call.name)
        type_key = _key(defining_type)

        if type_key is not None:
            entry = (self._exact.get((type_key, operation))
                     or self._type_only(type_key)
                     or self._exact.get((None, operation)))
            if entry is not None:
                return CatalogMatch(entry, Confidence.HIGH)
        elif operation is not None:
            entry = self._by_operation.get(operation)
            if entry is not None:
                return CatalogMatch(entry, Confidence.MEDIUM)

        # 只看被调用者部分, 避免外层调用因参数中的文本被误匹配
        callee = (call.image or '').split('(', 1)[0].lower()
        if callee:
            for entry in self.entries:
                if entry.defining_type and entry.operation and \
                        f"{entry.defining_type}.{entry.operation}".lower() in callee:
                    return CatalogMatch(entry, Confidence.MEDIUM)

        return self._heuristic(operation or callee)

    def match_reference(self, ref: Node) -> Optional[CatalogMatch]:
        """
        匹配属性链形式的输入, 如 request.form / RestContext.request.requestBody

        只对带点分文本的引用生效, 普通变量名不会命中。
        """
        image = (ref.image or '').lower()
        if '.' not in image:
            return None
        entry = self._type_only(image)
        if entry is not None:
            return CatalogMatch(entry, Confidence.HIGH)
        for entry in self.entries:
            if entry.defining_type and entry.operation:
                dotted = f"{entry.defining_type}.{entry.operation}".lower()
                if image == dotted or image.startswith(dotted + '.'):
                    return CatalogMatch(entry, Confidence.HIGH)
        return None

    def _type_only(self, type_key: str) -> Optional[CatalogEntry]:
        """仅按类型登记的条目, 类型本身或其属性链都算命中"""
        entry = self._exact.get((type_key, None))
        if entry is not None:
            return entry
        for (entry_type, operation), entry in self._exact.items():
            if operation is None and entry_type is not None and type_key.startswith(entry_type + '.'):
                return entry
        return None

    def _heuristic(self, text: str) -> Optional[CatalogMatch]:
        if not text:
            return None
        for keyword, role in self.heuristics:
            if keyword in text:
                return CatalogMatch(CatalogEntry(None, keyword, role, 'heuristic'), Confidence.LOW)
        return None
