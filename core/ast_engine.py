from typing import Dict, Optional
try:
    from tree_sitter import Parser, Language, Node, Tree
    import tree_sitter_languages
    TREE_SITTER_AVAILABLE = True
except ImportError:
    TREE_SITTER_AVAILABLE = False

from utils.logger import get_logger

class ASTEngine:
    """
    Tree-sitter 解析器缓存。
    Python 使用标准库 ast, 这里只服务 Apex / Java 前端。
    """

    def __init__(self):
        self.logger = get_logger()
        self.parsers: Dict[str, "Parser"] = {}
        self.languages: Dict[str, "Language"] = {}
        self._warned = False

    @property
    def available(self) -> bool:
        return TREE_SITTER_AVAILABLE

    def warn_unavailable(self):
        """只提示一次"""
        if not self._warned:
            self._warned = True
            self.logger.warning("Tree-sitter not available (pip install taintline[apex]). Apex/Java files will be skipped.")

    def get_parser(self, lang_name: str) -> Optional["Parser"]:
        """获取指定语言的 Parser"""
        if not TREE_SITTER_AVAILABLE:
            self.warn_unavailable()
            return None

        if lang_name in self.parsers:
            return self.parsers[lang_name]

        try:
            ts_lang_name = self._map_language_name(lang_name)
            language = tree_sitter_languages.get_language(ts_lang_name)
            self.languages[lang_name] = language

            # 创建 Parser (处理版本兼容性问题)
            try:
                # 传统方式: Parser() + set_language()
                parser = Parser()
                parser.set_language(language)
            except Exception:
                try:
                    # 新版本方式: Parser(language)
                    parser = Parser(language)
                except Exception as e2:
                    self.logger.error(f"Failed to initialize parser for {lang_name} after multiple attempts: {e2}")
                    return None

            self.parsers[lang_name] = parser
            return parser
        except Exception as e:
            self.logger.error(f"Failed to initialize parser for {lang_name}: {e}")
            return None

    def parse_code(self, code: bytes, lang_name: str) -> Optional["Tree"]:
        """解析代码字节串"""
        parser = self.get_parser(lang_name)
        if not parser:
            return None
        return parser.parse(code)

    def _map_language_name(self, name: str) -> str:
        """映射通用名称到 tree-sitter 名称 (Apex 借用 Java 语法)"""
        mapping = {
            'apex': 'java',
        }
        return mapping.get(name.lower(), name.lower())

    # --- Utility Methods ---

    def get_node_text(self, node: "Node", source_bytes: bytes) -> str:
        """获取节点的源代码文本"""
        return source_bytes[node.start_byte:node.end_byte].decode('utf-8', errors='replace')
