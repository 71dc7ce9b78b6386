"""
污点规则变体
每条规则只是一份声明式配置 (源、汇聚点、净化函数、消息模板、精度选项),
由同一个三阶段污点引擎执行
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

from .catalog import Catalog, CatalogEntry, Role


S, K, Z, V = Role.SOURCE, Role.SINK, Role.SANITIZER, Role.VALIDATOR

# Apex: 标记对外暴露方法的注解
APEX_ENTRY_ANNOTATIONS = (
    'AuraEnabled', 'RemoteAction', 'InvocableMethod', 'WebService', 'ReadOnly',
    'HttpGet', 'HttpPost', 'HttpPut', 'HttpPatch', 'HttpDelete', 'RestResource',
)

# Python: 常见 Web 框架的路由装饰器 (只比较最后一段名字)
PYTHON_ENTRY_DECORATORS = (
    'route', 'get', 'post', 'put', 'patch', 'delete', 'api_view', 'action',
    'websocket', 'task',
)

ENTRY_ANNOTATIONS = APEX_ENTRY_ANNOTATIONS + PYTHON_ENTRY_DECORATORS

SENSITIVE_KEYWORDS = (
    'password', 'passwd', 'pwd', 'secret', 'token', 'apikey', 'api_key',
    'credential', 'private_key', 'privatekey', 'session', 'ssn',
)

# 外部输入 (注入类规则共享)
APEX_REQUEST_SOURCES = (
    CatalogEntry('ApexPages', 'currentPage', S, 'page parameter'),
    CatalogEntry('PageReference', 'getParameters', S, 'page parameter'),
    CatalogEntry('RestContext', None, S, 'REST request'),
    CatalogEntry('RestRequest', None, S, 'REST request'),
    CatalogEntry('HttpRequest', 'getBody', S, 'HTTP request body'),
    CatalogEntry('HttpRequest', 'getParameter', S, 'HTTP request parameter'),
    CatalogEntry(None, 'getParameters', S, 'page parameter'),
)

PYTHON_REQUEST_SOURCES = (
    CatalogEntry('request.args', None, S, 'query parameter'),
    CatalogEntry('request.form', None, S, 'form field'),
    CatalogEntry('request.values', None, S, 'request value'),
    CatalogEntry('request.cookies', None, S, 'cookie'),
    CatalogEntry('request.headers', None, S, 'request header'),
    CatalogEntry('request.files', None, S, 'uploaded file'),
    CatalogEntry('request.json', None, S, 'request body'),
    CatalogEntry('request.data', None, S, 'request body'),
    CatalogEntry('request.GET', None, S, 'query parameter'),
    CatalogEntry('request.POST', None, S, 'form field'),
    CatalogEntry('request', 'get_json', S, 'request body'),
    CatalogEntry('request', 'get_data', S, 'request body'),
    CatalogEntry('sys.argv', None, S, 'command line'),
    CatalogEntry(None, 'input', S, 'console input'),
)

REQUEST_SOURCES = APEX_REQUEST_SOURCES + PYTHON_REQUEST_SOURCES


@dataclass(frozen=True)
class TaintRule:
    """
    一条规则变体的完整配置

    引擎只读取这里的数据, 规则之间没有代码差异。
    """
    rule_id: str
    name: str
    category: str
    severity: str
    entries: Tuple[CatalogEntry, ...]
    message: str
    hint: str
    heuristics: Tuple[Tuple[str, Role], ...] = ()
    seed_parameters: bool = True
    entry_annotations: Tuple[str, ...] = ENTRY_ANNOTATIONS
    literals_sanitize: bool = False
    check_concatenation: bool = False
    seed_sensitive_names: Tuple[str, ...] = ()
    sensitive_types: Tuple[str, ...] = ()
    seed_secret_literals: bool = False
    flag_secret_literals: bool = False
    catalog: Catalog = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'catalog', Catalog(self.entries, self.heuristics))

    def with_entries(self, extra: Iterable[CatalogEntry]) -> 'TaintRule':
        """追加宿主提供的目录条目"""
        extra = tuple(extra)
        if not extra:
            return self
        return replace(self, entries=self.entries + extra)

    def format_message(self, construct: str, sink: str, sink_category: str) -> str:
        return self.message.format(
            construct=construct, sink=sink, category=sink_category or self.category
        ) + ' ' + self.hint


SCHEDULE_INJECTION = TaintRule(
    rule_id='TAINT-SCHEDULE',
    name='Schedule / job injection',
    category='job scheduling',
    severity='high',
    entries=REQUEST_SOURCES + (
        CatalogEntry('System', 'schedule', K, 'job scheduling'),
        CatalogEntry('System', 'enqueueJob', K, 'job scheduling'),
        CatalogEntry('Database', 'executeBatch', K, 'job scheduling'),
        CatalogEntry(None, 'executeBatch', K, 'job scheduling'),
        CatalogEntry(None, 'enqueueJob', K, 'job scheduling'),
        CatalogEntry(None, 'add_job', K, 'job scheduling'),
        CatalogEntry(None, 'apply_async', K, 'job scheduling'),
        CatalogEntry(None, 'enqueue', K, 'job scheduling'),
        CatalogEntry('String', 'escapeSingleQuotes', Z),
        CatalogEntry(None, 'escapeSingleQuotes', Z),
        CatalogEntry(None, 'sanitizeCronPart', Z),
    ),
    message="User-controlled value '{construct}' reaches {category} call '{sink}'.",
    hint='Validate CRON expressions and job identifiers against a fixed pattern before scheduling.',
    check_concatenation=True,
)

SOQL_INJECTION = TaintRule(
    rule_id='TAINT-SOQL',
    name='Dynamic query injection',
    category='dynamic query',
    severity='high',
    entries=REQUEST_SOURCES + (
        CatalogEntry('Database', 'query', K, 'dynamic query'),
        CatalogEntry('Database', 'countQuery', K, 'dynamic query'),
        CatalogEntry('Database', 'getQueryLocator', K, 'dynamic query'),
        # 第二个参数是绑定参数, 只检查查询文本
        CatalogEntry(None, 'execute', K, 'SQL', argument=0),
        CatalogEntry(None, 'executemany', K, 'SQL', argument=0),
        CatalogEntry(None, 'executescript', K, 'SQL', argument=0),
        CatalogEntry(None, 'raw', K, 'SQL', argument=0),
        CatalogEntry('String', 'escapeSingleQuotes', Z),
        CatalogEntry(None, 'escapeSingleQuotes', Z),
        CatalogEntry('HtmlSanitizer', 'clean', Z),
        CatalogEntry('CustomSanitizer', 'sanitize', Z),
        CatalogEntry(None, 'escape_string', Z),
        CatalogEntry(None, 'quote_identifier', Z),
    ),
    heuristics=(('getparameter', S), ('getbody', S)),
    message="Untrusted value '{construct}' is used to build a {category} passed to '{sink}'.",
    hint='Use bind variables or parameterized queries, or escape the value with String.escapeSingleQuotes().',
    check_concatenation=True,
)

INSECURE_DESERIALIZATION = TaintRule(
    rule_id='TAINT-DESERIALIZATION',
    name='Insecure deserialization',
    category='deserialization',
    severity='high',
    entries=PYTHON_REQUEST_SOURCES + (
        CatalogEntry('JSON', 'deserialize', S, 'deserialized data'),
        CatalogEntry('JSON', 'deserializeUntyped', S, 'deserialized data'),
        CatalogEntry('JSON', 'deserializeStrict', S, 'deserialized data'),
        CatalogEntry('Database', 'query', K, 'dynamic query'),
        CatalogEntry('Database', 'countQuery', K, 'dynamic query'),
        CatalogEntry('Database', 'insert', K, 'DML'),
        CatalogEntry('Database', 'update', K, 'DML'),
        CatalogEntry('System', 'schedule', K, 'job scheduling'),
        CatalogEntry('HttpRequest', 'setBody', K, 'outbound request'),
        CatalogEntry('HttpRequest', 'setEndpoint', K, 'outbound request'),
        CatalogEntry('pickle', 'loads', K, 'deserialization'),
        CatalogEntry('pickle', 'load', K, 'deserialization'),
        CatalogEntry('cPickle', 'loads', K, 'deserialization'),
        CatalogEntry('marshal', 'loads', K, 'deserialization'),
        CatalogEntry('yaml', 'load', K, 'deserialization'),
        CatalogEntry('yaml', 'unsafe_load', K, 'deserialization'),
        CatalogEntry('jsonpickle', 'decode', K, 'deserialization'),
        CatalogEntry('shelve', 'open', K, 'deserialization'),
        CatalogEntry('yaml', 'safe_load', Z),
    ),
    heuristics=(('validate', V),),
    seed_parameters=False,
    message="Deserialized or untrusted data '{construct}' flows into {category} call '{sink}' without validation.",
    hint='Deserialize into a strongly typed class and validate every field before use.',
)

HARDCODED_SECRETS = TaintRule(
    rule_id='TAINT-SECRETS',
    name='Hardcoded secret in outbound call',
    category='outbound request',
    severity='high',
    entries=(
        CatalogEntry(None, 'setEndpoint', K, 'endpoint'),
        CatalogEntry(None, 'setHeader', K, 'header'),
        CatalogEntry(None, 'setBody', K, 'outbound request'),
        CatalogEntry(None, 'setPassword', K, 'credential'),
        CatalogEntry('requests', None, K, 'outbound request'),
        CatalogEntry('httpx', None, K, 'outbound request'),
        CatalogEntry(None, 'set_header', K, 'header'),
        CatalogEntry(None, 'putheader', K, 'header'),
        CatalogEntry(None, 'urlopen', K, 'outbound request'),
        CatalogEntry(None, 'HTTPBasicAuth', K, 'credential'),
    ),
    message="Hardcoded secret '{construct}' is sent through {category} call '{sink}'.",
    hint='Store credentials in Named Credentials or a secret manager instead of source code.',
    seed_parameters=False,
    seed_secret_literals=True,
    flag_secret_literals=True,
)

SENSITIVE_LOGGING = TaintRule(
    rule_id='TAINT-LOGGING',
    name='Sensitive data written to logs',
    category='logging',
    severity='high',
    entries=(
        CatalogEntry('System', 'debug', K, 'logging'),
        CatalogEntry('System', 'info', K, 'logging'),
        CatalogEntry('System', 'warn', K, 'logging'),
        CatalogEntry('System', 'error', K, 'logging'),
        CatalogEntry('System', 'log', K, 'logging'),
        CatalogEntry('Database', 'query', S, 'query result'),
        CatalogEntry('logging', None, K, 'logging'),
        CatalogEntry('logger', None, K, 'logging'),
        CatalogEntry('log', None, K, 'logging'),
        CatalogEntry(None, 'print', K, 'console output'),
        CatalogEntry(None, 'mask', Z),
        CatalogEntry(None, 'redact', Z),
    ),
    heuristics=tuple((keyword, S) for keyword in ('password', 'secret', 'token', 'credential', 'ssn')),
    message="Sensitive value '{construct}' is written to {category} via '{sink}'.",
    hint='Remove the value from the log statement or mask it before logging.',
    seed_parameters=False,
    seed_sensitive_names=SENSITIVE_KEYWORDS,
    sensitive_types=('sobject', '__c', 'account', 'contact', 'lead', 'opportunity', 'user'),
)

BUILTIN_RULES: Tuple[TaintRule, ...] = (
    SCHEDULE_INJECTION,
    SOQL_INJECTION,
    INSECURE_DESERIALIZATION,
    HARDCODED_SECRETS,
    SENSITIVE_LOGGING,
)

RULES_BY_ID: Dict[str, TaintRule] = {rule.rule_id: rule for rule in BUILTIN_RULES}


def select_rules(rule_ids: Optional[Iterable[str]] = None) -> List[TaintRule]:
    """按 id 选择规则; 未指定时返回全部内置规则"""
    if not rule_ids:
        return list(BUILTIN_RULES)
    selected = []
    for rule_id in rule_ids:
        key = rule_id.strip().upper()
        if key not in RULES_BY_ID:
            raise ValueError(f"unknown rule id: {rule_id} (known: {', '.join(RULES_BY_ID)})")
        selected.append(RULES_BY_ID[key])
    return selected
