"""
配置管理模块
"""

import copy
import os
import yaml
from typing import Dict, Any, Optional

from utils.logger import get_logger

class Config:
    """配置管理类"""

    DEFAULT_CONFIG = {
        'system': {
            'name': 'Taintline',
            'version': '1.0.0',
            'log_level': 'INFO',
            'output_dir': './reports',
            'workers': 1
        },
        'languages': ['python', 'apex', 'java'],
        'static_analysis': {
            'enabled': True,
            'taint_analysis': {
                'enabled': True,
                # 为空时启用全部内置规则
                'rules': [],
                'skip_test_units': True,
                # [类型, 操作, 角色(, 类别)], 追加到每条规则的目录
                'extra_entries': [],
                # 规则 id -> 只追加到该规则的条目
                'rule_entries': {}
            }
        },
        'report': {
            'min_confidence': 'low'
        }
    }

    def __init__(self, config_path: Optional[str] = None):
        """初始化配置"""
        self._config = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_path:
            if os.path.exists(config_path):
                self._load_from_file(config_path)
            else:
                get_logger().warning(f"配置文件不存在: {config_path}, 使用默认配置")
        else:
            # 尝试从默认位置加载
            default_paths = [
                'taintline.yaml',
                'taintline.yml',
                'config.yaml',
            ]
            for path in default_paths:
                if os.path.exists(path):
                    self._load_from_file(path)
                    break

    def _load_from_file(self, path: str):
        """从文件加载配置"""
        try:
            with open(path, 'r', encoding='utf-8') as f:
                file_config = yaml.safe_load(f)
                if isinstance(file_config, dict):
                    self._merge_config(self._config, file_config)
                elif file_config is not None:
                    get_logger().warning(f"配置文件 {path} 的顶层必须是映射, 已忽略")
        except (OSError, yaml.YAMLError) as e:
            get_logger().warning(f"无法加载配置文件 {path}: {e}")

    def _merge_config(self, base: Dict, override: Dict):
        """递归合并配置"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """获取配置值，支持点号分隔的键"""
        keys = key.split('.')
        value = self._config
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
            if value is None:
                return default
        return value

    def set(self, key: str, value: Any):
        """设置配置值"""
        keys = key.split('.')
        config = self._config
        for k in keys[:-1]:
            if not isinstance(config.get(k), dict):
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    @property
    def static_analysis_enabled(self) -> bool:
        return self.get('static_analysis.enabled', True)

    @property
    def taint_analysis_enabled(self) -> bool:
        return self.get('static_analysis.taint_analysis.enabled', True)

    @property
    def supported_languages(self) -> list:
        return self.get('languages', ['python', 'apex', 'java'])

    @property
    def output_dir(self) -> str:
        return self.get('system.output_dir', './reports')

    @property
    def workers(self) -> int:
        return int(self.get('system.workers', 1))

    def to_dict(self) -> Dict:
        """导出为字典"""
        return copy.deepcopy(self._config)
