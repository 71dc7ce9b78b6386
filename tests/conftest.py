"""Shared fixtures for the Taintline test suite."""

import shutil
from pathlib import Path

import pytest

from analyzers.static.catalog import CatalogEntry, Role
from analyzers.static.rules import TaintRule
from core.config import Config


SAMPLES_DIR = Path(__file__).resolve().parent.parent / 'test_cases'


@pytest.fixture
def query_rule():
    """A minimal query-injection rule: one source, one sink, one sanitizer."""
    return TaintRule(
        rule_id='TEST-QUERY',
        name='Query injection',
        category='query',
        severity='high',
        entries=(
            CatalogEntry('Request', 'param', Role.SOURCE, 'request parameter'),
            CatalogEntry(None, 'query', Role.SINK, 'query'),
            CatalogEntry(None, 'sanitize', Role.SANITIZER),
        ),
        message="Value '{construct}' reaches {category} call '{sink}'.",
        hint='Escape the value first.',
        literals_sanitize=True,
        check_concatenation=True,
    )


@pytest.fixture
def config(tmp_path, monkeypatch):
    """A Config built from defaults only, isolated from any config file in the cwd."""
    monkeypatch.chdir(tmp_path)
    return Config()


@pytest.fixture
def python_samples(tmp_path):
    target = tmp_path / 'python_samples'
    shutil.copytree(SAMPLES_DIR / 'python', target)
    return target


@pytest.fixture
def apex_samples(tmp_path):
    target = tmp_path / 'apex_samples'
    shutil.copytree(SAMPLES_DIR / 'apex', target)
    return target
