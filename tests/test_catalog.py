import pytest

from analyzers.static.catalog import (
    Catalog, CatalogEntry, CatalogError, Confidence, Role, entries_from_triples, parse_role,
)

from builders import call, ref


@pytest.fixture
def catalog():
    return Catalog(
        [
            CatalogEntry('Database', 'query', Role.SINK, 'dynamic query'),
            CatalogEntry('RestContext', None, Role.SOURCE, 'REST request'),
            CatalogEntry('request.form', None, Role.SOURCE, 'form field'),
            CatalogEntry(None, 'escapeSingleQuotes', Role.SANITIZER),
            CatalogEntry(None, 'execute', Role.SINK, 'SQL', argument=0),
        ],
        heuristics=[('getparameter', Role.SOURCE)],
    )


def test_exact_type_and_operation_is_high_confidence(catalog):
    match = catalog.match(call('query', target='Database'), 'Database')

    assert match.role == Role.SINK
    assert match.confidence == Confidence.HIGH
    assert match.entry.category == 'dynamic query'


def test_matching_is_case_insensitive(catalog):
    match = catalog.match(call('QUERY'), 'database')

    assert match.role == Role.SINK
    assert match.confidence == Confidence.HIGH


def test_type_only_entry_matches_any_operation(catalog):
    match = catalog.match(call('request', target='RestContext'), 'RestContext')

    assert match.role == Role.SOURCE
    assert match.confidence == Confidence.HIGH
    assert catalog.match(call('x'), 'RestContext.request').role == Role.SOURCE


def test_name_only_entry_matches_under_any_type(catalog):
    match = catalog.match(call('escapeSingleQuotes', target='String'), 'String')

    assert match.role == Role.SANITIZER
    assert match.confidence == Confidence.HIGH


def test_unknown_type_falls_back_to_operation_with_medium_confidence(catalog):
    match = catalog.match(call('query'))

    assert match.role == Role.SINK
    assert match.confidence == Confidence.MEDIUM


def test_known_type_without_entry_does_not_match_other_types_operation(catalog):
    assert catalog.match(call('query', target='Cache'), 'Cache') is None


def test_callee_text_is_matched_when_type_is_unknown():
    from analyzers.static.ast_nodes import Node, NodeKind

    catalog = Catalog([CatalogEntry('pickle', 'loads', Role.SINK)])
    node = Node(NodeKind.CALL, name='loads', image='pickle.loads(blob)')

    match = catalog.match(node)

    assert match.role == Role.SINK
    assert match.confidence == Confidence.MEDIUM


def test_callee_text_ignores_argument_text():
    from analyzers.static.ast_nodes import Node, NodeKind

    catalog = Catalog([CatalogEntry('pickle', 'loads', Role.SINK)])
    node = Node(NodeKind.CALL, name='wrap', image='wrap(pickle.loads)')

    assert catalog.match(node) is None


def test_heuristic_only_after_exact_miss(catalog):
    match = catalog.match(call('getParameterValue'))

    assert match.role == Role.SOURCE
    assert match.confidence == Confidence.LOW
    assert match.entry.category == 'heuristic'
    assert catalog.match(call('somethingElse')) is None


def test_first_registered_entry_wins():
    catalog = Catalog([
        CatalogEntry(None, 'clean', Role.SANITIZER),
        CatalogEntry(None, 'clean', Role.SINK),
    ])

    assert catalog.match(call('clean')).role == Role.SANITIZER


def test_match_reference_for_attribute_chains(catalog):
    match = catalog.match_reference(ref('form', image='request.form'))
    nested = catalog.match_reference(ref('name', image='request.form.name'))

    assert match.role == Role.SOURCE
    assert match.confidence == Confidence.HIGH
    assert nested.entry.category == 'form field'
    assert catalog.match_reference(ref('form')) is None
    assert catalog.match_reference(ref('x', image='requests.form')) is None


def test_extended_returns_new_catalog(catalog):
    bigger = catalog.extended([CatalogEntry(None, 'loads', Role.SINK)])

    assert bigger.match(call('loads')) is not None
    assert catalog.match(call('loads')) is None


def test_entries_from_triples():
    entries = entries_from_triples([
        ['Foo', 'bar', 'sink'],
        ['*', 'clean', 'SANITIZER', 'custom'],
        [None, 'check', 'validator'],
    ])

    assert entries[0] == CatalogEntry('Foo', 'bar', Role.SINK, '')
    assert entries[1] == CatalogEntry(None, 'clean', Role.SANITIZER, 'custom')
    assert entries[2].role == Role.VALIDATOR
    assert entries_from_triples(None) == []


@pytest.mark.parametrize('triple', [
    ['Foo', 'bar'],
    ['*', '*', 'sink'],
    ['Foo', 'bar', 'sinker'],
])
def test_entries_from_triples_rejects_bad_items(triple):
    with pytest.raises(CatalogError):
        entries_from_triples([triple])


def test_parse_role_accepts_role_instances():
    assert parse_role(Role.SOURCE) is Role.SOURCE
    assert parse_role(' Sink ') is Role.SINK
