"""Seeding, propagation and sink-check behaviour of the shared taint engine."""

from analyzers.static.catalog import Confidence
from analyzers.static.rules import SCHEDULE_INJECTION
from analyzers.static.taint import TaintEngine, TaintState, ViolationCollector

from builders import assign, binary, call, decl, field, lit, other, param, ref, routine, unit


def test_parameter_passed_directly_to_scheduler_is_reported():
    cron = ref('cronExpr')
    tree = unit('Jobs', routine(
        'scheduleIt',
        call('schedule', lit('nightly'), cron, target='System'),
        params=[param('cronExpr', 'String')],
    ))

    violations = TaintEngine(SCHEDULE_INJECTION).analyze(tree)

    assert len(violations) == 1
    assert violations[0].node is cron
    assert violations[0].rule_id == 'TAINT-SCHEDULE'
    assert violations[0].identity == 'jobs.scheduleit:cronexpr'
    assert 'cronExpr' in violations[0].message


def test_literal_only_value_is_not_reported(query_rule):
    tree = unit('Repo', routine(
        'load',
        decl('safe', lit('SELECT Id FROM X'), 'String'),
        call('query', ref('safe')),
    ))

    engine = TaintEngine(query_rule)
    assert engine.analyze(tree) == []

    ctx = engine.context(tree)
    state = engine.seed(ctx)
    engine.propagate(ctx, state)
    assert 'repo.load:safe' in state.sanitized


def test_sanitized_copy_is_clean_while_input_stays_tainted(query_rule):
    tree = unit('Repo', routine(
        'load',
        decl('cleaned', call('sanitize', ref('userInput')), 'String'),
        call('query', ref('cleaned')),
        params=[param('userInput', 'String')],
    ))
    engine = TaintEngine(query_rule)

    assert engine.analyze(tree) == []

    ctx = engine.context(tree)
    state = engine.seed(ctx)
    engine.propagate(ctx, state)
    assert state.is_live('repo.load:userinput')
    assert 'repo.load:cleaned' in state.sanitized
    assert not state.is_live('repo.load:cleaned')


def test_concatenated_query_is_reported(query_rule):
    tree = unit('Repo', routine(
        'load',
        decl('q', binary(lit('SELECT '), ref('userInput')), 'String'),
        call('query', ref('q')),
        params=[param('userInput', 'String')],
    ))

    violations = TaintEngine(query_rule).analyze(tree)

    assert len(violations) >= 1
    assert violations[0].identity == 'repo.load:q'


def test_inline_concatenation_reports_reference_and_expression(query_rule):
    user_input = ref('userInput')
    concat = binary(lit('SELECT '), user_input)
    tree = unit('Repo', routine(
        'load',
        call('query', concat),
        params=[param('userInput')],
    ))

    violations = TaintEngine(query_rule).analyze(tree)

    assert [v.node for v in violations] == [user_input, concat]
    assert violations[1].confidence == Confidence.MEDIUM


def test_wrapper_result_assigned_then_queried(query_rule):
    processed = ref('p')
    tree = unit('Repo', routine(
        'load',
        decl('p', call('process', ref('userInput'))),
        call('query', processed),
        params=[param('userInput')],
    ))

    violations = TaintEngine(query_rule).analyze(tree)

    assert len(violations) == 1
    assert violations[0].node is processed


def test_wrapper_passed_inline_reports_nested_reference(query_rule):
    user_input = ref('userInput')
    tree = unit('Repo', routine(
        'load',
        call('query', call('process', user_input)),
        params=[param('userInput')],
    ))

    violations = TaintEngine(query_rule).analyze(tree)

    assert len(violations) == 1
    assert violations[0].node is user_input


def test_sanitizer_wins_over_tainted_argument(query_rule):
    tree = unit('Repo', routine(
        'load',
        decl('clean', call('sanitize', binary(ref('userInput'), lit("'")))),
        decl('mixed', binary(call('sanitize', ref('userInput')), ref('userInput'))),
        call('query', ref('clean')),
        call('query', ref('mixed')),
        params=[param('userInput')],
    ))

    violations = TaintEngine(query_rule).analyze(tree)

    assert [v.identity for v in violations] == ['repo.load:mixed']


def test_sanitizer_call_inside_sink_argument_is_safe(query_rule):
    tree = unit('Repo', routine(
        'load',
        call('query', binary(lit("SELECT x WHERE n = '"), call('sanitize', ref('userInput')), lit("'"))),
        params=[param('userInput')],
    ))

    assert TaintEngine(query_rule).analyze(tree) == []


def test_unbound_source_call_is_reported_in_place(query_rule):
    source = call('param', lit('id'), target='Request')
    tree = unit('Repo', routine('load', call('query', source), modifiers=('private',)))

    violations = TaintEngine(query_rule).analyze(tree)

    assert len(violations) == 1
    assert violations[0].node is source
    assert violations[0].identity is None


def test_source_result_bound_to_variable_is_seeded(query_rule):
    tree = unit('Repo', routine(
        'load',
        decl('id', call('param', lit('id'), target='Request')),
        call('query', ref('id')),
        modifiers=('private',),
    ))

    engine = TaintEngine(query_rule)
    ctx = engine.context(tree)
    state = engine.seed(ctx)

    assert state.tainted == {'repo.load:id'}
    assert state.origins['repo.load:id'].confidence == Confidence.HIGH
    assert len(engine.analyze(tree)) == 1


def test_private_routine_parameters_are_not_seeded(query_rule):
    tree = unit('Repo', routine(
        'helper',
        call('query', ref('value')),
        params=[param('value')],
        modifiers=('private',),
    ))

    assert TaintEngine(query_rule).analyze(tree) == []


def test_entry_annotation_marks_routine_as_invocable(query_rule):
    tree = unit('Repo', routine(
        'helper',
        call('query', ref('value')),
        params=[param('value')],
        modifiers=('static',),
        annotations=('AuraEnabled',),
    ))

    assert len(TaintEngine(query_rule).analyze(tree)) == 1


def test_taint_reaches_sibling_routine_through_field(query_rule):
    tree = unit(
        'Repo',
        field('lastInput', type_name='String'),
        routine('remember', assign('lastInput', ref('value')), params=[param('value')]),
        routine('replay', call('query', ref('lastInput')), modifiers=('private',)),
    )

    violations = TaintEngine(query_rule).analyze(tree)

    assert [v.identity for v in violations] == ['repo:lastinput']


def test_same_name_in_sibling_routines_does_not_collide(query_rule):
    tree = unit(
        'Repo',
        routine('first', decl('q', ref('value')), params=[param('value')]),
        routine('second', decl('q', lit('constant')), call('query', ref('q')), modifiers=('private',)),
    )

    assert TaintEngine(query_rule).analyze(tree) == []


def test_cast_wrapper_is_transparent_for_propagation(query_rule):
    tree = unit('Repo', routine(
        'load',
        decl('data', other(call('decode', ref('payload'), target='JSON'))),
        call('query', ref('data')),
        params=[param('payload')],
    ))

    assert len(TaintEngine(query_rule).analyze(tree)) == 1


def test_units_do_not_share_state(query_rule):
    engine = TaintEngine(query_rule)
    tainting = unit('A', field('shared'), routine('set', assign('shared', ref('v')), params=[param('v')]))
    reading = unit('B', field('shared'), routine('get', call('query', ref('shared')), modifiers=('private',)))

    assert engine.analyze(tainting) == []
    assert engine.analyze(reading) == []


def test_analysis_is_idempotent(query_rule):
    tree = unit('Repo', routine(
        'load',
        decl('q', binary(lit('SELECT '), ref('userInput'))),
        call('query', ref('q')),
        call('query', binary(lit('x'), ref('userInput'))),
        params=[param('userInput')],
    ))
    engine = TaintEngine(query_rule)

    first = [(v.node, v.message, v.confidence) for v in engine.analyze(tree)]
    second = [(v.node, v.message, v.confidence) for v in engine.analyze(tree)]

    assert first == second
    assert len(first) == 3


def test_malformed_nodes_are_ignored(query_rule):
    from analyzers.static.ast_nodes import Node, NodeKind

    tree = unit('Repo', routine(
        'load',
        Node(NodeKind.ASSIGNMENT),
        Node(NodeKind.VARIABLE_DECL, (lit('x'),)),
        Node(NodeKind.CALL, name='query'),
        params=[param('userInput')],
    ))

    assert TaintEngine(query_rule).analyze(tree) == []


def test_violation_confidence_uses_weakest_match(query_rule):
    typed = unit('Repo', routine(
        'load',
        call('query', ref('userInput'), target='Database'),
        params=[param('userInput')],
    ))
    untyped = unit('Repo', routine(
        'load',
        call('query', ref('userInput')),
        params=[param('userInput')],
    ))
    engine = TaintEngine(query_rule)

    assert engine.analyze(typed)[0].confidence == Confidence.HIGH
    assert engine.analyze(untyped)[0].confidence == Confidence.MEDIUM


def test_reports_go_to_supplied_reporter(query_rule):
    class Recorder:
        def __init__(self):
            self.calls = []

        def report(self, node, message, **details):
            self.calls.append((node.name, details['rule_id']))

    recorder = Recorder()
    tree = unit('Repo', routine('load', call('query', ref('userInput')), params=[param('userInput')]))

    TaintEngine(query_rule).analyze(tree, recorder)

    assert recorder.calls == [('userInput', 'TEST-QUERY')]


def test_collector_accumulates_across_units(query_rule):
    collector = ViolationCollector()
    engine = TaintEngine(query_rule)
    for name in ('A', 'B'):
        engine.analyze(unit(name, routine('load', call('query', ref('x')), params=[param('x')])), collector)

    assert [v.identity for v in collector.violations] == ['a.load:x', 'b.load:x']


def test_taint_state_sanitized_overrides_tainted():
    state = TaintState()
    state.sanitize('u:x')
    assert not state.is_live('u:x')
    assert not state.is_live(None)
