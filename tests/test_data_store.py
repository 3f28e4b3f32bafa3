"""
Document store contract, exercised on the in-process backend.
"""
from data_store import InMemoryDatabase


def test_set_and_get_subtree():
    db = InMemoryDatabase()
    db.set('engagements/e1/client', {'name': 'ABC', 'frf': 'NFRS'})
    assert db.get('engagements/e1') == {'client': {'name': 'ABC', 'frf': 'NFRS'}}
    assert db.get('engagements/e1/client/name') == 'ABC'
    assert db.get('engagements/missing') is None


def test_set_replaces_existing_value():
    db = InMemoryDatabase()
    db.set('a', {'x': 1, 'y': 2})
    db.set('a', {'z': 3})
    assert db.get('a') == {'z': 3}


def test_update_leaves_siblings_untouched():
    db = InMemoryDatabase()
    db.set('engagements/e1/planning', {'auditPlan': 'plan', 'inquiries': 'asked'})
    db.update('engagements/e1/planning', {'auditPlan': 'revised'})
    assert db.get('engagements/e1/planning') == {'auditPlan': 'revised', 'inquiries': 'asked'}


def test_update_with_child_paths_and_deletes():
    db = InMemoryDatabase({'a': {'b': 1, 'c': {'d': 2}}})
    db.update('', {'a/c/d': None, 'e/f': 'g'})
    assert db.get('') == {'a': {'b': 1}, 'e': {'f': 'g'}}


def test_empty_containers_do_not_exist():
    db = InMemoryDatabase()
    db.set('a/b', {})
    assert db.get('a') is None
    db.set('a/b', {'c': 1})
    db.delete('a/b/c')
    assert db.get('a') is None


def test_lists_round_trip():
    db = InMemoryDatabase()
    items = [{'id': 'sa260-1', 'checked': False}, {'id': 'sa260-2', 'checked': True}]
    db.set('engagements/e1/communication/sa260', items)
    assert db.get('engagements/e1/communication/sa260') == items
    db.update('engagements/e1/communication/sa260/0', {'checked': True})
    assert db.get('engagements/e1/communication/sa260/0/checked') is True


def test_subscribe_delivers_current_value_immediately():
    db = InMemoryDatabase({'engagements': {'e1': {'planning': {'auditPlan': 'x'}}}})
    received = []
    db.subscribe('engagements/e1/planning', received.append)
    assert received == [{'auditPlan': 'x'}]


def test_subscribe_fires_on_descendant_and_ancestor_writes():
    db = InMemoryDatabase()
    received = []
    db.subscribe('engagements/e1/planning', received.append)
    db.update('engagements/e1/planning', {'auditPlan': 'a'})
    db.set('engagements/e1', {'planning': {'auditPlan': 'b'}})
    db.set('engagements/e2/planning', {'auditPlan': 'unrelated'})
    assert received == [None, {'auditPlan': 'a'}, {'auditPlan': 'b'}]


def test_unsubscribe_stops_delivery():
    db = InMemoryDatabase()
    received = []
    unsubscribe = db.subscribe('x', received.append)
    unsubscribe()
    db.set('x', 1)
    assert received == [None]


def test_multi_path_update_notifies_each_subscriber_once():
    db = InMemoryDatabase()
    received = []
    db.subscribe('engagements/e1', received.append)
    db.update('', {
        'engagements/e1/status': 'In Progress',
        'engagements/e1/client/name': 'ABC',
        'users/u1/engagements/e1/role': 'owner',
    })
    assert received == [None, {'status': 'In Progress', 'client': {'name': 'ABC'}}]


def test_subscriber_gets_a_copy():
    db = InMemoryDatabase({'a': {'b': 1}})
    received = []
    db.subscribe('a', received.append)
    received[0]['b'] = 99
    assert db.get('a/b') == 1
