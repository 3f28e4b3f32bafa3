"""
In-process document tree for the audit engagement workspace.

Implements the same path-addressed contract as the Firebase Realtime Database
backend (see firebase_config.RealtimeDatabase) so development and tests can run
without a Firebase project. Values are plain JSON-like dicts, lists and scalars.
"""
import copy
import logging
import threading

from utils import new_key


class DatabaseError(Exception):
    """A read or write against the document store failed"""


class PermissionDeniedError(DatabaseError):
    """The store rejected the operation under its security rules"""


def split_path(path):
    """'engagements/abc/basics' -> ['engagements', 'abc', 'basics']"""
    if not path:
        return []
    return [segment for segment in str(path).strip('/').split('/') if segment]


def join_path(*parts):
    return '/'.join(str(part).strip('/') for part in parts if part not in (None, ''))


def is_empty(value):
    return value is None or value == {} or value == []


def to_plain(value):
    """Deep copy a stored value, turning densely int-keyed dicts back into lists"""
    if isinstance(value, dict):
        plain = {key: to_plain(child) for key, child in value.items()}
        if plain and all(key.isdigit() for key in plain):
            indexes = sorted(int(key) for key in plain)
            if indexes == list(range(len(indexes))):
                return [plain[str(index)] for index in indexes]
        return plain
    if isinstance(value, list):
        return [to_plain(child) for child in value]
    return value


def _to_node(value):
    """Stored form of a value: lists become str-keyed dicts, empties vanish"""
    if isinstance(value, list):
        value = {str(index): child for index, child in enumerate(value)}
    if isinstance(value, dict):
        node = {}
        for key, child in value.items():
            child_node = _to_node(child)
            if not is_empty(child_node):
                node[str(key)] = child_node
        return node or None
    return value


def get_in(tree, segments):
    node = tree
    for segment in segments:
        if isinstance(node, list):
            node = {str(index): child for index, child in enumerate(node)}
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    return node


def set_in(tree, segments, value):
    """Write value at segments inside tree and return the new tree.

    A None or empty value deletes the node, and parents left empty are pruned.
    """
    value = _to_node(value)
    if not segments:
        return value
    if isinstance(tree, list):
        tree = _to_node(tree)
    if not isinstance(tree, dict):
        tree = {}
    head, rest = segments[0], segments[1:]
    child = set_in(tree.get(head), rest, value)
    if is_empty(child):
        tree.pop(head, None)
    else:
        tree[head] = child
    return tree or None


def _overlaps(a, b):
    shorter = min(len(a), len(b))
    return a[:shorter] == b[:shorter]


class InMemoryDatabase:
    """Thread-safe in-process implementation of the document store contract"""

    def __init__(self, initial=None):
        self._root = _to_node(copy.deepcopy(initial)) if initial else None
        self._lock = threading.RLock()
        self._subscriptions = {}

    def new_key(self):
        return new_key()

    def get(self, path=''):
        """Read the value at path once"""
        with self._lock:
            return to_plain(get_in(self._root, split_path(path)))

    def set(self, path, value):
        """Replace whatever is stored at path"""
        self._write([(split_path(path), copy.deepcopy(value))])

    def update(self, path, changes):
        """Merge changes into path; keys may be slash-separated child paths"""
        if not isinstance(changes, dict) or not changes:
            raise ValueError('Update requires a non-empty dictionary of changes.')
        base = split_path(path)
        self._write([(base + split_path(key), copy.deepcopy(value)) for key, value in changes.items()])

    def delete(self, path):
        self._write([(split_path(path), None)])

    def subscribe(self, path, callback):
        """Deliver the value at path now and after every change beneath it.

        Returns a function that cancels the subscription.
        """
        token = new_key()
        segments = split_path(path)
        with self._lock:
            current = to_plain(get_in(self._root, segments))
            self._subscriptions[token] = {'segments': segments, 'callback': callback, 'last': current}
        callback(copy.deepcopy(current))

        def unsubscribe():
            with self._lock:
                self._subscriptions.pop(token, None)

        return unsubscribe

    def _write(self, writes):
        with self._lock:
            for segments, value in writes:
                self._root = set_in(self._root, segments, value)
            pending = []
            for token, subscription in self._subscriptions.items():
                if not any(_overlaps(segments, subscription['segments']) for segments, _ in writes):
                    continue
                current = to_plain(get_in(self._root, subscription['segments']))
                if current != subscription['last']:
                    subscription['last'] = current
                    pending.append((subscription['callback'], current))
        for callback, value in pending:
            try:
                callback(copy.deepcopy(value))
            except Exception as e:
                logging.error(f"Subscriber callback failed: {str(e)}")
