import re
import uuid
import copy
from datetime import datetime, timezone

FIREBASE_KEY_UNSAFE = re.compile(r'[#$\[\]/]')
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def new_key():
    """Generate a unique child key for a new record"""
    return uuid.uuid4().hex


def now_iso():
    """Current UTC time as an ISO-8601 string, the way timestamps are stored"""
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def sanitize_email(email):
    """Turn an email address into a usable database key.

    Keys may not contain '.', '#', '$', '[', ']' or '/'. Dots become commas
    (which cannot appear in an address domain) so the mapping stays readable.
    """
    if not email:
        return ''
    key = email.strip().lower().replace('.', ',')
    return FIREBASE_KEY_UNSAFE.sub('_', key)


def is_valid_email(email):
    return bool(email) and bool(EMAIL_PATTERN.match(email.strip()))


def format_date_long(date_string):
    """Format a YYYY-MM-DD date as 'July 15, 2024'; invalid input is returned unchanged"""
    if not date_string:
        return ''
    try:
        parsed = datetime.strptime(date_string.strip(), '%Y-%m-%d')
    except ValueError:
        return date_string
    return f"{parsed:%B} {parsed.day}, {parsed.year}"


def is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def deep_merge(defaults, overrides):
    """Recursively overlay stored values onto a defaults tree.

    Dicts merge key by key; any other stored value (lists included) replaces
    the default outright. Neither argument is modified.
    """
    merged = copy.deepcopy(defaults)
    if not isinstance(overrides, dict):
        return merged
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
