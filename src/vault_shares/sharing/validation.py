"""Path sandbox for share access control.

Pure functions, no I/O. Every path a share client names goes through
``validate_share_path`` before any backend call.

Rules, in order:
  1. A normalized path containing a ``..`` segment is rejected.
  2. An empty scope is a root share: everything is in scope.
  3. Note scope admits exactly ``<scope>.md`` and nothing else.
  4. Folder scope requires a boundary-aware prefix match: the path equals
     the scope, or starts with ``<scope>/``. ``notesextra/x`` is NOT inside
     ``notes``.
  5. Without subfolders, the remainder after the scope holds no further
     separator (direct children only).
"""

from __future__ import annotations

import re

NOTE_EXTENSION = '.md'
SEPARATOR = '/'

_DUPLICATE_SEPARATORS = re.compile(r'/+')
_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"|?*\\/\x00-\x1f]')
_DOT_RUNS = re.compile(r'\.{2,}')
MAX_FILENAME_LENGTH = 100


def normalize_path(path: str) -> str:
    """Unify separators, collapse duplicates, strip leading/trailing ``/``."""
    if not path:
        return ''
    unified = path.replace('\\', SEPARATOR)
    collapsed = _DUPLICATE_SEPARATORS.sub(SEPARATOR, unified)
    return collapsed.strip(SEPARATOR)


def has_traversal(path: str) -> bool:
    """True when any segment of the normalized path is ``..``."""
    return '..' in normalize_path(path).split(SEPARATOR)


def note_file_path(scope_path: str) -> str:
    """The single file a note share exposes."""
    return normalize_path(scope_path) + NOTE_EXTENSION


def scope_name(scope_path: str) -> str:
    """Last segment of the scope, used as the default display name."""
    normalized = normalize_path(scope_path)
    return normalized.rsplit(SEPARATOR, 1)[-1] if normalized else ''


def parent_path(path: str) -> str:
    normalized = normalize_path(path)
    if SEPARATOR not in normalized:
        return ''
    return normalized.rsplit(SEPARATOR, 1)[0]


def is_within_scope(path: str, scope_path: str) -> bool:
    """Boundary-aware containment: equal to the scope or under ``scope/``."""
    normalized = normalize_path(path)
    scope = normalize_path(scope_path)
    if not scope:
        return True
    return normalized == scope or normalized.startswith(scope + SEPARATOR)


def validate_share_path(
    requested_path: str,
    scope_path: str,
    include_subfolders: bool,
    scope_type: str = 'folder',
) -> bool:
    """Return True when ``requested_path`` is inside the share's scope."""
    requested = normalize_path(requested_path)
    scope = normalize_path(scope_path)

    if '..' in requested.split(SEPARATOR):
        return False

    if not scope:
        return True

    if str(scope_type) == 'note':
        return requested == scope + NOTE_EXTENSION

    if not is_within_scope(requested, scope):
        return False

    if not include_subfolders:
        remainder = requested[len(scope):].lstrip(SEPARATOR)
        if SEPARATOR in remainder:
            return False

    return True


def get_relative_path(full_path: str, scope_path: str) -> str:
    """Path relative to the scope root.

    Paths outside the scope come back normalized but otherwise unchanged.
    """
    normalized = normalize_path(full_path)
    scope = normalize_path(scope_path)

    if not scope or not is_within_scope(normalized, scope):
        return normalized
    return normalized[len(scope):].lstrip(SEPARATOR)


def is_direct_child(file_path: str, scope_path: str) -> bool:
    return SEPARATOR not in get_relative_path(file_path, scope_path)


def build_full_path(scope_path: str, relative_path: str) -> str:
    """Join a scope and a relative path into one normalized path."""
    scope = normalize_path(scope_path)
    relative = normalize_path(relative_path)

    if not scope:
        return relative
    if not relative:
        return scope
    return f'{scope}{SEPARATOR}{relative}'


# ── Upload filename helpers ──────────────────────────────────────────


def sanitize_filename(filename: str) -> str:
    """Strip separators and unsafe characters from an uploaded filename.

    The result never contains ``/``, ``\\`` or ``..`` so it cannot move the
    write outside the deposit folder.
    """
    base = (filename or '').replace('\\', SEPARATOR).rsplit(SEPARATOR, 1)[-1]
    cleaned = _UNSAFE_FILENAME_CHARS.sub('_', base)
    cleaned = _DOT_RUNS.sub('.', cleaned)
    cleaned = cleaned.lstrip('.').strip()
    cleaned = cleaned[:MAX_FILENAME_LENGTH]
    return cleaned or 'upload'


def file_extension(filename: str) -> str:
    """Lower-cased extension including the dot, or ``''``."""
    name = filename.rsplit(SEPARATOR, 1)[-1]
    dot = name.rfind('.')
    if dot <= 0:
        return ''
    return name[dot:].lower()
