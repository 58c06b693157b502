"""File payload helpers for shared reads: type detection, frontmatter,
wikilinks and the scoped tree."""

from __future__ import annotations

import base64
import mimetypes
import re
from typing import Any

import yaml

from vault_shares.backend.store import TreeEntry

from .validation import NOTE_EXTENSION, SEPARATOR, get_relative_path, validate_share_path

INDEX_NOTE = '_Index.md'

WIKILINK_RE = re.compile(r'\[\[([^\]|]+)(?:\|[^\]]+)?\]\]')
_FRONTMATTER_RE = re.compile(r'\A---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)', re.DOTALL)

_BINARY_KINDS = {'image', 'pdf', 'video', 'audio'}


def file_type(path: str) -> str:
    lowered = path.lower()
    if lowered.endswith(NOTE_EXTENSION):
        return 'markdown'
    if lowered.endswith('.canvas'):
        return 'canvas'
    if lowered.endswith('.pdf'):
        return 'pdf'
    mime, _ = mimetypes.guess_type(lowered)
    if mime:
        kind = mime.split('/', 1)[0]
        if kind in ('image', 'video', 'audio'):
            return kind
    return 'text'


def is_binary_type(kind: str) -> bool:
    return kind in _BINARY_KINDS


def mime_type(path: str) -> str:
    mime, _ = mimetypes.guess_type(path.lower())
    return mime or 'application/octet-stream'


def split_frontmatter(raw: str) -> tuple[dict[str, Any], str]:
    """Return ``(frontmatter, body)``. Unparseable frontmatter is kept in the body."""
    match = _FRONTMATTER_RE.match(raw)
    if not match:
        return {}, raw
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return {}, raw
    if not isinstance(data, dict):
        return {}, raw
    return data, raw[match.end():]


def extract_wikilinks(content: str) -> list[str]:
    return [m.group(1) for m in WIKILINK_RE.finditer(content)]


def file_payload(path: str, content: bytes, sha: str) -> dict[str, Any]:
    """JSON body for a file read, shaped by file type."""
    kind = file_type(path)
    body: dict[str, Any] = {'path': path, 'sha': sha, 'file_type': kind}

    if is_binary_type(kind):
        body['content'] = base64.b64encode(content).decode('ascii')
        body['encoding'] = 'base64'
        body['mime_type'] = mime_type(path)
        return body

    text = content.decode('utf-8', errors='replace')
    if kind == 'markdown':
        frontmatter, markdown = split_frontmatter(text)
        body['content'] = markdown
        body['raw_content'] = text
        body['frontmatter'] = frontmatter
        body['wikilinks'] = extract_wikilinks(markdown)
    else:
        body['content'] = text
    body['encoding'] = 'utf-8'
    return body


# ── Tree ──────────────────────────────────────────────────────────────


def _sort_key(node: dict[str, Any]) -> tuple[int, int, str]:
    return (
        0 if node['name'] == INDEX_NOTE else 1,
        0 if node['type'] == 'dir' else 1,
        node['name'].lower(),
    )


def _sort(nodes: list[dict[str, Any]]) -> None:
    nodes.sort(key=_sort_key)
    for node in nodes:
        if 'children' in node:
            _sort(node['children'])


def build_share_tree(
    entries: list[TreeEntry],
    scope_path: str,
    include_subfolders: bool,
) -> list[dict[str, Any]]:
    """Nested tree of the in-scope entries, rooted at the scope folder.

    Directories come first, ``_Index.md`` before everything. Without
    subfolders only the direct file children appear.
    """
    root: list[dict[str, Any]] = []
    dirs: dict[str, dict[str, Any]] = {}

    def ensure_dir(relative: str) -> list[dict[str, Any]]:
        if not relative:
            return root
        if relative in dirs:
            return dirs[relative]['children']
        parent, _, name = relative.rpartition(SEPARATOR)
        siblings = ensure_dir(parent)
        full = f'{scope_path}{SEPARATOR}{relative}' if scope_path else relative
        node = {'name': name, 'path': full, 'type': 'dir', 'children': []}
        siblings.append(node)
        dirs[relative] = node
        return node['children']

    for entry in entries:
        if not validate_share_path(entry.path, scope_path, include_subfolders):
            continue
        relative = get_relative_path(entry.path, scope_path)
        if not relative:
            continue
        if entry.type == 'dir':
            if include_subfolders:
                ensure_dir(relative)
            continue
        parent, _, _ = relative.rpartition(SEPARATOR)
        ensure_dir(parent).append({'name': entry.name, 'path': entry.path, 'type': 'file'})

    _sort(root)
    return root
