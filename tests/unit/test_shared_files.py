"""Tests for shared file payloads and the scoped tree."""

import base64

import pytest

from vault_shares.backend.store import TreeEntry
from vault_shares.sharing.files import (
    build_share_tree,
    extract_wikilinks,
    file_payload,
    file_type,
    split_frontmatter,
)


def _entries(*paths):
    out = []
    for path in paths:
        kind = 'dir' if path.endswith('/') else 'file'
        out.append(TreeEntry(path=path.rstrip('/'), type=kind))
    return out


class TestFileType:

    @pytest.mark.parametrize('path, kind', [
        ('a.md', 'markdown'),
        ('A.MD', 'markdown'),
        ('board.canvas', 'canvas'),
        ('doc.pdf', 'pdf'),
        ('pic.png', 'image'),
        ('clip.mp4', 'video'),
        ('song.mp3', 'audio'),
        ('data.json', 'text'),
        ('Makefile', 'text'),
    ])
    def test_detection(self, path, kind):
        assert file_type(path) == kind


class TestMarkdown:

    def test_frontmatter_split(self):
        meta, body = split_frontmatter('---\ntitle: Plan\ntags: [a, b]\n---\n# Body\n')
        assert meta == {'title': 'Plan', 'tags': ['a', 'b']}
        assert body == '# Body\n'

    def test_no_frontmatter(self):
        assert split_frontmatter('# Just text') == ({}, '# Just text')

    def test_invalid_yaml_kept_in_body(self):
        raw = '---\n: [unclosed\n---\nbody'
        assert split_frontmatter(raw) == ({}, raw)

    def test_scalar_frontmatter_kept_in_body(self):
        raw = '---\njust a string\n---\nbody'
        assert split_frontmatter(raw) == ({}, raw)

    def test_wikilinks(self):
        text = 'See [[Note A]], [[folder/Note B|alias]] and [not a link].'
        assert extract_wikilinks(text) == ['Note A', 'folder/Note B']


class TestFilePayload:

    def test_markdown(self):
        raw = b'---\ntags: [x]\n---\nLink to [[Other]]\n'
        body = file_payload('Projects/a.md', raw, 'sha1')
        assert body['file_type'] == 'markdown'
        assert body['encoding'] == 'utf-8'
        assert body['frontmatter'] == {'tags': ['x']}
        assert body['content'] == 'Link to [[Other]]\n'
        assert body['raw_content'] == raw.decode()
        assert body['wikilinks'] == ['Other']
        assert body['sha'] == 'sha1'

    def test_binary_is_base64(self):
        raw = b'\x89PNG\r\n\x1a\n\x00\xff'
        body = file_payload('Projects/pic.png', raw, 'sha2')
        assert body['encoding'] == 'base64'
        assert base64.b64decode(body['content']) == raw
        assert body['mime_type'] == 'image/png'

    def test_plain_text(self):
        body = file_payload('Projects/board.canvas', b'{"nodes": []}', 'sha3')
        assert body['content'] == '{"nodes": []}'
        assert body['encoding'] == 'utf-8'
        assert 'frontmatter' not in body


class TestShareTree:

    ENTRIES = _entries(
        'Projects/',
        'Projects/zeta.md',
        'Projects/alpha.md',
        'Projects/_Index.md',
        'Projects/sub/',
        'Projects/sub/b.md',
        'Projects/sub/deep/',
        'Projects/sub/deep/c.md',
        'ProjectsExtra/',
        'ProjectsExtra/secret.md',
        'Notes/',
        'Notes/idea.md',
    )

    def test_direct_children_only(self):
        tree = build_share_tree(self.ENTRIES, 'Projects', False)
        assert [n['name'] for n in tree] == ['_Index.md', 'alpha.md', 'zeta.md']
        assert all(n['type'] == 'file' for n in tree)

    def test_nested_with_subfolders(self):
        tree = build_share_tree(self.ENTRIES, 'Projects', True)
        assert [n['name'] for n in tree] == ['_Index.md', 'sub', 'alpha.md', 'zeta.md']
        sub = tree[1]
        assert sub['path'] == 'Projects/sub'
        assert [n['name'] for n in sub['children']] == ['deep', 'b.md']
        assert sub['children'][0]['children'][0]['path'] == 'Projects/sub/deep/c.md'

    def test_sibling_prefix_folder_excluded(self):
        tree = build_share_tree(self.ENTRIES, 'Projects', True)
        paths = str(tree)
        assert 'ProjectsExtra' not in paths
        assert 'Notes' not in paths

    def test_files_without_dir_entries(self):
        tree = build_share_tree(_entries('Projects/sub/b.md'), 'Projects', True)
        assert tree[0]['name'] == 'sub'
        assert tree[0]['children'][0]['name'] == 'b.md'

    def test_root_scope(self):
        tree = build_share_tree(_entries('Notes/', 'Notes/idea.md', 'top.md'), '', True)
        assert [n['name'] for n in tree] == ['Notes', 'top.md']
