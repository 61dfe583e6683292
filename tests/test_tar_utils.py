import io
import os
import tarfile

import pytest

from imagebuilder.docker_api.exceptions import BuildError
from imagebuilder.docker_api.tar_utils import (
    canonical_tar_name,
    create_build_context,
    validate_context_directory,
)

running_as_root = hasattr(os, 'geteuid') and os.geteuid() == 0


def _open(data):
    return tarfile.open(fileobj=io.BytesIO(data), mode='r')


def _names(data):
    with _open(data) as tar:
        return tar.getnames()


def test_archives_whole_context_without_dockerignore(build_context):
    (build_context / 'pkg').mkdir()
    (build_context / 'pkg' / 'module.py').write_text('x = 1\n')

    names = _names(create_build_context(str(build_context)))

    assert sorted(names) == ['Dockerfile', 'app.py', 'pkg', 'pkg/module.py']


def test_dockerignore_excludes_files_and_directories(build_context):
    (build_context / 'README.md').write_text('readme')
    (build_context / 'docs').mkdir()
    (build_context / 'docs' / 'guide.md').write_text('guide')
    (build_context / 'node_modules' / 'pkg').mkdir(parents=True)
    (build_context / 'node_modules' / 'pkg' / 'index.js').write_text('')
    (build_context / '.dockerignore').write_text('node_modules\n*.md\n')

    names = _names(create_build_context(str(build_context)))

    assert 'Dockerfile' in names
    assert 'app.py' in names
    assert '.dockerignore' in names
    assert 'docs/guide.md' in names
    assert 'README.md' not in names
    assert not any(name.startswith('node_modules') for name in names)


def test_excluded_dockerfile_and_dockerignore_are_still_sent(build_context):
    (build_context / 'notes.txt').write_text('notes')
    (build_context / '.dockerignore').write_text('Dockerfile\n.dockerignore\n*.txt\n')

    names = _names(create_build_context(str(build_context)))

    assert 'Dockerfile' in names
    assert '.dockerignore' in names
    assert 'notes.txt' not in names
    assert len(names) == len(set(names))


def test_exception_pattern_reaches_into_excluded_directory(build_context):
    vendor = build_context / 'vendor'
    vendor.mkdir()
    (vendor / 'keep.txt').write_text('keep')
    (vendor / 'drop.txt').write_text('drop')
    (build_context / '.dockerignore').write_text('vendor\n!vendor/keep.txt\n')

    names = _names(create_build_context(str(build_context)))

    assert 'vendor/keep.txt' in names
    assert 'vendor/drop.txt' not in names
    assert 'vendor' not in names


def test_symlinks_are_stored_as_links(build_context):
    (build_context / 'docs').mkdir()
    (build_context / 'docs' / 'guide.md').write_text('guide')
    os.symlink('app.py', str(build_context / 'link.py'))
    os.symlink('docs', str(build_context / 'docs-link'))
    os.symlink('missing', str(build_context / 'dangling'))

    with _open(create_build_context(str(build_context))) as tar:
        names = tar.getnames()
        assert tar.getmember('link.py').issym()
        assert tar.getmember('link.py').linkname == 'app.py'
        assert tar.getmember('docs-link').issym()
        assert tar.getmember('dangling').issym()

    assert 'docs-link/guide.md' not in names


def test_file_contents_are_preserved(build_context):
    with _open(create_build_context(str(build_context))) as tar:
        content = tar.extractfile('Dockerfile').read()

    assert content == b'FROM busybox\nCOPY . /app\n'


def test_missing_dockerfile(tmp_path):
    (tmp_path / 'app.py').write_text('')

    with pytest.raises(BuildError) as exc:
        create_build_context(str(tmp_path))

    assert 'Cannot locate Dockerfile' in str(exc.value)


def test_lowercase_dockerfile_used_when_name_not_given(tmp_path):
    (tmp_path / 'dockerfile').write_text('FROM busybox\n')

    names = _names(create_build_context(str(tmp_path), dockerfile=''))

    assert names == ['dockerfile']


def test_dockerfile_outside_context_is_rejected(tmp_path):
    context = tmp_path / 'context'
    context.mkdir()
    (tmp_path / 'Dockerfile').write_text('FROM busybox\n')

    with pytest.raises(BuildError) as exc:
        create_build_context(str(context), dockerfile='../Dockerfile')

    assert 'must be within the build context' in str(exc.value)


def test_illegal_dockerignore_pattern(build_context):
    (build_context / '.dockerignore').write_text('!\n')

    with pytest.raises(BuildError) as exc:
        create_build_context(str(build_context))

    assert 'Illegal exclusion pattern' in str(exc.value)


@pytest.mark.skipif(running_as_root, reason="root can read any file")
def test_unreadable_file_fails_validation(build_context):
    secret = build_context / 'secret.txt'
    secret.write_text('secret')
    secret.chmod(0)
    try:
        with pytest.raises(BuildError) as exc:
            create_build_context(str(build_context))
    finally:
        secret.chmod(0o644)

    assert 'Error checking context is accessible' in str(exc.value)
    assert 'no permission to read from' in str(exc.value)


@pytest.mark.skipif(running_as_root, reason="root can read any file")
def test_unreadable_excluded_file_is_ignored(build_context):
    secret = build_context / 'secret.txt'
    secret.write_text('secret')
    secret.chmod(0)
    try:
        validate_context_directory(str(build_context), ['secret.txt'])
    finally:
        secret.chmod(0o644)


def test_canonical_tar_name():
    assert canonical_tar_name(os.path.join('a', 'b', 'c')) == 'a/b/c'


def test_directory_members_are_written_with_trailing_slash(build_context):
    (build_context / 'pkg').mkdir()

    data = create_build_context(str(build_context))

    assert canonical_tar_name('pkg') == 'pkg'
    assert b'pkg/\x00' in data
    with _open(data) as tar:
        assert tar.getmember('pkg').isdir()
