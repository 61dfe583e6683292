"""
TAR Archive utilities for Docker build contexts
"""

import tarfile
import io
import logging
import os
import stat
from typing import List, Optional, Set, Tuple

from .dockerignore import PatternMatcher, read_all
from .exceptions import BuildError

logger = logging.getLogger(__name__)

DEFAULT_DOCKERFILE = 'Dockerfile'
DOCKERIGNORE_FILE = '.dockerignore'


def canonical_tar_name(path: str) -> str:
    """Platform independent archive name for a relative path"""
    return path.replace(os.sep, '/')


def _locate_dockerfile(context_directory: str, abs_context: str,
                       dockerfile: Optional[str]) -> Tuple[str, str]:
    """
    Find the Dockerfile of a build context

    Returns:
        Tuple of (absolute path, archive name relative to the context)
    """
    if dockerfile:
        filename = os.path.join(context_directory, dockerfile)
        display_name = filename
    else:
        display_name = DEFAULT_DOCKERFILE
        filename = os.path.join(abs_context, DEFAULT_DOCKERFILE)
        # Accept 'dockerfile' too, but only when it is the one that exists
        if not os.path.lexists(filename):
            lower_name = os.path.join(abs_context, DEFAULT_DOCKERFILE.lower())
            if os.path.lexists(lower_name):
                display_name = DEFAULT_DOCKERFILE.lower()
                filename = lower_name

    filename = os.path.abspath(filename)
    dockerfile_name = canonical_tar_name(os.path.relpath(filename, abs_context))

    if dockerfile_name == '..' or dockerfile_name.startswith('../'):
        raise BuildError(
            f"The Dockerfile ({filename}) must be within the build context ({context_directory})"
        )

    if not os.path.lexists(filename):
        raise BuildError(f"Cannot locate Dockerfile: {display_name}")

    return filename, dockerfile_name


def _read_excludes(context_directory: str) -> List[str]:
    dockerignore_path = os.path.join(context_directory, DOCKERIGNORE_FILE)
    try:
        with open(dockerignore_path, 'rb') as f:
            return read_all(f)
    except FileNotFoundError:
        return []


def _raise_walk_error(error: OSError):
    if isinstance(error, PermissionError):
        raise BuildError(f"can't stat '{error.filename}'") from error
    raise error


def validate_context_directory(context_directory: str, excludes: List[str]):
    """
    Check that every file that will be sent is readable

    Args:
        context_directory: Build context path
        excludes: Patterns from .dockerignore

    Raises:
        BuildError: If a directory cannot be listed or a file cannot be read
    """
    matcher = PatternMatcher(excludes)
    context_root = os.path.abspath(context_directory)

    for root, dirs, files in os.walk(context_root, onerror=_raise_walk_error):
        kept_dirs = []
        for name in sorted(dirs):
            rel_path = canonical_tar_name(os.path.relpath(os.path.join(root, name), context_root))
            if not matcher.matches(rel_path):
                kept_dirs.append(name)
        dirs[:] = kept_dirs

        for name in sorted(files):
            file_path = os.path.join(root, name)
            rel_path = canonical_tar_name(os.path.relpath(file_path, context_root))
            if matcher.matches(rel_path):
                continue

            mode = os.lstat(file_path).st_mode
            # Dangling symlinks are allowed and opening a FIFO would block
            if stat.S_ISLNK(mode) or stat.S_ISFIFO(mode):
                continue

            try:
                with open(file_path, 'rb'):
                    pass
            except PermissionError as e:
                raise BuildError(f"no permission to read from '{file_path}'") from e


def _keep_excluded_dir(matcher: PatternMatcher, rel_path: str) -> bool:
    """An excluded directory is still walked when an exception pattern points inside it"""
    if not matcher.exclusions:
        return False
    dir_slash = rel_path + '/'
    for pattern in matcher.patterns:
        if pattern.exclusion and (str(pattern) + '/').startswith(dir_slash):
            return True
    return False


def create_build_context(context_directory: str, dockerfile: Optional[str] = DEFAULT_DOCKERFILE) -> bytes:
    """
    Create the tar archive sent to the daemon for an image build

    Args:
        context_directory: Build context path
        dockerfile: Dockerfile name relative to the context
            (empty: 'Dockerfile', falling back to 'dockerfile')

    Returns:
        Uncompressed tar archive as bytes

    Raises:
        BuildError: If the Dockerfile is missing or the context is not readable
    """
    abs_context = os.path.abspath(context_directory)
    _, dockerfile_name = _locate_dockerfile(context_directory, abs_context, dockerfile)

    excludes = _read_excludes(context_directory)
    matcher = PatternMatcher(excludes)

    # The daemon needs the Dockerfile, and .dockerignore to know whether
    # either of them has to be dropped after parsing
    includes = []
    if matcher.matches(DOCKERIGNORE_FILE) or matcher.matches(dockerfile_name):
        includes = [DOCKERIGNORE_FILE, dockerfile_name]

    try:
        validate_context_directory(context_directory, excludes)
    except (BuildError, OSError) as e:
        raise BuildError(
            f"Error checking context is accessible: '{e}'. Please check permissions and try again."
        ) from e

    tar_stream = io.BytesIO()
    seen: Set[str] = set()

    def add(tar: tarfile.TarFile, path: str, arcname: str):
        if arcname in seen:
            return
        seen.add(arcname)
        tar.add(path, arcname=arcname, recursive=False)

    with tarfile.open(fileobj=tar_stream, mode='w') as tar:
        for root, dirs, files in os.walk(abs_context):
            kept_dirs = []
            for name in sorted(dirs):
                dir_path = os.path.join(root, name)
                rel_path = canonical_tar_name(os.path.relpath(dir_path, abs_context))
                if os.path.islink(dir_path):
                    # Stored as a link, never followed
                    files.append(name)
                    continue
                if matcher.matches(rel_path):
                    if not _keep_excluded_dir(matcher, rel_path):
                        continue
                else:
                    add(tar, dir_path, rel_path)
                kept_dirs.append(name)
            dirs[:] = kept_dirs

            for name in sorted(files):
                file_path = os.path.join(root, name)
                rel_path = canonical_tar_name(os.path.relpath(file_path, abs_context))
                if matcher.matches(rel_path):
                    continue
                add(tar, file_path, rel_path)

        for include in includes:
            include_path = os.path.join(abs_context, *include.split('/'))
            if not os.path.lexists(include_path):
                logger.debug(f"Skipping missing build context file: {include}")
                continue
            add(tar, include_path, include)

    logger.debug(f"Build context {context_directory}: {len(seen)} entries")
    tar_stream.seek(0)
    return tar_stream.read()
