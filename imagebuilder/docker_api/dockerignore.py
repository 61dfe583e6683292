"""
.dockerignore parsing and path matching
"""

import codecs
import posixpath
import re
from typing import IO, Iterable, List, Union

from .exceptions import BuildError

UTF8_BOM = "\ufeff"


def clean_path(path: str) -> str:
    """Lexically clean a slash-separated path ('a//b/../c' -> 'a/c')"""
    if not path:
        return '.'
    cleaned = posixpath.normpath(path)
    # normpath keeps a leading '//'
    if cleaned.startswith('//'):
        cleaned = '/' + cleaned.lstrip('/')
    return cleaned


def read_all(fileobj: Union[IO[str], IO[bytes], Iterable]) -> List[str]:
    """
    Read exclusion patterns from a .dockerignore file

    Args:
        fileobj: Open file (text or binary) or any iterable of lines

    Returns:
        List of cleaned patterns; exceptions keep their '!' prefix
    """
    excludes = []
    for line_number, raw_line in enumerate(fileobj):
        if isinstance(raw_line, bytes):
            if line_number == 0 and raw_line.startswith(codecs.BOM_UTF8):
                raw_line = raw_line[len(codecs.BOM_UTF8):]
            line = raw_line.decode('utf-8')
        else:
            line = raw_line
            if line_number == 0 and line.startswith(UTF8_BOM):
                line = line[1:]

        line = line.rstrip('\n').rstrip('\r')

        # Comments are only recognised in the first column
        if line.startswith('#'):
            continue

        pattern = line.strip()
        if not pattern:
            continue

        invert = pattern.startswith('!')
        if invert:
            pattern = pattern[1:].strip()

        if pattern:
            pattern = clean_path(pattern)
            if len(pattern) > 1 and pattern.startswith('/'):
                pattern = pattern[1:]

        if invert:
            pattern = '!' + pattern
        excludes.append(pattern)

    return excludes


def _class_end(pattern: str, start: int) -> int:
    """Index of the ']' closing a character class opened before start, or -1"""
    i = start
    while i < len(pattern):
        ch = pattern[i]
        if ch == '\\':
            i += 2
            continue
        if ch == ']' and i > start:
            return i
        i += 1
    return -1


def translate(pattern: str) -> str:
    """
    Translate a cleaned glob pattern into a regular expression

    '*' and '?' never cross a '/', '**' matches any number of directories.
    """
    regex = '^'
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]
        i += 1
        if ch == '*':
            if i < n and pattern[i] == '*':
                i += 1
                # '**/' behaves like '**'
                if i < n and pattern[i] == '/':
                    i += 1
                regex += '.*' if i >= n else '(.*/)?'
            else:
                regex += '[^/]*'
        elif ch == '?':
            regex += '[^/]'
        elif ch == '\\':
            if i < n:
                regex += re.escape(pattern[i])
                i += 1
            else:
                regex += re.escape('\\')
        elif ch == '[':
            end = _class_end(pattern, i)
            if end < 0:
                raise BuildError(f"Syntax error in pattern: {pattern}")
            body = pattern[i:end].replace('[', '\\[')
            regex += f"[{body}]"
            i = end + 1
        else:
            regex += re.escape(ch)
    return regex + '$'


class Pattern:
    """Single compiled exclusion pattern"""

    def __init__(self, pattern: str, exclusion: bool = False):
        self.cleaned_pattern = pattern
        self.exclusion = exclusion
        self.dirs = pattern.split('/')
        try:
            self.regexp = re.compile(translate(pattern))
        except re.error as e:
            raise BuildError(f"Syntax error in pattern {pattern}: {e}") from e

    def __str__(self):
        return self.cleaned_pattern

    def __repr__(self):
        prefix = '!' if self.exclusion else ''
        return f"<Pattern: {prefix}{self.cleaned_pattern}>"

    def match(self, path: str) -> bool:
        return self.regexp.match(path) is not None


class PatternMatcher:
    """Matches paths against an ordered list of .dockerignore patterns"""

    def __init__(self, patterns: Iterable[str]):
        self.patterns: List[Pattern] = []
        self.exclusions = False

        for raw in patterns:
            pattern = raw.strip()
            if not pattern:
                continue

            exclusion = pattern.startswith('!')
            if exclusion:
                if len(pattern) == 1:
                    raise BuildError('Illegal exclusion pattern: "!"')
                pattern = pattern[1:]
                self.exclusions = True

            self.patterns.append(Pattern(clean_path(pattern), exclusion=exclusion))

    def matches(self, path: str) -> bool:
        """
        Check whether a context-relative path is excluded

        The last matching pattern decides. A pattern also applies to
        everything below a directory it matches.
        """
        path = clean_path(path)
        if path == '.':
            return False

        parent_path = posixpath.dirname(path) or '.'
        parent_dirs = parent_path.split('/')

        matched = False
        for pattern in self.patterns:
            match = pattern.match(path)
            if not match and parent_path != '.':
                if len(pattern.dirs) <= len(parent_dirs):
                    match = pattern.match('/'.join(parent_dirs[:len(pattern.dirs)]))
            if match:
                matched = not pattern.exclusion
        return matched


def matches(path: str, patterns: Iterable[str]) -> bool:
    """Check a single path against a list of patterns"""
    return PatternMatcher(patterns).matches(path)
