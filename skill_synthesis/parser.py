"""Recover code patterns and dependencies from a generated SKILL.md.

The section headers ``## Imports`` and ``## Core Patterns`` are a hard
contract with the synthesis prompt: patterns are only found under the exact
``## Core Patterns`` heading, one per ``###`` subsection.
"""

from __future__ import annotations

import logging
import re
import sys

from .models import CodePattern, PatternCategory

logger = logging.getLogger(__name__)

_CORE_PATTERNS_RE = re.compile(r"^##\s+Core\s+Patterns\s*$", re.MULTILINE)
_IMPORTS_RE = re.compile(r"^##\s+Imports\s*$", re.MULTILINE)
_NEXT_SECTION_RE = re.compile(r"^##\s+", re.MULTILINE)
_SUBSECTION_RE = re.compile(r"^###\s+(.+?)\s*$", re.MULTILINE)
_PYTHON_BLOCK_RE = re.compile(r"```(?:python|py)[ \t]*\n(.*?)```", re.DOTALL)

_IMPORT_RE = re.compile(r"^\s*import\s+(.+)$", re.MULTILINE)
_FROM_IMPORT_RE = re.compile(r"^\s*from\s+([A-Za-z_][A-Za-z0-9_.]*)\s+import\b", re.MULTILINE)
_PIP_INSTALL_RE = re.compile(r"pip\s+install\s+([A-Za-z0-9][A-Za-z0-9_.\-]*)")

STDLIB_MODULES = frozenset({
    "__future__", "_thread", "abc", "aifc", "argparse", "array", "ast", "asynchat",
    "asyncio", "asyncore", "atexit", "audioop", "base64", "bdb", "binascii", "binhex",
    "bisect", "builtins", "bz2", "calendar", "cgi", "cgitb", "chunk", "cmath", "cmd",
    "code", "codecs", "codeop", "collections", "colorsys", "compileall", "concurrent",
    "configparser", "contextlib", "contextvars", "copy", "copyreg", "crypt", "csv",
    "ctypes", "curses", "dataclasses", "datetime", "dbm", "decimal", "difflib", "dis",
    "distutils", "doctest", "dummy_threading", "email", "encodings", "enum", "errno",
    "faulthandler", "fcntl", "filecmp", "fileinput", "fnmatch", "formatter", "fractions",
    "ftplib", "functools", "gc", "getopt", "getpass", "gettext", "glob", "graphlib",
    "grp", "gzip", "hashlib", "heapq", "hmac", "html", "http", "imaplib", "imghdr",
    "imp", "importlib", "inspect", "io", "ipaddress", "itertools", "json", "keyword",
    "lib2to3", "linecache", "locale", "logging", "lzma", "mailbox", "mailcap",
    "marshal", "math", "mimetypes", "mmap", "modulefinder", "msilib", "msvcrt",
    "multiprocessing", "netrc", "nis", "nntplib", "numbers", "operator", "optparse",
    "os", "ossaudiodev", "parser", "pathlib", "pdb", "pickle", "pickletools", "pipes",
    "pkgutil", "platform", "plistlib", "poplib", "posix", "posixpath", "pprint",
    "profile", "pstats", "pty", "pwd", "py_compile", "pyclbr", "pydoc", "queue",
    "quopri", "random", "re", "readline", "reprlib", "resource", "rlcompleter", "runpy",
    "sched", "secrets", "select", "selectors", "shelve", "shlex", "shutil", "signal",
    "site", "smtpd", "smtplib", "sndhdr", "socket", "socketserver", "spwd", "sqlite3",
    "ssl", "stat", "statistics", "string", "stringprep", "struct", "subprocess",
    "sunau", "symbol", "symtable", "sys", "sysconfig", "syslog", "tabnanny", "tarfile",
    "telnetlib", "tempfile", "termios", "test", "textwrap", "threading", "time",
    "timeit", "tkinter", "token", "tokenize", "tomllib", "trace", "traceback",
    "tracemalloc", "tty", "turtle", "turtledemo", "types", "typing", "unicodedata",
    "unittest", "urllib", "uu", "uuid", "venv", "warnings", "wave", "weakref",
    "webbrowser", "winreg", "winsound", "wsgiref", "xdrlib", "xml", "xmlrpc",
    "zipapp", "zipfile", "zipimport", "zlib", "zoneinfo",
}) | frozenset(getattr(sys, "stdlib_module_names", ()))

# Names that usually point at the example's own modules rather than PyPI
LOCAL_MODULE_NAMES = frozenset({
    "cli", "main", "app", "config", "utils", "helpers", "models", "views", "routes",
    "handlers", "tests", "test", "example", "src", "lib", "core", "api", "client",
    "server",
})
_SHORT_PACKAGE_NAMES = frozenset({"jwt", "aws", "grpc", "PIL", "bs4", "six", "rq"})

# Import names whose distribution is published under a different name
IMPORT_TO_DISTRIBUTION = {
    "PIL": "pillow",
    "attr": "attrs",
    "bs4": "beautifulsoup4",
    "cv2": "opencv-python",
    "dateutil": "python-dateutil",
    "dotenv": "python-dotenv",
    "jwt": "PyJWT",
    "sklearn": "scikit-learn",
    "yaml": "pyyaml",
}

_CATEGORY_KEYWORDS = [
    (PatternCategory.BASIC_USAGE, ("basic", "simple", "hello", "getting started", "quickstart")),
    (PatternCategory.CONFIGURATION, ("config", "setup", "initialize", "initialise", "settings")),
    (PatternCategory.ERROR_HANDLING, ("error", "exception", "try", "catch", "handle", "retry")),
    (PatternCategory.ASYNC_PATTERN, ("async", "await", "concurrent")),
    (PatternCategory.INTEGRATION, ("integrat", "plugin", "middleware", "extension")),
]


def is_stdlib_module(name: str) -> bool:
    return name in STDLIB_MODULES


def is_likely_local_module(name: str) -> bool:
    if len(name) <= 3 and name not in _SHORT_PACKAGE_NAMES:
        return True
    return name in LOCAL_MODULE_NAMES


def to_distribution_name(module: str) -> str:
    """Installable name for a top-level import name."""
    return IMPORT_TO_DISTRIBUTION.get(module, module)


def categorize_pattern(name: str, description: str, position: int = 0) -> PatternCategory:
    """Pick a category from keywords in the name and description.

    With no keyword hit, the first pattern is basic usage and later ones
    are ``other``.
    """
    text = f"{name} {description}".lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(re.search(rf"\b{re.escape(k)}", text) for k in keywords):
            return category
    return PatternCategory.BASIC_USAGE if position == 0 else PatternCategory.OTHER


def _section(text: str, header_re: re.Pattern) -> str | None:
    match = header_re.search(text)
    if match is None:
        return None
    rest = text[match.end():]
    end = _NEXT_SECTION_RE.search(rest)
    return rest[: end.start()] if end else rest


def extract_patterns(text: str) -> list[CodePattern]:
    """Return the Core Patterns subsections that carry a python code block, in document order."""
    section = _section(text, _CORE_PATTERNS_RE)
    if section is None:
        logger.debug("No Core Patterns section found in SKILL.md")
        return []

    headers = list(_SUBSECTION_RE.finditer(section))
    patterns: list[CodePattern] = []

    for i, header in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(section)
        body = section[header.end():end]

        code_match = _PYTHON_BLOCK_RE.search(body)
        if code_match is None:
            continue

        name = header.group(1).strip()
        description = body[: code_match.start()].strip()
        patterns.append(CodePattern(
            name=name,
            description=description,
            code=code_match.group(1).strip(),
            category=categorize_pattern(name, description, position=len(patterns)),
        ))

    logger.debug("Extracted %d patterns from SKILL.md", len(patterns))
    return patterns


def extract_dependencies(text: str) -> list[str]:
    """Third-party top-level module names from the Imports section.

    Duplicates are dropped (first occurrence wins) and standard-library
    names are filtered out. ``from x import`` lines also skip names that
    look like local modules.
    """
    section = _section(text, _IMPORTS_RE)
    if section is None:
        logger.debug("No Imports section found in SKILL.md")
        return []

    deps: list[str] = []

    def add(name: str) -> None:
        if name and not is_stdlib_module(name) and name not in deps:
            deps.append(name)

    for match in _IMPORT_RE.finditer(section):
        statement = match.group(1).split("#", 1)[0]
        for part in statement.split(","):
            module = part.strip().split(" as ")[0].strip()
            module = module.split(".")[0]
            if module.isidentifier():
                add(module)

    for match in _FROM_IMPORT_RE.finditer(section):
        module = match.group(1).split(".")[0]
        if not is_likely_local_module(module):
            add(module)

    for match in _PIP_INSTALL_RE.finditer(section):
        add(match.group(1))

    logger.debug("Extracted %d dependencies from SKILL.md", len(deps))
    return deps


def _frontmatter_value(text: str, key: str) -> str | None:
    for line in text.splitlines()[:10]:
        stripped = line.strip()
        if stripped.startswith(f"{key}:"):
            value = stripped[len(key) + 1:].strip().strip("\"'")
            return value or None
    return None


def extract_name(text: str) -> str | None:
    return _frontmatter_value(text, "name")


def extract_version(text: str) -> str | None:
    """Frontmatter version, or None when missing or ``unknown``."""
    version = _frontmatter_value(text, "version")
    if version is None or version == "unknown":
        return None
    return version
