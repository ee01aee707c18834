"""Test-declaration and import extraction built on Tree-sitter.

Tree-sitter grammars for JavaScript, TypeScript and TSX produce a concrete
syntax tree for each file version. Two things are read from it:

- every call to a recognized test-declaration function (``test``, ``it``,
  ``describe`` by default) with its name and the line span of the whole call
- every module specifier the file imports, for the module graph

Extraction is a pure function of source text, so it applies equally to the
working tree and to content fetched from an older revision.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Parser as TSParser

from .config import DEFAULT_TEST_FUNCTIONS
from .errors import ParseFailure
from .models import TestDeclaration

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}

_ESCAPES: Dict[str, str] = {
    "n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0",
}


@lru_cache(maxsize=None)
def _language(name: str) -> Language:
    if name == "typescript":
        return Language(tree_sitter_typescript.language_typescript())
    if name == "tsx":
        return Language(tree_sitter_typescript.language_tsx())
    return Language(tree_sitter_javascript.language())


def language_for(path: str) -> Optional[str]:
    """Grammar name for *path* by extension, or None if unsupported."""
    for ext, lang in LANGUAGE_MAP.items():
        if path.endswith(ext):
            return lang
    return None


def _text(node: Any) -> str:
    return node.text.decode("utf-8", errors="replace")


def _walk(root: Any) -> Iterator[Any]:
    """Pre-order traversal; yields nodes in document order."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _unescape(sequence: str) -> str:
    body = sequence[1:]
    if not body:
        return ""
    if body[0] in _ESCAPES and len(body) == 1:
        return _ESCAPES[body[0]]
    if body[0] in "ux":
        digits = body[1:].strip("{}")
        try:
            return chr(int(digits, 16))
        except ValueError:
            return sequence
    if body[0] == "\n":
        return ""
    return body


def _literal_value(node: Any) -> str:
    """Decoded text of a ``string`` or substitution-free ``template_string``."""
    parts: List[str] = []
    saw_content = False
    for child in node.children:
        if child.type == "string_fragment":
            parts.append(_text(child))
            saw_content = True
        elif child.type == "escape_sequence":
            parts.append(_unescape(_text(child)))
            saw_content = True
    if saw_content:
        return "".join(parts)
    return _text(node)[1:-1]


def _call_arguments(call: Any) -> List[Any]:
    args = call.child_by_field_name("arguments")
    if args is None:
        return []
    return [a for a in args.named_children if a.type != "comment"]


class TestDeclarationExtractor:
    """Parse one file version into test declarations and import specifiers.

    A single instance owns its Tree-sitter parsers and is not meant to be
    shared across threads; create one per worker.
    """
    __test__ = False

    def __init__(self, test_functions: Iterable[str] = DEFAULT_TEST_FUNCTIONS) -> None:
        self.test_functions: FrozenSet[str] = frozenset(test_functions)
        self._parsers: Dict[str, TSParser] = {}

    def supports(self, path: str) -> bool:
        return language_for(path) is not None

    def _parse(self, source: str, path: str) -> Any:
        lang = language_for(path)
        if lang is None:
            raise ParseFailure(path, "unsupported file type")
        parser = self._parsers.get(lang)
        if parser is None:
            parser = TSParser(_language(lang))
            self._parsers[lang] = parser
        tree = parser.parse(source.encode("utf-8"))
        if tree.root_node.has_error:
            raise ParseFailure(path, "syntax error")
        return tree.root_node

    # ------------------------------------------------------------------
    # Test declarations
    # ------------------------------------------------------------------

    def extract(self, source: str, path: str = "file.ts") -> List[TestDeclaration]:
        """Every recognized test-declaration call in *source*.

        *path* only selects the grammar. Raises ParseFailure when the
        content does not parse cleanly.
        """
        root = self._parse(source, path)
        declarations: List[TestDeclaration] = []
        for node in _walk(root):
            if node.type != "call_expression":
                continue
            callee = node.child_by_field_name("function")
            if callee is None or _text(callee) not in self.test_functions:
                continue
            declarations.append(self._declaration(node))
        return declarations

    def _declaration(self, call: Any) -> TestDeclaration:
        args = _call_arguments(call)
        start = call.start_point[0] + 1
        end = call.end_point[0] + 1
        if not args:
            return TestDeclaration(name="[dynamic: unnamed test]", start_line=start, end_line=end, is_dynamic=True)

        first = args[0]
        if first.type == "string":
            return TestDeclaration(name=_literal_value(first), start_line=start, end_line=end)
        if first.type == "template_string":
            if any(c.type == "template_substitution" for c in first.children):
                # Display only; never usable in a literal match pattern.
                return TestDeclaration(name=_text(first)[1:-1], start_line=start, end_line=end, is_dynamic=True)
            return TestDeclaration(name=_literal_value(first), start_line=start, end_line=end)
        return TestDeclaration(
            name=f"[dynamic: {_text(first)}]", start_line=start, end_line=end, is_dynamic=True,
        )

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    def extract_imports(self, source: str, path: str) -> FrozenSet[str]:
        """Module specifiers referenced by static imports, re-exports and require()."""
        root = self._parse(source, path)
        specifiers = set()
        for node in _walk(root):
            source_node = None
            if node.type in ("import_statement", "export_statement", "import_require_clause"):
                source_node = node.child_by_field_name("source")
            elif node.type == "call_expression":
                callee = node.child_by_field_name("function")
                if callee is not None and (callee.type == "import" or _text(callee) == "require"):
                    args = _call_arguments(node)
                    source_node = args[0] if args else None
            if source_node is not None and source_node.type == "string":
                specifiers.add(_literal_value(source_node))
        return frozenset(specifiers)
