"""Tree-Sitter Parsing Layer."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from tree_sitter import Node, Tree

from . import constants
from .errors import ParseFailure

logger = logging.getLogger(__name__)


class ParserFactory(ABC):
    """Abstract factory for obtaining a language parser."""

    @abstractmethod
    def get_parser(self, language: str): ...


class TreeSitterParserFactory(ParserFactory):
    """Concrete factory that delegates to tree-sitter-language-pack."""

    def get_parser(self, language: str):
        import tree_sitter_language_pack as tslp

        return tslp.get_parser(language)


class Parser:
    """Thin wrapper around a parser factory that rejects malformed source."""

    def __init__(self, parser_factory: ParserFactory):
        self._factory = parser_factory

    def parse(self, source: str, language: str = constants.LANGUAGE_JAVASCRIPT) -> Tree:
        if language not in constants.SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language: {language}")
        parser = self._factory.get_parser(language)
        tree = parser.parse(source.encode("utf-8"))
        if tree.root_node.has_error:
            bad = _first_error_node(tree.root_node) or tree.root_node
            line, column = bad.start_point[0] + 1, bad.start_point[1]
            reason = "Missing token" if bad.is_missing else "Syntax error"
            logger.info("Parse failed at %d:%d (%s)", line, column, bad.type)
            raise ParseFailure(f"{reason} near '{bad.type}'", line=line, column=column)
        return tree


def _first_error_node(node: Node) -> Node | None:
    """Depth-first search for the first ERROR or MISSING node."""
    if node.is_error or node.is_missing:
        return node
    return next(
        (
            found
            for child in node.children
            if child.has_error or child.is_missing
            if (found := _first_error_node(child)) is not None
        ),
        None,
    )


def node_line(node: Node) -> int:
    """1-based line on which *node* starts."""
    return node.start_point[0] + 1


def node_end_line(node: Node) -> int:
    """1-based line on which *node* ends."""
    return node.end_point[0] + 1


def node_text(node: Node) -> str:
    return node.text.decode("utf-8") if node.text is not None else ""


def named_children(node: Node) -> list[Node]:
    """Named children with comments filtered out."""
    return [c for c in node.named_children if c.type not in constants.COMMENT_TYPES]
