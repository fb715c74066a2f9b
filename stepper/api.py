"""Composable API functions for the stepper pipelines.

Each function corresponds to a CLI workflow (text listing, --json) but is
callable programmatically without argparse.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from tree_sitter import Node, Tree

from . import constants
from .parser import Parser, TreeSitterParserFactory
from .run import execute_source
from .run_types import StepperConfig
from .trace_types import ExecutionTrace, Step

logger = logging.getLogger(__name__)

_FUNCTION_NODE_TYPES: frozenset[str] = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "arrow_function",
        "method_definition",
    }
)


def parse_source(source: str, language: str = constants.LANGUAGE_JAVASCRIPT) -> Tree:
    """Parse source code, raising ParseFailure when it is malformed.

    Args:
        source: The source code text.
        language: "javascript" or "typescript".

    Returns:
        The tree-sitter Tree.
    """
    logger.info("Parsing source (%s)", language)
    return Parser(TreeSitterParserFactory()).parse(source, language)


def trace_source(
    source: str,
    language: str = constants.LANGUAGE_JAVASCRIPT,
    max_steps: int = constants.DEFAULT_MAX_STEPS,
    max_iterations: int = constants.DEFAULT_MAX_ITERATIONS,
    timeout_ms: int = constants.DEFAULT_TIMEOUT_MS,
    deduplicate: bool = True,
) -> ExecutionTrace:
    """Execute source with the common guards exposed as keyword arguments.

    Args:
        source: The source code text.
        language: "javascript" or "typescript".
        max_steps: Hard cap on recorded Steps.
        max_iterations: Per-loop iteration cap.
        timeout_ms: Per-loop wall-clock budget.
        deduplicate: Coalesce adjacent Steps with equal line and variables.

    Returns:
        An ExecutionTrace with the Steps and run statistics.
    """
    logger.info(
        "trace_source: language=%s, max_steps=%d, max_iterations=%d",
        language,
        max_steps,
        max_iterations,
    )
    config = StepperConfig(
        max_steps=max_steps,
        max_iterations=max_iterations,
        timeout_ms=timeout_ms,
        deduplicate=deduplicate,
        language=language,
    )
    return execute_source(source, config=config)


def format_step(index: int, step: Step) -> str:
    """One-line rendering of a Step for the text listing."""
    variables = json.dumps(step.to_dict()["variables"], ensure_ascii=False)
    parts = [f"  [{index:>3}] L{step.line:<4} {step.kind.value:<14} {step.code.strip()}"]
    if step.block:
        parts.append(f"      block: {step.block.block_type.value} {step.block.start}-{step.block.end}")
    if step.condition is not None:
        parts.append(f"      condition: {'true' if step.condition else 'false'}")
    parts.append(f"      vars: {variables}")
    if step.has_output:
        parts.append(f"      output: {json.dumps(step.to_dict()['output'], ensure_ascii=False)}")
    if step.message:
        parts.append(f"      message: {step.message}")
    return "\n".join(parts)


def dump_trace(
    source: str,
    language: str = constants.LANGUAGE_JAVASCRIPT,
    config: Optional[StepperConfig] = None,
) -> str:
    """Execute source and return a human-readable listing of its Steps.

    Args:
        source: The source code text.
        language: "javascript" or "typescript".
        config: Optional guards; ``language`` overrides ``config.language``.

    Returns:
        A multi-line string with one entry per Step.
    """
    trace = execute_source(source, language, config)
    return "\n".join(format_step(i, step) for i, step in enumerate(trace.steps))


def dump_json(
    source: str,
    language: str = constants.LANGUAGE_JAVASCRIPT,
    config: Optional[StepperConfig] = None,
    indent: int = 2,
) -> str:
    """Execute source and return the wire form of its Steps as JSON text."""
    trace = execute_source(source, language, config)
    return json.dumps(trace.to_dicts(), indent=indent, ensure_ascii=False)


def _find_function_node(node: Node, name: str) -> Optional[Node]:
    """Recursively walk the AST to find a function node matching *name*.

    Function and arrow expressions match through the declarator they are
    assigned in (``const add = (a, b) => a + b``).
    """
    if node.type in _FUNCTION_NODE_TYPES:
        name_node = node.child_by_field_name("name")
        if name_node is not None and name_node.text.decode("utf-8") == name:
            return node
    if node.type == "variable_declarator":
        name_node = node.child_by_field_name("name")
        value_node = node.child_by_field_name("value")
        if (
            name_node is not None
            and value_node is not None
            and value_node.type in _FUNCTION_NODE_TYPES
            and name_node.text.decode("utf-8") == name
        ):
            return value_node

    return next(
        (
            found
            for child in node.children
            if (found := _find_function_node(child, name)) is not None
        ),
        None,
    )


def extract_function_source(
    source: str,
    function_name: str,
    language: str = constants.LANGUAGE_JAVASCRIPT,
) -> str:
    """Extract the raw source text of a named function from source code.

    Args:
        source: The source code text.
        function_name: The name of the function to extract.
        language: "javascript" or "typescript".

    Returns:
        The source text of the matched function.

    Raises:
        ValueError: If no function with the given name is found.
    """
    logger.info("Extracting function source for '%s' (%s)", function_name, language)
    tree = parse_source(source, language)
    source_bytes = source.encode("utf-8")
    match = _find_function_node(tree.root_node, function_name)
    if match is None:
        raise ValueError(f"Function '{function_name}' not found in source")
    return source_bytes[match.start_byte : match.end_byte].decode("utf-8")
