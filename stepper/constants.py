"""Named constants shared by the stepper modules."""

from __future__ import annotations

LANGUAGE_JAVASCRIPT = "javascript"
LANGUAGE_TYPESCRIPT = "typescript"

SUPPORTED_LANGUAGES: tuple[str, ...] = (
    LANGUAGE_JAVASCRIPT,
    LANGUAGE_TYPESCRIPT,
)

# Resource guard defaults
DEFAULT_MAX_ITERATIONS = 1000
DEFAULT_MAX_LOOP_DEPTH = 10
DEFAULT_TIMEOUT_MS = 5000
DEFAULT_MAX_CALL_DEPTH = 50
DEFAULT_MAX_STEPS = 1000
DEFAULT_MAX_STRING_LENGTH = 200

# Largest gap an index assignment may open in an array
MAX_ARRAY_GAP = 1000

# Longest string concatenation or a template may build
MAX_RUNTIME_STRING_LENGTH = 1 << 20

# Snapshot placeholders
FUNCTION_PLACEHOLDER_TEMPLATE = "[Function: {name}]"
ANONYMOUS_FUNCTION_NAME = "anonymous"
UNSERIALIZABLE_PLACEHOLDER = "[Unserializable]"
SPREAD_PLACEHOLDER = "[Spread]"
TRUNCATION_MARKER = "...[truncated]"
MAX_SNAPSHOT_DEPTH = 32
# containers one snapshot or serialisation may visit
MAX_SNAPSHOT_NODES = 10_000

CONSOLE_OBJECT = "console"
CONSOLE_METHODS: frozenset[str] = frozenset({"log", "info", "warn", "error", "debug"})

COMMENT_TYPES: frozenset[str] = frozenset({"comment", "html_comment"})

# TypeScript declarations that carry no runtime behaviour
TYPE_ONLY_STATEMENTS: frozenset[str] = frozenset(
    {
        "interface_declaration",
        "type_alias_declaration",
        "ambient_declaration",
        "import_statement",
    }
)
