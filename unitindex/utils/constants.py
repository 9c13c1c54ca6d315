"""Centralized constants for the unitindex utils package.

Single source of truth for output paths and the file names the writer and
the CLI agree on.
"""

from pathlib import Path

# ============================================================================
# OUTPUT DIRECTORIES
# ============================================================================

# Working directory for config, logs and default extraction output
STATE_DIR_NAME = ".unitindex"
STATE_DIR = Path(".") / STATE_DIR_NAME

# Log files
ERROR_LOG_FILE = STATE_DIR / "error.log"

# Default extraction output (relative to the app root)
DEFAULT_OUTPUT_DIR = Path("tmp") / "unitindex"

# ============================================================================
# OUTPUT FILE NAMES
# ============================================================================

TYPE_INDEX_FILE = "_index.json"
GRAPH_FILE = "dependency_graph.json"
MANIFEST_FILE = "manifest.json"

# Runtime introspection dump written by the host application
RUNTIME_MANIFEST_FILE = "unitindex.json"

# ============================================================================
# SIZE ESTIMATION
# ============================================================================

# Rough token estimate for code: 1 token ~ 4 characters
CHARS_PER_TOKEN = 4.0
