"""Configuration constants.

Protocol constraints and fixed behavior that should NOT be
user-configurable. For configurable values, see models.py.
"""

# =============================================================================
# Wire protocol
# =============================================================================

DEFAULT_COVERAGE_PORT = 9095
"""Port the instrumentation's coverage server listens on."""

HEALTH_PATH = "/health"
COVERAGE_PATH = "/coverage"
RESET_PATH = "/coverage/reset"

HEALTH_ATTEMPTS_DEFAULT = 5
"""Liveness probes before a tunnel is declared unreachable."""

HEALTH_INTERVAL_SEC_DEFAULT = 1.0
"""Fixed backoff between liveness probes."""

HEALTH_PROBE_TIMEOUT_SEC = 2.0
"""Per-probe HTTP timeout; the overall deadline still applies."""

# =============================================================================
# Discovery
# =============================================================================

SYSTEM_NAMESPACES: tuple[str, ...] = (
    "kube-system",
    "kube-public",
    "kube-node-lease",
    "default",
)
"""Namespaces never searched when no namespace is given."""

SYSTEM_NAMESPACE_PREFIXES: tuple[str, ...] = ("openshift",)
"""Any namespace starting with one of these is skipped too."""

COMPONENT_LABELS: tuple[str, ...] = (
    "app.kubernetes.io/name",
    "app",
    "app.kubernetes.io/component",
)
"""Pod labels consulted, in order, for a component name."""

RUNNING_PHASE = "Running"

DIRECT_URL_COMPONENT = "direct-url"
"""Component name recorded for ByURL collections."""

# =============================================================================
# Coverage
# =============================================================================

FORMAT_COUNTERS = "counters-binary"
FORMAT_STATEMENTS = "statement-json"

DEFAULT_COLLECT_FILTERS: tuple[str, ...] = ("coverage_server",)
"""Exclude the instrumentation shim itself."""

DEFAULT_STATEMENT_FILTERS: tuple[str, ...] = (
    "coverage_server",
    "node_modules",
    "/server/",
    "/client/",
    "/test/",
)
"""Statement-format payloads also carry test/server/client infrastructure."""

DEFAULT_PROCESS_FILTERS: tuple[str, ...] = ("coverage_server.go", "_test.go")

SOURCE_INDEX_SKIP_DIRS: frozenset[str] = frozenset(
    (
        "node_modules",
        "vendor",
        "bower_components",
        "__pycache__",
        "site-packages",
        "venv",
    )
)
"""Dependency-cache directories never indexed for path reconciliation.

Hidden directories (leading ``.``) are skipped as well.
"""

# =============================================================================
# Manifest / layout
# =============================================================================

MANIFEST_FILENAME = "metadata.json"
MANIFEST_VERSION = "1.0"

ARTIFACT_REF_ENV = "COVERAGE_ARTIFACT_REF_FILE"
"""If set, the pushed artifact reference is written to this file."""

CODECOV_TOKEN_ENV = "CODECOV_TOKEN"
