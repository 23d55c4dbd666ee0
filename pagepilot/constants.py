"""PagePilot constants."""

# Name of the function exposed on `window` for page -> orchestrator messages.
GATEWAY_NAME = "__pagepilotApi__"

# Name of the page-side harness runtime object installed by the init script.
HARNESS_NAME = "__pagepilot__"

GOTO_ATTEMPTS = 5

# Per-attempt navigation timeouts (ms), indexed by 0-based attempt.
BACKOFF_MS = (500, 750, 1000, 2000)

DEFAULT_NAVIGATION_TIMEOUT_MS = 5000

DEFAULT_BASE_URL = "http://localhost:3000"

OPTIONS_ENV_VAR = "PAGEPILOT_OPTIONS"
BASE_URL_ENV_VAR = "BASE_URL"

# Console noise emitted by dev servers and devtools banners.
IGNORE_CONSOLE_MESSAGES = (
    r"^\[vite\] connected\.$",
    r"^\[vite\] connecting\.\.\.$",
    r"^Download the Vue Devtools extension for a better development experience",
    r"^You are running Vue in development mode",
    r"^%cDownload the React DevTools for a better development experience",
    r"\[HMR\] Waiting for update signal from WDS\.\.\.$",
    r"^\[webpack-dev-server\] Live Reloading enabled.$",
    r"^\[webpack-dev-server\] Server started",
    r"^Go to .* to debug this test$",
    r"^Download the Apollo DevTools",
)
