"""
Configuration settings for Flowbot.

Every value can be overridden with the environment variable of the same
name prefixed with FLOWBOT_ (e.g. FLOWBOT_THINK_DELAY=0).
"""

import os

# Greeting shown as the first (system) chat message of every session
GREETING = os.environ.get(
    "FLOWBOT_GREETING",
    "I'm Flowbot, your workflow copilot. Ask me to create workflows, "
    "add steps, or run them when you're ready.",
)

# Owner given to workflows created from chat
DEFAULT_OWNER = os.environ.get("FLOWBOT_DEFAULT_OWNER", "Unassigned")

# Artificial pause before a turn is interpreted, in seconds
# Set to 0 for scripts and tests
THINK_DELAY = float(os.environ.get("FLOWBOT_THINK_DELAY", "0.16"))

# How long a highlighted workflow stays highlighted, in seconds
HIGHLIGHT_TTL = float(os.environ.get("FLOWBOT_HIGHLIGHT_TTL", "1.8"))

# HTTP API
API_HOST = os.environ.get("FLOWBOT_API_HOST", "127.0.0.1")
API_PORT = int(os.environ.get("FLOWBOT_API_PORT", "8080"))

# Sessions kept in memory by the API; the oldest is dropped past this
MAX_SESSIONS = int(os.environ.get("FLOWBOT_MAX_SESSIONS", "100"))

# Per-session caps on kept board snapshots and chat messages
HISTORY_LIMIT = int(os.environ.get("FLOWBOT_HISTORY_LIMIT", "50"))
MESSAGE_LIMIT = int(os.environ.get("FLOWBOT_MESSAGE_LIMIT", "200"))

# Optional board YAML used to seed new sessions (empty = start with no workflows)
SEED_BOARD = os.environ.get("FLOWBOT_SEED_BOARD", "")

LOG_LEVEL = os.environ.get("FLOWBOT_LOG_LEVEL", "INFO")

# Commands offered to users as quick suggestions
SUGGESTIONS = [
    "list workflows",
    "create workflow Launch Campaign",
    "add step to Launch Campaign: Prepare email sequence",
    "run workflow Product Release QA",
]
