from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()

# ── Reviewer directory (Qdrant) ─────────────────────────────────────────────
QDRANT_HOST = os.getenv("QDRANT_HOST", "localhost")
QDRANT_PORT = int(os.getenv("QDRANT_PORT", "6333"))
QDRANT_COLLECTION = os.getenv("QDRANT_COLLECTION", "reviewer_profiles")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "all-MiniLM-L6-v2")
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "384"))
REVIEWERS_FILE = os.getenv("REVIEWERS_FILE", os.path.join("data", "reviewers.json"))

# ── Notifications ───────────────────────────────────────────────────────────
NOTIFICATION_GATEWAY_URL = os.getenv("NOTIFICATION_GATEWAY_URL", "http://localhost:8025/api/notifications")
NOTIFICATION_API_KEY = os.getenv("NOTIFICATION_API_KEY", "")
NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10"))
INVITATION_BASE_URL = os.getenv("INVITATION_BASE_URL", "http://localhost:3000")
JOURNAL_NAME = os.getenv("JOURNAL_NAME", "The Commons")

# ── Invitation campaigns ────────────────────────────────────────────────────
DISPATCH_WORKERS = int(os.getenv("DISPATCH_WORKERS", "4"))
DEFAULT_STAGGER_INTERVAL_HOURS = float(os.getenv("DEFAULT_STAGGER_INTERVAL_HOURS", "2"))
DEFAULT_RESPONSE_DAYS = int(os.getenv("DEFAULT_RESPONSE_DAYS", "7"))
DEFAULT_REMINDER_SCHEDULE = [
    int(d) for d in os.getenv("DEFAULT_REMINDER_SCHEDULE", "7,3,1").split(",") if d.strip()
]
DEFAULT_TEMPLATE_ID = os.getenv("DEFAULT_TEMPLATE_ID", "standard-001")

# ── Conflict-of-interest lookups ────────────────────────────────────────────
COI_CHECK_WORKERS = int(os.getenv("COI_CHECK_WORKERS", "8"))
COI_CHECK_TIMEOUT_SECONDS = float(os.getenv("COI_CHECK_TIMEOUT_SECONDS", "10"))

# ── Scoring weights ─────────────────────────────────────────────────────────
# Fixed for every venue; not read from the environment.

POOL_OVERSIZE_FACTOR = 3
HISTORY_WINDOW_DAYS = 365
INACTIVITY_LIMIT_DAYS = 2 * 365
MIN_AVAILABILITY_SCORE = 30

LOAD_PENALTY = 25
DECLINE_PENALTY = 10

FIELD_MATCH_POINTS = 40
SUBFIELD_MATCH_POINTS = 30
KEYWORD_MATCH_POINTS = 10
SEMANTIC_TOKEN_POINTS = 3
SEMANTIC_BONUS_CAP = 20
JACCARD_THRESHOLD = 0.7
CITATION_MATCH_POINTS = 30

RELEVANCE_WEIGHTS = {"expertise": 0.4, "citation": 0.3, "quality": 0.3}
OVERALL_WEIGHTS = {"relevance": 0.5, "availability": 0.2, "quality": 0.2, "diversity": 0.1}
BLOCKED_MULTIPLIER = 0.3
WARNING_MULTIPLIER = 0.8

# Auto-invite thresholds
AUTO_MIN_PUBLICATIONS = 5
AUTO_MAX_CURRENT_LOAD = 3
AUTO_MIN_AVAILABILITY = 50
AUTO_STAGGER_INTERVAL_HOURS = 1
