"""System-wide constants. All magic numbers and strings live here."""

from __future__ import annotations

import math

# ── Service ──────────────────────────────────────────────────────
API_VERSION = "0.1.0"

# ── Limits ───────────────────────────────────────────────────────
UNLIMITED = math.inf                # remaining() for a feature with no limit
UNLIMITED_DISPLAY = "∞"

# ── Usage Bands (percent of limit) ───────────────────────────────
USAGE_LIMIT_REACHED_PCT = 100.0
USAGE_CRITICAL_PCT = 90.0
USAGE_WARNING_PCT = 70.0

# Color cutoffs track the severity cutoffs
USAGE_RED_PCT = USAGE_CRITICAL_PCT
USAGE_YELLOW_PCT = USAGE_WARNING_PCT

# ── Feature Slugs ────────────────────────────────────────────────
FEATURE_API_CALLS = "api_calls"
FEATURE_PROJECTS = "projects"
FEATURE_TEAM_MEMBERS = "team_members"
FEATURE_EXPORTS = "exports"

# ── Override Types ───────────────────────────────────────────────
OVERRIDE_FEATURE_ENABLE = "feature_enable"
OVERRIDE_FEATURE_DISABLE = "feature_disable"
OVERRIDE_LIMIT_INCREASE = "limit_increase"

# ── Client Refresh ───────────────────────────────────────────────
DEFAULT_REFRESH_INTERVAL_SECONDS = 30.0
