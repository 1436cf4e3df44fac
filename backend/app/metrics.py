"""Prometheus metrics for monitoring.

Tracks request latency, GitHub API usage, and tech stack analysis
outcomes per cache tier and per detection signal.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram, Info

# Application info
APP_INFO = Info("profily_app", "Profily application info")

# HTTP metrics
HTTP_REQUESTS_TOTAL = Counter(
    "profily_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION = Histogram(
    "profily_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# GitHub API metrics
GITHUB_API_CALLS = Counter(
    "profily_github_api_calls_total",
    "Total GitHub API calls",
    ["endpoint", "status"],
)

GITHUB_API_DURATION = Histogram(
    "profily_github_api_duration_seconds",
    "GitHub API call duration",
    ["endpoint"],
)

GITHUB_CACHE_HITS = Counter(
    "profily_github_cache_hits_total",
    "GitHub data cache hits",
)

GITHUB_CACHE_MISSES = Counter(
    "profily_github_cache_misses_total",
    "GitHub data cache misses",
)

# Tech stack analysis
TECHSTACK_REQUESTS = Counter(
    "profily_techstack_requests_total",
    "Tech stack profile lookups by serving tier",
    ["source"],
)

TECHSTACK_ANALYSIS_DURATION = Histogram(
    "profily_techstack_analysis_duration_seconds",
    "Full tech stack analysis duration",
    buckets=(1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

TECHSTACK_DETECTIONS = Counter(
    "profily_techstack_detections_total",
    "Raw technology detections by signal",
    ["signal"],
)

TECHSTACK_SIGNAL_FAILURES = Counter(
    "profily_techstack_signal_failures_total",
    "Signal detector failures (recovered) by signal",
    ["signal"],
)

# Rate limiting
RATE_LIMIT_HITS = Counter(
    "profily_rate_limit_hits_total",
    "Total rate limit hits",
    ["endpoint", "limit_type"],
)
