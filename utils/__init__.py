"""Utility modules for Drawdown Guardian."""
from utils.logger import setup_logging
from utils.formatters import format_price, format_pct, format_level, format_levels, time_ago
from utils.rate_limiter import RateLimiter
from utils.http_client import HTTPClient, APIError
