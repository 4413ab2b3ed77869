"""
Centralized environment configuration

Values are read once at import. Nothing here opens connections; callers
pass these values explicitly to generators and connectors.
"""

import os
from typing import Optional

def _get_optional(value: Optional[str], default: str) -> str:
    return value if value else default

def _get_float(value: Optional[str]) -> Optional[float]:
    return float(value) if value else None

# Identifier quoting used by the HTTP API when a request does not pick one
QUOTE_STYLE = _get_optional(os.getenv('SQLCHAIN_QUOTE_STYLE'), 'double').lower()

# Default execution timeout in seconds for connectors (unset: no timeout)
QUERY_TIMEOUT = _get_float(os.getenv('SQLCHAIN_QUERY_TIMEOUT'))

LOG_LEVEL = _get_optional(os.getenv('LOG_LEVEL'), 'INFO').upper()

# Debug flags
DEBUG_DURATION = os.environ.get('DEBUG_DURATION', 'False').lower() == 'true'
