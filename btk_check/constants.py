"""
BTK Check Constants

Central definition of every fixed value used by the check service. Values
that operators can change at runtime live in the .env source or the settings
file; the defaults for those are also defined here so that every module
falls back to the same numbers.
"""

# =============================================================================
# DNS PROTOCOL CONSTANTS
# =============================================================================
DNS_DEFAULT_PORT = 53
DNS_QUERY_TIMEOUT = 5.0  # Seconds to wait for a single resolver to answer

# =============================================================================
# CHECK DEFAULTS
# =============================================================================
# Regulator-operated resolvers, tried in this order
DEFAULT_RESOLVERS = ("195.175.39.39:53", "195.175.39.40:53")

# Addresses the block page is served from
DEFAULT_SENTINEL_IPS = ("195.175.254.2", "2a01:358:4014:a00::3")

DEFAULT_LOCATION = "Unknown"

# =============================================================================
# CONFIGURATION SOURCE
# =============================================================================
ENV_RESOLVERS = "BTK_DNS_SERVERS"
ENV_SENTINEL_IPS = "BTK_BLOCKED_IPS"
ENV_LOCATION = "SERVER_LOCATION"
ENV_PORT = "PORT"

DEFAULT_ENV_FILE = ".env"
CONFIG_POLL_INTERVAL = 2.0  # Seconds between .env modification checks

# =============================================================================
# HTTP API
# =============================================================================
API_DEFAULT_PORT = 8080
API_DEFAULT_ADDRESS = "0.0.0.0"
API_NAME = "BTK Block Check API"
API_DESCRIPTION = "Checks whether domains are blocked by BTK in Turkey"

# =============================================================================
# SERVICE PORTS
# =============================================================================
MIN_PORT_NUMBER = 1
MAX_PORT_NUMBER = 65535

# =============================================================================
# RESULT FORMATTING
# =============================================================================
QUERY_TIME_FORMAT = "%H:%M:%S"
EMPTY_DOMAIN_ERROR = "domain parameter must not be empty"
