"""
Broker configuration from environment. No credentials here; consumer keys live in the catalog files.
"""
import os

VERSION = "0.1.0"

# Where the broker listens and how providers reach it for callbacks
PORT = int(os.environ.get("BROKER_PORT", "8080"))
DOMAIN = os.environ.get("BROKER_DOMAIN", "127.0.0.1")
HTTPS = os.environ.get("BROKER_HTTPS", "").strip().lower() in ("1", "true", "yes")

CALLBACK_PREFIX = f"{'https' if HTTPS else 'http'}://{DOMAIN}:{PORT}"

# Provider and consumer catalogs (JSON)
PROVIDERS_FILE = os.environ.get("BROKER_PROVIDERS_FILE", "./oauth_providers.json")
CONSUMERS_FILE = os.environ.get("BROKER_CONSUMERS_FILE", "./oauth_consumers.json")

# Sessions idle (not resolved) for longer than this are evicted, pending or not
SESSION_MAX_AGE = float(os.environ.get("BROKER_SESSION_MAX_AGE", "900"))

# Chance that any given request triggers an eviction pass
EVICTION_PROBABILITY = float(os.environ.get("BROKER_EVICTION_PROBABILITY", "0.05"))

# Timeout (seconds) for calls to the provider's token endpoints
UPSTREAM_TIMEOUT = float(os.environ.get("BROKER_UPSTREAM_TIMEOUT", "10.0"))

# Worker threads reserved for blocked polls, separate from the pool serving start and callback
MAX_POLLERS = int(os.environ.get("BROKER_MAX_POLLERS", "1000"))
