"""
Provider and consumer catalogs, loaded from JSON files at startup.

oauth_providers.json: {"<name>": {"requestTokenUrl": ..., "authorizeUrl": ..., "accessTokenUrl": ...}}
oauth_consumers.json: {"<app>": {"provider": "<name>", "key": ..., "secret": ...}}
"""
import json
import logging
from pathlib import Path

from auth_broker.errors import ConfigError
from auth_broker.oauth1 import OAuth1Consumer, Provider

logger = logging.getLogger(__name__)


def _read_json_object(path: str | Path) -> dict:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path}: invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a JSON object")
    return data


def load_providers(path: str | Path) -> dict[str, Provider]:
    providers = {}
    for name, p in _read_json_object(path).items():
        try:
            providers[name] = Provider(
                request_token_url=p["requestTokenUrl"],
                authorize_url=p["authorizeUrl"],
                access_token_url=p["accessTokenUrl"],
            )
        except (KeyError, TypeError) as e:
            raise ConfigError(f"incomplete provider definition: {name}") from e
    return providers


def load_consumers(
    path: str | Path,
    providers: dict[str, Provider],
    timeout: float = 10.0,
) -> dict[str, OAuth1Consumer]:
    """Resolve each consumer's provider reference; every consumer needs a key and a secret."""
    consumers = {}
    for name, c in _read_json_object(path).items():
        if not isinstance(c, dict):
            raise ConfigError(f"invalid consumer definition: {name}")
        provider_name = c.get("provider")
        if not provider_name:
            raise ConfigError(f"unspecified provider for consumer: {name}")
        provider = providers.get(provider_name)
        if provider is None:
            raise ConfigError(f"unknown provider: {provider_name}")
        key, secret = c.get("key"), c.get("secret")
        if not key or not secret:
            raise ConfigError(f"unspecified key and/or secret for consumer: {name}")
        consumers[name] = OAuth1Consumer(key, secret, provider, timeout=timeout)
    return consumers


def load_catalog(providers_path: str | Path, consumers_path: str | Path, timeout: float = 10.0) -> dict[str, OAuth1Consumer]:
    providers = load_providers(providers_path)
    consumers = load_consumers(consumers_path, providers, timeout=timeout)
    logger.info("Loaded %d OAuth provider(s), %d consumer(s)", len(providers), len(consumers))
    return consumers
