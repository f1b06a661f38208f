"""
OAuth 1.0a consumer (RFC 5849): request token + authorize URL, then verifier -> access token.
HMAC-SHA1 signatures, parameters in the Authorization header. One consumer per registered app.
"""
import base64
import hashlib
import hmac
import logging
import secrets
import time
from dataclasses import dataclass
from urllib.parse import parse_qs, parse_qsl, quote, urlencode, urlsplit, urlunsplit

import httpx

from auth_broker.errors import UpstreamError
from auth_broker.sessions import AccessCredential

logger = logging.getLogger(__name__)

SIGNATURE_METHOD = "HMAC-SHA1"
_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class Provider:
    request_token_url: str
    authorize_url: str
    access_token_url: str


@dataclass(frozen=True)
class RequestToken:
    token: str
    secret: str


def percent_encode(value: str) -> str:
    """RFC 5849 §3.6: everything but unreserved characters is encoded, UTF-8 first."""
    return quote(str(value), safe="")


def normalize_url(url: str) -> tuple[str, list[tuple[str, str]]]:
    """Split url into the signature base URI (§3.4.1.2) and its query parameters."""
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if parts.port and parts.port != _DEFAULT_PORTS.get(scheme):
        host = f"{host}:{parts.port}"
    base = urlunsplit((scheme, host, parts.path or "/", "", ""))
    return base, parse_qsl(parts.query, keep_blank_values=True)


def signature_base_string(method: str, url: str, params: list[tuple[str, str]]) -> str:
    base_url, query = normalize_url(url)
    encoded = sorted((percent_encode(k), percent_encode(v)) for k, v in list(params) + query)
    param_string = "&".join(f"{k}={v}" for k, v in encoded)
    return "&".join([method.upper(), percent_encode(base_url), percent_encode(param_string)])


def hmac_sha1_signature(base_string: str, consumer_secret: str, token_secret: str = "") -> str:
    key = f"{percent_encode(consumer_secret)}&{percent_encode(token_secret)}"
    digest = hmac.new(key.encode("utf-8"), base_string.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def authorization_header(
    method: str,
    url: str,
    *,
    consumer_key: str,
    consumer_secret: str,
    token: str | None = None,
    token_secret: str = "",
    extra: dict[str, str] | None = None,
    nonce: str | None = None,
    timestamp: int | None = None,
) -> str:
    """Build the signed `Authorization: OAuth ...` header value."""
    oauth_params = {
        "oauth_consumer_key": consumer_key,
        "oauth_nonce": nonce or secrets.token_hex(16),
        "oauth_signature_method": SIGNATURE_METHOD,
        "oauth_timestamp": str(timestamp if timestamp is not None else int(time.time())),
        "oauth_version": "1.0",
    }
    if token:
        oauth_params["oauth_token"] = token
    if extra:
        oauth_params.update(extra)
    base = signature_base_string(method, url, list(oauth_params.items()))
    oauth_params["oauth_signature"] = hmac_sha1_signature(base, consumer_secret, token_secret)
    pairs = ", ".join(f'{percent_encode(k)}="{percent_encode(v)}"' for k, v in sorted(oauth_params.items()))
    return f"OAuth {pairs}"


class OAuth1Consumer:
    """
    Registered application credentials against one provider.
    begin() and complete() raise UpstreamError on any transport or provider failure; nothing is retried.
    """

    def __init__(self, key: str, secret: str, provider: Provider, timeout: float = 10.0):
        self.key = key
        self.secret = secret
        self.provider = provider
        self.timeout = timeout

    def begin(self, callback_url: str) -> tuple[RequestToken, str]:
        """Obtain a request token; return it with the URL the user must visit to authorize it."""
        fields = self._post(self.provider.request_token_url, extra={"oauth_callback": callback_url})
        request_token = RequestToken(token=fields["oauth_token"], secret=fields["oauth_token_secret"])
        if fields.get("oauth_callback_confirmed", "true") != "true":
            raise UpstreamError("provider did not confirm oauth_callback")
        url = f"{self.provider.authorize_url}?{urlencode({'oauth_token': request_token.token})}"
        return request_token, url

    def complete(self, request_token: RequestToken, verifier: str) -> AccessCredential:
        """Exchange an authorized request token plus verifier for the access token."""
        fields = self._post(
            self.provider.access_token_url,
            token=request_token.token,
            token_secret=request_token.secret,
            extra={"oauth_verifier": verifier},
        )
        return AccessCredential(token=fields["oauth_token"], secret=fields["oauth_token_secret"])

    def _post(self, url: str, *, token: str | None = None, token_secret: str = "", extra=None) -> dict[str, str]:
        header = authorization_header(
            "POST",
            url,
            consumer_key=self.key,
            consumer_secret=self.secret,
            token=token,
            token_secret=token_secret,
            extra=extra,
        )
        try:
            r = httpx.post(url, headers={"Authorization": header}, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning("OAuth request to %s failed: %s", url, e)
            raise UpstreamError(f"request to {url} failed: {e}") from e
        if r.status_code != 200:
            logger.warning("OAuth request to %s returned %s", url, r.status_code)
            raise UpstreamError(f"{url} returned HTTP {r.status_code}: {r.text[:200]}")
        fields = {k: v[0] for k, v in parse_qs(r.text, keep_blank_values=True).items()}
        if not fields.get("oauth_token") or "oauth_token_secret" not in fields:
            raise UpstreamError(f"{url} returned no oauth_token")
        return fields
