"""
outreach/features/access/classifier.py

Derives a single ClientIdentity from a request's network origin and the
credentials it presents.

Handles:
- Client IP extraction from proxy headers
- Trial/master token lookup (query > header > bare path)
- Basic auth verification
- Bypass cookie detection
"""

import base64
import binascii
import hmac
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Protocol, Tuple
from urllib.parse import parse_qsl, unquote, urlsplit

from starlette.datastructures import Headers
from starlette.requests import cookie_parser

from outreach.features.access.registry import TokenRegistry


TRIAL_QUERY_PARAM = "trial"
TRIAL_TOKEN_HEADER = "x-trial-token"
BYPASS_COOKIE = "bypass_maintenance"
MASTER_IP_COOKIE = "is_master_ip"
NOT_FOUND_PATH = "/not-found"

# Proxy headers in priority order; list-valued headers use their first entry
CLIENT_IP_HEADERS: Tuple[Tuple[str, bool], ...] = (
    ("cf-connecting-ip", False),
    ("x-real-ip", False),
    ("x-forwarded-for", True),
    ("x-vercel-forwarded-for", True),
)


class HeaderGetter(Protocol):
    def get(self, key: str, default=None) -> Optional[str]: ...


class RequestLike(Protocol):
    """The only request surface the gateway depends on."""

    url: object
    headers: HeaderGetter


@dataclass(frozen=True)
class GateRequest:
    """Framework-free request, for tests and non-Starlette callers."""

    url: str
    headers: Headers

    @classmethod
    def build(cls, url: str, headers: Optional[Mapping[str, str]] = None, cookies: Optional[Mapping[str, str]] = None) -> "GateRequest":
        raw = dict(headers or {})
        if cookies:
            raw["cookie"] = "; ".join(f"{k}={v}" for k, v in cookies.items())
        return cls(url=url, headers=Headers(raw))


class TokenSource(str, Enum):
    QUERY = "query"
    HEADER = "header"
    PATH = "path"


class TokenStatus(str, Enum):
    NONE = "none"
    MASTER = "master"
    TRIAL = "trial"
    INVALID = "invalid"


class IdentityKind(str, Enum):
    MASTER_IP = "master-ip"
    BASIC_AUTH = "basic-auth"
    TRIAL = "trial"
    MASTER_TOKEN = "master-token"
    ANONYMOUS_BLOCKED = "anonymous-blocked"


@dataclass(frozen=True)
class ClientIdentity:
    kind: IdentityKind
    token: Optional[str] = None
    ip: Optional[str] = None


@dataclass(frozen=True)
class Classification:
    origin: str
    path: str
    query_keys: Tuple[str, ...]
    ip: Optional[str]
    is_master_ip: bool
    token: Optional[str]
    token_source: Optional[TokenSource]
    token_status: TokenStatus
    basic_auth_valid: bool
    has_bypass_cookie: bool

    @property
    def has_token(self) -> bool:
        return self.token is not None

    @property
    def is_bare_path_token(self) -> bool:
        return self.token_source is TokenSource.PATH

    @property
    def is_api_path(self) -> bool:
        return self.path.startswith("/api/")

    @property
    def is_root_path(self) -> bool:
        return self.path == "/"

    @property
    def identity(self) -> ClientIdentity:
        if self.token_status is TokenStatus.MASTER:
            return ClientIdentity(IdentityKind.MASTER_TOKEN, token=self.token, ip=self.ip)
        if self.token_status is TokenStatus.TRIAL:
            return ClientIdentity(IdentityKind.TRIAL, token=self.token, ip=self.ip)
        if self.token_status is TokenStatus.NONE and self.is_master_ip:
            return ClientIdentity(IdentityKind.MASTER_IP, ip=self.ip)
        if self.token_status is TokenStatus.NONE and self.basic_auth_valid:
            return ClientIdentity(IdentityKind.BASIC_AUTH, ip=self.ip)
        return ClientIdentity(IdentityKind.ANONYMOUS_BLOCKED, token=self.token, ip=self.ip)


def get_client_ip(headers: HeaderGetter) -> Optional[str]:
    """Client IP from the first proxy header that carries one."""
    for name, is_list in CLIENT_IP_HEADERS:
        value = headers.get(name)
        if not value:
            continue
        if is_list:
            value = value.split(",")[0]
        value = value.strip()
        if value:
            return value
    return None


def parse_basic_auth(auth_header: Optional[str]) -> Optional[Tuple[str, str]]:
    """Decode an `Authorization: Basic ...` header into (user, password)."""
    if not auth_header or not auth_header.startswith("Basic "):
        return None
    try:
        decoded = base64.b64decode(auth_header[len("Basic "):].strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    user, sep, password = decoded.partition(":")
    if not sep:
        return None
    return user, password


def first_query_values(pairs) -> Dict[str, str]:
    """Query mapping where a repeated key keeps its first value."""
    query: Dict[str, str] = {}
    for key, value in pairs:
        query.setdefault(key, value)
    return query


def extract_token(request: RequestLike) -> Optional[str]:
    """Token from the `trial` query parameter, else the x-trial-token header.

    Resolves the same value the gate classified, so the ledger charges the
    token that was let through.
    """
    query = first_query_values(parse_qsl(urlsplit(str(request.url)).query, keep_blank_values=True))
    return query.get(TRIAL_QUERY_PARAM) or request.headers.get(TRIAL_TOKEN_HEADER) or None


class CredentialClassifier:
    """Pure classification of a request; no side effects."""

    def __init__(self, registry: TokenRegistry, basic_auth_user: str = "", basic_auth_pass: str = ""):
        self.registry = registry
        self.basic_auth_user = basic_auth_user or ""
        self.basic_auth_pass = basic_auth_pass or ""

    @property
    def basic_auth_configured(self) -> bool:
        return len(self.basic_auth_user) > 0 and len(self.basic_auth_pass) > 0

    def verify_basic_auth(self, auth_header: Optional[str]) -> bool:
        if not self.basic_auth_configured:
            return False
        creds = parse_basic_auth(auth_header)
        if creds is None:
            return False
        user, password = creds
        user_ok = hmac.compare_digest(user.encode(), self.basic_auth_user.encode())
        pass_ok = hmac.compare_digest(password.encode(), self.basic_auth_pass.encode())
        return user_ok and pass_ok

    def token_status(self, token: Optional[str]) -> TokenStatus:
        if token is None:
            return TokenStatus.NONE
        if self.registry.is_master_token(token):
            return TokenStatus.MASTER
        if self.registry.is_trial_token(token):
            return TokenStatus.TRIAL
        return TokenStatus.INVALID

    def _locate_token(self, path: str, query: Mapping[str, str], headers: HeaderGetter) -> Tuple[Optional[str], Optional[TokenSource]]:
        from_query = query.get(TRIAL_QUERY_PARAM)
        if from_query:
            return from_query, TokenSource.QUERY

        from_header = headers.get(TRIAL_TOKEN_HEADER)
        if from_header:
            return from_header, TokenSource.HEADER

        if path not in ("/", NOT_FOUND_PATH):
            candidate = path[1:]
            # Only a known token counts; any other path is just a route
            if candidate and self.registry.is_known(candidate):
                return candidate, TokenSource.PATH

        return None, None

    def classify(self, request: RequestLike) -> Classification:
        parts = urlsplit(str(request.url))
        path = unquote(parts.path) or "/"
        pairs = parse_qsl(parts.query, keep_blank_values=True)
        query = first_query_values(pairs)

        headers = request.headers
        ip = get_client_ip(headers)
        token, source = self._locate_token(path, query, headers)
        cookies = cookie_parser(headers.get("cookie") or "")

        return Classification(
            origin=f"{parts.scheme}://{parts.netloc}" if parts.netloc else "",
            path=path,
            query_keys=tuple(key for key, _ in pairs),
            ip=ip,
            is_master_ip=self.registry.is_master_ip(ip),
            token=token,
            token_source=source,
            token_status=self.token_status(token),
            basic_auth_valid=self.verify_basic_auth(headers.get("authorization")),
            has_bypass_cookie=cookies.get(BYPASS_COOKIE) == "true",
        )
