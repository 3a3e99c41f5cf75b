"""
outreach/features/access/gate.py

Request-level access gate.

Every request is classified once, then run through an ordered list of named
rules. The first rule whose predicate matches and whose action returns a
decision wins; an action may return None to fall through to the next rule.

Rule order:
1. bare-path-token     /<token> -> redirect to /?trial=<token>
2. token-present       invalid -> /not-found, valid -> allow everything
3. unrecognized-query  stray query keys on non-API paths -> 404
4. root-path           master IP, maintenance overlay, basic auth, else 403
5. api-path            master IP, basic auth, else 403
6. other-path          master IP, basic auth, else allow
7. default             allow

Cookies and headers set here are advisory. Handlers that spend quota must
validate the token again.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

from outreach.core.config import Settings
from outreach.features.access.classifier import (
    BYPASS_COOKIE,
    MASTER_IP_COOKIE,
    NOT_FOUND_PATH,
    TRIAL_QUERY_PARAM,
    TRIAL_TOKEN_HEADER,
    Classification,
    ClientIdentity,
    CredentialClassifier,
    RequestLike,
    TokenStatus,
)
from outreach.features.access.registry import TokenRegistry


ALLOWED_QUERY_PARAMS = frozenset({"trial", "theme"})
BYPASS_MAX_AGE_SECONDS = 60 * 60 * 24 * 30  # 30 days
MAINTENANCE_HEADER = "x-maintenance-gate"
BASIC_REALM = 'Basic realm="Protected"'


class DecisionKind(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"
    DENY = "deny"


@dataclass(frozen=True)
class CookieSpec:
    name: str
    value: str
    max_age: Optional[int] = None
    path: str = "/"
    samesite: Optional[str] = None


@dataclass(frozen=True)
class AccessDecision:
    kind: DecisionKind
    status_code: int
    reason: str
    rule: str = ""
    location: Optional[str] = None
    body: Optional[str] = None
    cookies: Tuple[CookieSpec, ...] = ()
    response_headers: Dict[str, str] = field(default_factory=dict)
    forward_headers: Dict[str, str] = field(default_factory=dict)
    identity: Optional[ClientIdentity] = None

    @property
    def allowed(self) -> bool:
        return self.kind is DecisionKind.ALLOW

    @classmethod
    def allow(cls, reason: str, **kwargs) -> "AccessDecision":
        return cls(kind=DecisionKind.ALLOW, status_code=200, reason=reason, **kwargs)

    @classmethod
    def redirect(cls, location: str, reason: str, **kwargs) -> "AccessDecision":
        return cls(kind=DecisionKind.REDIRECT, status_code=307, reason=reason, location=location, **kwargs)

    @classmethod
    def deny(cls, status_code: int, body: str, reason: str, **kwargs) -> "AccessDecision":
        return cls(kind=DecisionKind.DENY, status_code=status_code, reason=reason, body=body, **kwargs)


@dataclass(frozen=True)
class GateRule:
    name: str
    applies: Callable[[Classification], bool]
    decide: Callable[[Classification], Optional[AccessDecision]]


def _origin_url(origin: str, path: str, query: Optional[Dict[str, str]] = None) -> str:
    url = origin + path
    if query:
        url += "?" + urlencode(query)
    return url


def _master_ip_cookies() -> Tuple[CookieSpec, ...]:
    return (
        CookieSpec(MASTER_IP_COOKIE, "true"),
        CookieSpec(BYPASS_COOKIE, "true"),
    )


class AccessGate:
    """Single chokepoint deciding Allow / Redirect / Deny for every request."""

    def __init__(
        self,
        registry: TokenRegistry,
        *,
        basic_auth_user: str = "",
        basic_auth_pass: str = "",
        maintenance_enabled: bool = True,
    ):
        self.registry = registry
        self.classifier = CredentialClassifier(registry, basic_auth_user, basic_auth_pass)
        self.maintenance_enabled = maintenance_enabled
        self.rules: Tuple[GateRule, ...] = (
            GateRule("bare-path-token", lambda c: c.is_bare_path_token, self._redirect_bare_token),
            GateRule("token-present", lambda c: c.has_token, self._check_token),
            GateRule("unrecognized-query", self._has_unrecognized_query, self._not_found),
            GateRule("root-path", lambda c: c.is_root_path, self._guard_root),
            GateRule("api-path", lambda c: c.is_api_path, self._guard_api),
            GateRule("other-path", lambda c: True, self._guard_other),
            GateRule("default", lambda c: True, self._default),
        )

    @classmethod
    def from_settings(cls, cfg: Settings, registry: Optional[TokenRegistry] = None) -> "AccessGate":
        return cls(
            registry or TokenRegistry.from_settings(cfg),
            basic_auth_user=cfg.BASIC_AUTH_USER,
            basic_auth_pass=cfg.BASIC_AUTH_PASS,
            maintenance_enabled=cfg.maintenance_enabled,
        )

    @property
    def basic_auth_configured(self) -> bool:
        return self.classifier.basic_auth_configured

    def evaluate(self, request: RequestLike) -> AccessDecision:
        classification = self.classifier.classify(request)
        for rule in self.rules:
            if not rule.applies(classification):
                continue
            decision = rule.decide(classification)
            if decision is not None:
                return replace(decision, rule=rule.name, identity=classification.identity)
        # Unreachable while "default" is the last rule
        return AccessDecision.allow("no rule matched", rule="none", identity=classification.identity)

    # Rule predicates -----------------------------------------------------

    @staticmethod
    def _has_unrecognized_query(c: Classification) -> bool:
        if c.is_api_path:
            return False
        return any(key not in ALLOWED_QUERY_PARAMS for key in c.query_keys)

    # Rule actions --------------------------------------------------------

    def _redirect_bare_token(self, c: Classification) -> AccessDecision:
        target = _origin_url(c.origin, "/", {TRIAL_QUERY_PARAM: c.token})
        return AccessDecision.redirect(target, "bare path token normalized to query parameter")

    def _check_token(self, c: Classification) -> AccessDecision:
        if c.token_status is TokenStatus.INVALID:
            return AccessDecision.redirect(_origin_url(c.origin, NOT_FOUND_PATH), "invalid token")

        return AccessDecision.allow(
            f"valid {c.token_status.value} token",
            cookies=(CookieSpec(BYPASS_COOKIE, "true", max_age=BYPASS_MAX_AGE_SECONDS, samesite="lax"),),
            response_headers={TRIAL_TOKEN_HEADER: c.token},
            forward_headers={TRIAL_TOKEN_HEADER: c.token},
        )

    def _not_found(self, c: Classification) -> AccessDecision:
        return AccessDecision.deny(404, "404: Page Not Found", "unrecognized query parameters")

    def _require_basic_auth(self, c: Classification) -> Optional[AccessDecision]:
        if c.basic_auth_valid:
            return None
        return AccessDecision.deny(
            401,
            "Authentication required",
            "basic auth required",
            response_headers={"WWW-Authenticate": BASIC_REALM},
        )

    def _access_denied(self, reason: str) -> AccessDecision:
        return AccessDecision.deny(403, "Access Denied", reason)

    def _master_ip_allow(self, reason: str) -> AccessDecision:
        return AccessDecision.allow(reason, cookies=_master_ip_cookies())

    def _guard_root(self, c: Classification) -> Optional[AccessDecision]:
        if c.is_master_ip:
            return self._master_ip_allow("master IP on main entry point")

        if self.maintenance_enabled and not c.has_bypass_cookie:
            # Content is still served; the UI renders the overlay
            return AccessDecision.allow(
                "maintenance gate requested",
                response_headers={MAINTENANCE_HEADER: "true"},
                forward_headers={MAINTENANCE_HEADER: "true"},
            )

        if self.basic_auth_configured:
            return self._require_basic_auth(c)

        return self._access_denied("main entry point requires master IP or basic auth")

    def _guard_api(self, c: Classification) -> Optional[AccessDecision]:
        if c.is_master_ip:
            return self._master_ip_allow("master IP on API")

        if self.basic_auth_configured:
            return self._require_basic_auth(c)

        return self._access_denied("API requires master IP, basic auth or a token")

    def _guard_other(self, c: Classification) -> Optional[AccessDecision]:
        if c.is_master_ip:
            return self._master_ip_allow("master IP on secondary path")

        if self.basic_auth_configured:
            return self._require_basic_auth(c)

        return None

    def _default(self, c: Classification) -> AccessDecision:
        cookies = _master_ip_cookies() if c.is_master_ip else ()
        return AccessDecision.allow("default", cookies=cookies)
