import logging
from typing import Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response

from outreach.core.config import Settings, settings
from outreach.core.logging import get_request_id, token_fingerprint
from outreach.features.access.gate import AccessDecision, AccessGate, DecisionKind


# Framework internals and static assets never reach the gate
EXCLUDED_PREFIXES = ("/_next/static", "/_next/image")
EXCLUDED_PATHS = frozenset({"/favicon.ico", "/robots.txt", "/sitemap.xml", "/healthz"})


def _forward_headers(request: Request, headers: dict) -> None:
    """Overwrite request headers seen by downstream handlers."""
    names = {name.lower().encode("latin-1") for name in headers}
    raw = [(k, v) for k, v in request.scope["headers"] if k not in names]
    raw.extend((k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in headers.items())
    request.scope["headers"] = raw


def _apply_cookies(response: Response, decision: AccessDecision) -> None:
    for cookie in decision.cookies:
        response.set_cookie(
            cookie.name,
            cookie.value,
            max_age=cookie.max_age,
            path=cookie.path,
            samesite=cookie.samesite or "lax",
        )


class AccessGateMiddleware(BaseHTTPMiddleware):
    """Runs every request through the AccessGate before any route."""

    def __init__(self, app, *, gate: Optional[AccessGate] = None, settings_obj: Optional[Settings] = None, excluded_paths: Optional[Iterable[str]] = None):
        super().__init__(app)
        self.gate = gate or AccessGate.from_settings(settings_obj or settings)
        self.excluded_paths = frozenset(excluded_paths) if excluded_paths is not None else EXCLUDED_PATHS

    def _skip(self, path: str) -> bool:
        return path in self.excluded_paths or path.startswith(EXCLUDED_PREFIXES)

    async def dispatch(self, request: Request, call_next):
        if self._skip(request.url.path):
            return await call_next(request)

        decision = self.gate.evaluate(request)
        identity = decision.identity
        request.state.client_identity = identity

        logger = logging.getLogger("outreach")
        logger.info(
            "gate.decision",
            extra={
                "request_id": getattr(request.state, "request_id", None) or get_request_id(),
                "rule": decision.rule,
                "decision": decision.kind.value,
                "status": decision.status_code,
                "identity": identity.kind.value if identity else None,
                "token_fp": token_fingerprint(identity.token if identity else None),
                "path": request.url.path,
            },
        )

        if decision.kind is DecisionKind.REDIRECT:
            response: Response = RedirectResponse(decision.location, status_code=decision.status_code)
        elif decision.kind is DecisionKind.DENY:
            response = PlainTextResponse(decision.body or "", status_code=decision.status_code)
        else:
            if decision.forward_headers:
                _forward_headers(request, decision.forward_headers)
            response = await call_next(request)

        for name, value in decision.response_headers.items():
            response.headers[name] = value
        _apply_cookies(response, decision)
        return response
