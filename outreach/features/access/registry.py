"""
outreach/features/access/registry.py

Access configuration: the master token, the trial token set and the
master IP allowlist.

Trial tokens come from TRIAL_TOKENS (comma-separated) so they can be rotated
without a deploy. Master IPs are embedded here; add new addresses to
MASTER_IPS.
"""

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from outreach.core.config import Settings, parse_token_list
from outreach.core.errors import ConfigurationError


logger = logging.getLogger("outreach")

# Master IP addresses with unlimited access
MASTER_IPS: tuple = (
    "79.168.81.227",
    "93.108.241.96",
    "2001:4860:7:225::fe",
    "85.244.18.181",  # Lisbon / MEO
    "2001:8a0:57f9:1300:cd1a:f3a9:aafb:ee3b",  # Lisbon / MEO
    "87.196.74.244",  # Lisbon / Google
    "2001:4860:7:1525::f7",  # Lisbon / Google
    "87.196.74.249",
)


def _normalize_ip(value: str) -> str:
    try:
        return ipaddress.ip_address(value.strip()).compressed
    except ValueError:
        return value.strip()


@dataclass(frozen=True)
class TokenRegistry:
    """Immutable lookup of the master token, trial tokens and master IPs."""

    master_token: str = ""
    trial_tokens: FrozenSet[str] = frozenset()
    master_ips: FrozenSet[str] = field(default_factory=lambda: frozenset(_normalize_ip(ip) for ip in MASTER_IPS))

    def __post_init__(self):
        if self.master_token and self.master_token in self.trial_tokens:
            raise ConfigurationError("MASTER_TOKEN must not also be listed in TRIAL_TOKENS")

    @classmethod
    def build(
        cls,
        master_token: Optional[str] = "",
        trial_tokens: Iterable[str] = (),
        master_ips: Optional[Iterable[str]] = None,
    ) -> "TokenRegistry":
        ips = MASTER_IPS if master_ips is None else master_ips
        return cls(
            master_token=(master_token or "").strip(),
            trial_tokens=frozenset(t.strip() for t in trial_tokens if t and t.strip()),
            master_ips=frozenset(_normalize_ip(ip) for ip in ips),
        )

    @classmethod
    def from_settings(cls, cfg: Settings, master_ips: Optional[Iterable[str]] = None) -> "TokenRegistry":
        registry = cls.build(cfg.MASTER_TOKEN, parse_token_list(cfg.TRIAL_TOKENS), master_ips)
        logger.info(
            "access.registry.loaded",
            extra={
                "trial_tokens": registry.trial_token_count,
                "master_token_configured": bool(registry.master_token),
                "master_ips": len(registry.master_ips),
            },
        )
        return registry

    def is_master_token(self, token: Optional[str]) -> bool:
        if not token:
            return False
        return len(self.master_token) > 0 and token == self.master_token

    def is_trial_token(self, token: Optional[str]) -> bool:
        if not token:
            return False
        return token in self.trial_tokens

    def is_known(self, token: Optional[str]) -> bool:
        return self.is_master_token(token) or self.is_trial_token(token)

    def is_master_ip(self, ip: Optional[str]) -> bool:
        if not ip:
            return False
        return _normalize_ip(ip) in self.master_ips

    @property
    def trial_token_count(self) -> int:
        return len(self.trial_tokens)
