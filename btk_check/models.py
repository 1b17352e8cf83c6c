# btk_check/models.py
"""Check result returned to API callers"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .constants import DNS_DEFAULT_PORT

_DEFAULT_PORT_SUFFIX = f":{DNS_DEFAULT_PORT}"


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one block check"""

    domain: str
    timestamp: int  # Unix seconds at request time
    success: bool = False
    is_blocked: bool = False
    resolver_used: Optional[str] = None
    resolved_addresses: Tuple[str, ...] = ()
    matched_sentinel: Optional[str] = None
    error_detail: Optional[str] = None
    elapsed: Optional[float] = None  # Seconds spent resolving
    query_time: Optional[str] = None
    location: Optional[str] = None

    @property
    def dns_server(self) -> Optional[str]:
        """Resolver used, without the default DNS port"""
        if self.resolver_used and self.resolver_used.endswith(_DEFAULT_PORT_SUFFIX):
            return self.resolver_used[: -len(_DEFAULT_PORT_SUFFIX)]
        return self.resolver_used

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready mapping; fields without a value are left out"""
        data: Dict[str, Any] = {
            "domain": self.domain,
            "timestamp": self.timestamp,
            "success": self.success,
            "is_blocked": self.is_blocked,
        }

        optional = {
            "dns_server": self.dns_server,
            "resolved_ips": list(self.resolved_addresses),
            "blocked_ip": self.matched_sentinel,
            "error": self.error_detail,
            "query_time": self.query_time,
            "response_time_ms": round(self.elapsed * 1000.0, 3) if self.elapsed else None,
            "server_location": self.location,
        }
        data.update((key, value) for key, value in optional.items() if value)
        return data
