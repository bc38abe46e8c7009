"""
NetBox record shapes used by the sync.

Only the fields reconciliation needs are parsed; everything else in the
API payload is ignored. Parsing raises KeyError/TypeError/ValueError on
malformed items, which callers convert into a failed fetch.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional


def strip_prefix(address: Optional[str]) -> Optional[str]:
    """'10.0.0.5/24' -> '10.0.0.5'"""
    if not address:
        return address
    return address.split("/", 1)[0]


def _choice_value(field: Any) -> Any:
    """NetBox choice fields come as {"value": ..., "label": ...}"""
    if isinstance(field, dict):
        return field.get("value")
    return field


@dataclass(frozen=True)
class ApiSession:
    """Bearer token for one sync cycle. Never persisted."""
    token: str

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Token {self.token}"}

    def __repr__(self):
        return "<ApiSession token=***>"


@dataclass
class RemoteNetwork:
    """A NetBox ip-range"""
    id: int
    display_name: str
    start_address: str
    end_address: str
    size: int
    family: int

    @property
    def external_id(self) -> str:
        return str(self.id)

    @property
    def is_ipv6(self) -> bool:
        return self.family == 6

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "RemoteNetwork":
        family = _choice_value(item["family"])
        if family not in (4, 6):
            raise ValueError(f"Unsupported address family {family!r} on ip-range {item.get('id')}")
        return cls(
            id=item["id"],
            display_name=item.get("display") or item.get("display_name") or "",
            start_address=item["start_address"],
            end_address=item["end_address"],
            size=int(item.get("size") or 0),
            family=int(family),
        )


@dataclass
class RemoteAddress:
    """A NetBox ip-address"""
    id: int
    address: str
    status: Optional[str]
    dns_name: Optional[str]

    @property
    def external_id(self) -> str:
        return str(self.id)

    @property
    def bare_address(self) -> str:
        return strip_prefix(self.address)

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "RemoteAddress":
        return cls(
            id=item["id"],
            address=item["address"],
            status=_choice_value(item.get("status")),
            dns_name=item.get("dns_name") or None,
        )
