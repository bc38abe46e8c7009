"""
NetBox API Constants

Endpoint paths, status values and pool type metadata used across the
NetBox client and the sync engine.
"""


# API paths, relative to the configured service path
class NetBoxPath:
    """NetBox REST endpoints consumed by the sync"""
    AUTH = "api/users/tokens/provision/"
    IP_RANGES = "api/ipam/ip-ranges/"
    IP_ADDRESSES = "api/ipam/ip-addresses/"
    LOGOUT = "logout"

    @staticmethod
    def ip_address(address_id) -> str:
        return f"{NetBoxPath.IP_ADDRESSES}{address_id}/"

    @staticmethod
    def available_ips(range_id) -> str:
        return f"{NetBoxPath.IP_RANGES}{range_id}/available-ips/"


# NetBox ip-address status values
class AddressStatus:
    RESERVED = "reserved"
    DEPRECATED = "deprecated"


# Pagination limits
class Paging:
    DEFAULT_PAGE_SIZE = 100
    MAX_PAGES = 1000        # Safety bound against a server that never stops paging


# Pool types registered for NetBox ranges
class PoolTypeCode:
    IPV4 = "netbox"
    IPV6 = "netboxipv6"


POOL_TYPES = [
    {
        "code": PoolTypeCode.IPV4,
        "name": "NetBox",
        "description": "NetBox",
        "creatable": False,
        "range_supports_cidr": False,
        "ipv6_pool": False,
    },
    {
        "code": PoolTypeCode.IPV6,
        "name": "NetBox IPv6",
        "description": "NetBox IPv6",
        "creatable": False,
        "range_supports_cidr": True,
        "ipv6_pool": True,
    },
]


# HTTP client defaults
class ClientDefaults:
    TIMEOUT_SECONDS = 30.0
    CONNECT_TIMEOUT_SECONDS = 5.0
