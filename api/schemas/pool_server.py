import os
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_REFRESH_INTERVAL_MINUTES = int(os.getenv("DEFAULT_REFRESH_INTERVAL_MINUTES", "10"))


# ===== Pool Servers =====

class PoolServerBase(BaseModel):
    """Common NetBox pool server settings"""
    name: str = Field(..., description="Unique label for the integration")
    service_url: str = Field(..., description="NetBox URL, e.g. https://netbox.example.com/ or https://host/netbox")
    service_username: str = Field(..., description="NetBox API username")
    ignore_ssl: bool = Field(default=False, description="Skip TLS certificate verification")
    service_throttle_rate: int = Field(default=0, ge=0, description="Milliseconds to wait before each API call")
    inventory_existing: bool = Field(default=False, description="Also mirror existing ip-addresses")
    enabled: bool = True
    refresh_interval_minutes: int = Field(default=DEFAULT_REFRESH_INTERVAL_MINUTES, ge=1, le=1440)


class PoolServerCreate(PoolServerBase):
    service_password: str = Field(..., description="NetBox API password")


class PoolServerUpdate(BaseModel):
    """Only the fields that are set are changed; a blank password keeps the stored one"""
    name: Optional[str] = None
    service_url: Optional[str] = None
    service_username: Optional[str] = None
    service_password: Optional[str] = None
    ignore_ssl: Optional[bool] = None
    service_throttle_rate: Optional[int] = Field(None, ge=0)
    inventory_existing: Optional[bool] = None
    enabled: Optional[bool] = None
    refresh_interval_minutes: Optional[int] = Field(None, ge=1, le=1440)


class PoolServerVerify(BaseModel):
    """Settings to try against NetBox before saving; missing fields are reported, not rejected"""
    name: Optional[str] = None
    service_url: Optional[str] = None
    service_username: Optional[str] = None
    service_password: Optional[str] = None
    ignore_ssl: bool = False
    service_throttle_rate: int = Field(default=0, ge=0)


class PoolServerVerifyResponse(BaseModel):
    success: bool
    errors: dict = {}


class PoolServerResponse(PoolServerBase):
    id: int
    status: Optional[str] = None
    status_message: Optional[str] = None
    status_date: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RefreshResponse(BaseModel):
    status: Optional[str] = None
    message: Optional[str] = None
    pools_added: int = 0
    pools_updated: int = 0
    pools_removed: int = 0
    pools_unchanged: int = 0
    addresses_added: int = 0
    addresses_updated: int = 0
    addresses_removed: int = 0
    warnings: List[str] = []
    errors: List[str] = []


# ===== Pools =====

class PoolTypeResponse(BaseModel):
    code: str
    name: str
    description: str
    creatable: bool
    range_supports_cidr: bool
    ipv6_pool: bool


class PoolRangeResponse(BaseModel):
    id: int
    start_address: Optional[str] = None
    end_address: Optional[str] = None
    cidr_ipv6: Optional[str] = None
    start_ipv6_address: Optional[str] = None
    end_ipv6_address: Optional[str] = None
    address_count: int = 0

    class Config:
        from_attributes = True


class PoolResponse(BaseModel):
    id: int
    pool_server_id: int
    external_id: Optional[str] = None
    name: str
    display_name: Optional[str] = None
    cidr: Optional[str] = None
    pool_type: str
    pool_enabled: bool = True
    ip_count: int = 0
    ip_free_count: int = 0
    ranges: List[PoolRangeResponse] = []

    class Config:
        from_attributes = True


class PoolIpResponse(BaseModel):
    id: int
    pool_id: int
    range_id: Optional[int] = None
    external_id: Optional[str] = None
    ip_address: Optional[str] = None
    ip_type: str
    hostname: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class HostRecordRequest(BaseModel):
    """Reserve a host record; without ip_address NetBox picks the next free address in the pool"""
    hostname: str = Field(..., min_length=1)
    ip_address: Optional[str] = Field(None, description="IPv4 or IPv6 address, without prefix")
    domain_name: Optional[str] = Field(None, description="Appended to hostname unless already present")
