"""
Local mirror of the NetBox inventory.

NetworkPool    <- NetBox ip-range   (joined on external_id)
NetworkPoolRange  one per pool, the start/end pair of the range
NetworkPoolIp  <- NetBox ip-address (joined on external_id, or on ip_address)
"""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean
from sqlalchemy.orm import relationship, validates
from datetime import datetime
from database import Base


class PoolIpType:
    """ip_type values, derived from the NetBox address status"""
    RESERVED = "reserved"
    ASSIGNED = "assigned"
    UNMANAGED = "unmanaged"
    USED = "used"

    ALL = [RESERVED, ASSIGNED, UNMANAGED, USED]


class NetworkPool(Base):
    __tablename__ = "network_pools"

    id = Column(Integer, primary_key=True, index=True)
    pool_server_id = Column(Integer, ForeignKey("network_pool_servers.id", ondelete="CASCADE"), nullable=False, index=True)
    external_id = Column(String, nullable=True, index=True)   # NetBox ip-range id

    name = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    cidr = Column(String, nullable=True)
    pool_type = Column(String, nullable=False)                # "netbox" | "netboxipv6"
    pool_enabled = Column(Boolean, default=True)

    ip_count = Column(Integer, default=0)
    ip_free_count = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    pool_server = relationship("NetworkPoolServer", back_populates="pools")
    ranges = relationship("NetworkPoolRange", back_populates="pool", cascade="all, delete-orphan",
                          order_by="NetworkPoolRange.id")
    ips = relationship("NetworkPoolIp", back_populates="pool", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<NetworkPool id={self.id} name='{self.name}' external_id={self.external_id}>"


class NetworkPoolRange(Base):
    __tablename__ = "network_pool_ranges"

    id = Column(Integer, primary_key=True)
    pool_id = Column(Integer, ForeignKey("network_pools.id", ondelete="CASCADE"), nullable=False)

    # IPv4 ranges
    start_address = Column(String, nullable=True)
    end_address = Column(String, nullable=True)

    # IPv6 ranges
    cidr_ipv6 = Column(String, nullable=True)
    start_ipv6_address = Column(String, nullable=True)
    end_ipv6_address = Column(String, nullable=True)

    address_count = Column(Integer, default=0)

    pool = relationship("NetworkPool", back_populates="ranges")

    @property
    def start(self):
        return self.start_address or self.start_ipv6_address

    @property
    def end(self):
        return self.end_address or self.end_ipv6_address

    def __repr__(self):
        return f"<NetworkPoolRange id={self.id} {self.start}-{self.end}>"


class NetworkPoolIp(Base):
    __tablename__ = "network_pool_ips"

    id = Column(Integer, primary_key=True, index=True)
    pool_id = Column(Integer, ForeignKey("network_pools.id", ondelete="CASCADE"), nullable=False, index=True)
    range_id = Column(Integer, ForeignKey("network_pool_ranges.id", ondelete="SET NULL"), nullable=True)
    external_id = Column(String, nullable=True, index=True)   # NetBox ip-address id

    ip_address = Column(String, nullable=True, index=True)
    ip_type = Column(String, nullable=False, default=PoolIpType.ASSIGNED)
    hostname = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pool = relationship("NetworkPool", back_populates="ips")
    pool_range = relationship("NetworkPoolRange")

    @validates('ip_type')
    def validate_ip_type(self, key, value):
        if value not in PoolIpType.ALL:
            raise ValueError(f"ip_type must be one of {PoolIpType.ALL}, got: {value}")
        return value

    def __repr__(self):
        return f"<NetworkPoolIp id={self.id} ip={self.ip_address} type={self.ip_type}>"
