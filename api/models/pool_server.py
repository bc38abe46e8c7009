from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship, validates
from datetime import datetime
from database import Base
from utils.encryption import encrypt_value, decrypt_value


class PoolServerStatus:
    """Integration status values reported for a pool server"""
    OK = "ok"
    SYNCING = "syncing"
    ERROR = "error"

    ALL = [OK, SYNCING, ERROR]


class NetworkPoolServer(Base):
    """
    A NetBox integration whose IP ranges are mirrored locally.

    Each pool server owns the NetworkPool rows created for the remote
    ip-ranges. The refresh cycle reports its progress through
    status / status_message.
    """
    __tablename__ = "network_pool_servers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)

    # ===== Connection =====
    service_url = Column(String, nullable=False)        # e.g. "https://netbox.example.com/"
    service_username = Column(String, nullable=False)
    encrypted_service_password = Column(String, nullable=False)
    ignore_ssl = Column(Boolean, default=False)
    service_throttle_rate = Column(Integer, default=0)  # Milliseconds between API calls

    # ===== Sync options =====
    inventory_existing = Column(Boolean, default=False)  # Also mirror ip-addresses
    enabled = Column(Boolean, default=True)
    refresh_interval_minutes = Column(Integer, default=10)

    # ===== Integration status =====
    status = Column(String, nullable=True)
    status_message = Column(String, nullable=True)
    status_date = Column(DateTime, nullable=True)
    last_sync_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    pools = relationship("NetworkPool", back_populates="pool_server", cascade="all, delete-orphan")

    @validates('status')
    def validate_status(self, key, value):
        if value is not None and value not in PoolServerStatus.ALL:
            raise ValueError(f"status must be one of {PoolServerStatus.ALL}, got: {value}")
        return value

    # ===== Credential Management =====
    def set_service_password(self, raw_value: str):
        """Encrypt and store the NetBox password"""
        self.encrypted_service_password = encrypt_value(raw_value)

    def get_service_password(self) -> str:
        """Decrypt and return the NetBox password"""
        if not self.encrypted_service_password:
            return ""
        return decrypt_value(self.encrypted_service_password)

    def __repr__(self):
        return f"<NetworkPoolServer id={self.id} name='{self.name}' status={self.status}>"
