"""
Access key model: an opaque key that binds to the first device redeeming it.
"""
from sqlalchemy import Column, String, Index

from keygate.db.base import Base, UTCDateTime
from keygate.services.key_store import MAX_DEVICE_ID_LENGTH, MAX_KEY_ID_LENGTH


class AccessKey(Base):
    """
    A redeemable access key.

    ``device_binding`` is NULL until the first successful redemption and is only
    cleared again by an administrative reset.
    """
    __tablename__ = "access_keys"

    id = Column(String(MAX_KEY_ID_LENGTH), primary_key=True)
    label = Column(String(255), nullable=False, default="No Label")
    device_binding = Column(String(MAX_DEVICE_ID_LENGTH), nullable=True)
    created_at = Column(UTCDateTime, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)

    # Purge scans by expiry, listings sort newest first
    __table_args__ = (
        Index('idx_access_keys_expires', 'expires_at'),
        Index('idx_access_keys_created', 'created_at'),
    )

    def __repr__(self):
        return f"<AccessKey(id={self.id}, bound={self.device_binding is not None})>"
