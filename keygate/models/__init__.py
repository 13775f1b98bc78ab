"""
SQLAlchemy models for KeyGate.
"""
from keygate.models.access_key import AccessKey
