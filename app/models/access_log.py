from sqlalchemy import Boolean, Column, String

from app.database import Base


class AccessLogEntry(Base):
    """Append-only record of an access-code decision on a private session."""

    __tablename__ = "session_access_logs"

    id = Column(String, primary_key=True)
    # weak reference: entries outlive their session
    session_id = Column(String, nullable=False, index=True)
    actor_ip = Column(String, nullable=True)
    actor_agent = Column(String, nullable=True)
    access_code_used = Column(String, nullable=True)
    granted = Column(Boolean, nullable=False)
    client_type = Column(String, nullable=False)
    created_at = Column(String, nullable=False)
