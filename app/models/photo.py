from sqlalchemy import Column, String, Integer, JSON
from sqlalchemy import ForeignKey

from app.database import Base


class Photo(Base):
    __tablename__ = "photos"

    id = Column(String, primary_key=True)
    session_id = Column(String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(String, nullable=False)
    variant_urls = Column(JSON, nullable=False)
    file_size = Column(Integer, nullable=False)
    tags = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default="pending")
    view_count = Column(Integer, nullable=False, default=0)
    download_count = Column(Integer, nullable=False, default=0)
    # "metadata" is reserved on declarative classes
    photo_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
