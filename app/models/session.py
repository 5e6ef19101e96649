from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, JSON, String

from app.database import Base


class Session(Base):
    __tablename__ = "sessions"

    id = Column(String, primary_key=True)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False)
    title = Column(String, nullable=False)
    visibility = Column(String, nullable=False, default="public")
    access_code = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")
    review_mode = Column(Boolean, nullable=False, default=False)
    auto_tag_enabled = Column(Boolean, nullable=False, default=False)
    watermark_text = Column(String, nullable=True)
    watermark_position = Column(String, nullable=True)
    watermark_opacity = Column(Float, nullable=True)
    max_file_size = Column(Integer, nullable=False)
    allowed_extensions = Column(JSON, nullable=False, default=list)
    created_at = Column(String, nullable=False)

    @property
    def is_public(self) -> bool:
        return self.visibility == "public"

    @property
    def has_watermark(self) -> bool:
        return bool(self.watermark_text)
