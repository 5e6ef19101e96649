from app.models.user import User
from app.models.session import Session
from app.models.photo import Photo
from app.models.access_log import AccessLogEntry

__all__ = ["User", "Session", "Photo", "AccessLogEntry"]
