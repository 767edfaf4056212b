from app.models.document import Document
from app.models.folder import Folder
from app.models.user import User

__all__ = ["User", "Folder", "Document"]
