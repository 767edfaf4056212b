import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

FOLDER_NAME_MAX_LENGTH = 255
# Bytes, not characters: the path is a btree-indexed unique key.
FOLDER_PATH_MAX_BYTES = 2048


class Folder(Base):
    """A node of a user's folder forest.

    ``path`` is a denormalized copy of the ancestor chain (``/A/B/name``) kept
    in sync by ``app.services.folder_paths``.
    """

    __tablename__ = "folders"
    __table_args__ = (
        UniqueConstraint("user_id", "parent_id", "name", name="uq_folders_user_parent_name"),
        # parent_id is NULL for root folders, so the constraint above cannot see
        # root-level duplicates; the path constraint does.
        UniqueConstraint("user_id", "path", name="uq_folders_user_path"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(FOLDER_NAME_MAX_LENGTH), nullable=False)
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("folders.id", ondelete="CASCADE"), index=True, nullable=True
    )
    path: Mapped[str] = mapped_column(String(FOLDER_PATH_MAX_BYTES), index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="folders")
    parent = relationship("Folder", remote_side="Folder.id", back_populates="children")
    children = relationship("Folder", back_populates="parent", passive_deletes=True)
    documents = relationship("Document", back_populates="folder", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<Folder {self.id} {self.path!r}>"
