from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from campus_portal.core.database import Base
from campus_portal.core.types import GUID, generate_uuid


class UserRole(str, enum.Enum):
    """User roles"""
    STUDENT = "student"
    FACULTY = "faculty"
    ADMIN = "admin"


class User(Base):
    """User model"""
    __tablename__ = "users"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    hashed_password = Column(String(255), nullable=True)

    role = Column(SQLEnum(UserRole), default=UserRole.STUDENT, nullable=False)
    is_active = Column(Boolean, default=True)

    # Profile fields
    student_id = Column(String(50), unique=True, nullable=True)
    department = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    # Relationships
    borrow_records = relationship(
        "BorrowRecord", back_populates="user", foreign_keys="BorrowRecord.user_id",
        cascade="all, delete-orphan"
    )
    reading_progress = relationship("ReadingProgress", back_populates="user", cascade="all, delete-orphan")
    allocations = relationship("HostelAllocation", back_populates="user", cascade="all, delete-orphan")
    fees = relationship("Fee", back_populates="user", cascade="all, delete-orphan")
    points = relationship(
        "GamificationPoint", back_populates="user", foreign_keys="GamificationPoint.user_id",
        cascade="all, delete-orphan"
    )
    badges = relationship(
        "UserBadge", back_populates="user", foreign_keys="UserBadge.user_id",
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<User {self.email}>"
