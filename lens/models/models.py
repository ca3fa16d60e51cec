from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from flask import current_app, has_app_context

from lens.extensions import db, bcrypt

JSONType = JSON().with_variant(JSONB, 'postgresql')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampedBase(db.Model):
    """Abstract base providing id/created/updated columns."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    # Python-side defaults keep sub-second ordering on SQLite
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class UserRole(Enum):
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


STAFF_ROLES = (UserRole.ADMIN, UserRole.SUPER_ADMIN)


class SubscriptionPlan(Enum):
    FREE = "free"
    PRO = "pro"


class ThemePreference(Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class LayoutType(Enum):
    MASONRY = "masonry"
    GRID = "grid"
    LIST = "list"


class PhotoCategory(Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"
    STREET = "street"
    WEDDING = "wedding"
    FASHION = "fashion"
    NATURE = "nature"
    ARCHITECTURE = "architecture"
    ABSTRACT = "abstract"
    DOCUMENTARY = "documentary"
    SPORTS = "sports"
    FOOD = "food"
    TRAVEL = "travel"
    OTHER = "other"


class ModerationStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


DEFAULT_PORTFOLIO_THEME = {
    "background_color": "#ffffff",
    "text_color": "#000000",
    "accent_color": "#007bff",
    "font_family": "system-ui",
}

DEFAULT_PORTFOLIO_SETTINGS = {
    "show_title": True,
    "show_description": True,
    "show_photo_count": True,
    "allow_download": False,
    "show_metadata": True,
    "enable_comments": False,
}


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Trim, lower-case and de-duplicate tags, keeping first-seen order."""
    seen: list[str] = []
    for tag in tags or []:
        value = str(tag).strip().lower()[:50]
        if value and value not in seen:
            seen.append(value)
    return seen


def _sync_tags(links: list, factory, names: Iterable[str] | None) -> None:
    wanted = normalize_tags(names)
    for link in list(links):
        if link.name not in wanted:
            links.remove(link)
    existing = {link.name for link in links}
    for name in wanted:
        if name not in existing:
            links.append(factory(name=name))


user_follow = Table(
    "user_follow",
    db.metadata,
    Column("follower_id", String(36), ForeignKey("user.id", ondelete="CASCADE"), primary_key=True),
    Column("followed_id", String(36), ForeignKey("user.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime(timezone=True), default=utcnow, server_default=func.now()),
)


class User(TimestampedBase):
    __tablename__ = "user"

    username: Mapped[str] = mapped_column(String(30), nullable=False, unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SqlEnum(UserRole, name="user_role", native_enum=False),
        nullable=False,
        default=UserRole.USER,
    )
    active: Mapped[bool] = mapped_column('is_active', Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Profile
    first_name: Mapped[str | None] = mapped_column(String(50))
    last_name: Mapped[str | None] = mapped_column(String(50))
    bio: Mapped[str | None] = mapped_column(String(500))
    website: Mapped[str | None] = mapped_column(String(255))
    location: Mapped[str | None] = mapped_column(String(100))
    avatar_url: Mapped[str | None] = mapped_column(String(512))
    avatar_key: Mapped[str | None] = mapped_column(String(512))

    # Subscription
    subscription_plan: Mapped[SubscriptionPlan] = mapped_column(
        SqlEnum(SubscriptionPlan, name="subscription_plan", native_enum=False),
        nullable=False,
        default=SubscriptionPlan.FREE,
    )
    subscription_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=utcnow)
    subscription_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Preferences
    theme: Mapped[ThemePreference] = mapped_column(
        SqlEnum(ThemePreference, name="theme_preference", native_enum=False),
        nullable=False,
        default=ThemePreference.SYSTEM,
    )
    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    public_profile: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Aggregates, maintained by lens.services.photos and lens.services.stats
    total_photos: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_likes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    portfolios: Mapped[list["Portfolio"]] = relationship(
        back_populates="owner",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    photos: Mapped[list["Photo"]] = relationship(
        back_populates="owner",
        foreign_keys="Photo.user_id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    refresh_tokens: Mapped[list["RefreshToken"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    following: Mapped[list["User"]] = relationship(
        secondary=user_follow,
        primaryjoin="User.id == user_follow.c.follower_id",
        secondaryjoin="User.id == user_follow.c.followed_id",
        back_populates="followers",
    )
    followers: Mapped[list["User"]] = relationship(
        secondary=user_follow,
        primaryjoin="User.id == user_follow.c.followed_id",
        secondaryjoin="User.id == user_follow.c.follower_id",
        back_populates="following",
    )

    def set_password(self, password: str) -> None:
        rounds = current_app.config.get('BCRYPT_LOG_ROUNDS', 12) if has_app_context() else 12
        self.password_hash = bcrypt.hashpw(
            password.encode('utf-8'), bcrypt.gensalt(rounds=rounds)
        ).decode('utf-8')

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode('utf-8'), self.password_hash.encode('utf-8'))
        except ValueError:
            return False

    def has_role(self, *roles: UserRole | str) -> bool:
        role_value = self.role.value if isinstance(self.role, UserRole) else str(self.role)
        allowed = {r.value if isinstance(r, UserRole) else str(r) for r in roles}
        return role_value in allowed

    @property
    def is_staff(self) -> bool:
        return self.has_role(*STAFF_ROLES)

    @property
    def is_pro(self) -> bool:
        return self.subscription_plan == SubscriptionPlan.PRO

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or self.username

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_active(self) -> bool:  # Flask-Login compatibility
        return bool(self.active)

    @property
    def is_anonymous(self) -> bool:
        return False

    def get_id(self) -> str:
        return self.id


class RefreshToken(TimestampedBase):
    """An issued refresh token that has not been consumed yet."""

    __tablename__ = "refresh_token"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    jti: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    user: Mapped[User] = relationship(back_populates="refresh_tokens")


class PortfolioTag(db.Model):
    __tablename__ = "portfolio_tag"

    portfolio_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("portfolio.id", ondelete="CASCADE"),
        primary_key=True,
    )
    name: Mapped[str] = mapped_column(String(50), primary_key=True, index=True)


class Portfolio(TimestampedBase):
    __tablename__ = "portfolio"
    __table_args__ = (
        # At most one default portfolio per user
        Index(
            "uq_portfolio_user_default",
            "user_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default"),
        ),
        Index("ix_portfolio_public_created", "is_public", "created_at"),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000))
    slug: Mapped[str] = mapped_column(String(160), nullable=False, unique=True, index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cover_photo_id: Mapped[str | None] = mapped_column(String(36))

    layout_type: Mapped[LayoutType] = mapped_column(
        SqlEnum(LayoutType, name="layout_type", native_enum=False),
        nullable=False,
        default=LayoutType.MASONRY,
    )
    layout_columns: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    layout_spacing: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    theme: Mapped[dict] = mapped_column(JSONType, nullable=False, default=lambda: dict(DEFAULT_PORTFOLIO_THEME))
    settings: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=lambda: dict(DEFAULT_PORTFOLIO_SETTINGS)
    )
    custom_domain: Mapped[str | None] = mapped_column(String(255))

    # SEO
    seo_title: Mapped[str | None] = mapped_column(String(60))
    seo_description: Mapped[str | None] = mapped_column(String(160))
    seo_keywords: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    category: Mapped[PhotoCategory] = mapped_column(
        SqlEnum(PhotoCategory, name="photo_category", native_enum=False),
        nullable=False,
        default=PhotoCategory.OTHER,
    )

    # Analytics
    total_views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    owner: Mapped[User] = relationship(back_populates="portfolios")
    photos: Mapped[list["Photo"]] = relationship(
        back_populates="portfolio",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Photo.position",
    )
    tag_links: Mapped[list[PortfolioTag]] = relationship(
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    @property
    def tags(self) -> list[str]:
        return sorted(link.name for link in self.tag_links)

    @tags.setter
    def tags(self, names: Iterable[str] | None) -> None:
        _sync_tags(self.tag_links, PortfolioTag, names)

    def can_view(self, user: User | None) -> bool:
        if self.is_public:
            return True
        if user is None or not getattr(user, "is_authenticated", False):
            return False
        return user.id == self.user_id or user.is_staff


class PhotoTag(db.Model):
    __tablename__ = "photo_tag"

    photo_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("photo.id", ondelete="CASCADE"),
        primary_key=True,
    )
    name: Mapped[str] = mapped_column(String(50), primary_key=True, index=True)


class Photo(TimestampedBase):
    __tablename__ = "photo"
    __table_args__ = (
        Index("ix_photo_visibility", "is_public", "moderation_status", "created_at"),
        Index("ix_photo_portfolio_position", "portfolio_id", "position"),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    portfolio_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("portfolio.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500))
    alt_text: Mapped[str | None] = mapped_column(String(125))

    # Storage
    url: Mapped[str] = mapped_column(String(1024), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False)
    thumbnail_url: Mapped[str | None] = mapped_column(String(1024))
    thumbnail_key: Mapped[str | None] = mapped_column(String(512))

    # Image metadata
    width: Mapped[int | None] = mapped_column(Integer)
    height: Mapped[int | None] = mapped_column(Integer)
    format: Mapped[str | None] = mapped_column(String(10))
    file_size: Mapped[int | None] = mapped_column(Integer)
    exif: Mapped[dict | None] = mapped_column(JSONType)
    color_palette: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    category: Mapped[PhotoCategory] = mapped_column(
        SqlEnum(PhotoCategory, name="photo_category", native_enum=False),
        nullable=False,
        default=PhotoCategory.OTHER,
    )
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    allow_download: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_metadata: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Engagement
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    likes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shares: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Moderation
    moderation_status: Mapped[ModerationStatus] = mapped_column(
        SqlEnum(ModerationStatus, name="moderation_status", native_enum=False),
        nullable=False,
        default=ModerationStatus.PENDING,
    )
    reviewed_by_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="SET NULL"),
        index=True,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[str | None] = mapped_column(String(500))
    review_notes: Mapped[str | None] = mapped_column(Text)

    owner: Mapped[User] = relationship(back_populates="photos", foreign_keys=[user_id])
    portfolio: Mapped[Portfolio] = relationship(back_populates="photos")
    reviewed_by: Mapped[User | None] = relationship(foreign_keys=[reviewed_by_id])
    tag_links: Mapped[list[PhotoTag]] = relationship(
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    @property
    def tags(self) -> list[str]:
        return sorted(link.name for link in self.tag_links)

    @tags.setter
    def tags(self, names: Iterable[str] | None) -> None:
        _sync_tags(self.tag_links, PhotoTag, names)

    @property
    def is_publicly_visible(self) -> bool:
        return self.is_public and self.moderation_status == ModerationStatus.APPROVED

    def can_view(self, user: User | None) -> bool:
        if self.is_publicly_visible:
            return True
        if user is None or not getattr(user, "is_authenticated", False):
            return False
        return user.id == self.user_id or user.is_staff

    def storage_keys(self) -> list[str]:
        return [key for key in (self.storage_key, self.thumbnail_key) if key]


__all__ = [name for name in globals() if name[0].isupper()] + [
    "normalize_tags",
    "user_follow",
    "utcnow",
]
