"""
API request and response models for wikimd REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
content/models.py, which own the internal domain representation. Route
handlers map between the two.

Resource passwords never appear in a response model except ArticleDetail /
FolderDetail, and routes only fill that field for editors.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from content.models import Article, Folder

# bcrypt>=5 rejects passwords longer than 72 bytes, not characters.
_PASSWORD_MAX = 72


def _check_password_bytes(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value.encode("utf-8")) > _PASSWORD_MAX:
        raise ValueError(f"password must be at most {_PASSWORD_MAX} bytes in UTF-8")
    return value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    reader = "reader"
    editor = "editor"
    admin = "admin"


class VisibilityEnum(str, Enum):
    public = "public"
    logged = "logged"
    password = "password"
    editor = "editor"
    admin = "admin"


class ResourceTypeEnum(str, Enum):
    article = "article"
    folder = "folder"


class _VisibilityMixin(BaseModel):
    """Rejects a password tier without a password (the descriptor invariant)."""

    @model_validator(mode="after")
    def password_matches_tier(self):
        visibility = getattr(self, "visibility", None)
        if visibility == VisibilityEnum.password and not getattr(self, "password", None):
            raise ValueError("visibility 'password' requires a non-empty password")
        return self


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str = ""


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    # Not stripped semantically -- a password is compared byte for byte.
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class LoginResponse(BaseModel):
    """Body of a successful login. The token itself travels in the session cookie
    and is repeated here for API clients that send it as a Bearer header."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    user_id: int
    username: str
    role: str
    expires_at: str  # ISO 8601


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str
    role: str
    display_name: Optional[str] = None
    profile_image: Optional[str] = None
    description: Optional[str] = None


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=255)
    profile_image: Optional[str] = Field(default=None, max_length=1000)
    description: Optional[str] = Field(default=None, max_length=5000)
    new_password: Optional[str] = Field(default=None, min_length=1, max_length=_PASSWORD_MAX)

    @field_validator("new_password")
    @classmethod
    def new_password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value)


class VerifyPasswordRequest(BaseModel):
    type: ResourceTypeEnum
    slug: str = Field(min_length=1, max_length=255)
    password: str = Field(max_length=1000)


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


class InvitationCreate(BaseModel):
    role: RoleEnum = RoleEnum.reader
    # None means Settings.invitation_ttl_days.
    ttl_days: Optional[int] = Field(default=None, ge=0, le=365)


class InvitationCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    role: str
    expires_at: str
    invite_link: str


class InvitationInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str
    expires_at: str


class InvitationRedeem(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    display_name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value)


# ---------------------------------------------------------------------------
# Users (admin)
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Admin account creation.

    Exactly one path is taken, in this order:
      generate_password=True -> random password, returned once in the response
      password set          -> that password
      neither               -> no account; an invitation for role is created
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    username: Optional[str] = Field(default=None, min_length=1, max_length=255)
    role: RoleEnum = RoleEnum.reader
    display_name: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, min_length=1, max_length=_PASSWORD_MAX)
    generate_password: bool = False

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value)

    @model_validator(mode="after")
    def username_required_for_accounts(self) -> "UserCreate":
        if (self.generate_password or self.password) and not self.username:
            raise ValueError("username is required when creating an account")
        return self


class UserCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    user_id: Optional[int] = None
    password: Optional[str] = None  # only for generate_password
    invite_link: Optional[str] = None  # only for the invitation path


class UserUpdate(BaseModel):
    password: Optional[str] = Field(default=None, min_length=1, max_length=_PASSWORD_MAX)
    role: Optional[RoleEnum] = None

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value)


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    display_name: Optional[str] = None
    role: str
    created_at: str


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


class ArticleCreate(_VisibilityMixin):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    content: str = Field(default="", max_length=1_000_000)
    slug: Optional[str] = Field(default=None, max_length=255)
    folder_id: Optional[int] = None
    visibility: VisibilityEnum = VisibilityEnum.logged
    password: Optional[str] = Field(default=None, max_length=1000)
    image: Optional[str] = Field(default=None, max_length=1000)
    description: Optional[str] = Field(default=None, max_length=5000)


class ArticleUpdate(ArticleCreate):
    """PUT replaces every editable field, as the edit form submits them all."""


class FolderCreate(_VisibilityMixin):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    visibility: VisibilityEnum = VisibilityEnum.logged
    password: Optional[str] = Field(default=None, max_length=1000)


class FolderUpdate(_VisibilityMixin):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    visibility: VisibilityEnum = VisibilityEnum.logged
    password: Optional[str] = Field(default=None, max_length=1000)


class FolderReorder(BaseModel):
    ordered_ids: list[int] = Field(alias="orderedIds", max_length=1000)

    model_config = ConfigDict(populate_by_name=True)


class ArticleReorder(BaseModel):
    ordered_article_ids: list[int] = Field(alias="orderedArticleIds", max_length=1000)

    model_config = ConfigDict(populate_by_name=True)


class CreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    id: int
    slug: str


class ArticleSummary(BaseModel):
    """One row in an article listing -- never includes content or password."""

    model_config = ConfigDict(frozen=True)

    id: int
    slug: str
    title: str
    folder_id: Optional[int] = None
    visibility: str
    description: Optional[str] = None
    image: Optional[str] = None
    position: int = 0
    created_at: str
    updated_at: str

    @classmethod
    def from_article(cls, article: Article) -> "ArticleSummary":
        return cls(
            id=article.id,
            slug=article.slug,
            title=article.title,
            folder_id=article.folder_id,
            visibility=article.visibility,
            description=article.description,
            image=article.image,
            position=article.position,
            created_at=article.created_at,
            updated_at=article.updated_at,
        )


class ArticleDetail(ArticleSummary):
    content: str
    author_id: int
    password: Optional[str] = None  # editors only
    can_edit: bool = False

    @classmethod
    def from_article(cls, article: Article, can_edit: bool = False) -> "ArticleDetail":
        summary = ArticleSummary.from_article(article).model_dump()
        return cls(
            **summary,
            content=article.content,
            author_id=article.author_id,
            password=article.password if can_edit else None,
            can_edit=can_edit,
        )


class FolderSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    slug: str
    name: str
    description: Optional[str] = None
    visibility: str
    position: int = 0
    created_at: str

    @classmethod
    def from_folder(cls, folder: Folder) -> "FolderSummary":
        return cls(
            id=folder.id,
            slug=folder.slug,
            name=folder.name,
            description=folder.description,
            visibility=folder.visibility,
            position=folder.position,
            created_at=folder.created_at,
        )


class FolderDetail(FolderSummary):
    password: Optional[str] = None  # editors only
    can_edit: bool = False
    articles: list[ArticleSummary] = Field(default_factory=list)
