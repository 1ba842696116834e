"""
api/routes/v1/content.py -- Articles, folders, and search.

Read routes are open to anonymous callers; what they return is decided by
can_access() in auth/visibility.py, never by ad hoc role checks here.

  Listings (GET /articles, /folders, /search) use can_access(tier, role,
  None, None): password-tier resources stay discoverable, their content is
  gated at the detail route.

  Detail routes (GET /articles/{slug}, /folders/{slug}) resolve the
  pwd_{type}_{slug} possession cookie into the provided password first.
  On denial: password tier -> 401 password_required, anonymous -> 401,
  authenticated -> 403.

Write routes require editor or admin (require_editor).
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import (
    ArticleCreate,
    ArticleDetail,
    ArticleReorder,
    ArticleSummary,
    ArticleUpdate,
    CreatedResponse,
    FolderCreate,
    FolderDetail,
    FolderReorder,
    FolderSummary,
    FolderUpdate,
    MessageResponse,
)
from auth.dependencies import require_editor, try_get_current_user
from auth.errors import Forbidden, PasswordRequired, Unauthorized
from auth.models import User
from auth.tokens import has_password_access, possession_cookie_name
from auth.visibility import can_access, is_editor
from content.models import Article, Folder
from content.store import ContentStore, slugify

logger = logging.getLogger("wikimd.content")

router = APIRouter()


def _role(user: Optional[User]) -> Optional[str]:
    return user.role if user is not None else None


def _not_found(kind: str) -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": f"{kind} not found."})


def _slug_conflict(slug: str) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"code": "conflict", "message": f"Slug '{slug}' is already in use."},
    )


def _discoverable(visibility: str, user: Optional[User]) -> bool:
    return can_access(visibility, _role(user), None, None)


def _require_view(request: Request, resource_type: str, resource: Union[Article, Folder], user: Optional[User]) -> None:
    """Raise unless the caller may read the full resource."""
    cookie = request.cookies.get(possession_cookie_name(resource_type, resource.slug))
    provided = (
        resource.password if has_password_access(cookie, resource_type, resource.slug, resource.password) else None
    )
    if can_access(resource.visibility, _role(user), provided, resource.password):
        return
    if resource.visibility == "password":
        raise PasswordRequired()
    if user is None:
        raise Unauthorized()
    raise Forbidden()


def _resolve_slug(requested: Optional[str], fallback: str) -> str:
    slug = slugify(requested or fallback)
    if not slug:
        raise HTTPException(
            status_code=422,
            detail={"code": "invalid_slug", "message": "Slug must contain at least one letter or digit."},
        )
    return slug


def _check_folder(content: ContentStore, folder_id: Optional[int]) -> None:
    if folder_id is not None and content.get_folder_by_id(folder_id) is None:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_folder", "message": f"Folder {folder_id} does not exist."},
        )


# ---------------------------------------------------------------------------
# Listings and search
# ---------------------------------------------------------------------------


@router.get("/articles", response_model=list[ArticleSummary])
def list_articles(
    request: Request,
    user: Optional[User] = Depends(try_get_current_user),
) -> list[ArticleSummary]:
    content: ContentStore = request.app.state.content
    return [ArticleSummary.from_article(a) for a in content.list_articles() if _discoverable(a.visibility, user)]


@router.get("/folders", response_model=list[FolderSummary])
def list_folders(
    request: Request,
    user: Optional[User] = Depends(try_get_current_user),
) -> list[FolderSummary]:
    content: ContentStore = request.app.state.content
    return [FolderSummary.from_folder(f) for f in content.list_folders() if _discoverable(f.visibility, user)]


@router.get("/search", response_model=list[ArticleSummary])
def search(
    request: Request,
    q: str = Query(default="", max_length=200),
    user: Optional[User] = Depends(try_get_current_user),
) -> list[ArticleSummary]:
    query = q.strip()
    if not query:
        return []
    content: ContentStore = request.app.state.content
    return [
        ArticleSummary.from_article(a) for a in content.search_articles(query) if _discoverable(a.visibility, user)
    ]


# ---------------------------------------------------------------------------
# Folders
# ---------------------------------------------------------------------------


# Declared before /folders/{slug} routes so "reorder" is not taken as a slug.
@router.put("/folders/reorder", response_model=MessageResponse)
def reorder_folders(
    request: Request,
    body: FolderReorder,
    user: User = Depends(require_editor),
) -> MessageResponse:
    content: ContentStore = request.app.state.content
    try:
        content.reorder_folders(body.ordered_ids)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"code": "invalid_order", "message": str(exc)}) from exc
    return MessageResponse(message="Folders reordered.")


@router.get("/folders/{slug}", response_model=FolderDetail)
def get_folder(
    request: Request,
    slug: str,
    user: Optional[User] = Depends(try_get_current_user),
) -> FolderDetail:
    content: ContentStore = request.app.state.content
    folder = content.get_folder(slug)
    if folder is None:
        raise _not_found("Folder")
    _require_view(request, "folder", folder, user)

    can_edit = user is not None and is_editor(user.role)
    articles = [
        ArticleSummary.from_article(a)
        for a in content.list_articles_by_folder(folder.id)
        if _discoverable(a.visibility, user)
    ]
    return FolderDetail(
        **FolderSummary.from_folder(folder).model_dump(),
        password=folder.password if can_edit else None,
        can_edit=can_edit,
        articles=articles,
    )


@router.post("/folders", response_model=CreatedResponse, status_code=201)
def create_folder(
    request: Request,
    body: FolderCreate,
    user: User = Depends(require_editor),
) -> CreatedResponse:
    content: ContentStore = request.app.state.content
    slug = _resolve_slug(body.slug, body.name)
    try:
        folder_id = content.create_folder(
            Folder(
                slug=slug,
                name=body.name,
                description=body.description,
                visibility=body.visibility.value,
                password=body.password,
            )
        )
    except IntegrityError as exc:
        raise _slug_conflict(slug) from exc
    logger.info("Folder created: %s by user id=%s", slug, user.id)
    return CreatedResponse(id=folder_id, slug=slug)


@router.put("/folders/{folder_id}", response_model=MessageResponse)
def update_folder(
    request: Request,
    folder_id: int,
    body: FolderUpdate,
    user: User = Depends(require_editor),
) -> MessageResponse:
    content: ContentStore = request.app.state.content
    updated = content.update_folder(
        folder_id,
        name=body.name,
        description=body.description,
        visibility=body.visibility.value,
        password=body.password,
    )
    if not updated:
        raise _not_found("Folder")
    return MessageResponse(message="Folder updated.")


@router.delete("/folders/{folder_id}", response_model=MessageResponse)
def delete_folder(
    request: Request,
    folder_id: int,
    user: User = Depends(require_editor),
) -> MessageResponse:
    content: ContentStore = request.app.state.content
    if not content.delete_folder(folder_id):
        raise _not_found("Folder")
    logger.info("Folder id=%s deleted by user id=%s", folder_id, user.id)
    return MessageResponse(message="Folder deleted.")


@router.put("/folders/{folder_id}/articles/reorder", response_model=MessageResponse)
def reorder_articles(
    request: Request,
    folder_id: int,
    body: ArticleReorder,
    user: User = Depends(require_editor),
) -> MessageResponse:
    content: ContentStore = request.app.state.content
    if content.get_folder_by_id(folder_id) is None:
        raise _not_found("Folder")
    try:
        content.reorder_articles(folder_id, body.ordered_article_ids)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"code": "invalid_order", "message": str(exc)}) from exc
    return MessageResponse(message="Articles reordered.")


# ---------------------------------------------------------------------------
# Articles
# ---------------------------------------------------------------------------


@router.get("/articles/{slug}", response_model=ArticleDetail)
def get_article(
    request: Request,
    slug: str,
    user: Optional[User] = Depends(try_get_current_user),
) -> ArticleDetail:
    content: ContentStore = request.app.state.content
    article = content.get_article(slug)
    if article is None:
        raise _not_found("Article")
    _require_view(request, "article", article, user)
    return ArticleDetail.from_article(article, can_edit=user is not None and is_editor(user.role))


@router.post("/articles", response_model=CreatedResponse, status_code=201)
def create_article(
    request: Request,
    body: ArticleCreate,
    user: User = Depends(require_editor),
) -> CreatedResponse:
    content: ContentStore = request.app.state.content
    slug = _resolve_slug(body.slug, body.title)
    _check_folder(content, body.folder_id)
    try:
        article_id = content.create_article(
            Article(
                slug=slug,
                title=body.title,
                content=body.content,
                author_id=user.id,
                visibility=body.visibility.value,
                password=body.password,
                folder_id=body.folder_id,
                image=body.image,
                description=body.description,
            )
        )
    except IntegrityError as exc:
        raise _slug_conflict(slug) from exc
    logger.info("Article created: %s by user id=%s", slug, user.id)
    return CreatedResponse(id=article_id, slug=slug)


@router.put("/articles/{article_id}", response_model=MessageResponse)
def update_article(
    request: Request,
    article_id: int,
    body: ArticleUpdate,
    user: User = Depends(require_editor),
) -> MessageResponse:
    """Replace an article's editable fields. The slug is fixed at creation."""
    content: ContentStore = request.app.state.content
    _check_folder(content, body.folder_id)
    updated = content.update_article(
        article_id,
        title=body.title,
        content=body.content,
        folder_id=body.folder_id,
        visibility=body.visibility.value,
        password=body.password,
        image=body.image,
        description=body.description,
    )
    if not updated:
        raise _not_found("Article")
    return MessageResponse(message="Article updated.")


@router.delete("/articles/{article_id}", response_model=MessageResponse)
def delete_article(
    request: Request,
    article_id: int,
    user: User = Depends(require_editor),
) -> MessageResponse:
    content: ContentStore = request.app.state.content
    if not content.delete_article(article_id):
        raise _not_found("Article")
    logger.info("Article id=%s deleted by user id=%s", article_id, user.id)
    return MessageResponse(message="Article deleted.")
