"""
content/models.py -- Domain dataclasses for wiki content.

Pure data containers with zero logic. Slug generation, visibility
normalization, and ordering live in content/store.py; access decisions live
in auth/visibility.py.

Every article and folder carries a visibility descriptor: visibility is one
of auth.visibility.VISIBILITY_TIERS, and password is set if and only if
visibility == "password".
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Folder:
    """A named group of articles.

    position orders folders in listings; lower first. id is None before the
    record is written to the database.
    """

    slug: str
    name: str
    visibility: str = "logged"
    password: Optional[str] = None
    description: Optional[str] = None
    position: int = 0
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Article:
    """A markdown article, optionally filed in a folder.

    position orders articles inside their folder. folder_id is None for
    unfiled articles and is cleared when the folder is deleted.
    """

    slug: str
    title: str
    content: str
    author_id: int
    visibility: str = "logged"
    password: Optional[str] = None
    folder_id: Optional[int] = None
    image: Optional[str] = None
    description: Optional[str] = None
    position: int = 0
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""
