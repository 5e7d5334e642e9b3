"""Data types returned by the VNDB service and consumed by the explorer."""
from __future__ import annotations

from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class VnImage(BaseModel):
    id: Optional[str] = None
    url: str
    dims: Optional[List[int]] = None
    sexual: Optional[float] = None
    violence: Optional[float] = None
    votecount: Optional[int] = None
    thumbnail: Optional[str] = None
    thumbnail_dims: Optional[List[int]] = None


class TagLink(BaseModel):
    id: str
    name: str = ""
    rating: float = 0.0
    spoiler: int = 0
    category: str = ""


class ScreenshotRelease(BaseModel):
    id: str
    title: str = ""


class Screenshot(BaseModel):
    url: str
    thumbnail: Optional[str] = None
    release: Optional[ScreenshotRelease] = None


class VisualNovel(BaseModel):
    id: str
    title: str = ""
    alttitle: Optional[str] = None
    image: Optional[VnImage] = None
    description: Optional[str] = None
    rating: Optional[float] = None
    votecount: int = 0
    length_minutes: Optional[int] = None
    platforms: List[str] = Field(default_factory=list)
    languages: List[str] = Field(default_factory=list)
    tags: List[TagLink] = Field(default_factory=list)
    screenshots: List[Screenshot] = Field(default_factory=list)
    relations: List["VnRelation"] = Field(default_factory=list)


class VnRelation(VisualNovel):
    relation: str = ""
    relation_official: bool = False


class Tag(BaseModel):
    """A filter chip: VNDB tag id plus its display name."""

    id: str
    name: str = ""
    description: str = ""
    aliases: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    vn_count: Optional[int] = None

    @property
    def label(self) -> str:
        return self.name or self.id


class TraitLink(BaseModel):
    id: str
    name: str = ""
    spoiler: int = 0
    lie: bool = False
    category: str = "general"


class CharacterVn(BaseModel):
    id: str
    title: Optional[str] = None
    role: Optional[str] = None


class CharacterInList(BaseModel):
    id: str
    name: str = ""
    image: Optional[VnImage] = None
    vns: List[CharacterVn] = Field(default_factory=list)


class Character(CharacterInList):
    original: Optional[str] = None
    aliases: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    blood_type: Optional[str] = None
    height: Optional[int] = None
    weight: Optional[int] = None
    bust: Optional[int] = None
    waist: Optional[int] = None
    hips: Optional[int] = None
    cup: Optional[str] = None
    age: Optional[int] = None
    birthday: Optional[List[int]] = None
    sex: Optional[List[Optional[str]]] = None
    gender: Optional[List[Optional[str]]] = None
    traits: List[TraitLink] = Field(default_factory=list)


class SearchPage(BaseModel, Generic[T]):
    results: List[T] = Field(default_factory=list)
    more: bool = False
    count: Optional[int] = None


VisualNovel.model_rebuild()
VnRelation.model_rebuild()
