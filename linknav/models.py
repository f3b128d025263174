from pydantic import BaseModel, Field
from typing import Optional, List


class LinkIn(BaseModel):
    category: str = ""
    title: str = ""
    url: str = ""
    description: Optional[str] = None


class LinkUpdate(BaseModel):
    title: str = ""
    url: str = ""
    description: Optional[str] = None


class CategoryIn(BaseModel):
    category: str = ""


class CategoryRename(BaseModel):
    newCategory: str = ""


class CategoryOrder(BaseModel):
    categories: List[str] = Field(default_factory=list)


class NoteIn(BaseModel):
    title: str = ""
    content: str = ""
    tags: Optional[str] = None


class NoteOrder(BaseModel):
    notes: List[int] = Field(default_factory=list)


class ImportIn(BaseModel):
    links: List[LinkIn] = Field(default_factory=list)
