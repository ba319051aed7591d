"""Schémas de la feature 'workshops'."""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

WorkshopMode = Literal["Online", "Offline", "Hybrid"]


class WorkshopCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    duration: str = Field(min_length=1)
    mode: WorkshopMode
    startDate: str = Field(min_length=1)
    price: float = Field(ge=0)
    capacity: int = Field(gt=0)
    instructorId: Optional[str] = None
    instructorName: Optional[str] = None
    color: str = "#3B82F6"
    isFeatured: bool = False
    isActive: bool = True
    learningOutcomes: List[str] = Field(default_factory=list)
    requirements: List[str] = Field(default_factory=list)
    image: Optional[str] = None
    certificateTemplate: Optional[str] = None


class WorkshopUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    duration: Optional[str] = None
    mode: Optional[WorkshopMode] = None
    startDate: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    capacity: Optional[int] = Field(default=None, gt=0)
    instructorId: Optional[str] = None
    instructorName: Optional[str] = None
    color: Optional[str] = None
    isFeatured: Optional[bool] = None
    isActive: Optional[bool] = None
    learningOutcomes: Optional[List[str]] = None
    requirements: Optional[List[str]] = None
    image: Optional[str] = None
    certificateTemplate: Optional[str] = None


class WorkshopBulkUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    workshopIds: List[str] = Field(min_length=1)
    updates: WorkshopUpdate
