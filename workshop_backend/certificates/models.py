"""Schémas de la feature 'certificates'."""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

CertificateStatus = Literal["issued", "pending", "revoked"]


class CertificateCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    studentName: str = Field(min_length=1)
    studentEmail: EmailStr
    courseName: str = Field(min_length=1)
    completionDate: str = Field(min_length=1)
    instructorName: str = Field(min_length=1)
    courseCode: Optional[str] = None
    issueDate: Optional[str] = None
    status: CertificateStatus = "issued"
    notes: Optional[str] = None


class CertificateUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    studentName: Optional[str] = Field(default=None, min_length=1)
    studentEmail: Optional[EmailStr] = None
    courseName: Optional[str] = None
    completionDate: Optional[str] = None
    instructorName: Optional[str] = None
    courseCode: Optional[str] = None
    status: Optional[CertificateStatus] = None
    notes: Optional[str] = None


class CertificateVerifyRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    certificateId: Optional[str] = None
