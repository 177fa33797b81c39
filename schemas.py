from datetime import date, datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# --- Request bodies ---
# Fields are optional here: presence is checked in crud so that every missing
# field is reported in the `{"errors": [{"msg": ...}]}` shape.

class UserCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileUpsert(BaseModel):
    company: Optional[str] = None
    website: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    status: Optional[str] = None
    githubusername: Optional[str] = None
    # Comma separated string from the form, a list is accepted too
    skills: Optional[Union[str, List[str]]] = None
    youtube: Optional[str] = None
    twitter: Optional[str] = None
    facebook: Optional[str] = None
    linkedin: Optional[str] = None
    instagram: Optional[str] = None


class ExperienceCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    from_date: Optional[date] = Field(default=None, alias="from")
    to_date: Optional[date] = Field(default=None, alias="to")
    current: bool = False
    description: Optional[str] = None


class EducationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    school: Optional[str] = None
    degree: Optional[str] = None
    fieldofstudy: Optional[str] = None
    from_date: Optional[date] = Field(default=None, alias="from")
    to_date: Optional[date] = Field(default=None, alias="to")
    current: bool = False
    description: Optional[str] = None


class TextBody(BaseModel):
    """Body of a new post or comment."""

    text: Optional[str] = None


# --- Responses ---

class Token(BaseModel):
    token: str


class Message(BaseModel):
    msg: str


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    avatar: Optional[str] = None
    date: Optional[datetime] = None


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    avatar: Optional[str] = None


class Experience(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    company: str
    location: Optional[str] = None
    from_date: date = Field(serialization_alias="from")
    to_date: Optional[date] = Field(default=None, serialization_alias="to")
    current: bool = False
    description: Optional[str] = None


class Education(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school: str
    degree: str
    fieldofstudy: str
    from_date: date = Field(serialization_alias="from")
    to_date: Optional[date] = Field(default=None, serialization_alias="to")
    current: bool = False
    description: Optional[str] = None


class Profile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user: UserSummary
    company: Optional[str] = None
    website: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    status: str
    githubusername: Optional[str] = None
    skills: List[str] = []
    social: Dict[str, str] = {}
    experience: List[Experience] = []
    education: List[Education] = []
    date: Optional[datetime] = None


class Like(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int = Field(serialization_alias="user")


class Comment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int = Field(serialization_alias="user")
    text: str
    name: Optional[str] = None
    avatar: Optional[str] = None
    date: Optional[datetime] = None


class Post(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int = Field(serialization_alias="user")
    text: str
    name: Optional[str] = None
    avatar: Optional[str] = None
    likes: List[Like] = []
    comments: List[Comment] = []
    date: Optional[datetime] = None
