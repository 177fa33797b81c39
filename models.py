from sqlalchemy.orm import relationship
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)  # bcrypt hash
    avatar = Column(String)
    date = Column(DateTime(timezone=True), server_default=func.now())

    profile = relationship(
        "Profile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    posts = relationship("Post", back_populates="owner", cascade="all, delete-orphan")


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    company = Column(String)
    website = Column(String)
    location = Column(String)
    status = Column(String, nullable=False)
    skills = Column(JSON, nullable=False, default=list)
    bio = Column(Text)
    githubusername = Column(String)
    social = Column(JSON, nullable=False, default=dict)
    date = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="profile")
    # Newest entry first: ids only grow, so descending id is insertion order reversed
    experience = relationship(
        "Experience",
        back_populates="profile",
        cascade="all, delete-orphan",
        order_by="desc(Experience.id)",
    )
    education = relationship(
        "Education",
        back_populates="profile",
        cascade="all, delete-orphan",
        order_by="desc(Education.id)",
    )


class Experience(Base):
    __tablename__ = "experience"

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    company = Column(String, nullable=False)
    location = Column(String)
    from_date = Column(Date, nullable=False)
    to_date = Column(Date)
    current = Column(Boolean, nullable=False, default=False)
    description = Column(Text)

    profile = relationship("Profile", back_populates="experience")


class Education(Base):
    __tablename__ = "education"

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    school = Column(String, nullable=False)
    degree = Column(String, nullable=False)
    fieldofstudy = Column(String, nullable=False)
    from_date = Column(Date, nullable=False)
    to_date = Column(Date)
    current = Column(Boolean, nullable=False, default=False)
    description = Column(Text)

    profile = relationship("Profile", back_populates="education")


class Post(Base):
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    # Author snapshot taken when the post is written
    name = Column(String)
    avatar = Column(String)
    date = Column(DateTime(timezone=True), server_default=func.now())

    owner = relationship("User", back_populates="posts")
    likes = relationship(
        "Like", back_populates="post", cascade="all, delete-orphan", order_by="desc(Like.id)"
    )
    comments = relationship(
        "Comment",
        back_populates="post",
        cascade="all, delete-orphan",
        order_by="desc(Comment.id)",
    )


class Like(Base):
    __tablename__ = "likes"
    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_likes_post_user"),)

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    post = relationship("Post", back_populates="likes")


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    name = Column(String)
    avatar = Column(String)
    date = Column(DateTime(timezone=True), server_default=func.now())

    post = relationship("Post", back_populates="comments")
