import hashlib
from typing import Iterable, List, Optional, Union

import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

import auth
import errors
import models
import schemas

logger = structlog.get_logger(__name__)

SOCIAL_FIELDS = ("youtube", "twitter", "facebook", "linkedin", "instagram")
PROFILE_SCALAR_FIELDS = ("company", "website", "location", "bio", "status", "githubusername")


# --- Helpers ---
def parse_id(raw: Union[str, int], message: str) -> int:
    """Turn a path identifier into an int, treating malformed ids as not found."""
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise errors.NotFound(message)
    # Out of range for a 64-bit primary key
    if not 0 < value < 2**63:
        raise errors.NotFound(message)
    return value


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require(checks: Iterable[tuple]) -> None:
    """Raise one ValidationError listing the message of every blank value."""
    messages = [message for value, message in checks if _blank(value)]
    if messages:
        raise errors.ValidationError(messages)


def _valid_email(email: Optional[str]) -> bool:
    if _blank(email):
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def gravatar_url(email: str, size: int = 200, rating: str = "pg", default: str = "mm") -> str:
    digest = hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()
    return f"https://www.gravatar.com/avatar/{digest}?s={size}&r={rating}&d={default}"


def split_skills(skills: Union[str, List[str]]) -> List[str]:
    items = skills.split(",") if isinstance(skills, str) else skills
    return [skill.strip() for skill in items if skill and skill.strip()]


# --- User CRUD ---
def get_user_by_id(db: Session, user_id: int) -> Optional[models.User]:
    """Get a user by their primary key ID."""
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email.strip().lower()).first()


def register_user(db: Session, user: schemas.UserCreate) -> str:
    """Create a user and return a token for them."""
    messages = []
    if _blank(user.name):
        messages.append("Name is required")
    if not _valid_email(user.email):
        messages.append("Please include a valid email")
    if not user.password or len(user.password) < 6:
        messages.append("Please enter a password with 6 or more characters")
    if messages:
        raise errors.ValidationError(messages)

    email = user.email.strip().lower()
    if get_user_by_email(db, email):
        raise errors.ValidationError("User already exists")

    db_user = models.User(
        name=user.name.strip(),
        email=email,
        avatar=gravatar_url(email),
        password=auth.hash_password(user.password),
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info("User registered", user_id=db_user.id)
    return auth.create_token(db_user.id)


def login(db: Session, credentials: schemas.LoginRequest) -> str:
    messages = []
    if not _valid_email(credentials.email):
        messages.append("Please include a valid email")
    if not credentials.password:
        messages.append("Password is required")
    if messages:
        raise errors.ValidationError(messages)

    user = get_user_by_email(db, credentials.email)
    if not user or not auth.verify_password(credentials.password, user.password):
        logger.warning("Login failed")
        raise errors.InvalidCredentials()

    logger.info("User logged in", user_id=user.id)
    return auth.create_token(user.id)


def get_current_user(db: Session, user_id: int) -> models.User:
    user = get_user_by_id(db, user_id)
    if not user:
        raise errors.NotFound("User not found")
    return user


def delete_account(db: Session, user_id: int) -> None:
    """Delete the user with their profile, posts, likes and comments.

    Runs as one transaction: if anything fails nothing is removed.
    """
    user = get_user_by_id(db, user_id)
    if not user:
        raise errors.NotFound("User not found")
    try:
        # Likes and comments left on other people's posts
        db.query(models.Like).filter(models.Like.user_id == user_id).delete(
            synchronize_session="fetch"
        )
        db.query(models.Comment).filter(models.Comment.user_id == user_id).delete(
            synchronize_session="fetch"
        )
        # Profile and posts go through the relationship cascades
        db.delete(user)
        db.commit()
    except Exception:
        db.rollback()
        logger.error("Account deletion rolled back", user_id=user_id, exc_info=True)
        raise
    logger.info("Account deleted", user_id=user_id)


# --- Profile CRUD ---
def _profile_query(db: Session):
    return db.query(models.Profile).options(
        joinedload(models.Profile.user),
        selectinload(models.Profile.experience),
        selectinload(models.Profile.education),
    )


def get_profile_by_user(db: Session, user_id: int, message: str = "Profile not found") -> models.Profile:
    profile = _profile_query(db).filter(models.Profile.user_id == user_id).first()
    if not profile:
        raise errors.NotFound(message)
    return profile


def get_own_profile(db: Session, user_id: int) -> models.Profile:
    return get_profile_by_user(db, user_id, "There is no profile for this user")


def list_profiles(db: Session) -> List[models.Profile]:
    return _profile_query(db).order_by(models.Profile.id).all()


def upsert_profile(db: Session, user_id: int, fields: schemas.ProfileUpsert) -> models.Profile:
    """Create the user's profile or overwrite the fields that were submitted.

    Experience and education lists are never touched here.
    """
    skills = split_skills(fields.skills) if fields.skills is not None else []
    _require(
        [
            (fields.status, "Status is required"),
            (skills or None, "Skills is required"),
        ]
    )

    profile = db.query(models.Profile).filter(models.Profile.user_id == user_id).first()
    created = profile is None
    if created:
        get_current_user(db, user_id)
        profile = models.Profile(user_id=user_id)
        db.add(profile)

    for name in PROFILE_SCALAR_FIELDS:
        value = getattr(fields, name)
        if not _blank(value):
            setattr(profile, name, value.strip())
    profile.skills = skills
    # Social links are replaced as a whole
    profile.social = {
        name: getattr(fields, name).strip()
        for name in SOCIAL_FIELDS
        if not _blank(getattr(fields, name))
    }
    db.commit()
    logger.info("Profile saved", user_id=user_id, created=created)
    return get_profile_by_user(db, user_id)


def add_experience(db: Session, user_id: int, entry: schemas.ExperienceCreate) -> models.Profile:
    _require(
        [
            (entry.title, "Title is required"),
            (entry.company, "Company is required"),
            (entry.from_date, "From date is required"),
        ]
    )
    profile = get_own_profile(db, user_id)
    profile.experience.insert(
        0,
        models.Experience(
            title=entry.title,
            company=entry.company,
            location=entry.location,
            from_date=entry.from_date,
            to_date=entry.to_date,
            current=entry.current,
            description=entry.description,
        ),
    )
    db.commit()
    return get_own_profile(db, user_id)


def remove_experience(db: Session, user_id: int, exp_id: Union[str, int]) -> models.Profile:
    profile = get_own_profile(db, user_id)
    entry_id = parse_id(exp_id, "Experience not found")
    entry = next((item for item in profile.experience if item.id == entry_id), None)
    if entry is None:
        raise errors.NotFound("Experience not found")
    profile.experience.remove(entry)
    db.commit()
    return get_own_profile(db, user_id)


def add_education(db: Session, user_id: int, entry: schemas.EducationCreate) -> models.Profile:
    _require(
        [
            (entry.school, "School is required"),
            (entry.degree, "Degree is required"),
            (entry.fieldofstudy, "Field of study is required"),
            (entry.from_date, "From date is required"),
        ]
    )
    profile = get_own_profile(db, user_id)
    profile.education.insert(
        0,
        models.Education(
            school=entry.school,
            degree=entry.degree,
            fieldofstudy=entry.fieldofstudy,
            from_date=entry.from_date,
            to_date=entry.to_date,
            current=entry.current,
            description=entry.description,
        ),
    )
    db.commit()
    return get_own_profile(db, user_id)


def remove_education(db: Session, user_id: int, edu_id: Union[str, int]) -> models.Profile:
    profile = get_own_profile(db, user_id)
    entry_id = parse_id(edu_id, "Education not found")
    entry = next((item for item in profile.education if item.id == entry_id), None)
    if entry is None:
        raise errors.NotFound("Education not found")
    profile.education.remove(entry)
    db.commit()
    return get_own_profile(db, user_id)


# --- Post CRUD ---
def _post_query(db: Session):
    return db.query(models.Post).options(
        selectinload(models.Post.likes),
        selectinload(models.Post.comments),
    )


def create_post(db: Session, user_id: int, body: schemas.TextBody) -> models.Post:
    _require([(body.text, "Text is required")])
    author = get_current_user(db, user_id)
    db_post = models.Post(
        user_id=user_id,
        text=body.text,
        name=author.name,
        avatar=author.avatar,
    )
    db.add(db_post)
    db.commit()
    logger.info("Post created", post_id=db_post.id, user_id=user_id)
    return get_post(db, db_post.id)


def list_posts(db: Session) -> List[models.Post]:
    """All posts, newest first."""
    return _post_query(db).order_by(models.Post.date.desc(), models.Post.id.desc()).all()


def get_post(db: Session, post_id: Union[str, int]) -> models.Post:
    post = _post_query(db).filter(models.Post.id == parse_id(post_id, "Post not found")).first()
    if not post:
        raise errors.NotFound("Post not found")
    return post


def delete_post(db: Session, post_id: Union[str, int], user_id: int) -> None:
    post = get_post(db, post_id)
    removed_id = post.id
    if post.user_id != user_id:
        logger.warning("Post delete refused", post_id=removed_id, user_id=user_id)
        raise errors.Forbidden()
    db.delete(post)
    db.commit()
    logger.info("Post removed", post_id=removed_id, user_id=user_id)


def like_post(db: Session, post_id: Union[str, int], user_id: int) -> List[models.Like]:
    get_current_user(db, user_id)
    post = get_post(db, post_id)
    if any(like.user_id == user_id for like in post.likes):
        raise errors.AlreadyLiked()
    post.likes.insert(0, models.Like(user_id=user_id))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request stored the same like first (uq_likes_post_user)
        db.rollback()
        logger.info("Concurrent like rejected", post_id=post.id, user_id=user_id)
        raise errors.AlreadyLiked()
    logger.info("Post liked", post_id=post.id, user_id=user_id)
    return get_post(db, post.id).likes


def unlike_post(db: Session, post_id: Union[str, int], user_id: int) -> List[models.Like]:
    post = get_post(db, post_id)
    like = next((like for like in post.likes if like.user_id == user_id), None)
    if like is None:
        raise errors.NotLiked()
    post.likes.remove(like)
    db.commit()
    logger.info("Post unliked", post_id=post.id, user_id=user_id)
    return get_post(db, post.id).likes


def add_comment(
    db: Session, post_id: Union[str, int], user_id: int, body: schemas.TextBody
) -> List[models.Comment]:
    _require([(body.text, "Text is required")])
    post = get_post(db, post_id)
    author = get_current_user(db, user_id)
    post.comments.insert(
        0,
        models.Comment(
            user_id=user_id,
            text=body.text,
            name=author.name,
            avatar=author.avatar,
        ),
    )
    db.commit()
    return get_post(db, post.id).comments


def remove_comment(
    db: Session, post_id: Union[str, int], comment_id: Union[str, int], user_id: int
) -> List[models.Comment]:
    post = get_post(db, post_id)
    wanted = parse_id(comment_id, "Comment does not exist")
    comment = next((comment for comment in post.comments if comment.id == wanted), None)
    if comment is None:
        raise errors.NotFound("Comment does not exist")
    if comment.user_id != user_id:
        logger.warning("Comment delete refused", comment_id=comment.id, user_id=user_id)
        raise errors.Forbidden()
    post.comments.remove(comment)
    db.commit()
    return get_post(db, post.id).comments
