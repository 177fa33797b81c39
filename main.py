from typing import Any, List

import httpx
import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.orm import Session

import crud
import errors
import github
import schemas
from auth import get_current_user_id
from database import create_db_and_tables, get_db
from observability import init_observability
from request_id_middleware import RequestIdMiddleware
from settings import Settings, get_settings


# Initialise observability before creating app
init_observability()
logger = structlog.get_logger(__name__)

# Create DB tables on startup
create_db_and_tables()

app = FastAPI(
    title="DevConnector",
    description="Backend API for the DevConnector developer network",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)


# --- Error mapping --- #
@app.exception_handler(errors.ApiError)
async def api_error_handler(request: Request, exc: errors.ApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    logger.info("Request validation failed", errors=messages)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"errors": [{"msg": msg} for msg in messages]},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", exc_info=exc)
    return PlainTextResponse("Server Error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


# --- Users & Auth --- #
@app.post("/api/users", response_model=schemas.Token, tags=["Users"])
def register_endpoint(user: schemas.UserCreate, db: Session = Depends(get_db)):
    return {"token": crud.register_user(db, user)}


@app.post("/api/auth", response_model=schemas.Token, tags=["Auth"])
def login_endpoint(credentials: schemas.LoginRequest, db: Session = Depends(get_db)):
    return {"token": crud.login(db, credentials)}


@app.get("/api/auth", response_model=schemas.User, tags=["Auth"])
def get_me(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Returns the authenticated user's record, password excluded."""
    return crud.get_current_user(db, user_id)


# --- Profiles --- #
@app.get("/api/profile/me", response_model=schemas.Profile, tags=["Profile"])
def get_own_profile_endpoint(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.get_own_profile(db, user_id)


@app.post("/api/profile", response_model=schemas.Profile, tags=["Profile"])
def upsert_profile_endpoint(
    fields: schemas.ProfileUpsert,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.upsert_profile(db, user_id, fields)


@app.get("/api/profile", response_model=List[schemas.Profile], tags=["Profile"])
def list_profiles_endpoint(db: Session = Depends(get_db)):
    return crud.list_profiles(db)


@app.get("/api/profile/user/{user_id}", response_model=schemas.Profile, tags=["Profile"])
def get_profile_by_user_endpoint(user_id: str, db: Session = Depends(get_db)):
    return crud.get_profile_by_user(db, crud.parse_id(user_id, "Profile not found"))


@app.delete("/api/profile", response_model=schemas.Message, tags=["Profile"])
def delete_account_endpoint(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Delete the caller's profile, posts and user record."""
    crud.delete_account(db, user_id)
    return {"msg": "User removed"}


@app.put("/api/profile/experience", response_model=schemas.Profile, tags=["Profile"])
def add_experience_endpoint(
    entry: schemas.ExperienceCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.add_experience(db, user_id, entry)


@app.delete("/api/profile/experience/{exp_id}", response_model=schemas.Profile, tags=["Profile"])
def remove_experience_endpoint(
    exp_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.remove_experience(db, user_id, exp_id)


@app.put("/api/profile/education", response_model=schemas.Profile, tags=["Profile"])
def add_education_endpoint(
    entry: schemas.EducationCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.add_education(db, user_id, entry)


@app.delete("/api/profile/education/{edu_id}", response_model=schemas.Profile, tags=["Profile"])
def remove_education_endpoint(
    edu_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.remove_education(db, user_id, edu_id)


@app.get("/api/profile/github/{username}", tags=["Profile"])
async def github_repos_endpoint(
    username: str,
    client: httpx.AsyncClient = Depends(github.get_github_client),
    settings: Settings = Depends(get_settings),
) -> Any:
    """Proxy the user's public GitHub repositories."""
    return await github.fetch_repos(client, username, settings)


# --- Posts --- #
@app.post("/api/posts", response_model=schemas.Post, tags=["Posts"])
def create_post_endpoint(
    body: schemas.TextBody,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.create_post(db, user_id, body)


@app.get("/api/posts", response_model=List[schemas.Post], tags=["Posts"])
def list_posts_endpoint(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.list_posts(db)


@app.get("/api/posts/{post_id}", response_model=schemas.Post, tags=["Posts"])
def get_post_endpoint(
    post_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.get_post(db, post_id)


@app.delete("/api/posts/{post_id}", response_model=schemas.Message, tags=["Posts"])
def delete_post_endpoint(
    post_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    crud.delete_post(db, post_id, user_id)
    return {"msg": "Post removed"}


@app.put("/api/posts/like/{post_id}", response_model=List[schemas.Like], tags=["Posts"])
def like_post_endpoint(
    post_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.like_post(db, post_id, user_id)


@app.put("/api/posts/unlike/{post_id}", response_model=List[schemas.Like], tags=["Posts"])
def unlike_post_endpoint(
    post_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.unlike_post(db, post_id, user_id)


@app.post("/api/posts/comment/{post_id}", response_model=List[schemas.Comment], tags=["Posts"])
def add_comment_endpoint(
    post_id: str,
    body: schemas.TextBody,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.add_comment(db, post_id, user_id, body)


@app.delete(
    "/api/posts/comment/{post_id}/{comment_id}",
    response_model=List[schemas.Comment],
    tags=["Posts"],
)
def remove_comment_endpoint(
    post_id: str,
    comment_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.remove_comment(db, post_id, comment_id, user_id)
