from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlmodel import Session

from courtdraw.database import get_session
from courtdraw.models.user import User
from courtdraw.services.rating_engine import category_for_rating, rating_history

router = APIRouter()


class UserCreate(BaseModel):
    name: str
    email: Optional[str] = None
    rating: Optional[float] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("rating")
    @classmethod
    def validate_rating(cls, v):
        if v is not None and v <= 0:
            raise ValueError("rating must be positive")
        return v


class UserResponse(BaseModel):
    id: int
    name: str
    email: Optional[str]
    rating: Optional[float]
    category: str
    rank: Optional[int]

    class Config:
        from_attributes = True


class RatingChangeResponse(BaseModel):
    match_id: int
    tournament_id: int
    rating_before: float
    rating_after: float
    delta: float
    category_before: str
    category_after: str

    class Config:
        from_attributes = True


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(data: UserCreate, session: Session = Depends(get_session)):
    rating = data.rating if data.rating is not None else 900.0
    user = User(name=data.name, email=data.email, rating=rating, category=category_for_rating(rating))
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(user_id: int, session: Session = Depends(get_session)):
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    return user


@router.get("/users/{user_id}/rating-history", response_model=List[RatingChangeResponse])
def get_rating_history(user_id: int, session: Session = Depends(get_session)):
    if not session.get(User, user_id):
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    return rating_history(session, user_id)
