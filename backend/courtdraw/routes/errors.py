"""Translate service errors into HTTP responses."""
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException
from sqlmodel import Session

from courtdraw.services.errors import ConsistencyError, CourtdrawError, NotFound, ValidationFailed


def to_http(exc: CourtdrawError) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationFailed):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, ConsistencyError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@contextmanager
def unit_of_work(session: Session) -> Iterator[Session]:
    """Commit on success; roll back and map engine errors to HTTPException otherwise."""
    try:
        yield session
        session.commit()
    except CourtdrawError as e:
        session.rollback()
        raise to_http(e)
    except Exception:
        session.rollback()
        raise
