from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.access.library import AccessService
from app.access.models import Caller
from app.api.deps import get_caller, require_caller
from app.db.session import get_db
from app.schemas.media import LibraryOut, MediaOut


router = APIRouter(tags=["media"])


@router.get("/media/{media_id}", response_model=MediaOut)
def get_media(
    media_id: str,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
) -> MediaOut:
    return AccessService(db).get_media(media_id, caller)


@router.get("/user/library", response_model=LibraryOut)
def get_library(
    tab: str = Query("all"),
    search: str | None = Query(None),
    caller: Caller = Depends(require_caller),
    db: Session = Depends(get_db),
) -> LibraryOut:
    return AccessService(db).get_library(caller.user_id, tab=tab, search=search)
