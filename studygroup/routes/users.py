from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from studygroup.database import get_db
from studygroup.deps.auth import get_current_user
from studygroup.models import User
from studygroup.schemas import AvatarOut, MessageOut, ProfileOut, ProfileUpdate
from studygroup.services.media import MediaStore, get_media_store
from studygroup.services.users import UserService

router = APIRouter()


@router.get("/profile", response_model=ProfileOut)
async def get_profile(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/profile", response_model=ProfileOut)
async def update_profile(
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).update_profile(current_user.id, body.model_dump(exclude_unset=True))


@router.post("/upload-avatar", response_model=AvatarOut)
async def upload_avatar(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    media: MediaStore = Depends(get_media_store),
):
    data = await file.read()
    url = await UserService(db).replace_avatar(current_user.id, media, data, file.content_type, file.filename)
    return {"avatar_url": url}


@router.delete("/remove-avatar", response_model=MessageOut)
async def remove_avatar(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    media: MediaStore = Depends(get_media_store),
):
    await UserService(db).remove_avatar(current_user.id, media)
    return {"message": "Avatar removed successfully"}
