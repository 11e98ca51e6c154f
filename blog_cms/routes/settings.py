# blog_cms/routes/settings.py

"""
API endpoints для настроек сайта.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from blog_cms.dependencies import require_capability
from blog_cms.models import User
from blog_cms.schemas import SettingResponse, SettingValue
from blog_cms.services import settings_service
from blog_cms.services.permissions import Capability
from blog_cms.utils.database import get_db

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])

admin_router = APIRouter(prefix="/api/v1/admin/settings", tags=["admin: settings"])

manage_settings = require_capability(Capability.MANAGE_SETTINGS)


@router.get("/public", response_model=Dict[str, Any])
async def public_settings(db: Session = Depends(get_db)):
    """Публичные настройки (название сайта, пагинация и т.п.)"""
    return await settings_service.get_public_settings(db)


@admin_router.get("", response_model=Dict[str, SettingValue])
async def all_settings(
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_settings),
):
    return await settings_service.get_all_settings(db)


@admin_router.put("", response_model=Dict[str, SettingValue])
async def update_settings(
    values: Dict[str, SettingValue],
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_settings),
):
    """Обновить несколько настроек; любое неверное значение отменяет все"""
    return await settings_service.update_multiple(db, values)


@admin_router.post("/defaults", response_model=Dict[str, int])
async def initialize_defaults(
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_settings),
):
    created = await settings_service.initialize_defaults(db)
    return {"created": created}


@admin_router.get("/category/{category}", response_model=Dict[str, SettingValue])
async def settings_by_category(
    category: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_settings),
):
    return await settings_service.get_by_category(db, category)


@admin_router.put("/{key}", response_model=SettingResponse)
async def set_setting(
    key: str,
    body: SettingValue,
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_settings),
):
    return await settings_service.set_setting(
        db,
        key,
        body.value,
        setting_type=body.type,
        description=body.description,
    )


@admin_router.delete("/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_setting(
    key: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_settings),
):
    await settings_service.delete_setting(db, key)
    return None
