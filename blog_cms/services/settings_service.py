# blog_cms/services/settings_service.py

"""
Сервисный слой для настроек сайта.

Значение настройки всегда хранится текстом, тип (setting_type) определяет,
как его проверять при записи и как интерпретировать при чтении.
"""

import logging
import math
from typing import Any, Dict, Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.orm import Session

from blog_cms.models import Setting, SettingType
from blog_cms.schemas import SettingValue
from blog_cms.utils.database import commit
from blog_cms.utils.exceptions import NotFound, ValidationError

logger = logging.getLogger(__name__)

# Настройки по умолчанию: (ключ, значение, тип, описание, публичная)
DEFAULT_SETTINGS = [
    ("site_name", "My Website", SettingType.STRING, "Website name", True),
    ("site_description", "A great website", SettingType.TEXT, "Website description", True),
    ("site_keywords", "blog, news, articles", SettingType.STRING, "SEO keywords", True),
    ("admin_email", "admin@example.com", SettingType.EMAIL, "Administrator email", False),
    ("posts_per_page", "10", SettingType.NUMBER, "Number of posts per page", True),
    ("enable_comments", "true", SettingType.BOOLEAN, "Enable comments on posts", True),
    ("comment_moderation", "true", SettingType.BOOLEAN, "Moderate comments before publishing", False),
    ("enable_registration", "false", SettingType.BOOLEAN, "Allow user registration", True),
    ("timezone", "Asia/Ho_Chi_Minh", SettingType.STRING, "Default timezone", True),
    ("date_format", "DD/MM/YYYY", SettingType.STRING, "Date display format", True),
    ("maintenance_mode", "false", SettingType.BOOLEAN, "Enable maintenance mode", False),
    ("google_analytics_id", "", SettingType.STRING, "Google Analytics tracking ID", False),
]

# Группы настроек для страниц админки
SETTING_CATEGORIES: Dict[str, list[str]] = {
    "general": ["site_name", "site_description", "site_keywords", "admin_email", "timezone", "date_format"],
    "content": ["posts_per_page", "enable_comments", "comment_moderation"],
    "users": ["enable_registration"],
    "system": ["maintenance_mode"],
    "analytics": ["google_analytics_id"],
}

_BOOLEAN_VALUES = ("true", "false")


def _category_for(key: str) -> str:
    for category, keys in SETTING_CATEGORIES.items():
        if key in keys:
            return category
    return "general"


# ==========================
# ПРОВЕРКА И ПРИВЕДЕНИЕ ТИПОВ
# ==========================

def normalize_value(key: str, value: Any, setting_type: SettingType) -> Optional[str]:
    """
    Проверить значение по типу настройки и вернуть его текстовую форму.
    """
    if isinstance(value, bool):
        value = "true" if value else "false"
    if value is not None:
        value = str(value).strip()

    if setting_type in (SettingType.STRING, SettingType.TEXT):
        return value

    if not value:
        raise ValidationError(f"Setting '{key}' requires a value")

    if setting_type == SettingType.NUMBER:
        try:
            number = float(value)
        except ValueError:
            raise ValidationError(f"Setting '{key}' must be a number")
        # nan и inf не сериализуются в JSON
        if not math.isfinite(number):
            raise ValidationError(f"Setting '{key}' must be a number")
        return value

    if setting_type == SettingType.BOOLEAN:
        if value.lower() not in _BOOLEAN_VALUES:
            raise ValidationError(f"Setting '{key}' must be 'true' or 'false'")
        return value.lower()

    # SettingType.EMAIL
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        raise ValidationError(f"Setting '{key}' must be a valid email")
    return value


def cast_value(raw: Optional[str], setting_type: SettingType) -> Any:
    """Текст из БД -> значение Python по типу настройки"""
    if raw is None:
        return None
    if setting_type == SettingType.BOOLEAN:
        return raw.lower() == "true"
    if setting_type == SettingType.NUMBER:
        number = float(raw)
        return int(number) if number.is_integer() else number
    return raw


# =========================
# ЧТЕНИЕ
# =========================

async def get_setting(db: Session, key: str) -> Optional[Setting]:
    return db.query(Setting).filter(Setting.setting_key == key).first()


async def get_typed_setting(db: Session, key: str, default: Any = None) -> Any:
    """
    Значение настройки в виде bool/int/float/str, либо default,
    если такой настройки нет.
    """
    setting = await get_setting(db, key)
    if setting is None or setting.setting_value is None:
        return default
    return cast_value(setting.setting_value, setting.setting_type)


async def get_all_settings(db: Session) -> Dict[str, dict]:
    settings = db.query(Setting).order_by(Setting.category, Setting.setting_key).all()
    return {
        s.setting_key: {
            "value": s.setting_value,
            "type": s.setting_type.value,
            "description": s.description,
        }
        for s in settings
    }


async def get_public_settings(db: Session) -> Dict[str, Any]:
    """Только публичные настройки, уже приведенные к типам"""
    settings = db.query(Setting).filter(Setting.is_public.is_(True)).all()
    return {s.setting_key: cast_value(s.setting_value, s.setting_type) for s in settings}


async def get_by_category(db: Session, category: str) -> Dict[str, dict]:
    if category not in SETTING_CATEGORIES:
        raise NotFound("Settings category not found")

    keys = SETTING_CATEGORIES[category]
    settings = db.query(Setting).filter(Setting.setting_key.in_(keys)).all()
    return {
        s.setting_key: {
            "value": s.setting_value,
            "type": s.setting_type.value,
            "description": s.description,
        }
        for s in settings
    }


# =========================
# ЗАПИСЬ
# =========================

def _upsert(
    db: Session,
    key: str,
    value: Any,
    setting_type: Optional[SettingType] = None,
    description: Optional[str] = None,
    is_public: Optional[bool] = None,
) -> Setting:
    setting = db.query(Setting).filter(Setting.setting_key == key).first()

    # Проверяем до изменения сессии, чтобы ошибка не оставила мусор
    effective_type = setting_type or (setting.setting_type if setting else SettingType.STRING)
    normalized = normalize_value(key, value, effective_type)

    if setting is None:
        setting = Setting(
            setting_key=key,
            category=_category_for(key),
            description=description or "",
            is_public=bool(is_public),
        )
        db.add(setting)

    setting.setting_type = effective_type
    setting.setting_value = normalized
    if description is not None:
        setting.description = description
    if is_public is not None:
        setting.is_public = is_public
    return setting


async def set_setting(
    db: Session,
    key: str,
    value: Any,
    setting_type: Optional[SettingType] = None,
    description: Optional[str] = None,
    is_public: Optional[bool] = None,
) -> Setting:
    """
    Создать или обновить настройку. Значение проверяется по типу.
    """
    setting = _upsert(db, key, value, setting_type, description, is_public)
    commit(db)
    db.refresh(setting)

    logger.info("Setting %s updated", key)
    return setting


async def update_multiple(db: Session, values: Dict[str, SettingValue]) -> Dict[str, dict]:
    """
    Обновить несколько настроек одной транзакцией.
    Ошибка проверки любого значения отменяет все изменения.
    """
    try:
        for key, item in values.items():
            _upsert(
                db,
                key,
                item.value,
                setting_type=item.type,
                description=item.description,
            )
    except ValidationError:
        db.rollback()
        raise
    commit(db)

    logger.info("Settings updated: %s", ", ".join(sorted(values)))
    return await get_all_settings(db)


async def initialize_defaults(db: Session) -> int:
    """
    Добавить отсутствующие настройки по умолчанию.
    Существующие значения не трогаются. Возвращает число добавленных.
    """
    existing = {key for (key,) in db.query(Setting.setting_key).all()}

    created = 0
    for key, value, setting_type, description, is_public in DEFAULT_SETTINGS:
        if key in existing:
            continue
        db.add(Setting(
            setting_key=key,
            setting_value=value,
            setting_type=setting_type,
            category=_category_for(key),
            description=description,
            is_public=is_public,
        ))
        created += 1

    if created:
        commit(db)
        logger.info("Initialized %d default settings", created)
    return created


async def delete_setting(db: Session, key: str) -> None:
    setting = await get_setting(db, key)
    if setting is None:
        raise NotFound("Setting not found")

    db.delete(setting)
    commit(db)
    logger.info("Setting %s deleted", key)
