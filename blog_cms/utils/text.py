# blog_cms/utils/text.py

"""
Текстовые утилиты: slug и время чтения
"""

import math

from slugify import slugify

WORDS_PER_MINUTE = 200


def make_slug(value: str) -> str:
    """
    URL-безопасный идентификатор: нижний регистр, ASCII, дефисы.
    """
    return slugify(value, lowercase=True)


def count_words(content: str) -> int:
    return len(content.split())


def reading_time(content: str) -> int:
    """Минуты чтения: слова / 200 с округлением вверх"""
    return math.ceil(count_words(content) / WORDS_PER_MINUTE)


def normalize_email(email: str) -> str:
    """Email хранится и ищется в нижнем регистре без пробелов"""
    return email.strip().lower()
