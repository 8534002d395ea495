# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# Ответ логистической системы на успешную операцию с листом/заголовком доставки
EXTERNAL_OK = "1"

# Ответы на сброс перемещённых мест: "2" (сброшено) и "0" (нечего сбрасывать)
CLEAR_MOVED_PLACES_OK = ("2", "0")

# Заголовок, из которого читается токен доступа (помимо Authorization: Bearer)
ACCESS_TOKEN_HEADER = "x-access-token"

# Ключи кэша справочников
DRIVER_CACHE_KEY = "driver:{code}"
VEHICLE_CACHE_KEY = "vehicle:{code}"
