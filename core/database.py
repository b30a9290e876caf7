from __future__ import annotations

from motor.motor_asyncio import AsyncIOMotorClient

from core.settings import get_settings

_settings = get_settings()

client = AsyncIOMotorClient(_settings.mongo_url, serverSelectionTimeoutMS=2000)
db = client[_settings.db_name]
