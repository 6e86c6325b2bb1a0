# Local application imports
from app.settings.common import CommonSettings


class DevSettings(CommonSettings):
    DEBUG_MODE: bool = True
    DATABASE_URL: str | None = "sqlite+aiosqlite:///./nearby_verify.db"
