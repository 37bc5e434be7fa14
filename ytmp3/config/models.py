from typing import List
from pydantic import BaseModel, Field, field_validator

class GeneralConfig(BaseModel):
    bitrate: int = Field(default=128, gt=0)  # kbps
    max_queue_size: int = Field(default=10, gt=0)
    download_path: str = "downloads"
    ffmpeg_binary: str = "ffmpeg"
    log_path: str = "/tmp/ytmp3/ytmp3.log"
    debug: bool = False

class AccessConfig(BaseModel):
    """Who may submit conversions. The owner is always allowed."""
    owner_user_id: int = 0
    owner_username: str = ""
    whitelist: List[int] = Field(default_factory=list)

    @field_validator('whitelist')
    @classmethod
    def dedupe_whitelist(cls, v: List[int]) -> List[int]:
        seen = set()
        result = []
        for user_id in v:
            if user_id not in seen:
                seen.add(user_id)
                result.append(user_id)
        return result

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    access: AccessConfig = Field(default_factory=AccessConfig)
