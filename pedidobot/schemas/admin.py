from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SendMessageRequest(BaseModel):
    phone: str = Field(min_length=1)
    message: str = Field(min_length=1)

    @field_validator("phone", "message", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class SendReminderTemplateRequest(BaseModel):
    phone: str = Field(min_length=1)
    name: Optional[str] = None

    @field_validator("phone", mode="before")
    @classmethod
    def strip_phone(cls, value):
        return value.strip() if isinstance(value, str) else value


class ManualReminderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId")


class BlockUserRequest(BaseModel):
    blocked: bool


class SimulatorMessage(BaseModel):
    phone: str = Field(min_length=1)
    text: str = ""
    name: Optional[str] = None
