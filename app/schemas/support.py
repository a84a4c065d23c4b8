from pydantic import BaseModel, EmailStr, Field


class SupportRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    subject: str = Field(min_length=1)
    message: str = Field(min_length=10)
