from pydantic import BaseModel


class TokenData(BaseModel):
    subject: str
    email: str | None = None
    name: str | None = None
