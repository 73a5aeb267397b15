from pydantic import BaseModel


class MeOut(BaseModel):
    user_id: str
    api_key_id: str
    role: str
    can_moderate: bool
