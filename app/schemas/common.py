from pydantic import BaseModel, Field


class DeletedResponse(BaseModel):
    id: str
    deleted: bool = True


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: list[dict] = Field(default_factory=list)
