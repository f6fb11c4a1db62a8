from typing import Optional
from pydantic import BaseModel, field_validator

class UserCreate(BaseModel):
    # Champs optionnels ici: l'absence est refusée par le store (400, pas 422)
    name: Optional[str] = None
    email: Optional[str] = None

class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None

    @field_validator('name', 'email', mode='before')
    @classmethod
    def must_not_be_null(cls, v):
        # Un champ envoyé explicitement doit être une chaîne (même vide)
        if v is None:
            raise ValueError('Field must be a string')
        return v

class UserResponse(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True  # Pour compatibilité Pydantic v2
