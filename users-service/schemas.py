from typing import Optional
from pydantic import BaseModel

class UserCreate(BaseModel):
    # id éventuellement envoyé par le client: ignoré, c'est le store qui l'attribue
    id: Optional[int] = None
    name: str = ""
    email: str = ""  # Pas de validation du format

class UserUpdate(BaseModel):
    """Partial or full update, only the fields sent are applied."""
    id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude_none=True)

class UserResponse(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True  # Pour compatibilité Pydantic v2
