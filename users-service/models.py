from typing import List
from pydantic import BaseModel

class User(BaseModel):
    id: int
    name: str
    email: str

# Données initiales au démarrage du service
SEED_USERS: List[User] = [
    User(id=1, name="John Doe", email="john@example.com"),
    User(id=2, name="Jane Doe", email="jane@example.com"),
]
