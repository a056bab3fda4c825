from safescan.models.database import Base, SessionLocal, get_db, init_db
from safescan.models.domain import DatasetRow, Ingredient, Scan, ScanIngredient

__all__ = [
    "Base",
    "SessionLocal",
    "get_db",
    "init_db",
    "DatasetRow",
    "Ingredient",
    "Scan",
    "ScanIngredient",
]
