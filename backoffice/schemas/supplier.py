from pydantic import BaseModel

class Supplier(BaseModel):
    id: int
    name: str
    automatic_reconciliation: bool = False
