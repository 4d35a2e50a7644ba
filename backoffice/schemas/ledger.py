from pydantic import BaseModel, ConfigDict, Field, field_validator, ValidationInfo
from typing import Any, Dict, Optional
import re

# Characters that would break the ledger's (column,eq,value) filter syntax are rejected.
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_ \-]*$")

class ColumnMap(BaseModel):
    model_config = ConfigDict(frozen=True)

    invoice_column: str = "invoice_reference"
    bl_column: Optional[str] = None
    amount_column: str = "amount"
    supplier_column: str = "supplier"

    @field_validator('invoice_column', 'bl_column', 'amount_column', 'supplier_column', mode='before')
    @classmethod
    def validate_column_name(cls, v, info: ValidationInfo):
        if v is None:
            if info.field_name == 'bl_column':
                return None
            raise ValueError(f"{info.field_name} is required")
        v = str(v).strip()
        if info.field_name == 'bl_column' and not v:
            return None
        if not IDENTIFIER_PATTERN.match(v):
            raise ValueError(f"{info.field_name} is not a valid column name")
        return v

class StoreLedgerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    store_id: int
    table_name: str
    columns: ColumnMap = Field(default_factory=ColumnMap)

    @field_validator('table_name')
    @classmethod
    def validate_table_name(cls, v):
        v = v.strip()
        if not IDENTIFIER_PATTERN.match(v):
            raise ValueError("table_name is not a valid table name")
        return v

class LedgerSearchResult(BaseModel):
    found: bool
    record: Dict[str, Any] = Field(default_factory=dict)
