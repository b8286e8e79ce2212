from datetime import date

from pydantic import BaseModel, ConfigDict


class StockBatchRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    batch_number: str
    quantity: int
    expiry_date: date | None


class ProductStockRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    name: str
    total_quantity: int  # READ ONLY : modifié uniquement par le ledger
    batches: list[StockBatchRead]
