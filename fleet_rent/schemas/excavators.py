from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ExcavatorUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    excavatorID: Optional[int] = None
    name: Optional[str] = None
    brand: Optional[str] = None
    type: Optional[str] = None
    operatorName: Optional[str] = None
    regularRatePerHour: Optional[int] = Field(None, ge=0)
    overtimeRatePerHour: Optional[int] = Field(None, ge=0)
    status: Optional[Literal["Available", "UnderRepair"]] = None
    stock: Optional[int] = Field(None, ge=1)
