from datetime import date

from pydantic import BaseModel, ConfigDict, Field

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class TimesheetUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    excavatorID: int
    workDate: date = Field(alias="date")
    startTime: str = Field(pattern=TIME_PATTERN)
    endTime: str = Field(pattern=TIME_PATTERN)
