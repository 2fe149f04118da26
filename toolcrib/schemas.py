from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field
from datetime import date as date_, datetime, time


class Role(str, Enum):
    admin = "admin"
    attendant = "attendant"


class ShiftTime(str, Enum):
    morning = "morning"
    evening = "evening"


class IssuanceStatus(str, Enum):
    issued = "issued"
    returned = "returned"
    lost = "lost"
    damaged = "damaged"
    cleared_overdue = "cleared_overdue"


class ReturnCondition(str, Enum):
    good = "Good"
    fair = "Fair"
    needs_repair = "Needs Repair"
    damaged = "Damaged"
    lost = "Lost/Missing"


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)
    shift: str = Field("A", min_length=1, max_length=1, description="班组字母")
    shift_time: ShiftTime = ShiftTime.morning


class UserRead(BaseModel):
    id: int
    username: str
    role: Role
    shift: Optional[str] = None
    shift_time: Optional[ShiftTime] = None
    created_at: datetime


class ToolCreate(BaseModel):
    tool_code: str = Field(..., min_length=1, max_length=50)
    description: str = ""
    quantity: int = Field(0, ge=0)


class ToolUpdate(BaseModel):
    tool_code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=0)


class ToolRead(BaseModel):
    id: int
    tool_code: str
    description: str
    quantity: int
    available_quantity: int
    updated_at: datetime


class ToolImportResponse(BaseModel):
    imported: int
    errors: list[str]


class IssuanceCreate(BaseModel):
    # 必填校验放在 IssuanceLifecycle.issue()，这里全部可选，缺什么一次性列出来
    date: Optional[date_] = None
    tool_code: Optional[str] = None
    tool_description: Optional[str] = None
    quantity: Optional[int] = None
    issued_to_name: Optional[str] = None
    issued_to_id: Optional[str] = None
    department: Optional[str] = None
    time_out: Optional[time] = None
    comments: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "date": "2024-01-10",
                    "tool_code": "T1",
                    "quantity": 2,
                    "issued_to_name": "Kwame Mensah",
                    "issued_to_id": "E-104",
                    "department": "Maintenance",
                    "time_out": "07:15",
                }
            ]
        }
    }


class IssuanceReturn(BaseModel):
    time_in: Optional[time] = None
    condition_returned: Optional[ReturnCondition] = None
    comments: Optional[str] = None


class IssuanceRead(BaseModel):
    id: int
    date: date_
    tool_code: str
    tool_description: str
    quantity: int
    issued_to_name: str
    issued_to_id: str
    department: str
    attendant_name: str
    attendant_shift: str
    attendant_shift_time: ShiftTime
    shift_day: int
    time_out: time
    time_in: Optional[time] = None
    condition_returned: Optional[ReturnCondition] = None
    comments: str
    status: IssuanceStatus
    is_overdue: bool
    overdue_since: Optional[datetime] = None
    shift_start_time: datetime
    shift_end_time: datetime
    created_at: datetime
    updated_at: datetime


class OverdueIssuanceRead(IssuanceRead):
    hours_overdue: Optional[float] = None


class CountResponse(BaseModel):
    count: int


class SweepResponse(BaseModel):
    flagged: int
    swept_at: datetime
