from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import date as date_, datetime, time


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    password_hash: str
    role: str = Field(default="attendant", index=True)  # admin / attendant
    shift: Optional[str] = None                         # 班组：A / B / C ...
    shift_time: Optional[str] = None                    # morning / evening
    created_at: datetime = Field(default_factory=datetime.now)


class Tool(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tool_code: str = Field(index=True, unique=True)
    description: str = Field(default="")
    quantity: int = Field(default=0)            # 总数
    available_quantity: int = Field(default=0)  # 可借出数量，只通过台账增减
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ToolIssuance(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    date: date_ = Field(index=True)
    tool_code: str = Field(index=True)
    tool_description: str = Field(default="")
    quantity: int

    issued_to_name: str
    issued_to_id: str = Field(default="")
    department: str

    attendant_name: str = Field(index=True)
    attendant_shift: str = Field(default="A", index=True)
    attendant_shift_time: str = Field(default="morning")
    shift_day: int = Field(default=1)

    time_out: time
    time_in: Optional[time] = None
    condition_returned: Optional[str] = None
    comments: str = Field(default="")

    status: str = Field(default="issued", index=True)  # issued / returned / lost / damaged / cleared_overdue
    is_overdue: bool = Field(default=False, index=True)
    overdue_since: Optional[datetime] = None

    # 创建时按班次算好，之后不再改
    shift_start_time: datetime
    shift_end_time: datetime

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
