from fastapi import HTTPException


def abort(status_code: int, code: str, message: str) -> None:
    raise HTTPException(status_code=status_code, detail={"code": code, "message": message})


def _auth_401(code: str, message: str) -> HTTPException:
    # 保留 WWW-Authenticate，符合 Bearer 规范
    return HTTPException(
        status_code=401,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


class ToolCribError(Exception):
    """Base class for domain failures surfaced to the caller.

    Each subclass carries the HTTP status and machine-readable code the API
    layer renders, so services can raise without knowing about FastAPI.
    """

    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(ToolCribError):
    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, fields: list[str], message: str | None = None):
        self.fields = list(fields)
        super().__init__(message or f"Missing or invalid fields: {', '.join(self.fields)}")

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message, "fields": self.fields}


class InvalidShiftTimeOfDay(ToolCribError):
    code = "INVALID_SHIFT_TIME"

    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid shift time of day: {value!r} (expected 'morning' or 'evening')")


class ToolNotFound(ToolCribError):
    status_code = 404
    code = "TOOL_NOT_FOUND"

    def __init__(self, tool_code: str):
        self.tool_code = tool_code
        super().__init__(f"Tool not found: {tool_code}")


class IssuanceNotFound(ToolCribError):
    status_code = 404
    code = "ISSUANCE_NOT_FOUND"

    def __init__(self, issuance_id: int):
        self.issuance_id = issuance_id
        super().__init__(f"Tool issuance not found: {issuance_id}")


class IssuanceNotIssued(ToolCribError):
    status_code = 409
    code = "ISSUANCE_NOT_ISSUED"

    def __init__(self, issuance_id: int, status: str):
        self.issuance_id = issuance_id
        self.status = status
        super().__init__(f"Tool issuance {issuance_id} is already {status}")


# return 接口沿用的旧名字
IssuanceNotTerminal = IssuanceNotIssued
