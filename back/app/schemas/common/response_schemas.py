# Standard library imports
from typing import Any, Generic, TypeVar

# Third-party imports
from pydantic import BaseModel

# Define a union type for error details: string, list of strings, or a dict.
DetailsType = str | list[str] | dict[str, Any]
DataT = TypeVar("DataT")


class ErrorDetails(BaseModel):
    code: str
    message: str
    details: DetailsType | None = None


class BaseResponse(BaseModel, Generic[DataT]):
    ok: bool
    data: DataT | None = None
    error: ErrorDetails | None = None

    def model_dump(self, **kwargs: Any) -> dict[str, Any]:
        data = super().model_dump(**kwargs)

        # Remove empty data / error details from the envelope
        if data.get("data") is None:
            data.pop("data", None)
        error = data.get("error")
        if error is not None and error.get("details") is None:
            error.pop("details", None)

        return data

    @classmethod
    def failure(cls, code: str, message: str, details: DetailsType | None = None) -> "BaseResponse[None]":
        return BaseResponse[None](ok=False, error=ErrorDetails(code=code, message=message, details=details))
