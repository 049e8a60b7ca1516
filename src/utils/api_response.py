from typing import Any

from pydantic import BaseModel, model_validator


class ApiResponse(BaseModel):
    """
    Success variant of the operation result.

    A status code of 400 or above always yields ``success=False`` and
    ``data=None`` whatever data was passed in.
    """
    status_code: int
    data: Any = None
    message: str = "success"
    success: bool = True

    @model_validator(mode="after")
    def classify(self):
        self.success = self.status_code < 400
        if not self.success:
            self.data = None
        return self
