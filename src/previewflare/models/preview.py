from pydantic import BaseModel, Field

__all__ = ["ApiErrorBody", "ApiErrorDetail", "ApiPreview", "Preview", "V4PreviewResponse"]


class Preview(BaseModel):
    """A script uploaded to the preview service."""

    id: str = Field(min_length=1)


# Authenticated previews go through the v4 Workers API, which wraps the
# preview id in its standard response envelope.
class ApiPreview(BaseModel):
    preview_id: str = Field(min_length=1)


class V4PreviewResponse(BaseModel):
    result: ApiPreview

    def to_preview(self) -> Preview:
        return Preview(id=self.result.preview_id)


class ApiErrorDetail(BaseModel):
    code: int = 0
    message: str = ""


class ApiErrorBody(BaseModel):
    errors: list[ApiErrorDetail] = Field(default_factory=list)
