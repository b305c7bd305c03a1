"""Pydantic schemas for the setup wizard API.

Request bodies use the camelCase keys the setup wizard sends.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SetupAction = Literal[
    "test-connection",
    "create-database",
    "create-collection",
    "create-bucket",
    "create-initial-data",
]


class ProjectCredentials(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(..., alias="projectId", min_length=1)
    api_key: str = Field(..., alias="apiKey", min_length=1)


class SetupActionRequest(ProjectCredentials):
    action: SetupAction
    collection_id: str | None = Field(default=None, alias="collectionId")
    collection_name: str | None = Field(default=None, alias="collectionName")
    collection_type: str | None = Field(default=None, alias="collectionType")
    bucket_id: str | None = Field(default=None, alias="bucketId")
    bucket_name: str | None = Field(default=None, alias="bucketName")


class SetupRunRequest(ProjectCredentials):
    pass


class SetupActionResponse(BaseModel):
    success: bool
    message: str
    warnings: list[str] = Field(default_factory=list)


class SetupProgressEvent(BaseModel):
    stage: str
    progress: int
    message: str
    is_error: bool = False


class SetupResultEvent(BaseModel):
    success: bool
    message: str
    details: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
