"""Stored query model."""

from pydantic import BaseModel, Field


class Query(BaseModel):
    """A stored statement and the data source it runs against."""

    id: str = Field(..., description="The query identifier")
    name: str = Field(..., description="The display name")
    statement: str = Field(..., description="The SQL statement")
    data_source: str = Field(..., description="The data source identifier")

    class Config:
        """Pydantic config."""

        extra = "ignore"
