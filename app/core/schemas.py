"""
Schemas shared by the admin modules: page envelope metadata and bulk actions
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Union


class PageMeta(BaseModel):
    current_page: int
    last_page: int
    from_: Optional[int] = Field(None, alias="from")
    to: Optional[int] = None
    total: int
    per_page: int

    class Config:
        populate_by_name = True


class BulkIdsRequest(BaseModel):
    ids: Union[str, List[Optional[Union[int, str]]], None] = None


class BulkActionResponse(BaseModel):
    success: bool
    message: str
