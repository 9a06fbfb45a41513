from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TaskState(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RemoteTaskStatus(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    task_id: Optional[str] = None
    status: str
    result_document_id: Optional[str] = None
    progress: Optional[float] = None

    @property
    def is_completed(self) -> bool:
        return self.status == TaskState.COMPLETED.value

    @property
    def is_failed(self) -> bool:
        return self.status == TaskState.FAILED.value


class CombineOptions(CamelModel):
    add_bookmark: bool
    continue_merge_on_error: bool = True
    retain_page_numbers: bool
    add_toc: bool
    toc_title: Optional[str] = None


class TemplateAnalysis(CamelModel):
    success: bool = True
    variables: List[str]
    csv_content: str
    message: str = "Template analyzed successfully. Use the CSV structure to populate your data."


class BatchResult(CamelModel):
    success: bool = True
    message: str = "Documents generated successfully"
    batch_id: str
    individual_documents: List[str]
    merged_document_id: str
    total_documents: int
    download_url: str
    zip_url: str


class TokenSummary(CamelModel):
    token: str
    document_id: str
    view_url: str
    viewed_at: Optional[datetime] = None


class BatchDetail(CamelModel):
    id: str
    created_at: datetime
    doc_ids: List[str]
    merged_document_id: Optional[str] = None
    document_count: int
    tokens: List[TokenSummary] = Field(default_factory=list)


class HealthStatus(BaseModel):
    status: str
    message: str
    base_url: str
