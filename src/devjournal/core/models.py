"""Data models for the journal."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Page(BaseModel):
    """A registered markdown page."""

    model_config = ConfigDict(from_attributes=True)

    path: str
    title: str
    is_visible: bool = True
    visit_count: int = Field(default=0, ge=0)


class NavEntry(BaseModel):
    """A visible page as listed in navigation.

    ``path`` is the display form: no extension, and ``/`` for the home page.
    """

    path: str
    title: str

    @property
    def url(self) -> str:
        return self.path if self.path == "/" else f"/{self.path}"


class ReconcileResult(BaseModel):
    """Counts from one pass over the content tree."""

    discovered: int = 0
    created: int = 0
    failed: list[str] = Field(default_factory=list)


class SyncResult(BaseModel):
    """Outcome of one pull-then-reconcile operation."""

    cloned: bool = False
    reconcile: ReconcileResult = Field(default_factory=ReconcileResult)


class WebhookOutcome(BaseModel):
    """Decision taken for a webhook delivery.

    ``completion`` holds the future of the scheduled sync, if any.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status_code: int
    message: str
    scheduled: bool = False
    completion: Any = Field(default=None, exclude=True)

    @property
    def accepted(self) -> bool:
        return self.status_code < 400
