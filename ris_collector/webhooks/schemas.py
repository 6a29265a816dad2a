"""
Webhook event envelope and typed payloads.

Payloads are decoded into explicit models at the boundary. Anything that
does not match is rejected with InvalidWebhookPayload instead of being
silently defaulted. Only the fields the pipeline uses are declared; GitHub
sends many more, which are ignored.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from ris_collector.activity.schemas import (
    CommitActivity,
    IssueActivity,
    PullRequestActivity,
    ReleaseActivity,
    UTCDateTime,
    utc_now,
)
from ris_collector.libraries.schemas import RepositoryKey


class InvalidWebhookPayload(Exception):
    """Webhook payload is missing required fields or has the wrong shape."""


class WebhookEventType(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    ISSUES = "issues"
    RELEASE = "release"


class WebhookEvent(BaseModel):
    """Queued webhook delivery for an approved repository."""

    event_id: str = Field(min_length=1)
    type: WebhookEventType
    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    payload: dict[str, Any]
    received_at: UTCDateTime = Field(default_factory=utc_now)

    @property
    def key(self) -> RepositoryKey:
        return RepositoryKey(self.owner, self.repo)

    def payload_excerpt(self, limit: int = 200) -> str:
        text = str(self.payload)
        return text if len(text) <= limit else text[:limit] + "..."


# ============================================================================
# Payloads
# ============================================================================


class _User(BaseModel):
    login: str | None = None


class _Label(BaseModel):
    name: str


class _RepositoryRef(BaseModel):
    name: str
    owner: _User

    @property
    def key(self) -> RepositoryKey:
        if not self.owner.login:
            raise InvalidWebhookPayload("repository.owner.login is missing")
        try:
            return RepositoryKey(self.owner.login, self.name)
        except ValueError as e:
            raise InvalidWebhookPayload(str(e)) from e


class PushCommitAuthor(BaseModel):
    name: str | None = None
    username: str | None = None


class PushCommit(BaseModel):
    id: str
    timestamp: UTCDateTime
    message: str = ""
    author: PushCommitAuthor = Field(default_factory=PushCommitAuthor)

    def to_activity(self) -> CommitActivity:
        return CommitActivity(
            sha=self.id,
            date=self.timestamp,
            author=self.author.username or self.author.name or "unknown",
            message=self.message,
        )


class PushPayload(BaseModel):
    commits: list[PushCommit] = Field(default_factory=list)


class PullRequestBody(BaseModel):
    id: int
    number: int
    title: str = ""
    state: Literal["open", "closed"]
    created_at: UTCDateTime
    merged_at: UTCDateTime | None = None
    closed_at: UTCDateTime | None = None
    merged: bool | None = None
    user: _User | None = None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0

    def to_activity(self) -> PullRequestActivity:
        return PullRequestActivity(
            id=self.id,
            number=self.number,
            title=self.title,
            created_at=self.created_at,
            merged_at=self.merged_at,
            closed_at=self.closed_at,
            state=self.state,
            merged=self.merged if self.merged is not None else self.merged_at is not None,
            author=(self.user.login if self.user else None) or "unknown",
            additions=self.additions,
            deletions=self.deletions,
            changed_files=self.changed_files,
        )


class PullRequestPayload(BaseModel):
    action: str
    pull_request: PullRequestBody


class IssueBody(BaseModel):
    id: int
    number: int
    title: str = ""
    state: Literal["open", "closed"]
    created_at: UTCDateTime
    closed_at: UTCDateTime | None = None
    user: _User | None = None
    comments: int = 0
    labels: list[_Label] = Field(default_factory=list)
    pull_request: dict[str, Any] | None = None

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None

    def to_activity(self) -> IssueActivity:
        return IssueActivity(
            id=self.id,
            number=self.number,
            title=self.title,
            created_at=self.created_at,
            closed_at=self.closed_at,
            state=self.state,
            author=(self.user.login if self.user else None) or "unknown",
            comments=self.comments,
            labels=[label.name for label in self.labels],
        )


class IssuesPayload(BaseModel):
    action: str
    issue: IssueBody


class ReleaseBody(BaseModel):
    id: int
    tag_name: str
    name: str | None = None
    published_at: UTCDateTime | None = None
    created_at: UTCDateTime | None = None
    prerelease: bool = False
    draft: bool = False

    def to_activity(self) -> ReleaseActivity:
        published = self.published_at or self.created_at
        if published is None:
            raise InvalidWebhookPayload(f"Release {self.id} has no timestamp")
        return ReleaseActivity(
            id=self.id,
            tag_name=self.tag_name,
            name=self.name or self.tag_name,
            published_at=published,
            prerelease=self.prerelease,
            draft=self.draft,
        )


class ReleasePayload(BaseModel):
    action: str
    release: ReleaseBody


class RepositoryEnvelope(BaseModel):
    """Minimal shape shared by every repository-scoped delivery."""

    repository: _RepositoryRef


class InstallationRepository(BaseModel):
    name: str
    full_name: str

    @property
    def key(self) -> RepositoryKey:
        try:
            return RepositoryKey.parse(self.full_name)
        except ValueError as e:
            raise InvalidWebhookPayload(str(e)) from e


class _Installation(BaseModel):
    id: int


class InstallationPayload(BaseModel):
    """``installation`` and ``installation_repositories`` deliveries."""

    action: str
    installation: _Installation
    repositories: list[InstallationRepository] = Field(default_factory=list)
    repositories_added: list[InstallationRepository] = Field(default_factory=list)
    repositories_removed: list[InstallationRepository] = Field(default_factory=list)


Payload = PushPayload | PullRequestPayload | IssuesPayload | ReleasePayload

PAYLOAD_MODELS: dict[WebhookEventType, type[BaseModel]] = {
    WebhookEventType.PUSH: PushPayload,
    WebhookEventType.PULL_REQUEST: PullRequestPayload,
    WebhookEventType.ISSUES: IssuesPayload,
    WebhookEventType.RELEASE: ReleasePayload,
}


def decode_payload(event_type: WebhookEventType, payload: dict[str, Any]) -> Payload:
    """Validate a payload against the model for its event type."""
    try:
        return PAYLOAD_MODELS[event_type].model_validate(payload)  # type: ignore[return-value]
    except ValidationError as e:
        raise InvalidWebhookPayload(f"Malformed {event_type.value} payload: {e}") from e


def decode_installation(payload: dict[str, Any]) -> InstallationPayload:
    try:
        return InstallationPayload.model_validate(payload)
    except ValidationError as e:
        raise InvalidWebhookPayload(f"Malformed installation payload: {e}") from e


def build_event(
    event_type: str,
    delivery_id: str,
    payload: dict[str, Any],
) -> WebhookEvent:
    """
    Build a queueable event from a raw delivery.

    The payload is fully decoded here so malformed deliveries are rejected
    at ingress rather than failing later in the processor.

    Raises:
        InvalidWebhookPayload: Unknown type, missing delivery id or bad payload
    """
    try:
        kind = WebhookEventType(event_type)
    except ValueError as e:
        raise InvalidWebhookPayload(f"Unsupported event type {event_type!r}") from e
    if not delivery_id:
        raise InvalidWebhookPayload("Missing delivery id")

    try:
        envelope = RepositoryEnvelope.model_validate(payload)
    except ValidationError as e:
        raise InvalidWebhookPayload(f"Missing repository in {event_type} payload: {e}") from e
    decode_payload(kind, payload)

    repo = envelope.repository.key
    return WebhookEvent(
        event_id=delivery_id,
        type=kind,
        owner=repo.owner,
        repo=repo.name,
        payload=payload,
    )
