"""Ledger data types shared by the in-memory ledger, the gateway client and the appender."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TransactionStatus(str, Enum):
  """Normalized transaction lifecycle; only ``sealed`` means the write is durable."""

  PENDING = "pending"
  SEALED = "sealed"
  ERROR = "error"


class ViewKind(str, Enum):
  """Closed set of read projections over a project asset."""

  DISPLAY = "display"
  STORY = "story"
  SERIAL = "serial"


@dataclass(frozen=True)
class TransactionState:
  transaction_id: str
  status: TransactionStatus
  error_message: str | None = None
  conflict: bool = False


@dataclass(frozen=True)
class LogEntry:
  """One append-only step in a project's log."""

  agent: str
  title: str
  description: str
  content_address: str
  timestamp: str

  def to_dict(self) -> dict[str, Any]:
    return {"agent": self.agent, "title": self.title, "description": self.description, "contentAddress": self.content_address, "timestamp": self.timestamp}

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> LogEntry:
    return cls(
      agent=str(payload.get("agent") or ""),
      title=str(payload.get("title") or ""),
      description=str(payload.get("description") or ""),
      content_address=str(payload.get("contentAddress") or payload.get("content_address") or ""),
      timestamp=str(payload.get("timestamp") or ""),
    )


@dataclass(frozen=True)
class ProjectSpec:
  """Creation metadata for a new project asset."""

  name: str
  summary: str
  content_address: str
  owner: str
  investigator: str | None = None
  run_hash: str | None = None


@dataclass
class ProjectAsset:
  """A durable identity that owns an ordered, append-only log."""

  project_id: int
  owner: str
  name: str
  summary: str
  content_address: str
  created_at: str
  investigator: str | None = None
  run_hash: str | None = None
  log: list[LogEntry] = field(default_factory=list)

  def to_dict(self) -> dict[str, Any]:
    return {
      "id": self.project_id,
      "owner": self.owner,
      "name": self.name,
      "summary": self.summary,
      "contentAddress": self.content_address,
      "createdAt": self.created_at,
      "investigator": self.investigator,
      "runHash": self.run_hash,
      "log": [entry.to_dict() for entry in self.log],
    }

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> ProjectAsset:
    return cls(
      project_id=int(payload["id"]),
      owner=str(payload.get("owner") or ""),
      name=str(payload.get("name") or ""),
      summary=str(payload.get("summary") or ""),
      content_address=str(payload.get("contentAddress") or ""),
      created_at=str(payload.get("createdAt") or ""),
      investigator=payload.get("investigator"),
      run_hash=payload.get("runHash"),
      log=[LogEntry.from_dict(item) for item in payload.get("log") or []],
    )
