"""Identifier utilities."""

from __future__ import annotations

import secrets
import time


def generate_job_id() -> str:
  """Return a new job identifier.

  The millisecond prefix keeps ids roughly sortable; the random suffix keeps two
  submissions in the same millisecond distinct.
  """
  return f"job_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def generate_transaction_id() -> str:
  """Return a new ledger transaction identifier."""
  return secrets.token_hex(32)
