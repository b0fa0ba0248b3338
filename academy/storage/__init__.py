"""Storage layer: per-transaction access context, row policies and error mapping."""

from academy.storage.context import access_context, system_context  # noqa: F401
