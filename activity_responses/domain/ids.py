from __future__ import annotations

import importlib

ulid_module = importlib.import_module("ulid")


def new_request_id() -> str:
    return f"req_{ulid_module.new().str}"


def new_worker_id(role: str) -> str:
    return f"{role}_{ulid_module.new().str}"
