from __future__ import annotations

import enum


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    LECTURER = "LECTURER"
    STUDENT = "STUDENT"


class MessageType(str, enum.Enum):
    TEXT = "TEXT"
    FILE = "FILE"
