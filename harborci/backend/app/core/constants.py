# backend/app/core/constants.py
from enum import Enum


class Provider(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"


class BuildStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


class TriggerType(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    MANUAL = "manual"


class SetupStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

ACTIVE_BUILD_STATUSES = (BuildStatus.PENDING.value, BuildStatus.RUNNING.value)

# Legal transitions reported by the execution engine
BUILD_TRANSITIONS = {
    BuildStatus.PENDING.value: {BuildStatus.RUNNING.value, BuildStatus.CANCELLED.value},
    BuildStatus.RUNNING.value: {
        BuildStatus.SUCCESS.value,
        BuildStatus.FAILURE.value,
        BuildStatus.CANCELLED.value,
    },
}

GITHUB_API_VERSION = "2022-11-28"

# GitLab merge request actions mapped onto pull_request action names
GITLAB_MR_ACTIONS = {
    "open": "opened",
    "reopen": "reopened",
    "update": "synchronize",
    "close": "closed",
    "merge": "closed",
}
