from __future__ import annotations

import os
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------
# Selection settings
# ---------------------------

DEFAULT_K = 10  # the classic "top ten"
TOPK_K = int(os.getenv("TOPK_K", str(DEFAULT_K)))

TIE_POLICIES = ("keep_existing", "identifier")


def env_tie_policy() -> str:
    """Current TOPK_TIE_POLICY; read per model instance so it is validated like input."""
    return os.getenv("TOPK_TIE_POLICY", "keep_existing")


# ---------------------------
# Record layout
# ---------------------------

# StackExchange users.xml dump: <row Id="1" Reputation="101" ... />
DEFAULT_ID_FIELD = "Id"
DEFAULT_SCORE_FIELD = "Reputation"

INPUT_FORMATS = ("xml", "tsv")
DEFAULT_INPUT_FORMAT = "xml"


# ---------------------------
# Local runtime
# ---------------------------

TOPK_WORKERS = int(os.getenv("TOPK_WORKERS", "1"))
TOPK_PARTITION_SIZE = int(os.getenv("TOPK_PARTITION_SIZE", "100000"))  # lines per partition
TOPK_FANIN = int(os.getenv("TOPK_FANIN", "8"))  # lists per combiner group


# ---------------------------
# Remote input / HTTP hardening
# ---------------------------

HTTP_CONNECT_TIMEOUT = 3.0
HTTP_READ_TIMEOUT = 30.0
HTTP_MAX_REDIRECTS = 2
HTTP_MAX_BYTES = 256_000_000

HTTP_USER_AGENT = "topk-selector/1.0"


# ---------------------------
# Logging / observability
# ---------------------------

LOG_LEVEL = os.getenv("TOPK_LOG_LEVEL", "INFO")


# ---------------------------
# Pydantic models shared around the app
# ---------------------------

TiePolicyName = Literal["keep_existing", "identifier"]


class JobSettings(BaseModel):
    """
    Validated settings for one local top-K job.
    Defaults come from the module constants above (and hence the environment).
    """

    model_config = ConfigDict(validate_default=True)

    k: int = Field(default=TOPK_K, ge=1)
    tie_policy: TiePolicyName = Field(default_factory=env_tie_policy)  # type: ignore[assignment]
    partition_size: int = Field(default=TOPK_PARTITION_SIZE, ge=1)
    workers: int = Field(default=TOPK_WORKERS, ge=1)
    fanin: int = Field(default=TOPK_FANIN, ge=2)
    input_format: Literal["xml", "tsv"] = DEFAULT_INPUT_FORMAT
    id_field: str = DEFAULT_ID_FIELD
    score_field: str = DEFAULT_SCORE_FIELD
    keep_payload: bool = False


class CandidateItem(BaseModel):
    """
    Wire form of a single candidate: (score, identifier).
    """

    score: int
    identifier: str = Field(min_length=1)


class SelectRequest(BaseModel):
    """
    Request body for POST /select: raw lines from one partition.
    """

    model_config = ConfigDict(validate_default=True)

    lines: List[str]
    k: int = Field(default=TOPK_K, ge=1)
    tie_policy: TiePolicyName = Field(default_factory=env_tie_policy)  # type: ignore[assignment]
    id_field: str = DEFAULT_ID_FIELD
    score_field: str = DEFAULT_SCORE_FIELD


class SelectResponse(BaseModel):
    """
    Response body for POST /select.
    """

    candidates: List[CandidateItem]
    skipped: int = Field(ge=0)


class MergeRequest(BaseModel):
    """
    Request body for POST /merge: bounded lists from selectors or earlier merges.
    """

    model_config = ConfigDict(validate_default=True)

    lists: List[List[CandidateItem]]
    k: int = Field(default=TOPK_K, ge=1)
    tie_policy: TiePolicyName = Field(default_factory=env_tie_policy)  # type: ignore[assignment]


class MergeResponse(BaseModel):
    """
    Response body for POST /merge, descending by score.
    """

    results: List[CandidateItem]


class HealthResponse(BaseModel):
    """
    Response body for GET /health.
    """

    status: str


def settings_from_env(**overrides: Optional[object]) -> JobSettings:
    """Build JobSettings from the environment defaults, ignoring ``None`` overrides."""
    return JobSettings(**{k: v for k, v in overrides.items() if v is not None})
