from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class JobKind(str, Enum):
    fetch_topics = "fetch_topics"
    extract_content = "extract_content"
    translate_topic = "translate_topic"
    generate_hook = "generate_hook"
    generate_script = "generate_script"
    generate_storyboard = "generate_storyboard"
    generate_voice = "generate_voice"
    pick_music = "pick_music"
    export_package = "export_package"
    generate_all = "generate_all"
    health_check = "health_check"
    health_check_all = "health_check_all"
    auto_discovery = "auto_discovery"
    extract_trends = "extract_trends"


class JobStatus(str, Enum):
    queued = "queued"
    running = "running"
    done = "done"
    error = "error"


class JobCreate(BaseModel):
    kind: JobKind
    payload: Dict[str, Any] = Field(default_factory=dict)


class JobResponse(BaseModel):
    job_id: str
    status: JobStatus


class JobRecord(BaseModel):
    job_id: str
    kind: JobKind
    status: JobStatus
    created_at: str
    updated_at: str
    progress: int = 0
    message: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class JobsResponse(BaseModel):
    jobs: List[JobRecord]
