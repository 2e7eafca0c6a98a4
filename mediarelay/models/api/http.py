from typing import Dict, List, NotRequired, Optional, TypedDict


class JobCounts(TypedDict):
    total: int
    active: int
    status_counts: Dict[str, int]


class HealthCheckResponse(TypedDict):
    service: str
    time: str
    jobs: JobCounts
    description: NotRequired[str]


class MediaInfoResponse(TypedDict):
    title: Optional[str]
    video_qualities: List[str]
    audio_qualities: List[str]
    subtitle_languages: List[str]
    thumbnail_url: Optional[str]


class CreateJobEndpointResponse(TypedDict):
    jobId: str
    job_id: str
    status: str
    stage: Optional[str]
    progress: int
    created_at: str
    events_url: str
    websocket_url: str


class CancelJobEndpointResponse(TypedDict):
    job_id: str
    status: str
    job_status: NotRequired[str]
