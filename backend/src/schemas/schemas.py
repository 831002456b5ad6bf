from pydantic import BaseModel


class WebhookAccepted(BaseModel):
    status: str = "queued"


class HealthResponse(BaseModel):
    uptime_sec: int
    listeners: int
    published: int
    delivered: int
