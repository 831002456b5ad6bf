from schemas.schemas import HealthResponse, WebhookAccepted
