from pydantic import BaseModel


class SamplePayload(BaseModel):
    """One sample inside a batch document"""

    timestamp: int  # ms since connection start
    values: list[int | None]  # None where a channel failed to decode


class BatchDocument(BaseModel):
    """Batch document written by the relay"""

    batch_timestamp: int  # epoch ms
    samples: list[SamplePayload]


class StatusResponse(BaseModel):
    """Response model for writes and health checks"""

    status: str
    message: str
