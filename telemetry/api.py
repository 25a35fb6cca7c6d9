# FastAPI document store for relayed telemetry batches

from fastapi import FastAPI, Depends, APIRouter, HTTPException
from contextlib import asynccontextmanager
from sqlalchemy.orm import Session
import hashlib

from telemetry.db import get_db, init_db
from telemetry.models import BatchRecord, SampleReading
from telemetry.schemas import BatchDocument, StatusResponse


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup"""
    init_db()
    yield


app = FastAPI(title="Telemetry Store API", version="1.0", lifespan=lifespan)

collections_router = APIRouter(prefix="/api/collections", tags=["Documents"])


def _expand(collection: str, document_key: str, document: BatchDocument):
    """One SampleReading row per channel of every sample"""
    return [
        SampleReading(
            collection=collection,
            document_key=document_key,
            sample_index=sample_idx,
            timestamp_ms=sample.timestamp,
            channel=channel,
            value=value,
        )
        for sample_idx, sample in enumerate(document.samples)
        for channel, value in enumerate(sample.values)
    ]


@collections_router.put(
    "/{collection}/documents/{document_key}", response_model=StatusResponse
)
def put_document(
    collection: str,
    document_key: str,
    document: BatchDocument,
    db: Session = Depends(get_db),
):
    """Set a batch document, replacing any document stored under the same key"""
    body = document.model_dump_json()
    checksum = hashlib.sha256(body.encode()).hexdigest()

    existing = (
        db.query(BatchRecord)
        .filter_by(collection=collection, document_key=document_key)
        .first()
    )
    if existing:
        db.query(SampleReading).filter_by(
            collection=collection, document_key=document_key
        ).delete()
        existing.batch_timestamp = document.batch_timestamp
        existing.num_samples = len(document.samples)
        existing.body = body
        existing.checksum = checksum
        status = "replaced"
    else:
        db.add(
            BatchRecord(
                collection=collection,
                document_key=document_key,
                batch_timestamp=document.batch_timestamp,
                num_samples=len(document.samples),
                body=body,
                checksum=checksum,
            )
        )
        status = "created"
    db.add_all(_expand(collection, document_key, document))
    db.commit()

    return StatusResponse(status=status, message=f"Document {document_key} {status}")


@collections_router.get("/{collection}/documents")
def list_documents(collection: str, db: Session = Depends(get_db)):
    """List the documents of a collection, oldest batch first"""
    records = (
        db.query(BatchRecord)
        .filter_by(collection=collection)
        .order_by(BatchRecord.batch_timestamp)
        .all()
    )
    if not records:
        raise HTTPException(status_code=404, detail="Collection not found")
    return {
        "collection": collection,
        "total_documents": len(records),
        "total_samples": sum(r.num_samples for r in records),
        "documents": [
            {
                "document_key": r.document_key,
                "batch_timestamp": r.batch_timestamp,
                "num_samples": r.num_samples,
            }
            for r in records
        ],
    }


@collections_router.get(
    "/{collection}/documents/{document_key}", response_model=BatchDocument
)
def get_document(collection: str, document_key: str, db: Session = Depends(get_db)):
    """Return a stored batch document"""
    record = (
        db.query(BatchRecord)
        .filter_by(collection=collection, document_key=document_key)
        .first()
    )
    if record is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return BatchDocument.model_validate_json(record.body)


@collections_router.get("/{collection}/samples")
def get_samples(
    collection: str,
    start_ms: int,
    end_ms: int,
    db: Session = Depends(get_db),
):
    """Channel readings with a relative timestamp in [start_ms, end_ms)"""
    readings = (
        db.query(SampleReading)
        .filter_by(collection=collection)
        .filter(SampleReading.timestamp_ms >= start_ms)
        .filter(SampleReading.timestamp_ms < end_ms)
        .order_by(SampleReading.timestamp_ms, SampleReading.channel)
        .all()
    )
    return {
        "collection": collection,
        "start_ms": start_ms,
        "end_ms": end_ms,
        "samples": [
            {
                "document_key": r.document_key,
                "timestamp_ms": r.timestamp_ms,
                "channel": r.channel,
                "value": r.value,
            }
            for r in readings
        ],
    }


@app.get("/health", response_model=StatusResponse)
def health_check():
    """Health check endpoint to verify API is running"""
    return StatusResponse(status="healthy", message="API is up and running")


app.include_router(collections_router)
