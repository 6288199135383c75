# certledger/extensions.py
"""Wires the certificate services onto the Flask app."""
from dataclasses import dataclass

from flask import current_app

from certledger.services.extraction_service import AuthenticityExtractionPipeline
from certledger.services.issuance_service import IssuanceService
from certledger.services.kv_store import KeyValueStore, MemoryKeyValueStore, SqlKeyValueStore
from certledger.services.ledger_service import LedgerSimulator
from certledger.services.record_store import RecordStore
from certledger.services.verification_service import VerificationService
from certledger.services.vision_service import OpenAIVisionClient, VisionClient

EXTENSION_KEY = "certledger"


@dataclass
class Services:
    records: RecordStore
    issuance: IssuanceService
    verification: VerificationService
    extraction: AuthenticityExtractionPipeline


def build_store(app) -> KeyValueStore:
    backend = app.config.get("KV_STORE_BACKEND", "sql")
    if backend == "memory":
        return MemoryKeyValueStore()
    if backend == "sql":
        return SqlKeyValueStore()
    raise ValueError(f"Unknown KV_STORE_BACKEND '{backend}'")


def build_vision_client(app) -> VisionClient:
    return OpenAIVisionClient(
        api_key=app.config.get("OPENAI_API_KEY"),
        api_url=app.config["VISION_API_URL"],
        model=app.config["VISION_MODEL"],
        timeout=app.config["VISION_TIMEOUT"],
    )


def init_services(app, store: KeyValueStore = None, vision_client: VisionClient = None) -> Services:
    records = RecordStore(store or build_store(app))
    ledger = LedgerSimulator(
        channel_name=app.config["LEDGER_CHANNEL_NAME"],
        chaincode_name=app.config["LEDGER_CHAINCODE_NAME"],
        network=app.config["LEDGER_NETWORK"],
    )
    services = Services(
        records=records,
        issuance=IssuanceService(records, ledger=ledger,
                                 max_id_attempts=app.config["CERTIFICATE_ID_MAX_ATTEMPTS"]),
        verification=VerificationService(records),
        extraction=AuthenticityExtractionPipeline(vision_client or build_vision_client(app)),
    )
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
