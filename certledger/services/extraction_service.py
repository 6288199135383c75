# services/extraction_service.py
"""
Two-stage authenticity pipeline for scanned certificates.

1. Gate: ask the vision service whether the document carries official stamps
   and signatures. A non-authentic verdict or a confidence below
   AUTHENTICITY_CONFIDENCE_THRESHOLD ends the pipeline.
2. Extraction: only after the gate passes, ask for the structured certificate
   fields.

Both stages fail closed: any service or parse failure raises, and no partial
field set is ever returned. Nothing is written to the store here.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from certledger.errors import ExtractionParseError
from certledger.services.vision_service import InstructionKind, VisionClient

logger = logging.getLogger(__name__)

AUTHENTICITY_CONFIDENCE_THRESHOLD = 50

GATE_REJECTION_REASON = (
    "No official stamps or signatures detected on the certificate. Please ensure the "
    "certificate is official and contains proper authorization."
)

EXTRACTED_FIELDS = (
    "institutionName",
    "studentName",
    "universityId",
    "degree",
    "major",
    "graduationDate",
    "generalGrade",
)

GRADE_BUCKETS = ("Excellent", "Very Good", "Good")

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*")
_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def parse_structured_reply(text: Any, stage: str) -> Dict[str, Any]:
    """Parses the JSON object in a vision reply, tolerating ``` fences around it."""
    if not isinstance(text, str):
        raise ExtractionParseError(f"Failed to parse {stage} result: empty response")
    try:
        parsed = json.loads(strip_code_fences(text))
    except ValueError as e:
        logger.error(f"JSON parse error in {stage} result: {e}, content: {text[:500]!r}")
        raise ExtractionParseError(f"Failed to parse {stage} result") from e
    if not isinstance(parsed, dict):
        raise ExtractionParseError(f"Failed to parse {stage} result: expected a JSON object")
    return parsed


def _as_confidence(value: Any, stage: str) -> float:
    if isinstance(value, bool):
        raise ExtractionParseError(f"Invalid confidence in {stage} result")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if match:
            return float(match.group(1))
    raise ExtractionParseError(f"Invalid confidence in {stage} result")


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def convert_grade(value: Any) -> str:
    """
    Normalizes a grade to Excellent / Very Good / Good.

    Named grades pass through. GPAs (<= 4.0, optionally "x/4.0") and
    percentages (> 4, optionally with '%') map by the fixed ranges:
    3.5-4.0 or 85-100% Excellent, 3.0-3.49 or 75-84% Very Good,
    2.5-2.99 or 65-74% Good. Anything else becomes "".
    """
    if value is None:
        return ""
    text = str(value).strip()
    for bucket in GRADE_BUCKETS:
        if text.lower() == bucket.lower():
            return bucket

    match = _NUMBER_RE.search(text)
    if not match:
        return ""
    number = float(match.group(1))

    if "%" not in text and number <= 4.0:
        if number >= 3.5:
            return "Excellent"
        if number >= 3.0:
            return "Very Good"
        if number >= 2.5:
            return "Good"
        return ""

    if number > 100:
        return ""
    if number >= 85:
        return "Excellent"
    if number >= 75:
        return "Very Good"
    if number >= 65:
        return "Good"
    return ""


@dataclass(frozen=True)
class StampAnalysis:
    has_stamps: bool
    has_signatures: bool
    is_authentic: bool
    confidence: float
    details: str

    @property
    def passed(self) -> bool:
        return self.is_authentic and self.confidence >= AUTHENTICITY_CONFIDENCE_THRESHOLD

    def to_dict(self):
        return {
            "hasStamps": self.has_stamps,
            "hasSignatures": self.has_signatures,
            "confidence": self.confidence,
            "details": self.details,
        }


@dataclass(frozen=True)
class ExtractionOutcome:
    stamp_analysis: StampAnalysis
    extracted_data: Optional[Dict[str, str]] = None
    confidence: Optional[float] = None
    reason: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.extracted_data is not None

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {
                "success": False,
                "error": "Certificate validation failed",
                "reason": self.reason,
                "details": self.stamp_analysis.details,
                "stampAnalysis": self.stamp_analysis.to_dict(),
            }
        return {
            "success": True,
            "authenticated": True,
            "stampAnalysis": self.stamp_analysis.to_dict(),
            "extractedData": dict(self.extracted_data),
            "confidence": self.confidence,
        }


class AuthenticityExtractionPipeline:

    def __init__(self, vision: VisionClient):
        self.vision = vision

    def check_authenticity(self, image_base64: str, media_type: str = "image/jpeg") -> StampAnalysis:
        reply = self.vision.analyze(image_base64, InstructionKind.AUTHENTICITY_GATE, media_type)
        data = parse_structured_reply(reply, "stamp detection")
        analysis = StampAnalysis(
            has_stamps=_as_bool(data.get("hasStamps")),
            has_signatures=_as_bool(data.get("hasSignatures")),
            is_authentic=_as_bool(data.get("isAuthentic")),
            confidence=_as_confidence(data.get("confidence"), "stamp detection"),
            details=str(data.get("details") or ""),
        )
        logger.info(f"Stamp detection result: authentic={analysis.is_authentic} confidence={analysis.confidence}")
        return analysis

    def extract_fields(self, image_base64: str, media_type: str = "image/jpeg"):
        reply = self.vision.analyze(image_base64, InstructionKind.FIELD_EXTRACTION, media_type)
        data = parse_structured_reply(reply, "extraction")
        extracted = {name: str(data.get(name) or "").strip() for name in EXTRACTED_FIELDS}
        extracted["generalGrade"] = convert_grade(data.get("generalGrade"))
        confidence = data.get("confidence")
        return extracted, (_as_confidence(confidence, "extraction") if confidence is not None else None)

    def run(self, image_base64: str, media_type: str = "image/jpeg") -> ExtractionOutcome:
        analysis = self.check_authenticity(image_base64, media_type)
        if not analysis.passed:
            logger.info("Certificate rejected at the authenticity gate")
            return ExtractionOutcome(stamp_analysis=analysis, reason=GATE_REJECTION_REASON)

        extracted, confidence = self.extract_fields(image_base64, media_type)
        logger.info(f"Extraction finished with confidence {confidence}")
        return ExtractionOutcome(stamp_analysis=analysis, extracted_data=extracted, confidence=confidence)
