# services/vision_service.py
"""
Client for the external vision-analysis capability.

The pipeline only depends on `VisionClient.analyze(image, kind)`: an image plus
an instruction kind in, the service's free-text answer out. The prompt texts
live here, keyed by `InstructionKind`, so they can change without touching
pipeline logic.
"""
import enum
import logging
from abc import ABC, abstractmethod

import requests

from certledger.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class InstructionKind(str, enum.Enum):
    AUTHENTICITY_GATE = "authenticity-gate"
    FIELD_EXTRACTION = "field-extraction"


AUTHENTICITY_GATE_PROMPT = """Analyze this certificate image carefully.

IMPORTANT: You must respond with ONLY valid JSON, no other text.

Check if this document contains:
1. Official stamps (university seals, registrar stamps)
2. Authorized signatures (dean, registrar, officials)
3. Official letterhead or institutional branding

Respond with this exact JSON structure:
{
  "hasStamps": true or false,
  "hasSignatures": true or false,
  "isAuthentic": true or false,
  "confidence": number between 0-100,
  "details": "brief description of what you found"
}"""

FIELD_EXTRACTION_PROMPT = """Extract the following information from this academic certificate.

IMPORTANT: You must respond with ONLY valid JSON, no other text or markdown.

Extract these fields:
1. Institution Name (university/college name)
2. Student Full Name
3. University ID Number (student ID, registration number)
4. Degree Type (Bachelor, Master, PhD, Diploma, Associate)
5. Major/Field of Study (the subject/major)
6. Graduation Date (in YYYY-MM-DD format if possible, otherwise any format found)
7. General Grade (look for: Excellent, Very Good, Good, or GPA - if GPA like 3.5/4.0, convert to grade category)

Grade conversion guide:
- GPA 3.5-4.0 or 85-100% = Excellent
- GPA 3.0-3.49 or 75-84% = Very Good
- GPA 2.5-2.99 or 65-74% = Good

Respond with this exact JSON structure:
{
  "institutionName": "extracted value or null",
  "studentName": "extracted value or null",
  "universityId": "extracted value or null",
  "degree": "extracted value or null",
  "major": "extracted value or null",
  "graduationDate": "extracted value or null",
  "generalGrade": "Excellent, Very Good, Good, or null",
  "confidence": number between 0-100
}"""

PROMPTS = {
    InstructionKind.AUTHENTICITY_GATE: AUTHENTICITY_GATE_PROMPT,
    InstructionKind.FIELD_EXTRACTION: FIELD_EXTRACTION_PROMPT,
}

MAX_TOKENS = {
    InstructionKind.AUTHENTICITY_GATE: 500,
    InstructionKind.FIELD_EXTRACTION: 1000,
}


class VisionClient(ABC):

    @abstractmethod
    def analyze(self, image_base64: str, kind: InstructionKind, media_type: str = "image/jpeg") -> str:
        """Sends the image with the instruction for `kind` and returns the raw text answer."""


class OpenAIVisionClient(VisionClient):
    """Chat-completions vision client. Every failure surfaces as ExternalServiceError."""

    def __init__(self, api_key, api_url="https://api.openai.com/v1/chat/completions",
                 model="gpt-4o", timeout=60.0, session=None):
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def _payload(self, image_base64, kind, media_type):
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": PROMPTS[kind]},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{media_type};base64,{image_base64}",
                                "detail": "high",
                            },
                        },
                    ],
                }
            ],
            "max_tokens": MAX_TOKENS[kind],
            "temperature": 0.1,
        }

    def analyze(self, image_base64, kind, media_type="image/jpeg"):
        kind = InstructionKind(kind)
        if not self.api_key:
            raise ExternalServiceError(
                "OpenAI API key not configured. Please add OPENAI_API_KEY to environment variables.")

        try:
            response = self.session.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=self._payload(image_base64, kind, media_type),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Vision service timed out during {kind.value} after {self.timeout}s")
            raise ExternalServiceError("The document analysis service timed out.") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Could not reach the vision service during {kind.value}: {e}")
            raise ExternalServiceError("The document analysis service is unreachable.") from e

        if not response.ok:
            logger.error(f"Vision API error during {kind.value}: {response.status_code} {response.text[:500]}")
            raise ExternalServiceError(f"Document analysis failed ({kind.value}).")

        try:
            return response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Unexpected vision API response shape during {kind.value}")
            raise ExternalServiceError(f"Document analysis returned an unexpected response ({kind.value}).") from e
