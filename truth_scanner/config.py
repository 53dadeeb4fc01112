"""Central configuration for prompts, model candidates and client limits.
Keep tunables here instead of hardcoding them inside services or app.py.
"""
from __future__ import annotations

import os
from pathlib import Path

from truth_scanner.services.prompt import PromptTemplate

# ---------------------------
# Prompt templates
# ---------------------------
FORENSIC_SYSTEM_INSTRUCTION = """You are the Voice Truth Scanner forensic engine.
You detect AI-generated (deepfake) voices and phone/SMS fraud.

OPERATING RULES:
1. Input is either an audio stream (inline data) or a text sample, optionally with SMS text for cross-verification.
2. Supported languages: Tamil, English, Hindi, Telugu, Malayalam and Tamil-English mix ("Tanglish").
3. Look for robotic cadence, missing 8-15Hz micro-tremors, uniform synthetic reverb and algorithmic breathing.
4. Treat SMS content mentioning OTP, bank, urgent transfers or account blocking as high-risk scam patterns.
5. Always report the language you actually detect in "detected_language" and compare it with the
   requested "target_language"; set "language_match" to false when they differ.

RESPONSE RULES:
- Respond with a single JSON object and nothing else. No markdown fences, no commentary.
- Every field below is required unless marked optional. Layer explanations must be non-empty.

REQUIRED JSON SCHEMA:
{
  "final_verdict": "SAFE | CAUTION | AI_GENERATED_FRAUD | BLOCK_NOW",
  "confidence_score": number between 0.0 and 1.0,
  "risk_level": "LOW | MEDIUM | HIGH",
  "detected_language": "string (e.g. Tamil-English mix)",
  "language_match": boolean,
  "analysis_layers": {
    "spatial_acoustics": "string",
    "emotional_micro_dynamics": "string",
    "cultural_linguistics": "string",
    "breath_emotion_sync": "string",
    "spectral_artifacts": "string",
    "code_switching": "string"
  },
  "safety_actions": ["IGNORE" | "BLOCK" | "REPORT"],
  "classification": "AI_GENERATED | HUMAN (optional)",
  "scam_patterns": ["string (optional, e.g. OTP_REQUEST)"],
  "forensic_report": "string (optional, one paragraph)"
}"""

LIVE_SYSTEM_INSTRUCTION = """You are the Voice Truth Scanner live-call monitor.
You receive one short audio chunk (about three seconds) of an ongoing call at a time.
Judge only this chunk; do not assume earlier context.

Respond with a single JSON object and nothing else:
{
  "verdict": "SAFE | CAUTION | AI_GENERATED_FRAUD | BLOCK_NOW",
  "confidence": number between 0.0 and 1.0,
  "current_intent": "short description of what the caller is trying to do",
  "detected_language": "string",
  "is_mismatch": boolean (true when detected_language differs from target_language)
}"""

PROMPTS = {
    "forensic": PromptTemplate(
        key="forensic",
        title="Forensic scan",
        system_instruction=FORENSIC_SYSTEM_INSTRUCTION,
        body=(
            "FORENSIC_ANALYSIS_REQUEST:\n{request_json}\n\n"
            "Run the 6-layer forensic scan. Check for linguistic roboticism in the target language. "
            "Return JSON only."
        ),
    ),
    "live": PromptTemplate(
        key="live",
        title="Live call chunk",
        system_instruction=LIVE_SYSTEM_INSTRUCTION,
        body="LIVE_CHUNK_REQUEST:\n{request_json}\n\nClassify this chunk. Return JSON only.",
    ),
}

# ---------------------------
# Provider model candidates
# ---------------------------
MODEL_CANDIDATES = [
    ("pro", "models/gemini-2.5-pro"),
    ("flash", "models/gemini-2.5-flash"),
]
DEFAULT_MODEL = os.environ.get("TRUTH_SCANNER_MODEL", MODEL_CANDIDATES[0][1])
# Chunks need fast turnaround more than depth
LIVE_MODEL = MODEL_CANDIDATES[1][1]

# ---------------------------
# Transport and retry
# ---------------------------
MAX_PAYLOAD_BYTES = int(os.environ.get("TRUTH_SCANNER_MAX_PAYLOAD_BYTES", str(10 * 1024 * 1024)))
DEFAULT_AUDIO_MIME_TYPE = "audio/mp3"
FETCH_TIMEOUT_SECONDS = 30

RETRY_MAX_RETRIES = int(os.environ.get("TRUTH_SCANNER_MAX_RETRIES", "2"))
RETRY_BASE_DELAY_SECONDS = 1.5
RETRY_BACKOFF = "linear"

# ---------------------------
# History and live mode
# ---------------------------
HISTORY_LIMIT = 50
HISTORY_STORAGE_KEY = "forensic_history"
HISTORY_DIR = Path(os.environ.get("TRUTH_SCANNER_HOME", str(Path.home() / ".truth_scanner")))
LIVE_CHUNK_SECONDS = 3.0
