"""
Voice module HTTP server.
Exposes profiles, voice features/matching, enrollment, live recognition and
conversation recording via REST API. Audio is sent as base64 int16 mono PCM.
"""

from __future__ import annotations

import argparse
import base64
import binascii
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from . import __version__
from .audio.device_utils import list_input_devices
from .audio.features import extract_voice_features
from .config import load_config
from .enrollment import ENROLLMENT_STEPS
from .errors import (
    DeviceUnavailable,
    InvalidInput,
    SessionStateError,
    TranscriptionUnavailable,
    VoiceError,
)
from .models import TranscriptEvent
from .session import VoiceSession
from .speaker.context import analyze_voice_context
from .speaker.matcher import identify_speaker

logger = logging.getLogger(__name__)

_ERROR_STATUS: list[tuple[type[VoiceError], int, str]] = [
    (InvalidInput, status.HTTP_400_BAD_REQUEST, "invalid_input"),
    (SessionStateError, status.HTTP_409_CONFLICT, "invalid_state"),
    (DeviceUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE, "device_unavailable"),
    (TranscriptionUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE, "transcription_unavailable"),
]


def _decode_audio(data: dict[str, Any], default_rate: int) -> tuple[bytes, int]:
    """Read audio_base64 and sample_rate from a request body. Raises InvalidInput."""
    audio_base64 = data.get("audio_base64") or ""
    if not audio_base64:
        raise InvalidInput("audio_base64 required")
    try:
        audio_bytes = base64.b64decode(audio_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInput("audio_base64 is not valid base64") from e
    try:
        sample_rate = int(data.get("sample_rate", default_rate))
    except (TypeError, ValueError) as e:
        raise InvalidInput("sample_rate must be an integer") from e
    if len(audio_bytes) < 2:
        raise InvalidInput("Audio buffer is empty")
    return audio_bytes, sample_rate


def _speaker_counts(counts: dict[Any, int]) -> dict[str, int]:
    return {("unknown" if k is None else str(k)): v for k, v in counts.items()}


class VoiceModuleServer:
    """HTTP server for the voice module."""

    def __init__(
        self,
        config: dict[str, Any],
        settings_repo: Any = None,
        host: str = "localhost",
        port: int = 8002,
        session: VoiceSession | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self._config = config
        self._settings_repo = settings_repo
        self._session = session
        self._ready = False
        self._app = FastAPI(title="voicekin", version=__version__, lifespan=self._lifespan)
        self._setup_endpoints()

    @property
    def app(self) -> FastAPI:
        return self._app

    @property
    def session(self) -> VoiceSession | None:
        return self._session

    @asynccontextmanager
    async def _lifespan(self, _app: FastAPI):
        await self.startup()
        try:
            yield
        finally:
            await self.shutdown()

    def _error_response(self, status_code: int, error: str, message: str) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"error": error, "message": message})

    def _voice_error_response(self, e: VoiceError) -> JSONResponse:
        for error_type, status_code, code in _ERROR_STATUS:
            if isinstance(e, error_type):
                return self._error_response(status_code, code, str(e))
        return self._error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "voice_error", str(e))

    def _require_session(self) -> JSONResponse | None:
        if self._session is None or not self._ready:
            return self._error_response(
                status.HTTP_503_SERVICE_UNAVAILABLE, "not_ready", "Voice module not initialized"
            )
        return None

    def _profile_not_found(self, profile_id: int) -> JSONResponse:
        return self._error_response(
            status.HTTP_404_NOT_FOUND, "not_found", f"Profile {profile_id} not found"
        )

    def _setup_endpoints(self) -> None:
        """Set up voice endpoints."""
        app = self._app

        @app.get("/health")
        async def health() -> dict[str, Any]:
            session = self._session
            return {
                "status": "ok" if self._ready else "starting",
                "version": __version__,
                "active_flow": session.active_flow if session is not None else None,
            }

        @app.get("/devices")
        async def devices() -> Any:
            """List microphones."""
            try:
                return {"devices": list_input_devices()}
            except VoiceError as e:
                return self._voice_error_response(e)

        @app.get("/enrollment/steps")
        async def enrollment_steps() -> dict[str, Any]:
            return {"steps": ENROLLMENT_STEPS}

        # --- Profiles ---

        @app.get("/profiles")
        async def profiles_list() -> Any:
            if r := self._require_session():
                return r
            return {"profiles": [p.to_dict() for p in self._session.gallery]}

        @app.post("/profiles")
        async def profiles_create(request: Request) -> Any:
            if r := self._require_session():
                return r
            data = await request.json()
            name = (data.get("name") or "").strip()
            if not name:
                return self._error_response(
                    status.HTTP_400_BAD_REQUEST, "invalid_request", "name required"
                )
            profile = self._session.add_profile(
                name,
                relationship=data.get("relationship") or "",
                notes=data.get("notes") or "",
            )
            return {"profile": profile.to_dict()}

        @app.get("/profiles/{profile_id}")
        async def profiles_get(profile_id: int) -> Any:
            if r := self._require_session():
                return r
            try:
                return {"profile": self._session.get_profile(profile_id).to_dict()}
            except KeyError:
                return self._profile_not_found(profile_id)

        @app.delete("/profiles/{profile_id}")
        async def profiles_delete(profile_id: int) -> Any:
            if r := self._require_session():
                return r
            try:
                self._session.remove_profile(profile_id)
            except KeyError:
                return self._profile_not_found(profile_id)
            return {"success": True}

        @app.post("/profiles/{profile_id}/enroll")
        async def profiles_enroll(profile_id: int, request: Request) -> Any:
            """Enroll from base64 audio, or record a greeting from the microphone when none is sent."""
            if r := self._require_session():
                return r
            try:
                data = await request.json()
            except ValueError:
                data = {}
            try:
                samples = None
                sample_rate = None
                if data.get("audio_base64"):
                    samples, sample_rate = _decode_audio(data, self._session.capture.sample_rate)
                result = await self._session.enroll(profile_id, samples, sample_rate)
            except KeyError:
                return self._profile_not_found(profile_id)
            except VoiceError as e:
                return self._voice_error_response(e)
            except Exception as e:
                logger.exception("Voice enroll failed: %s", e)
                return self._error_response(
                    status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", str(e)
                )
            if not result.success:
                return self._error_response(
                    status.HTTP_400_BAD_REQUEST, "enrollment_rejected", result.message
                )
            return {
                "success": True,
                "message": result.message,
                "transcript": result.transcript,
                "voice_feature_vector": result.features.to_dict(),
                "voice_context": result.context.to_dict(),
            }

        # --- Stateless voice analysis ---

        @app.post("/voice/features")
        async def voice_features(request: Request) -> Any:
            try:
                data = await request.json()
                audio, sample_rate = _decode_audio(data, 16000)
                features = extract_voice_features(audio, sample_rate)
                return {"voice_feature_vector": features.to_dict()}
            except VoiceError as e:
                return self._voice_error_response(e)
            except Exception as e:
                logger.exception("Feature extraction failed: %s", e)
                return self._error_response(
                    status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", str(e)
                )

        @app.post("/voice/identify")
        async def voice_identify(request: Request) -> Any:
            if r := self._require_session():
                return r
            try:
                data = await request.json()
                audio, sample_rate = _decode_audio(data, self._session.capture.sample_rate)
                threshold = float(
                    data.get(
                        "threshold",
                        self._session.components.recognition.get("match_threshold", 0.4),
                    )
                )
                features = extract_voice_features(audio, sample_rate)
                match = identify_speaker(features, self._session.gallery, threshold)
            except VoiceError as e:
                return self._voice_error_response(e)
            except (TypeError, ValueError) as e:
                return self._error_response(
                    status.HTTP_400_BAD_REQUEST, "invalid_request", str(e)
                )
            if match is None:
                return {"match": None}
            profile = self._session.get_profile(match.profile_id)
            return {
                "match": {
                    "profile_id": match.profile_id,
                    "name": profile.name,
                    "similarity": match.similarity,
                }
            }

        @app.post("/voice/context")
        async def voice_context(request: Request) -> Any:
            try:
                data = await request.json()
                audio, sample_rate = _decode_audio(data, 16000)
                context = analyze_voice_context(audio, sample_rate, data.get("transcript") or "")
                return {"voice_context": context.to_dict()}
            except VoiceError as e:
                return self._voice_error_response(e)
            except Exception as e:
                logger.exception("Voice context analysis failed: %s", e)
                return self._error_response(
                    status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", str(e)
                )

        # --- Live recognition ---

        @app.post("/recognition/start")
        async def recognition_start() -> Any:
            if r := self._require_session():
                return r
            try:
                loop = await self._session.start_recognition()
            except VoiceError as e:
                return self._voice_error_response(e)
            return {"success": True, "status": loop.status_message}

        @app.post("/recognition/trigger")
        async def recognition_trigger() -> Any:
            if r := self._require_session():
                return r
            loop = self._session.recognition
            if loop is None:
                return self._error_response(
                    status.HTTP_409_CONFLICT, "invalid_state", "Recognition is not running"
                )
            return {"started": loop.trigger(), "status": loop.status_message}

        @app.get("/recognition/status")
        async def recognition_status() -> Any:
            if r := self._require_session():
                return r
            loop = self._session.recognition
            if loop is None:
                return {"listening": False, "processing": False, "status": "", "match": None}
            match = loop.last_match
            return {
                "listening": loop.is_listening,
                "processing": loop.is_processing,
                "status": loop.status_message,
                "match": (
                    {"profile_id": match.profile_id, "similarity": match.similarity}
                    if match is not None
                    else None
                ),
            }

        @app.post("/recognition/stop")
        async def recognition_stop() -> Any:
            if r := self._require_session():
                return r
            await self._session.stop_recognition()
            return {"success": True}

        # --- Conversation recording ---

        @app.post("/conversation/start")
        async def conversation_start() -> Any:
            if r := self._require_session():
                return r
            try:
                await self._session.start_conversation()
            except VoiceError as e:
                return self._voice_error_response(e)
            return {"success": True}

        @app.post("/conversation/transcript")
        async def conversation_transcript(request: Request) -> Any:
            """Push one speech-to-text event (for stt.engine = external)."""
            if r := self._require_session():
                return r
            data = await request.json()
            event = TranscriptEvent(
                is_final=bool(data.get("is_final", True)), text=str(data.get("text") or "")
            )
            if not self._session.push_transcript(event):
                return self._error_response(
                    status.HTTP_409_CONFLICT,
                    "invalid_state",
                    "No flow is accepting external transcripts",
                )
            return {"accepted": True}

        @app.get("/conversation/speakers")
        async def conversation_speakers() -> Any:
            if r := self._require_session():
                return r
            return {"speakers": _speaker_counts(self._session.active_speakers())}

        @app.post("/conversation/stop")
        async def conversation_stop() -> Any:
            if r := self._require_session():
                return r
            conversation = await self._session.stop_conversation()
            if conversation is None:
                return {"conversation": None, "merged_profile_ids": []}
            return {
                "conversation": conversation.to_dict(),
                "merged_profile_ids": self._session.last_merged_profile_ids,
            }

        @app.get("/conversation/last")
        async def conversation_last() -> Any:
            if r := self._require_session():
                return r
            conversation = self._session.last_conversation
            return {"conversation": conversation.to_dict() if conversation is not None else None}

    async def startup(self) -> None:
        """Create the voice session unless one was injected."""
        try:
            if self._session is None:
                self._session = VoiceSession(self._config, self._settings_repo)
            self._ready = True
            logger.info("Voice module initialized and ready")
        except Exception as e:
            logger.exception("Failed to initialize voice module: %s", e)
            self._ready = False

    async def shutdown(self) -> None:
        """Release the microphone and STT engine."""
        self._ready = False
        if self._session is None:
            return
        try:
            await self._session.close()
        except Exception as e:
            logger.warning("Error during voice module shutdown: %s", e)

    def run(self) -> None:
        import uvicorn

        uvicorn.run(self._app, host=self.host, port=self.port)


def main() -> None:
    """CLI entry point for voice module server."""
    parser = argparse.ArgumentParser(description="Voice module HTTP server")
    parser.add_argument("--host", default="localhost", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8002, help="Port to bind to")
    parser.add_argument("--config", help="Path to JSON config file (default: $VOICEKIN_CONFIG)")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config(args.config)
    server = VoiceModuleServer(config=config, host=args.host, port=args.port)
    server.run()


if __name__ == "__main__":
    main()
